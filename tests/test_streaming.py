import asyncio

import pytest

from miktos_ai.llm.streaming import ChunkEmitter, iter_stream, simulate_stream
from miktos_ai.llm.types import ChunkType, CompletionRequest, CompletionResponse, ProviderId, TokenUsage

REQUEST = CompletionRequest(model_id="gemini-pro", prompt="hi")


def _generate_returning(text):
    async def generate(request):
        return CompletionResponse(
            model_id=request.model_id,
            provider=ProviderId.GOOGLE,
            content=text,
            usage=TokenUsage(prompt_tokens=1, completion_tokens=2, total_tokens=3),
            metadata={"finish_reason": "STOP"},
        )

    return generate


def test_emitter_numbers_chunks_and_closes_after_final():
    chunks = []
    emitter = ChunkEmitter("s", "gpt-4", chunks.append, ProviderId.OPENAI)

    async def run():
        await emitter.delta("a")
        await emitter.delta("b")
        await emitter.final("c", metadata={"finish_reason": "stop"})
        assert emitter.closed
        assert await emitter.error("late") is False
        with pytest.raises(RuntimeError):
            await emitter.delta("d")

    asyncio.run(run())

    assert [c.chunk_id for c in chunks] == ["s-1", "s-2", "s-final"]
    assert [c.is_final for c in chunks] == [False, False, True]
    assert chunks[-1].metadata == {"provider": "openai", "finish_reason": "stop"}
    assert all(c.type == ChunkType.CONTENT_DELTA for c in chunks)


def test_emitter_awaits_async_sinks():
    received = []

    async def sink(chunk):
        await asyncio.sleep(0)
        received.append(chunk.text)

    emitter = ChunkEmitter("s", "gpt-4", sink, ProviderId.OPENAI)

    async def run():
        await emitter.delta("x")
        await emitter.final("y")

    asyncio.run(run())
    assert received == ["x", "y"]


def test_emitter_error_chunk_is_terminal():
    chunks = []
    emitter = ChunkEmitter("s", "gpt-4", chunks.append, ProviderId.OPENAI)

    assert asyncio.run(emitter.error("boom")) is True

    (chunk,) = chunks
    assert chunk.type == ChunkType.ERROR
    assert chunk.error == "boom"
    assert chunk.text == ""
    assert chunk.is_final
    assert emitter.closed


def test_simulate_stream_splits_into_fixed_size_pieces_with_delays():
    chunks = []
    waits = []

    async def fake_sleep(seconds):
        waits.append(seconds)

    emitter = ChunkEmitter("s", "gemini-pro", chunks.append, ProviderId.GOOGLE)
    response = asyncio.run(
        simulate_stream(_generate_returning("x" * 25), REQUEST, emitter, chunk_size=10, delay=0.05, sleep=fake_sleep)
    )

    assert [len(c.text) for c in chunks] == [10, 10, 5]
    assert waits == [0.05, 0.05]
    assert chunks[-1].is_final
    assert chunks[-1].metadata["usage"]["total_tokens"] == 3
    assert chunks[-1].metadata["finish_reason"] == "STOP"
    assert response.content == "x" * 25


def test_simulate_stream_empty_text_gives_single_final_chunk():
    chunks = []
    emitter = ChunkEmitter("s", "gemini-pro", chunks.append, ProviderId.GOOGLE)

    asyncio.run(simulate_stream(_generate_returning(""), REQUEST, emitter))

    assert len(chunks) == 1
    assert chunks[0].is_final
    assert chunks[0].text == ""


def test_iter_stream_yields_chunks_in_order():
    async def produce(sink):
        emitter = ChunkEmitter("s", "gpt-4", sink, ProviderId.OPENAI)
        for piece in ("a", "b"):
            await emitter.delta(piece)
            await asyncio.sleep(0)
        await emitter.final("c")

    async def run():
        return [chunk.text async for chunk in iter_stream(produce)]

    assert asyncio.run(run()) == ["a", "b", "c"]


def test_iter_stream_yields_error_chunk_then_raises():
    async def produce(sink):
        emitter = ChunkEmitter("s", "gpt-4", sink, ProviderId.OPENAI)
        await emitter.delta("partial")
        await emitter.error("backend down")
        raise RuntimeError("backend down")

    seen = []

    async def run():
        async for chunk in iter_stream(produce):
            seen.append(chunk)

    with pytest.raises(RuntimeError, match="backend down"):
        asyncio.run(run())

    assert [c.type for c in seen] == [ChunkType.CONTENT_DELTA, ChunkType.ERROR]


def test_closing_iter_stream_early_cancels_the_producer():
    state = {"cancelled": False}

    async def produce(sink):
        emitter = ChunkEmitter("s", "gpt-4", sink, ProviderId.OPENAI)
        await emitter.delta("first")
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise

    async def run():
        chunks = iter_stream(produce)
        first = await chunks.__anext__()
        await chunks.aclose()
        return first

    first = asyncio.run(run())

    assert first.text == "first"
    assert state["cancelled"] is True
