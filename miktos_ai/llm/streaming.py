# Licensed to the Apache Software Foundation (ASF) under one
# or more contributor license agreements.  See the NOTICE file
# distributed with this work for additional information
# regarding copyright ownership.  The ASF licenses this file
# to you under the Apache License, Version 2.0 (the
# "License"); you may not use this file except in compliance
# with the License.  You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
# KIND, either express or implied.  See the License for the
# specific language governing permissions and limitations
# under the License.

"""Stream chunk production.

A stream is an ordered, finite sequence of :class:`StreamChunk` values for one
``stream_id``, ended by exactly one ``is_final`` chunk. :class:`ChunkEmitter`
enforces that; :func:`simulate_stream` is the fallback for backends without
incremental output; :func:`iter_stream` exposes any stream as an async
iterator.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Union

from miktos_ai.llm.types import ChunkType, CompletionRequest, CompletionResponse, ProviderId, StreamChunk

logger = logging.getLogger(__name__)

ChunkSink = Callable[[StreamChunk], Union[None, Awaitable[None]]]


class ChunkEmitter:
    """Builds chunks for one stream and delivers them to a sink in order.

    Chunk ids are ``<stream_id>-<seq>`` (``-final`` / ``-error`` for the
    terminal chunk), unique within the stream. Once the terminal chunk has
    been emitted nothing else may be sent.
    """

    def __init__(self, stream_id: str, model_id: str, sink: ChunkSink, provider: ProviderId) -> None:
        self._stream_id = stream_id
        self._model_id = model_id
        self._sink = sink
        self._provider = provider
        self._seq = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once the terminal chunk was handed to the sink."""
        return self._closed

    async def delta(self, text: str) -> None:
        """Emits a non-final content delta."""
        await self._emit(ChunkType.CONTENT_DELTA, {"text": text}, is_final=False, suffix=None)

    async def final(self, text: str = "", metadata: dict[str, Any] | None = None) -> None:
        """Emits the final content chunk."""
        await self._emit(ChunkType.CONTENT_DELTA, {"text": text}, is_final=True, suffix="final", metadata=metadata)

    async def error(self, message: str) -> bool:
        """Emits the terminal error chunk.

        Returns:
            False if the stream was already closed and nothing was sent.
        """
        if self._closed:
            return False
        await self._emit(ChunkType.ERROR, {"error": message}, is_final=True, suffix="error")
        return True

    async def fail(self, message: str) -> None:
        """Emits the terminal error chunk on a failure path.

        A sink that raises while receiving it is logged; the failure being
        reported stays the one the caller raises.
        """
        try:
            await self.error(message)
        except Exception:  # noqa: BLE001  pylint: disable=broad-exception-caught
            logger.warning("Could not deliver error chunk for stream %s", self._stream_id, exc_info=True)

    async def _emit(
        self,
        chunk_type: ChunkType,
        payload: dict[str, Any],
        *,
        is_final: bool,
        suffix: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if self._closed:
            raise RuntimeError(f"Stream {self._stream_id} is already closed.")
        self._seq += 1
        chunk_id = f"{self._stream_id}-{suffix}" if suffix else f"{self._stream_id}-{self._seq}"
        chunk = StreamChunk(
            stream_id=self._stream_id,
            chunk_id=chunk_id,
            type=chunk_type,
            payload=payload,
            timestamp=datetime.now(timezone.utc),
            is_final=is_final,
            model_id=self._model_id,
            metadata={"provider": self._provider.value, **(metadata or {})},
        )
        if is_final:
            self._closed = True
        result = self._sink(chunk)
        if inspect.isawaitable(result):
            await result


async def simulate_stream(
    generate: Callable[[CompletionRequest], Awaitable[CompletionResponse]],
    request: CompletionRequest,
    emitter: ChunkEmitter,
    *,
    chunk_size: int = 10,
    delay: float = 0.05,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> CompletionResponse:
    """Streams a single-shot completion by re-chunking its text.

    Calls ``generate`` once, then emits fixed-size pieces with ``delay``
    seconds between them. The last piece is the final chunk and carries the
    usage; an empty completion still produces one (empty) final chunk.

    Args:
        generate: The adapter's non-streaming generate.
        request: Completion request.
        emitter: Emitter of the target stream.
        chunk_size: Characters per chunk.
        delay: Pause between chunks, in seconds.
        sleep: Awaitable sleep (injectable for tests).

    Returns:
        The response returned by ``generate``.
    """
    response = await generate(request)
    text = response.content
    pieces = [text[i:i + chunk_size] for i in range(0, len(text), chunk_size)] or [""]

    for index, piece in enumerate(pieces):
        if index == len(pieces) - 1:
            await emitter.final(piece, metadata={"usage": response.usage.to_dict(), **response.metadata})
        else:
            await emitter.delta(piece)
            await sleep(delay)
    return response


async def iter_stream(
    produce: Callable[[ChunkSink], Awaitable[CompletionResponse]],
) -> AsyncIterator[StreamChunk]:
    """Runs a callback-style stream producer and yields its chunks in order.

    The producer runs as a task. If it fails, its ERROR chunk is yielded and
    then the failure is raised. Closing the iterator early cancels the task.

    Args:
        produce: Coroutine factory taking the chunk sink, typically
            ``lambda sink: adapter.generate_stream(request, stream_id, sink)``.

    Yields:
        Stream chunks, ending with the final one.
    """
    queue: asyncio.Queue[StreamChunk] = asyncio.Queue()
    task = asyncio.ensure_future(produce(queue.put_nowait))
    getter: asyncio.Future[StreamChunk] | None = None
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                break
            chunk = getter.result()
            yield chunk
            if chunk.is_final:
                break
        while not queue.empty():
            yield queue.get_nowait()
        await task
    finally:
        if getter is not None and not getter.done():
            getter.cancel()
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
