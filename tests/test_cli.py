import json

import pytest

import miktos_ai.cli as cli
from miktos_ai.llm.exceptions import PermanentProviderError
from miktos_ai.llm.registry import ProviderRegistry
from miktos_ai.llm.service import ModelService
from miktos_ai.llm.streaming import ChunkEmitter
from miktos_ai.llm.types import CompletionResponse, ProviderId, TokenUsage


class DummyAdapter:
    provider = ProviderId.OPENAI

    def __init__(self, fail=False):
        self.fail = fail
        self.closed = False

    async def generate(self, request):
        if self.fail:
            raise PermanentProviderError(self.provider, "invalid api key")
        return CompletionResponse(
            model_id=request.model_id,
            provider=self.provider,
            content="Paris",
            usage=TokenUsage(prompt_tokens=4, completion_tokens=1, total_tokens=5, estimated_cost=0.00018),
            metadata={"finish_reason": "stop"},
        )

    async def generate_stream(self, request, stream_id, on_chunk):
        emitter = ChunkEmitter(stream_id, request.model_id, on_chunk, self.provider)
        await emitter.delta("Pa")
        await emitter.final("ris")
        return await self.generate(request)

    async def close(self):
        self.closed = True


@pytest.fixture
def adapter(monkeypatch):
    dummy = DummyAdapter()
    service = ModelService(ProviderRegistry({ProviderId.OPENAI: dummy}))
    monkeypatch.setattr(cli, "build_model_service", lambda: service)
    return dummy


def test_providers_list_json(adapter, capsys):
    assert cli.main(["providers", "list", "--json"]) == 0
    assert json.loads(capsys.readouterr().out) == ["openai"]


def test_providers_list_empty(monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_model_service", lambda: ModelService(ProviderRegistry({})))
    assert cli.main(["providers", "list"]) == 0
    assert "No providers configured." in capsys.readouterr().out


def test_generate_prints_content(adapter, capsys):
    assert cli.main(["generate", "--model", "gpt-4", "--prompt", "Capital of France?"]) == 0
    assert capsys.readouterr().out.strip() == "Paris"
    assert adapter.closed


def test_generate_json(adapter, capsys):
    assert cli.main(["generate", "--model", "gpt-4", "--prompt", "hi", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["provider"] == "openai"
    assert payload["usage"]["total_tokens"] == 5


def test_generate_stream_prints_deltas(adapter, capsys):
    assert cli.main(["generate", "--model", "gpt-4", "--prompt", "hi", "--stream"]) == 0
    assert capsys.readouterr().out == "Paris\n"


def test_generate_unknown_model_exits_with_2(adapter, capsys):
    assert cli.main(["generate", "--model", "unknown-model-x", "--prompt", "hi"]) == 2
    assert "Unknown model ID format: unknown-model-x" in capsys.readouterr().err
    assert adapter.closed


def test_generate_unconfigured_provider_exits_with_2(adapter, capsys):
    assert cli.main(["generate", "--model", "claude-3-haiku", "--prompt", "hi"]) == 2
    assert "not configured" in capsys.readouterr().err


def test_generate_provider_error_exits_with_1(monkeypatch, capsys):
    service = ModelService(ProviderRegistry({ProviderId.OPENAI: DummyAdapter(fail=True)}))
    monkeypatch.setattr(cli, "build_model_service", lambda: service)

    assert cli.main(["generate", "--model", "gpt-4", "--prompt", "hi"]) == 1
    assert "error: OpenAI API Error: invalid api key" in capsys.readouterr().err
