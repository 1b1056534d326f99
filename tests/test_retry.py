import asyncio
from types import SimpleNamespace

import pytest

from miktos_ai.llm.base import AdapterSettings
from miktos_ai.llm.exceptions import (
    PermanentProviderError,
    RetryLimitExceededError,
    TransientProviderError,
)
from miktos_ai.llm.providers.gemini_client import GoogleAdapter
from miktos_ai.llm.retry import RetryPolicy, call_with_retry, is_rate_limit_error
from miktos_ai.llm.types import CompletionRequest, ProviderId


class FlakyOperation:
    """Fails with the given errors, then returns 'ok'."""

    def __init__(self, errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def _policy(waits):
    async def fake_sleep(seconds):
        waits.append(seconds)

    return RetryPolicy(sleep=fake_sleep)


@pytest.mark.parametrize(
    "message",
    [
        "Rate limit reached for gpt-4",
        "Error code: 429 - rate_limit_exceeded",
        "RESOURCE_EXHAUSTED: Quota exceeded for quota metric",
        "Request limit hit",
        "Too Many Requests",
    ],
)
def test_rate_limit_errors_are_classified(message):
    assert is_rate_limit_error(RuntimeError(message))


@pytest.mark.parametrize("message", ["invalid api key", "model not found", "failed to generate"])
def test_other_errors_are_not_rate_limited(message):
    assert not is_rate_limit_error(RuntimeError(message))


def test_status_code_and_transient_error_are_rate_limited():
    exc = RuntimeError("nope")
    exc.status_code = 429
    assert is_rate_limit_error(exc)
    assert is_rate_limit_error(TransientProviderError(ProviderId.OPENAI, "slow down"))
    assert not is_rate_limit_error(PermanentProviderError(ProviderId.OPENAI, "rate"))


def test_succeeds_on_third_attempt_after_two_backoff_waits():
    waits = []
    op = FlakyOperation([RuntimeError("rate limit"), RuntimeError("rate limit")])

    result = asyncio.run(call_with_retry(op, provider=ProviderId.GOOGLE, policy=_policy(waits)))

    assert result == "ok"
    assert op.calls == 3
    assert waits == [1.0, 2.0]


def test_exhausting_retries_raises_maximum_retry_limit():
    waits = []
    op = FlakyOperation([RuntimeError("quota exceeded")] * 10)

    with pytest.raises(RetryLimitExceededError) as excinfo:
        asyncio.run(call_with_retry(op, provider=ProviderId.GOOGLE, policy=_policy(waits)))

    assert op.calls == 4
    assert waits == [1.0, 2.0, 4.0]
    assert "Maximum retry limit reached" in str(excinfo.value)
    assert str(excinfo.value).startswith("Google AI API Error:")
    assert excinfo.value.raw_message == "quota exceeded"


def test_non_rate_limit_failure_is_not_retried():
    waits = []
    op = FlakyOperation([RuntimeError("invalid api key")])

    with pytest.raises(PermanentProviderError) as excinfo:
        asyncio.run(call_with_retry(op, provider=ProviderId.OPENAI, policy=_policy(waits)))

    assert op.calls == 1
    assert waits == []
    assert str(excinfo.value) == "OpenAI API Error: invalid api key"
    assert excinfo.value.raw_message == "invalid api key"


class FakeModels:
    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    async def generate_content(self, **kwargs):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _gemini_response(text):
    part = SimpleNamespace(text=text)
    candidate = SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason="STOP")
    return SimpleNamespace(candidates=[candidate], usage_metadata=None)


def test_adapter_generate_retries_rate_limited_backend():
    waits = []
    models = FakeModels([RuntimeError("429 quota"), RuntimeError("rate limited"), _gemini_response("done")])
    adapter = GoogleAdapter(
        "key",
        settings=AdapterSettings(retry_policy=_policy(waits)),
        client=SimpleNamespace(aio=SimpleNamespace(models=models)),
    )

    response = asyncio.run(adapter.generate(CompletionRequest(model_id="gemini-pro", prompt="hi")))

    assert response.content == "done"
    assert models.calls == 3
    assert waits == [1.0, 2.0]


def test_adapter_generate_gives_up_after_four_attempts():
    waits = []
    models = FakeModels([RuntimeError("rate limit")] * 5)
    adapter = GoogleAdapter(
        "key",
        settings=AdapterSettings(retry_policy=_policy(waits)),
        client=SimpleNamespace(aio=SimpleNamespace(models=models)),
    )

    with pytest.raises(RetryLimitExceededError, match="Maximum retry limit reached"):
        asyncio.run(adapter.generate(CompletionRequest(model_id="gemini-pro", prompt="hi")))

    assert models.calls == 4
    assert waits == [1.0, 2.0, 4.0]
