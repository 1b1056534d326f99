import pytest

from miktos_ai.llm.pricing import DEFAULT_MODELS, PRICING, build_usage, estimate_cost, lookup_price
from miktos_ai.llm.types import ProviderId


def test_zero_tokens_cost_nothing():
    for provider, table in PRICING.items():
        for model_id in table:
            assert estimate_cost(model_id, 0, 0, provider) == 0


def test_known_model_prices():
    assert estimate_cost("gpt-4", 1000, 1000) == pytest.approx(0.09)
    assert estimate_cost("claude-3-opus", 2000, 0) == pytest.approx(0.03)
    assert estimate_cost("gemini-pro", 0, 1000) == pytest.approx(0.00375)


def test_cost_is_monotonic_in_token_counts():
    base = estimate_cost("gpt-4o", 100, 100)
    assert estimate_cost("gpt-4o", 101, 100) >= base
    assert estimate_cost("gpt-4o", 100, 101) >= base


def test_negative_counts_are_clamped():
    assert estimate_cost("gpt-4", -50, -1) == 0
    assert estimate_cost("gpt-4", -50, 1000) == pytest.approx(0.06)


def test_dated_variants_use_longest_prefix():
    assert lookup_price("claude-3-haiku-20240307") == PRICING[ProviderId.ANTHROPIC]["claude-3-haiku"]
    assert lookup_price("gpt-4o-2024-08-06") == PRICING[ProviderId.OPENAI]["gpt-4o"]
    assert lookup_price("gpt-4o-mini-2024-07-18") == PRICING[ProviderId.OPENAI]["gpt-4o-mini"]


@pytest.mark.parametrize(
    "model_id, provider",
    [
        ("gpt-5-preview", ProviderId.OPENAI),
        ("claude-instant", ProviderId.ANTHROPIC),
        ("gemini-nano", ProviderId.GOOGLE),
    ],
)
def test_unknown_models_fall_back_to_provider_default(model_id, provider):
    assert lookup_price(model_id) == PRICING[provider][DEFAULT_MODELS[provider]]


def test_unknown_family_uses_openai_default():
    assert lookup_price("llama-3") == PRICING[ProviderId.OPENAI]["gpt-3.5-turbo"]
    assert estimate_cost("llama-3", 1000, 0) == pytest.approx(0.0015)


def test_build_usage_fills_total_and_cost():
    usage = build_usage("gpt-4", ProviderId.OPENAI, 12, 3)
    assert usage.total_tokens == 15
    assert usage.estimated_cost == pytest.approx(0.00054)
