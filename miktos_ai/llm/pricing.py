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

"""Cost estimation for completions.

Prices are static USD estimates per 1K tokens. Unknown models fall back to
their provider's default tier, so estimation never fails.
"""

from __future__ import annotations

from dataclasses import dataclass

from miktos_ai.llm.registry import provider_for_model
from miktos_ai.llm.types import ProviderId, TokenUsage


@dataclass(frozen=True)
class ModelPrice:
    """Per-1K-token prices for one model."""

    input_per_1k: float
    output_per_1k: float


PRICING: dict[ProviderId, dict[str, ModelPrice]] = {
    ProviderId.OPENAI: {
        "gpt-4": ModelPrice(0.03, 0.06),
        "gpt-4-turbo": ModelPrice(0.01, 0.03),
        "gpt-4o": ModelPrice(0.0025, 0.01),
        "gpt-4o-mini": ModelPrice(0.00015, 0.0006),
        "gpt-3.5-turbo": ModelPrice(0.0015, 0.002),
    },
    ProviderId.ANTHROPIC: {
        "claude-3-opus": ModelPrice(0.015, 0.075),
        "claude-3-sonnet": ModelPrice(0.003, 0.015),
        "claude-3-haiku": ModelPrice(0.00025, 0.00125),
        "claude-3-5-sonnet": ModelPrice(0.003, 0.015),
        "claude-3-5-haiku": ModelPrice(0.0008, 0.004),
    },
    ProviderId.GOOGLE: {
        "gemini-pro": ModelPrice(0.00125, 0.00375),
        "gemini-ultra": ModelPrice(0.00375, 0.01125),
        "gemini-1.5-pro": ModelPrice(0.00125, 0.005),
        "gemini-1.5-flash": ModelPrice(0.000075, 0.0003),
    },
}

DEFAULT_MODELS: dict[ProviderId, str] = {
    ProviderId.OPENAI: "gpt-3.5-turbo",
    ProviderId.ANTHROPIC: "claude-3-haiku",
    ProviderId.GOOGLE: "gemini-pro",
}


def lookup_price(model_id: str, provider: ProviderId | None = None) -> ModelPrice:
    """Finds the price entry for a model.

    Lookup order: exact id, the longest table key prefixing the id (dated
    variants such as ``claude-3-haiku-20240307``), the provider default tier.
    Ids of no known family use the OpenAI default tier.

    Args:
        model_id: Requested model identifier.
        provider: Provider to price against; inferred from the id if omitted.

    Returns:
        The matching ModelPrice.
    """
    provider = provider or provider_for_model(model_id) or ProviderId.OPENAI
    table = PRICING[provider]
    if model_id in table:
        return table[model_id]
    prefixes = [key for key in table if model_id.startswith(key)]
    if prefixes:
        return table[max(prefixes, key=len)]
    return table[DEFAULT_MODELS[provider]]


def estimate_cost(
    model_id: str,
    prompt_tokens: int,
    completion_tokens: int,
    provider: ProviderId | None = None,
) -> float:
    """Converts token counts into an estimated USD cost.

    Negative counts are treated as zero; the result is never negative.
    """
    price = lookup_price(model_id, provider)
    prompt_tokens = max(0, prompt_tokens)
    completion_tokens = max(0, completion_tokens)
    return (prompt_tokens / 1000) * price.input_per_1k + (completion_tokens / 1000) * price.output_per_1k


def build_usage(model_id: str, provider: ProviderId, prompt_tokens: int, completion_tokens: int) -> TokenUsage:
    """Builds a TokenUsage with total and estimated cost filled in."""
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
        estimated_cost=estimate_cost(model_id, prompt_tokens, completion_tokens, provider),
    )
