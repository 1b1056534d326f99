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

"""Registry of configured provider adapters and model routing."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from miktos_ai.llm.exceptions import ProviderNotConfiguredError, UnknownModelError
from miktos_ai.llm.types import ProviderId

if TYPE_CHECKING:
    from miktos_ai.llm.base import ProviderAdapter

logger = logging.getLogger(__name__)

# Model id prefix -> provider family.
MODEL_PREFIXES: tuple[tuple[str, ProviderId], ...] = (
    ("gpt", ProviderId.OPENAI),
    ("claude", ProviderId.ANTHROPIC),
    ("gemini", ProviderId.GOOGLE),
)


def provider_for_model(model_id: str) -> ProviderId | None:
    """Classifies a model id by its naming prefix.

    Args:
        model_id: Model identifier, e.g. ``gpt-4`` or ``claude-3-haiku``.

    Returns:
        The provider family, or None if no prefix matches.
    """
    for prefix, provider in MODEL_PREFIXES:
        if model_id.startswith(prefix):
            return provider
    return None


@dataclass(frozen=True)
class ProviderRegistry:
    """Read-only mapping from provider to adapter.

    Built once at start-up (see
    :func:`~miktos_ai.llm.config_loader.build_provider_registry_from_config`);
    nothing can be registered afterwards.

    Example:
        registry.resolve("claude-3-haiku") -> AnthropicAdapter
    """

    adapters: Mapping[ProviderId, ProviderAdapter]

    def __post_init__(self) -> None:
        frozen = {ProviderId(provider): adapter for provider, adapter in self.adapters.items()}
        object.__setattr__(self, "adapters", MappingProxyType(frozen))

    def get(self, provider: ProviderId | str) -> ProviderAdapter | None:
        """Returns the adapter registered for a provider, if any."""
        try:
            return self.adapters.get(ProviderId(provider))
        except ValueError:
            return None

    def resolve(self, model_id: str) -> ProviderAdapter | None:
        """Returns the adapter serving ``model_id``.

        Args:
            model_id: Requested model identifier.

        Returns:
            The adapter, or None if the id matches no provider or the
            provider was not registered.
        """
        provider = provider_for_model(model_id)
        if provider is None:
            logger.warning("Unknown model ID format: %s", model_id)
            return None
        adapter = self.adapters.get(provider)
        if adapter is None:
            logger.warning("Provider %s not initialized", provider.value)
        return adapter

    def require(self, model_id: str) -> ProviderAdapter:
        """Like :meth:`resolve` but raises on failure.

        Raises:
            UnknownModelError: If the id matches no provider.
            ProviderNotConfiguredError: If the provider has no adapter.
        """
        provider = provider_for_model(model_id)
        if provider is None:
            raise UnknownModelError(f"Unknown model ID format: {model_id}")
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise ProviderNotConfiguredError(
                f"Provider '{provider.value}' for model '{model_id}' is not configured (missing API key)."
            )
        return adapter

    def list_available(self) -> frozenset[ProviderId]:
        """Returns the providers currently registered."""
        return frozenset(self.adapters)

    def __contains__(self, provider: object) -> bool:
        return provider in self.adapters

    async def close_all(self) -> None:
        """Closes every adapter.

        Best-effort: a failing close is logged and does not stop the others.
        """
        for provider, adapter in self.adapters.items():
            try:
                await adapter.close()
            except Exception:  # pylint: disable=broad-exception-caught - best-effort close
                logger.warning("Failed to close %s adapter", provider.value, exc_info=True)
