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

"""Factory for building provider adapters."""

from __future__ import annotations

from typing import Callable, Dict

from miktos_ai.llm.base import AdapterSettings, ProviderAdapter
from miktos_ai.llm.exceptions import ConfigurationError
from miktos_ai.llm.types import ProviderId

from miktos_ai.llm.providers.anthropic_client import AnthropicAdapter
from miktos_ai.llm.providers.gemini_client import GoogleAdapter
from miktos_ai.llm.providers.openai_client import OpenAIAdapter


_PROVIDER_MAP: Dict[ProviderId, Callable[..., ProviderAdapter]] = {
    ProviderId.OPENAI: OpenAIAdapter,
    ProviderId.ANTHROPIC: AnthropicAdapter,
    ProviderId.GOOGLE: GoogleAdapter,
}


def build_adapter(provider: ProviderId | str, api_key: str, settings: AdapterSettings | None = None) -> ProviderAdapter:
    """
    Build the adapter for a provider.

    Args:
        provider: Provider identifier.
        api_key: Credential for the backend.
        settings: Optional adapter settings.

    Returns:
        ProviderAdapter instance.

    Raises:
        ConfigurationError: If provider is unknown.
    """
    try:
        cls = _PROVIDER_MAP[ProviderId(provider)]
    except (KeyError, ValueError) as exc:
        raise ConfigurationError(f"Unknown LLM provider: {provider}") from exc
    return cls(api_key, settings)
