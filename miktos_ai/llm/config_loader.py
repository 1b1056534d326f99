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

"""Provider registry loader.

This module converts application configuration into a
:class:`~miktos_ai.llm.registry.ProviderRegistry`. Configuration is read once;
the registry never looks at it again.
"""

from __future__ import annotations

import logging
from typing import Any

from miktos_ai.llm.base import AdapterSettings, ProviderAdapter
from miktos_ai.llm.factory import build_adapter
from miktos_ai.llm.registry import ProviderRegistry
from miktos_ai.llm.retry import RetryPolicy
from miktos_ai.llm.types import ProviderId

logger = logging.getLogger(__name__)

_MISSING: object = object()

# Provider -> config attribute holding its API key.
CREDENTIAL_FIELDS: dict[ProviderId, str] = {
    ProviderId.OPENAI: "OPENAI_API_KEY",
    ProviderId.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderId.GOOGLE: "GEMINI_API_KEY",
}


def _cfg_get(config: object, name: str, default: object = _MISSING) -> Any:
    """Gets an attribute from either a config instance or a config class.

    Args:
        config: Config instance or class-like object.
        name: Attribute name.
        default: Default value if attribute is not present.

    Returns:
        Attribute value.

    Raises:
        AttributeError: If the attribute is missing and no default was provided.
    """
    if hasattr(config, name):
        return getattr(config, name)
    if default is not _MISSING:
        return default
    raise AttributeError(f"Missing config attribute: {name}")


def build_adapter_settings(config: object) -> AdapterSettings:
    """Builds adapter settings from configuration.

    Args:
        config: Config instance or class-like object exposing attributes.

    Returns:
        AdapterSettings shared by every adapter.
    """
    timeout = float(_cfg_get(config, "LLM_TIMEOUT_SECONDS", 60.0))
    return AdapterSettings(
        retry_policy=RetryPolicy(
            max_retries=int(_cfg_get(config, "LLM_MAX_RETRIES", 3)),
            initial_delay=float(_cfg_get(config, "LLM_RETRY_INITIAL_DELAY", 1.0)),
        ),
        timeout_seconds=timeout if timeout > 0 else None,
        stream_chunk_size=max(1, int(_cfg_get(config, "LLM_STREAM_CHUNK_SIZE", 10))),
        stream_chunk_delay=float(_cfg_get(config, "LLM_STREAM_CHUNK_DELAY", 0.05)),
    )


def build_provider_registry_from_config(config: object) -> ProviderRegistry:
    """Builds a ProviderRegistry from application configuration.

    Each provider whose API key is present gets an adapter. A missing key is
    not an error: it is logged and the provider stays unavailable.

    Args:
        config: Config instance or class-like object exposing the
            ``*_API_KEY`` attributes listed in :data:`CREDENTIAL_FIELDS`.

    Returns:
        ProviderRegistry, possibly empty.
    """
    settings = build_adapter_settings(config)
    adapters: dict[ProviderId, ProviderAdapter] = {}

    for provider, field_name in CREDENTIAL_FIELDS.items():
        api_key = str(_cfg_get(config, field_name, "") or "").strip()
        if not api_key:
            logger.warning("%s not found in config, %s provider not initialized", field_name, provider.label)
            continue
        adapters[provider] = build_adapter(provider, api_key, settings)
        logger.info("%s provider initialized", provider.label)

    return ProviderRegistry(adapters=adapters)
