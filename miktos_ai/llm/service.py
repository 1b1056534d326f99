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

"""Caller-facing model service.

``ModelService`` is what the outer layers (HTTP handlers, CLI, jobs) talk
to. It routes each request to the adapter serving its model id; all provider
specifics stay behind the adapters.

The service is constructed explicitly and passed around; there is no
process-wide instance.
"""

from __future__ import annotations

import contextlib
import uuid
from collections.abc import AsyncIterator

from miktos_ai.llm.base import ProviderAdapter
from miktos_ai.llm.config_loader import build_provider_registry_from_config
from miktos_ai.llm.registry import ProviderRegistry
from miktos_ai.llm.streaming import ChunkSink, iter_stream
from miktos_ai.llm.types import CompletionRequest, CompletionResponse, ProviderId, StreamChunk


class ModelService:
    """Routes completion requests to provider adapters."""

    def __init__(self, registry: ProviderRegistry) -> None:
        """Initialize the service.

        Args:
            registry: Registry of configured adapters.
        """
        self._registry = registry

    @classmethod
    def from_config(cls, config: object) -> ModelService:
        """Builds the registry from configuration and wraps it."""
        return cls(build_provider_registry_from_config(config))

    @property
    def registry(self) -> ProviderRegistry:
        """Returns the underlying registry."""
        return self._registry

    def resolve_provider(self, model_id: str) -> ProviderAdapter | None:
        """Returns the adapter for ``model_id`` or None."""
        return self._registry.resolve(model_id)

    async def generate(self, request: CompletionRequest) -> CompletionResponse:
        """Generates a completion.

        A model that cannot be routed raises here instead of being reported
        only as a resolution failure; use :meth:`resolve_provider` to check
        routing without raising.

        Raises:
            UnknownModelError: If the model id matches no provider.
            ProviderNotConfiguredError: If the provider has no credential.
            ProviderError: If the backend call fails.
        """
        adapter = self._registry.require(request.model_id)
        return await adapter.generate(request)

    async def generate_stream(
        self,
        request: CompletionRequest,
        stream_id: str,
        on_chunk: ChunkSink,
    ) -> CompletionResponse:
        """Streams a completion to ``on_chunk`` and returns the full response.

        Resolution failures raise before any chunk is emitted.
        """
        adapter = self._registry.require(request.model_id)
        return await adapter.generate_stream(request, stream_id, on_chunk)

    async def stream(self, request: CompletionRequest, stream_id: str | None = None) -> AsyncIterator[StreamChunk]:
        """Yields the chunks of a streamed completion.

        Breaking out of the iteration (or closing it) cancels the backend
        call. A failed stream yields its ERROR chunk, then raises.

        Args:
            request: Completion request.
            stream_id: Stream identifier; a random one is generated if omitted.

        Yields:
            StreamChunk values in emission order.
        """
        adapter = self._registry.require(request.model_id)
        sid = stream_id or uuid.uuid4().hex

        def produce(sink: ChunkSink):
            return adapter.generate_stream(request, sid, sink)

        async with contextlib.aclosing(iter_stream(produce)) as chunks:
            async for chunk in chunks:
                yield chunk

    async def is_provider_available(self, provider: ProviderId | str) -> bool:
        """Returns True if the provider is registered and its adapter is usable."""
        adapter = self._registry.get(provider)
        if adapter is None:
            return False
        return await adapter.is_available()

    def list_available_providers(self) -> set[str]:
        """Returns the ids of the registered providers."""
        return {provider.value for provider in self._registry.list_available()}

    async def close(self) -> None:
        """Closes every adapter's network resources."""
        await self._registry.close_all()
