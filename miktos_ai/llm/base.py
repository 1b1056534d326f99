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

"""Provider adapter contract."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import httpx

from miktos_ai.llm.retry import RetryPolicy
from miktos_ai.llm.streaming import ChunkSink
from miktos_ai.llm.types import CompletionRequest, CompletionResponse, FormattedPrompt, Message, ProviderId


@dataclass(frozen=True)
class AdapterSettings:
    """Construction-time settings shared by all adapters.

    ``stream_chunk_size`` and ``stream_chunk_delay`` only apply to adapters
    that simulate streaming.
    """

    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    timeout_seconds: float | None = 60.0
    stream_chunk_size: int = 10
    stream_chunk_delay: float = 0.05


def transport_timeout(settings: AdapterSettings) -> httpx.Timeout | None:
    """Returns the SDK transport timeout for these settings (None disables it)."""
    if settings.timeout_seconds is None:
        return None
    return httpx.Timeout(settings.timeout_seconds, connect=min(10.0, settings.timeout_seconds))


@runtime_checkable
class ProviderAdapter(Protocol):
    """Uniform completion contract implemented once per backend.

    Implementations should:
    - Accept normalized requests and return normalized responses.
    - Hide vendor SDK types completely.
    - Hold no per-call mutable state, so one instance can serve any number of
      concurrent calls.
    """

    provider: ProviderId

    async def generate(self, request: CompletionRequest) -> CompletionResponse:
        """Generates a completion.

        Raises:
            ProviderError: On any unrecoverable backend failure.
        """
        ...

    async def generate_stream(
        self,
        request: CompletionRequest,
        stream_id: str,
        on_chunk: ChunkSink,
    ) -> CompletionResponse:
        """Generates a completion, delivering it to ``on_chunk`` incrementally.

        Raises:
            ProviderError: After emitting a final ERROR chunk.
        """
        ...

    def format_messages(self, messages: Sequence[Message], system_prompt: str | None = None) -> FormattedPrompt:
        """Converts normalized messages into the backend's native shape."""
        ...

    def count_tokens(self, text: str) -> int:
        """Approximates the token count of ``text``; never raises."""
        ...

    async def is_available(self) -> bool:
        """Returns True if the adapter can be used."""
        ...

    async def close(self) -> None:
        """Closes any underlying network resources."""
        ...
