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

"""OpenAI provider adapter."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from miktos_ai.llm.base import AdapterSettings, transport_timeout
from miktos_ai.llm.exceptions import wrap_provider_error
from miktos_ai.llm.normalizer import blocks_to_text, estimate_tokens, prompt_texts, request_messages
from miktos_ai.llm.pricing import build_usage
from miktos_ai.llm.retry import call_with_retry
from miktos_ai.llm.streaming import ChunkEmitter, ChunkSink
from miktos_ai.llm.types import (
    CompletionRequest,
    CompletionResponse,
    FormattedPrompt,
    Message,
    MessageRole,
    ProviderId,
    TokenUsage,
)

logger = logging.getLogger(__name__)

_CHARS_PER_TOKEN = 4.0


class OpenAIAdapter:
    """OpenAI chat completions adapter with native streaming.

    Uses the official ``openai`` SDK (``AsyncOpenAI``). The SDK is imported
    lazily so installing it is only required if this provider is used.
    """

    provider = ProviderId.OPENAI

    def __init__(self, api_key: str, settings: AdapterSettings | None = None, client: Any | None = None) -> None:
        """Initialize the adapter.

        Args:
            api_key: OpenAI API key; an empty key makes the adapter unavailable.
            settings: Retry, timeout and streaming settings.
            client: Pre-built ``AsyncOpenAI``-compatible client (tests).
        """
        self._api_key = api_key or ""
        self._settings = settings or AdapterSettings()
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            # pylint: disable=import-outside-toplevel
            from openai import AsyncOpenAI

            # Retries are handled by call_with_retry, not by the SDK.
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                timeout=transport_timeout(self._settings),
                max_retries=0,
            )
        return self._client

    async def close(self) -> None:
        """Closes the SDK client if one was created."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def is_available(self) -> bool:
        """Returns True if an API key was supplied."""
        return bool(self._api_key)

    def count_tokens(self, text: str) -> int:
        """Approximates tokens as one per four characters."""
        try:
            return estimate_tokens(text, _CHARS_PER_TOKEN)
        except Exception:  # noqa: BLE001  pylint: disable=broad-exception-caught
            logger.error("OpenAI token counting error", exc_info=True)
            return estimate_tokens(str(text or ""), _CHARS_PER_TOKEN)

    def format_messages(self, messages: Sequence[Message], system_prompt: str | None = None) -> FormattedPrompt:
        """Converts normalized messages into OpenAI chat messages.

        The system prompt becomes a leading ``system`` message. Tool messages
        need a ``tool_call_id``; without one they are sent as user content.
        """
        out: list[dict[str, Any]] = []
        if system_prompt:
            out.append({"role": "system", "content": system_prompt})

        for m in messages:
            text = blocks_to_text(m.content)
            if m.role == MessageRole.TOOL:
                if m.tool_call_id:
                    out.append({"role": "tool", "content": text, "tool_call_id": m.tool_call_id})
                else:
                    out.append({"role": "user", "content": text})
            else:
                out.append({"role": m.role.value, "content": text})
        return FormattedPrompt(messages=out)

    def _request_kwargs(self, request: CompletionRequest, formatted: FormattedPrompt) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": request.model_id,
            "messages": formatted.messages,
            "temperature": request.temperature,
        }
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens
        if request.stop_sequences:
            kwargs["stop"] = list(request.stop_sequences)
        return kwargs

    def _usage(self, model_id: str, formatted: FormattedPrompt, content: str, native: Any) -> TokenUsage:
        """Native counts take precedence; missing ones are estimated."""
        prompt_tokens = getattr(native, "prompt_tokens", None) if native is not None else None
        completion_tokens = getattr(native, "completion_tokens", None) if native is not None else None
        if prompt_tokens is None:
            prompt_tokens = sum(self.count_tokens(text) for text in prompt_texts(formatted))
        if completion_tokens is None:
            completion_tokens = self.count_tokens(content)
        return build_usage(model_id, self.provider, int(prompt_tokens), int(completion_tokens))

    async def generate(self, request: CompletionRequest) -> CompletionResponse:
        """Generates a completion with the chat completions API.

        Args:
            request: Completion request.

        Returns:
            Normalized CompletionResponse.

        Raises:
            PermanentProviderError: For non rate-limit failures.
            RetryLimitExceededError: When rate-limited on every attempt.
        """
        try:
            formatted = self.format_messages(request_messages(request), request.system_prompt)
            kwargs = self._request_kwargs(request, formatted)
            client = self._get_client()

            response = await call_with_retry(
                lambda: client.chat.completions.create(**kwargs),
                provider=self.provider,
                policy=self._settings.retry_policy,
            )

            choice = response.choices[0] if response.choices else None
            message = getattr(choice, "message", None)
            content = getattr(message, "content", None) or ""

            metadata: dict[str, Any] = {"finish_reason": getattr(choice, "finish_reason", None)}
            if getattr(response, "id", None):
                metadata["response_id"] = response.id

            return CompletionResponse(
                model_id=request.model_id,
                provider=self.provider,
                content=content,
                usage=self._usage(request.model_id, formatted, content, getattr(response, "usage", None)),
                metadata=metadata,
            )
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-exception-caught
            error = wrap_provider_error(exc, self.provider)
            logger.error("OpenAI API error: %s", error.raw_message)
            if error is exc:
                raise
            raise error from exc

    async def generate_stream(
        self,
        request: CompletionRequest,
        stream_id: str,
        on_chunk: ChunkSink,
    ) -> CompletionResponse:
        """Streams a completion, emitting each content delta as it arrives.

        Usage is requested from the API via ``stream_options``; if the
        backend does not report it, it is estimated.
        """
        emitter = ChunkEmitter(stream_id, request.model_id, on_chunk, self.provider)
        try:
            formatted = self.format_messages(request_messages(request), request.system_prompt)
            kwargs = self._request_kwargs(request, formatted)
            kwargs["stream"] = True
            kwargs["stream_options"] = {"include_usage": True}
            client = self._get_client()

            stream = await call_with_retry(
                lambda: client.chat.completions.create(**kwargs),
                provider=self.provider,
                policy=self._settings.retry_policy,
                context="Streaming Error",
            )

            parts: list[str] = []
            native_usage = None
            finish_reason = None
            async for event in stream:
                if getattr(event, "usage", None) is not None:
                    native_usage = event.usage
                if not event.choices:
                    continue
                choice = event.choices[0]
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
                delta = getattr(choice.delta, "content", None) if choice.delta is not None else None
                if delta:
                    parts.append(delta)
                    await emitter.delta(delta)

            content = "".join(parts)
            usage = self._usage(request.model_id, formatted, content, native_usage)
            metadata = {"finish_reason": finish_reason or "stop"}
            await emitter.final(metadata={"usage": usage.to_dict(), **metadata})

            return CompletionResponse(
                model_id=request.model_id,
                provider=self.provider,
                content=content,
                usage=usage,
                metadata=metadata,
            )
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-exception-caught
            error = wrap_provider_error(exc, self.provider, "Streaming Error")
            logger.error("OpenAI streaming error: %s", error.raw_message)
            await emitter.fail(error.raw_message)
            if error is exc:
                raise
            raise error from exc
