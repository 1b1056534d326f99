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

"""Anthropic provider adapter."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from miktos_ai.llm.base import AdapterSettings, transport_timeout
from miktos_ai.llm.exceptions import PermanentProviderError, wrap_provider_error
from miktos_ai.llm.normalizer import (
    blocks_to_text,
    collect_system_text,
    estimate_tokens,
    prompt_texts,
    request_messages,
)
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

_CHARS_PER_TOKEN = 4.5

# The Messages API requires max_tokens.
DEFAULT_MAX_TOKENS = 1024


def _delta_text(delta: Any) -> str:
    """Returns the text of a content block delta; other delta kinds are serialized."""
    text = getattr(delta, "text", None)
    if isinstance(text, str):
        return text
    if hasattr(delta, "model_dump"):
        return json.dumps(delta.model_dump())
    return json.dumps(delta, default=str) if delta is not None else ""


class AnthropicAdapter:
    """Anthropic Messages API adapter with native streaming.

    System text is carried by the dedicated ``system`` field. The SDK
    (``anthropic.AsyncAnthropic``) is imported lazily.
    """

    provider = ProviderId.ANTHROPIC

    def __init__(self, api_key: str, settings: AdapterSettings | None = None, client: Any | None = None) -> None:
        """Initialize the adapter.

        Args:
            api_key: Anthropic API key; an empty key makes the adapter unavailable.
            settings: Retry, timeout and streaming settings.
            client: Pre-built ``AsyncAnthropic``-compatible client (tests).
        """
        self._api_key = api_key or ""
        self._settings = settings or AdapterSettings()
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            # pylint: disable=import-outside-toplevel
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(
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
        """Approximates tokens as one per 4.5 characters."""
        try:
            return estimate_tokens(text, _CHARS_PER_TOKEN)
        except Exception:  # noqa: BLE001  pylint: disable=broad-exception-caught
            logger.error("Anthropic token counting error", exc_info=True)
            return estimate_tokens(str(text or ""), _CHARS_PER_TOKEN)

    def format_messages(self, messages: Sequence[Message], system_prompt: str | None = None) -> FormattedPrompt:
        """Converts normalized messages into Anthropic message params.

        The messages array only accepts user and assistant roles: the system
        prompt and every SYSTEM message go to ``system`` (in order), and tool
        output is folded into a user message.
        """
        out: list[dict[str, Any]] = []
        for m in messages:
            if m.role == MessageRole.SYSTEM:
                continue
            role = "assistant" if m.role == MessageRole.ASSISTANT else "user"
            out.append({"role": role, "content": blocks_to_text(m.content)})
        return FormattedPrompt(messages=out, system=collect_system_text(messages, system_prompt))

    def _request_kwargs(self, request: CompletionRequest, formatted: FormattedPrompt) -> dict[str, Any]:
        if not formatted.messages:
            # System text alone leaves the messages array empty.
            raise PermanentProviderError(self.provider, "Request has no user or assistant messages")
        kwargs: dict[str, Any] = {
            "model": request.model_id,
            "messages": formatted.messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if formatted.system:
            kwargs["system"] = formatted.system
        if request.stop_sequences:
            kwargs["stop_sequences"] = list(request.stop_sequences)
        return kwargs

    def _usage(
        self,
        model_id: str,
        formatted: FormattedPrompt,
        content: str,
        input_tokens: int | None,
        output_tokens: int | None,
    ) -> TokenUsage:
        """Native counts take precedence; missing ones are estimated."""
        if input_tokens is None:
            input_tokens = sum(self.count_tokens(text) for text in prompt_texts(formatted))
        if output_tokens is None:
            output_tokens = self.count_tokens(content)
        return build_usage(model_id, self.provider, int(input_tokens), int(output_tokens))

    async def generate(self, request: CompletionRequest) -> CompletionResponse:
        """Generates a completion with the Messages API.

        Args:
            request: Completion request.

        Returns:
            Normalized CompletionResponse; text blocks are joined by newlines.

        Raises:
            PermanentProviderError: For non rate-limit failures.
            RetryLimitExceededError: When rate-limited on every attempt.
        """
        try:
            formatted = self.format_messages(request_messages(request), request.system_prompt)
            kwargs = self._request_kwargs(request, formatted)
            client = self._get_client()

            response = await call_with_retry(
                lambda: client.messages.create(**kwargs),
                provider=self.provider,
                policy=self._settings.retry_policy,
            )

            texts = [getattr(block, "text", None) for block in (response.content or ())]
            content = "\n".join(text for text in texts if text)

            native = getattr(response, "usage", None)
            usage = self._usage(
                request.model_id,
                formatted,
                content,
                getattr(native, "input_tokens", None),
                getattr(native, "output_tokens", None),
            )

            metadata: dict[str, Any] = {"stop_reason": getattr(response, "stop_reason", None)}
            if getattr(response, "id", None):
                metadata["response_id"] = response.id

            return CompletionResponse(
                model_id=request.model_id,
                provider=self.provider,
                content=content,
                usage=usage,
                metadata=metadata,
            )
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-exception-caught
            error = wrap_provider_error(exc, self.provider)
            logger.error("Anthropic API error: %s", error.raw_message)
            if error is exc:
                raise
            raise error from exc

    async def generate_stream(
        self,
        request: CompletionRequest,
        stream_id: str,
        on_chunk: ChunkSink,
    ) -> CompletionResponse:
        """Streams a completion from Messages API server-sent events.

        ``content_block_delta`` events become deltas; ``message_start`` and
        ``message_delta`` carry the input and output token counts.
        """
        emitter = ChunkEmitter(stream_id, request.model_id, on_chunk, self.provider)
        try:
            formatted = self.format_messages(request_messages(request), request.system_prompt)
            kwargs = self._request_kwargs(request, formatted)
            kwargs["stream"] = True
            client = self._get_client()

            stream = await call_with_retry(
                lambda: client.messages.create(**kwargs),
                provider=self.provider,
                policy=self._settings.retry_policy,
                context="Streaming Error",
            )

            parts: list[str] = []
            input_tokens: int | None = None
            output_tokens: int | None = None
            stop_reason = None
            async for event in stream:
                if event.type == "message_start":
                    usage = getattr(getattr(event, "message", None), "usage", None)
                    input_tokens = getattr(usage, "input_tokens", None) or input_tokens
                elif event.type == "content_block_delta":
                    text = _delta_text(event.delta)
                    if text:
                        parts.append(text)
                        await emitter.delta(text)
                elif event.type == "message_delta":
                    usage = getattr(event, "usage", None)
                    output_tokens = getattr(usage, "output_tokens", None) or output_tokens
                    stop_reason = getattr(event.delta, "stop_reason", None) or stop_reason

            content = "".join(parts)
            usage_total = self._usage(request.model_id, formatted, content, input_tokens, output_tokens)
            metadata = {"stop_reason": stop_reason or "end_turn"}
            await emitter.final(metadata={"usage": usage_total.to_dict(), **metadata})

            return CompletionResponse(
                model_id=request.model_id,
                provider=self.provider,
                content=content,
                usage=usage_total,
                metadata=metadata,
            )
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-exception-caught
            error = wrap_provider_error(exc, self.provider, "Streaming Error")
            logger.error("Anthropic streaming error: %s", error.raw_message)
            await emitter.fail(error.raw_message)
            if error is exc:
                raise
            raise error from exc
