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

"""Google Gemini provider adapter."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from miktos_ai.llm.base import AdapterSettings
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
from miktos_ai.llm.streaming import ChunkEmitter, ChunkSink, simulate_stream
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

_ROLE_MAP = {
    MessageRole.USER: "user",
    MessageRole.ASSISTANT: "model",
    MessageRole.TOOL: "user",  # no direct equivalent for tool messages
}


def _format_model_name(model_id: str) -> str:
    """Adds the ``models/`` resource prefix when missing."""
    if "/" not in model_id:
        return f"models/{model_id}"
    return model_id


def _extract_text(response: Any) -> str:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return "".join(part.text for part in parts if getattr(part, "text", None))


def _finish_reason(response: Any) -> str | None:
    candidates = getattr(response, "candidates", None) or []
    reason = getattr(candidates[0], "finish_reason", None) if candidates else None
    if reason is None:
        return None
    return str(getattr(reason, "value", reason))


class GoogleAdapter:
    """Google Gemini adapter (``google-genai`` SDK).

    The backend is called single-shot; ``generate_stream`` simulates
    streaming by re-chunking the full completion.
    """

    provider = ProviderId.GOOGLE

    def __init__(self, api_key: str, settings: AdapterSettings | None = None, client: Any | None = None) -> None:
        """Initialize the adapter.

        Args:
            api_key: Gemini API key; an empty key makes the adapter unavailable.
            settings: Retry, timeout and streaming settings.
            client: Pre-built ``genai.Client``-compatible client (tests).
        """
        self._api_key = api_key or ""
        self._settings = settings or AdapterSettings()
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            # pylint: disable=import-outside-toplevel
            from google import genai

            http_options: dict[str, Any] = {}
            if self._settings.timeout_seconds is not None:
                # google-genai takes the timeout in milliseconds.
                http_options["timeout"] = int(self._settings.timeout_seconds * 1000)
            self._client = genai.Client(api_key=self._api_key, http_options=http_options or None)
        return self._client

    async def close(self) -> None:
        """Closes the async transport of the SDK client if one was created."""
        if self._client is not None:
            aclose = getattr(self._client.aio, "aclose", None)
            if aclose is not None:
                await aclose()
            self._client = None

    async def is_available(self) -> bool:
        """Returns True if an API key was supplied."""
        return bool(self._api_key)

    def count_tokens(self, text: str) -> int:
        """Approximates tokens as one per four characters."""
        try:
            return estimate_tokens(text, _CHARS_PER_TOKEN)
        except Exception:  # noqa: BLE001  pylint: disable=broad-exception-caught
            logger.error("Google AI token counting error", exc_info=True)
            return estimate_tokens(str(text or ""), _CHARS_PER_TOKEN)

    def format_messages(self, messages: Sequence[Message], system_prompt: str | None = None) -> FormattedPrompt:
        """Converts normalized messages into Gemini ``contents``.

        Assistant turns use the ``model`` role; system text goes to the
        ``system_instruction`` config field.
        """
        out: list[dict[str, Any]] = []
        for m in messages:
            if m.role == MessageRole.SYSTEM:
                continue
            out.append({"role": _ROLE_MAP.get(m.role, "user"), "parts": [{"text": blocks_to_text(m.content)}]})
        return FormattedPrompt(messages=out, system=collect_system_text(messages, system_prompt))

    def _generation_config(self, request: CompletionRequest, formatted: FormattedPrompt) -> dict[str, Any]:
        if not formatted.messages:
            # System text alone leaves contents empty.
            raise PermanentProviderError(self.provider, "Request has no user or assistant messages")
        config: dict[str, Any] = {
            "temperature": request.temperature,
            "candidate_count": 1,
            "top_k": 40,
            "top_p": 0.95,
        }
        if request.max_tokens is not None:
            config["max_output_tokens"] = request.max_tokens
        if request.stop_sequences:
            config["stop_sequences"] = list(request.stop_sequences)
        if formatted.system:
            config["system_instruction"] = formatted.system
        return config

    def _usage(self, model_id: str, formatted: FormattedPrompt, content: str, native: Any) -> TokenUsage:
        """Native counts take precedence; missing ones are estimated."""
        prompt_tokens = getattr(native, "prompt_token_count", None) if native is not None else None
        completion_tokens = getattr(native, "candidates_token_count", None) if native is not None else None
        if prompt_tokens is None:
            prompt_tokens = sum(self.count_tokens(text) for text in prompt_texts(formatted))
        if completion_tokens is None:
            completion_tokens = self.count_tokens(content)
        return build_usage(model_id, self.provider, int(prompt_tokens), int(completion_tokens))

    async def generate(self, request: CompletionRequest) -> CompletionResponse:
        """Generates a completion with ``models.generate_content``.

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
            config = self._generation_config(request, formatted)
            client = self._get_client()

            response = await call_with_retry(
                lambda: client.aio.models.generate_content(
                    model=_format_model_name(request.model_id),
                    contents=formatted.messages,
                    config=config,
                ),
                provider=self.provider,
                policy=self._settings.retry_policy,
            )

            content = _extract_text(response)
            return CompletionResponse(
                model_id=request.model_id,
                provider=self.provider,
                content=content,
                usage=self._usage(request.model_id, formatted, content, getattr(response, "usage_metadata", None)),
                metadata={"finish_reason": _finish_reason(response)},
            )
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-exception-caught
            error = wrap_provider_error(exc, self.provider)
            logger.error("Google AI API error: %s", error.raw_message)
            if error is exc:
                raise
            raise error from exc

    async def generate_stream(
        self,
        request: CompletionRequest,
        stream_id: str,
        on_chunk: ChunkSink,
    ) -> CompletionResponse:
        """Simulates streaming: one ``generate`` call, then fixed-size chunks."""
        emitter = ChunkEmitter(stream_id, request.model_id, on_chunk, self.provider)
        try:
            return await simulate_stream(
                self.generate,
                request,
                emitter,
                chunk_size=self._settings.stream_chunk_size,
                delay=self._settings.stream_chunk_delay,
            )
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-exception-caught
            error = wrap_provider_error(exc, self.provider, "Streaming Error")
            logger.error("Google AI streaming error: %s", error.raw_message)
            await emitter.fail(error.raw_message)
            if error is exc:
                raise
            raise error from exc
