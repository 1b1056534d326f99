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

"""Normalized types for LLM interactions.

These types are provider-agnostic: callers build requests out of them and
every provider adapter returns them, so vendor SDK types never leak out of
``miktos_ai.llm.providers``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union


class ProviderId(str, Enum):
    """Backend families served by the completion layer."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"

    @property
    def label(self) -> str:
        """Human-readable provider name used in error messages."""
        return _PROVIDER_LABELS[self]


_PROVIDER_LABELS = {
    ProviderId.OPENAI: "OpenAI",
    ProviderId.ANTHROPIC: "Anthropic",
    ProviderId.GOOGLE: "Google AI",
}


class MessageRole(str, Enum):
    """Normalized chat roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ContentBlockType(str, Enum):
    """Known content block tags."""

    TEXT = "text"
    CODE = "code"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    IMAGE = "image"


@dataclass(frozen=True)
class TextBlock:
    """Plain text."""

    text: str
    type: str = field(default=ContentBlockType.TEXT.value, init=False)


@dataclass(frozen=True)
class CodeBlock:
    """Source code, optionally tagged with its language."""

    code: str
    language: str | None = None
    type: str = field(default=ContentBlockType.CODE.value, init=False)


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation requested by the model."""

    tool_name: str
    tool_input: dict[str, Any] | None = None
    tool_use_id: str | None = None
    type: str = field(default=ContentBlockType.TOOL_USE.value, init=False)


@dataclass(frozen=True)
class ToolResultBlock:
    """The output of a tool invocation."""

    result: Any
    tool_use_id: str | None = None
    type: str = field(default=ContentBlockType.TOOL_RESULT.value, init=False)


@dataclass(frozen=True)
class ImageBlock:
    """Reference to an image; only the caption is sent to text models."""

    caption: str | None = None
    url: str | None = None
    type: str = field(default=ContentBlockType.IMAGE.value, init=False)


@dataclass(frozen=True)
class OpaqueBlock:
    """A block with a tag this package does not understand."""

    type: str
    data: Mapping[str, Any] = field(default_factory=dict)


ContentBlock = Union[TextBlock, CodeBlock, ToolUseBlock, ToolResultBlock, ImageBlock, OpaqueBlock]


def content_block_from_dict(data: Mapping[str, Any]) -> ContentBlock:
    """Builds a content block from a JSON-like mapping.

    Both ``snake_case`` and ``camelCase`` keys are accepted. Unknown tags
    produce an :class:`OpaqueBlock` rather than an error.

    Args:
        data: Mapping with at least a ``type`` key.

    Returns:
        The corresponding content block.
    """
    block_type = str(data.get("type") or "unknown")
    if block_type == ContentBlockType.TEXT.value and isinstance(data.get("text"), str):
        return TextBlock(text=data["text"])
    if block_type == ContentBlockType.CODE.value and isinstance(data.get("code"), str):
        return CodeBlock(code=data["code"], language=data.get("language"))
    if block_type == ContentBlockType.TOOL_USE.value:
        name = data.get("tool_name", data.get("toolName"))
        if isinstance(name, str):
            return ToolUseBlock(
                tool_name=name,
                tool_input=data.get("tool_input", data.get("input")),
                tool_use_id=data.get("tool_use_id", data.get("toolUseId")),
            )
    if block_type == ContentBlockType.TOOL_RESULT.value:
        return ToolResultBlock(
            result=data.get("result"),
            tool_use_id=data.get("tool_use_id", data.get("toolUseId")),
        )
    if block_type == ContentBlockType.IMAGE.value:
        return ImageBlock(caption=data.get("caption"), url=data.get("url"))
    return OpaqueBlock(type=block_type, data=dict(data))


@dataclass(frozen=True)
class Message:
    """Normalized chat message made of ordered content blocks.

    A plain string ``content`` is taken as a single text block.
    """

    role: MessageRole
    content: tuple[ContentBlock, ...]
    tool_call_id: str | None = None  # required by providers with a native tool role

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", MessageRole(self.role))
        content = self.content
        if isinstance(content, str):
            content = (TextBlock(text=content),)
        object.__setattr__(self, "content", tuple(content))

    @classmethod
    def from_text(cls, role: MessageRole | str, text: str, tool_call_id: str | None = None) -> Message:
        """Builds a single-text-block message."""
        return cls(role=MessageRole(role), content=(TextBlock(text=text),), tool_call_id=tool_call_id)


@dataclass(frozen=True)
class CompletionRequest:
    """Provider-agnostic completion request.

    ``prompt`` is either a single string or a non-empty sequence of messages.
    """

    model_id: str
    prompt: str | tuple[Message, ...]
    system_prompt: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None
    stop_sequences: tuple[str, ...] | None = None
    request_id: str | None = None

    def __post_init__(self) -> None:
        if not self.model_id:
            raise ValueError("CompletionRequest.model_id must not be empty.")
        if not isinstance(self.prompt, str):
            if not isinstance(self.prompt, Sequence):
                raise ValueError("CompletionRequest.prompt must be a string or a sequence of Message.")
            messages = tuple(self.prompt)
            if not messages:
                raise ValueError("CompletionRequest.prompt must not be an empty message sequence.")
            if not all(isinstance(m, Message) for m in messages):
                raise ValueError("CompletionRequest.prompt sequence may only contain Message objects.")
            object.__setattr__(self, "prompt", messages)
        if self.stop_sequences is not None:
            object.__setattr__(self, "stop_sequences", tuple(self.stop_sequences))


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting for a single completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Returns the usage as a plain dict (for chunk metadata and JSON output)."""
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "estimated_cost": self.estimated_cost,
        }


@dataclass(frozen=True)
class CompletionResponse:
    """Normalized completion result."""

    model_id: str
    provider: ProviderId
    content: str
    usage: TokenUsage
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Returns a JSON-serializable view of the response."""
        return {
            "model_id": self.model_id,
            "provider": self.provider.value,
            "content": self.content,
            "usage": self.usage.to_dict(),
            "metadata": dict(self.metadata),
        }


class ChunkType(str, Enum):
    """Kinds of stream chunks."""

    CONTENT_DELTA = "content_delta"
    ERROR = "error"


@dataclass(frozen=True)
class StreamChunk:
    """One incremental unit of a streamed completion."""

    stream_id: str
    chunk_id: str
    type: ChunkType
    payload: dict[str, Any]
    timestamp: datetime
    is_final: bool
    model_id: str
    metadata: dict[str, Any] | None = None

    @property
    def text(self) -> str:
        """Delta text, empty for error chunks."""
        return str(self.payload.get("text", ""))

    @property
    def error(self) -> str | None:
        """Error description for error chunks."""
        return self.payload.get("error")


@dataclass(frozen=True)
class FormattedPrompt:
    """Provider-native messages plus the provider's dedicated system field.

    ``system`` stays None for providers that inline system messages.
    """

    messages: list[dict[str, Any]]
    system: str | None = None
