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

"""Message normalization shared by every provider adapter.

``blocks_to_text`` decides what text is actually sent to a backend; adapters
must not render content blocks any other way.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from typing import Any

from miktos_ai.llm.types import (
    CompletionRequest,
    ContentBlockType,
    FormattedPrompt,
    Message,
    MessageRole,
    TextBlock,
)


def _field(block: Any, *names: str) -> Any:
    """Reads the first present attribute (or mapping key) of a block."""
    for name in names:
        if isinstance(block, Mapping):
            if name in block:
                return block[name]
        elif hasattr(block, name):
            return getattr(block, name)
    return None


def _json(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return json.dumps(str(value))


def block_to_text(block: Any) -> str:
    """Renders one content block.

    Args:
        block: Content block object or JSON-like mapping.

    Returns:
        The rendered text; unknown or incomplete blocks render as
        ``[<type> content]``.
    """
    block_type = _field(block, "type")
    if isinstance(block_type, ContentBlockType):
        block_type = block_type.value

    if block_type == ContentBlockType.TEXT.value:
        text = _field(block, "text")
        if text:
            return str(text)
    elif block_type == ContentBlockType.CODE.value:
        code = _field(block, "code")
        if code:
            language = _field(block, "language") or ""
            return f"```{language}\n{code}\n```"
    elif block_type == ContentBlockType.TOOL_USE.value:
        name = _field(block, "tool_name", "toolName")
        if name:
            return f"[Tool use: {name}]"
    elif block_type == ContentBlockType.TOOL_RESULT.value:
        return f"[Tool result: {_json(_field(block, 'result'))}]"
    elif block_type == ContentBlockType.IMAGE.value:
        caption = _field(block, "caption")
        if caption:
            return f"[Image: {caption}]"

    return f"[{block_type or 'unknown'} content]"


def blocks_to_text(blocks: Iterable[Any] | str | None) -> str:
    """Joins the rendering of each block, in order, with newlines.

    A bare string is returned unchanged. This function never raises.

    Args:
        blocks: Ordered content blocks of a message.

    Returns:
        The text sent to the backend for these blocks.
    """
    if blocks is None:
        return ""
    if isinstance(blocks, str):
        return blocks
    try:
        return "\n".join(block_to_text(block) for block in blocks)
    except TypeError:
        return "[unknown content]"


def request_messages(request: CompletionRequest) -> tuple[Message, ...]:
    """Returns the request prompt as a message sequence.

    A string prompt becomes a single user message.
    """
    if isinstance(request.prompt, str):
        return (Message(role=MessageRole.USER, content=(TextBlock(text=request.prompt),)),)
    return request.prompt


def collect_system_text(messages: Iterable[Message], system_prompt: str | None) -> str | None:
    """Merges the request system prompt with every SYSTEM message, in order.

    Used by providers that carry system instructions in a dedicated field.

    Returns:
        Blank-line separated system text, or None when there is none.
    """
    parts: list[str] = []
    if system_prompt:
        parts.append(system_prompt)
    for message in messages:
        if message.role == MessageRole.SYSTEM:
            text = blocks_to_text(message.content)
            if text:
                parts.append(text)
    return "\n\n".join(parts) if parts else None


def estimate_tokens(text: str, chars_per_token: float) -> int:
    """Length-based token approximation: ``ceil(len(text) / chars_per_token)``."""
    return math.ceil(len(text) / chars_per_token)


def prompt_texts(formatted: FormattedPrompt) -> list[str]:
    """Returns every piece of input text of a formatted prompt (system included)."""
    texts: list[str] = []
    if formatted.system:
        texts.append(formatted.system)
    for message in formatted.messages:
        content = message.get("content")
        if isinstance(content, str):
            texts.append(content)
            continue
        for part in message.get("parts") or ():
            if isinstance(part, Mapping) and isinstance(part.get("text"), str):
                texts.append(part["text"])
    return texts
