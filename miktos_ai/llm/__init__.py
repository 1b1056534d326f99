"""LLM package exports."""

from miktos_ai.llm.base import AdapterSettings, ProviderAdapter
from miktos_ai.llm.exceptions import (
    ConfigurationError,
    LLMError,
    PermanentProviderError,
    ProviderError,
    ProviderNotConfiguredError,
    RetryLimitExceededError,
    TransientProviderError,
    UnknownModelError,
)
from miktos_ai.llm.normalizer import blocks_to_text
from miktos_ai.llm.pricing import estimate_cost
from miktos_ai.llm.registry import ProviderRegistry, provider_for_model
from miktos_ai.llm.retry import RetryPolicy
from miktos_ai.llm.service import ModelService
from miktos_ai.llm.types import (
    ChunkType,
    CodeBlock,
    CompletionRequest,
    CompletionResponse,
    ImageBlock,
    Message,
    MessageRole,
    ProviderId,
    StreamChunk,
    TextBlock,
    TokenUsage,
    ToolResultBlock,
    ToolUseBlock,
)

__all__ = [
    "AdapterSettings",
    "ChunkType",
    "CodeBlock",
    "CompletionRequest",
    "CompletionResponse",
    "ConfigurationError",
    "ImageBlock",
    "LLMError",
    "Message",
    "MessageRole",
    "ModelService",
    "PermanentProviderError",
    "ProviderAdapter",
    "ProviderError",
    "ProviderId",
    "ProviderNotConfiguredError",
    "ProviderRegistry",
    "RetryLimitExceededError",
    "RetryPolicy",
    "StreamChunk",
    "TextBlock",
    "TokenUsage",
    "ToolResultBlock",
    "ToolUseBlock",
    "TransientProviderError",
    "UnknownModelError",
    "blocks_to_text",
    "estimate_cost",
    "provider_for_model",
]
