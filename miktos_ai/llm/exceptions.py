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

"""Exceptions for LLM providers."""

from __future__ import annotations

from miktos_ai.llm.types import ProviderId


class LLMError(RuntimeError):
    """Base exception for all LLM errors."""


class ProviderError(LLMError):
    """Raised when a backend call fails.

    Attributes:
        provider: Backend that failed.
        raw_message: Error text as reported by the backend.
    """

    def __init__(self, provider: ProviderId, raw_message: str, context: str = "API Error") -> None:
        self.provider = ProviderId(provider)
        self.raw_message = raw_message
        super().__init__(f"{self.provider.label} {context}: {raw_message}")


class TransientProviderError(ProviderError):
    """Raised for rate/quota/limit conditions that are worth retrying."""


class PermanentProviderError(ProviderError):
    """Raised for backend failures that are surfaced immediately."""


class RetryLimitExceededError(TransientProviderError):
    """Raised when a rate-limited call is still failing after every retry."""

    def __init__(self, provider: ProviderId, raw_message: str) -> None:
        super().__init__(provider, f"Maximum retry limit reached ({raw_message})")
        self.raw_message = raw_message


class ConfigurationError(LLMError):
    """Raised when configuration is missing or invalid."""


class ProviderNotConfiguredError(ConfigurationError):
    """Raised when a model's provider was never registered (missing credential)."""


class UnknownModelError(LLMError):
    """Raised when a model id matches no provider's naming convention."""


def wrap_provider_error(exc: BaseException, provider: ProviderId, context: str = "API Error") -> ProviderError:
    """Qualifies an arbitrary exception with provider context.

    Args:
        exc: The original exception.
        provider: Backend that raised it.
        context: Operation label, e.g. ``API Error`` or ``Streaming Error``.

    Returns:
        ``exc`` itself when it already is a :class:`ProviderError`, otherwise a
        :class:`PermanentProviderError` carrying its text.
    """
    if isinstance(exc, ProviderError):
        return exc
    return PermanentProviderError(provider, str(exc) or exc.__class__.__name__, context=context)
