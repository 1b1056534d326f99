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

"""Retry with exponential backoff for rate-limited backend calls."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from miktos_ai.llm.exceptions import (
    ProviderError,
    RetryLimitExceededError,
    TransientProviderError,
    wrap_provider_error,
)
from miktos_ai.llm.types import ProviderId

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RATE_LIMIT_PATTERN = re.compile(r"\b(?:rate|quota|limit)|429|too many requests", re.IGNORECASE)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings.

    ``max_retries`` counts retries, so a call is attempted at most
    ``max_retries + 1`` times. Waits start at ``initial_delay`` seconds and
    are multiplied by ``multiplier`` after each retry.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


def is_rate_limit_error(exc: BaseException) -> bool:
    """Returns True if a failure is rate/quota/limit-classified.

    Args:
        exc: Exception raised by a backend call.
    """
    if isinstance(exc, TransientProviderError):
        return True
    if isinstance(exc, ProviderError):
        return False
    if getattr(exc, "status_code", None) == 429:
        return True
    return bool(_RATE_LIMIT_PATTERN.search(str(exc)))


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    provider: ProviderId,
    policy: RetryPolicy,
    context: str = "API Error",
) -> T:
    """Runs ``operation`` and retries it on rate-limit failures.

    Args:
        operation: Zero-argument coroutine factory performing one backend call.
        provider: Backend being called (for messages and logs).
        policy: Retry bound and backoff settings.
        context: Operation label used when wrapping permanent failures.

    Returns:
        The operation result.

    Raises:
        PermanentProviderError: For any failure that is not rate-limited.
        RetryLimitExceededError: When every attempt was rate-limited.
    """
    delay = policy.initial_delay
    last_exc: BaseException | None = None

    for attempt in range(policy.max_retries + 1):
        try:
            return await operation()
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-exception-caught
            if not is_rate_limit_error(exc):
                if isinstance(exc, ProviderError):
                    raise
                raise wrap_provider_error(exc, provider, context) from exc
            last_exc = exc
            if attempt >= policy.max_retries:
                break
            logger.warning(
                "%s rate limit hit, retrying in %dms (attempt %d/%d)",
                provider.label,
                round(delay * 1000),
                attempt + 1,
                policy.max_retries,
            )
            await policy.sleep(delay)
            delay *= policy.multiplier

    raw = last_exc.raw_message if isinstance(last_exc, ProviderError) else str(last_exc)
    raise RetryLimitExceededError(provider, raw) from last_exc
