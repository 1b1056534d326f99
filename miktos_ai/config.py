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

"""Miktos AI configuration.

Defaults are read from the environment once, at import. A provider whose API
key is empty is simply not registered.
"""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Config:
    # Provider credentials
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "") or os.getenv("GOOGLE_API_KEY", "")

    # Retry policy for rate-limited calls
    LLM_MAX_RETRIES: int = int(os.getenv("MIKTOS_LLM_MAX_RETRIES", "3"))
    LLM_RETRY_INITIAL_DELAY: float = float(os.getenv("MIKTOS_LLM_RETRY_INITIAL_DELAY", "1.0"))

    # Transport timeout handed to the vendor SDKs (0 disables it)
    LLM_TIMEOUT_SECONDS: float = float(os.getenv("MIKTOS_LLM_TIMEOUT_SECONDS", "60"))

    # Simulated streaming (providers without incremental output)
    LLM_STREAM_CHUNK_SIZE: int = int(os.getenv("MIKTOS_LLM_STREAM_CHUNK_SIZE", "10"))
    LLM_STREAM_CHUNK_DELAY: float = float(os.getenv("MIKTOS_LLM_STREAM_CHUNK_DELAY", "0.05"))

    LOG_LEVEL: str = os.getenv("MIKTOS_LOG_LEVEL", "INFO")
