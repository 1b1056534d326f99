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

"""Miktos AI CLI.

Minimal command-line interface for inspecting the configured providers and
running one-off completions. Currently supports:

  - `python -m miktos_ai.cli providers list [--json]`
  - `python -m miktos_ai.cli generate --model gpt-4 --prompt "..." [--stream]`
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from miktos_ai.config import Config
from miktos_ai.llm.exceptions import ConfigurationError, ProviderError, UnknownModelError
from miktos_ai.llm.service import ModelService
from miktos_ai.llm.types import CompletionRequest, StreamChunk


def build_model_service() -> ModelService:
    """Build the model service from the environment-backed Config."""
    return ModelService.from_config(Config())


def cmd_providers_list(args: argparse.Namespace) -> int:
    """List the registered providers.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Process exit code.
    """
    service = build_model_service()
    providers = sorted(service.list_available_providers())
    if args.json:
        print(json.dumps(providers, indent=2))
    elif not providers:
        print("No providers configured.")
    else:
        for name in providers:
            print(name)
    return 0


async def _run_generate(args: argparse.Namespace) -> int:
    service = build_model_service()
    request = CompletionRequest(
        model_id=args.model,
        prompt=args.prompt,
        system_prompt=args.system,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
    )

    def print_delta(chunk: StreamChunk) -> None:
        if chunk.text:
            print(chunk.text, end="", flush=True)

    try:
        if args.stream:
            response = await service.generate_stream(request, args.stream_id, print_delta)
            print()
        else:
            response = await service.generate(request)
    except (UnknownModelError, ConfigurationError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except ProviderError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        await service.close()

    if args.json:
        print(json.dumps(response.to_dict(), indent=2, sort_keys=True))
    elif not args.stream:
        print(response.content)
    return 0


def cmd_generate(args: argparse.Namespace) -> int:
    """Run a single completion and print it.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Process exit code: 0 on success, 2 on resolution errors, 1 on
        provider errors.
    """
    return asyncio.run(_run_generate(args))


def main(argv: list[str] | None = None) -> int:
    """Run the Miktos AI CLI entry point.

    Args:
        argv: Optional list of CLI arguments excluding the program name.

    Returns:
        Process exit code.
    """
    argv = argv if argv is not None else sys.argv[1:]
    logging.basicConfig(
        level=getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    p = argparse.ArgumentParser(prog="miktos-ai")
    sub = p.add_subparsers(dest="cmd", required=True)

    providers = sub.add_parser("providers", help="Provider commands")
    providers_sub = providers.add_subparsers(dest="providers_cmd", required=True)

    providers_list = providers_sub.add_parser("list", help="List configured providers")
    providers_list.add_argument("--json", action="store_true", help="Output JSON")
    providers_list.set_defaults(func=cmd_providers_list)

    generate = sub.add_parser("generate", help="Run a single completion")
    generate.add_argument("--model", required=True, help="Model id, e.g. gpt-4, claude-3-haiku, gemini-pro")
    generate.add_argument("--prompt", required=True, help="User prompt")
    generate.add_argument("--system", default=None, help="System prompt")
    generate.add_argument("--temperature", type=float, default=0.7)
    generate.add_argument("--max-tokens", type=int, default=None)
    generate.add_argument("--stream", action="store_true", help="Print deltas as they arrive")
    generate.add_argument("--stream-id", default="cli", help="Stream identifier used with --stream")
    generate.add_argument("--json", action="store_true", help="Print the full response as JSON")
    generate.set_defaults(func=cmd_generate)

    ns = p.parse_args(argv)
    return ns.func(ns)


if __name__ == "__main__":
    raise SystemExit(main())
