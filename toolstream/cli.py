"""
ToolStream CLI - Command-line interface for streamed completions.

Commands:
    toolstream chat "What time is it?"        Stream one orchestrated completion
    toolstream chat --raw "Hello"             Print the raw SSE event stream
    toolstream validate conversation.json     Validate a conversation file
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .models import Chunk, GenerationOptions, Message


def _load_registry(path: Optional[str]):
    from .tools import ToolRegistry, load_registry

    if not path:
        return ToolRegistry()
    return load_registry(path)


async def _run_chat(args: argparse.Namespace) -> int:
    from .client import CompletionClient
    from .config import ClientConfig
    from .orchestrator import StreamOrchestrator
    from .streaming import EventType, QueueChannel, WriterChannel

    config = ClientConfig.from_env()
    if args.model:
        config.model = args.model
    if args.no_stream:
        config.stream = False

    registry = _load_registry(args.tools)
    options = GenerationOptions(
        system_instruction=args.system,
        temperature=args.temperature,
        tools=list(registry.all().values()),
    )
    contents = [Message.user(args.prompt)]

    async with CompletionClient.from_config(config, registry) as client:
        if args.raw:
            channel = WriterChannel(sys.stdout.write, on_close=sys.stdout.flush)
            orchestrator = StreamOrchestrator(
                client, channel, max_tool_rounds=config.max_tool_rounds
            )
            result = await orchestrator.stream_completion(contents, options)
            return 0 if result.ok else 1

        channel = QueueChannel()
        orchestrator = StreamOrchestrator(client, channel, max_tool_rounds=config.max_tool_rounds)
        task = asyncio.create_task(orchestrator.stream_completion(contents, options))

        async for event in channel:
            if event.event == EventType.DATA:
                chunk = Chunk.from_dict(event.json())
                for invocation in chunk.tool_invocations:
                    print(f"\n[tool] {invocation.name}({json.dumps(invocation.args)})", file=sys.stderr)
                print(chunk.text, end="", flush=True)
            elif event.event == EventType.TOOL_ERROR:
                print(f"\n[tool error] {event.data}", file=sys.stderr)
            elif event.event == EventType.ERROR:
                print(f"\nError: {event.json()['error']}", file=sys.stderr)
        print()

        result = await task
        return 0 if result.ok else 1


def cmd_chat(args: argparse.Namespace) -> None:
    """Stream one orchestrated completion."""
    try:
        sys.exit(asyncio.run(_run_chat(args)))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nCancelled")
        sys.exit(130)


def cmd_validate(args: argparse.Namespace) -> None:
    """Validate a JSON conversation file."""
    from .exceptions import InvalidMessage
    from .validation import validate_conversation

    try:
        with open(args.file) as f:
            contents = json.load(f)
    except FileNotFoundError:
        print(f"Error: File not found: {args.file}", file=sys.stderr)
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        validate_conversation(contents)
    except InvalidMessage as e:
        print(f"Validation Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    print(f"✓ Conversation is valid ({len(contents)} messages)")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="toolstream",
        description="ToolStream - streaming tool-call orchestration for generative models",
    )
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: warning)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    chat_parser = subparsers.add_parser("chat", help="Stream an orchestrated completion")
    chat_parser.add_argument("prompt", help="User message")
    chat_parser.add_argument("--model", default=None, help="Model name")
    chat_parser.add_argument("--system", default=None, help="System instruction")
    chat_parser.add_argument("--temperature", type=float, default=None, help="Sampling temperature")
    chat_parser.add_argument(
        "--tools", default=None, help="Tool registry as 'package.module:attribute'"
    )
    chat_parser.add_argument(
        "--no-stream", action="store_true", help="Request complete replies instead of streams"
    )
    chat_parser.add_argument("--raw", action="store_true", help="Print raw SSE events")
    chat_parser.set_defaults(func=cmd_chat)

    validate_parser = subparsers.add_parser("validate", help="Validate a conversation file")
    validate_parser.add_argument("file", help="Path to a JSON conversation")
    validate_parser.set_defaults(func=cmd_validate)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(level=getattr(logging, args.log_level.upper()))
    args.func(args)


if __name__ == "__main__":
    main()
