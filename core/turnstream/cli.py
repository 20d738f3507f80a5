"""
Command-line interface for turnstream.

Usage:
    turnstream send "Build a todo app"
    turnstream send "Add dark mode" --chat-id chat_123 --model gpt-4.1
    turnstream resume chat_123 run_456 --last-event-id run_456:42
"""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from turnstream.config import ClientConfig
from turnstream.errors import StreamTransportError
from turnstream.observability.logging import configure_logging
from turnstream.runtime.accumulator import AccumulationResult
from turnstream.runtime.dispatcher import FrameBatchedDispatcher
from turnstream.runtime.orchestrator import TurnOrchestrator
from turnstream.runtime.processor import StreamProcessor
from turnstream.runtime.scheduler import FrameScheduler
from turnstream.state.actions import AppendText, StreamAction
from turnstream.state.models import StreamMap
from turnstream.state.store import ConversationStateStore
from turnstream.transport.http import HttpTurnTransport

logger = logging.getLogger(__name__)


def _echo_text(_streams: StreamMap, actions: Sequence[StreamAction]) -> None:
    """Store listener that prints prose as each batch lands."""
    for action in actions:
        if isinstance(action, AppendText):
            sys.stdout.write(action.text)
    sys.stdout.flush()


def _report(result: AccumulationResult | None, as_json: bool) -> int:
    if result is None:
        print("\nTurn failed before the stream opened", file=sys.stderr)
        return 1
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print()
        for f in result.completed_files:
            print(f"  wrote {f.path} ({len(f.content)} chars)", file=sys.stderr)
    if result.error:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    """Send a prompt and stream the turn it starts."""
    return asyncio.run(_send(args))


async def _send(args: argparse.Namespace) -> int:
    config = ClientConfig()
    store = ConversationStateStore()
    if not args.json:
        store.subscribe(_echo_text)

    async with HttpTurnTransport(config) as transport:
        orchestrator = TurnOrchestrator(transport, store, config=config)
        try:
            outcome = await orchestrator.start_turn(args.prompt, chat_id=args.chat_id, model=args.model)
        finally:
            await orchestrator.close()

    if outcome.result is not None and outcome.result.meta is not None:
        logger.info(f"Conversation {outcome.chat_id}, run {outcome.result.meta.run_id}")
    return _report(outcome.result, args.json)


def cmd_resume(args: argparse.Namespace) -> int:
    """Replay a run's stream from a cursor."""
    return asyncio.run(_resume(args))


async def _resume(args: argparse.Namespace) -> int:
    config = ClientConfig()
    store = ConversationStateStore()
    if not args.json:
        store.subscribe(_echo_text)
    dispatcher = FrameBatchedDispatcher(
        store.dispatch_batch, FrameScheduler(frame_interval=config.frame_interval_seconds)
    )

    async with HttpTurnTransport(config) as transport:
        processor = StreamProcessor(dispatcher, transport, replay_budget=config.replay_budget)
        try:
            stream = await transport.open_turn_stream(
                args.chat_id,
                run_id=args.run_id,
                resume_from_event_id=args.last_event_id,
            )
        except StreamTransportError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        result = await processor.process(stream, args.chat_id)
        dispatcher.close()

    return _report(result, args.json)


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register the turn commands with the main CLI."""
    send_parser = subparsers.add_parser("send", help="Send a prompt and stream the reply")
    send_parser.add_argument("prompt", help="Prompt to send")
    send_parser.add_argument("--chat-id", default=None, help="Continue an existing conversation")
    send_parser.add_argument("--model", default=None, help="Model override for this turn")
    send_parser.add_argument("--json", action="store_true", help="Print the turn result as JSON")
    send_parser.set_defaults(func=cmd_send)

    resume_parser = subparsers.add_parser("resume", help="Replay a run's event stream")
    resume_parser.add_argument("chat_id", help="Conversation id")
    resume_parser.add_argument("run_id", help="Run id")
    resume_parser.add_argument(
        "--last-event-id", default=None, help="Only deliver events after this id"
    )
    resume_parser.add_argument("--json", action="store_true", help="Print the turn result as JSON")
    resume_parser.set_defaults(func=cmd_resume)


def main():
    parser = argparse.ArgumentParser(
        prog="turnstream",
        description="turnstream - Stream and reconstruct app-builder chat turns",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args()
    configure_logging(level=args.log_level.upper())

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
