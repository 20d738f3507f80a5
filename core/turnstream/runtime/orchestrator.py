"""
Turn Orchestrator - starts, tracks and cancels turns per conversation.

Each turn runs in its own asyncio task, which doubles as the turn's
cancellation token. Tasks are keyed by conversation id; a new conversation
starts under a temporary ``pending-<uuid>`` key and is re-keyed once the
backend assigns the real id.

Turn lifecycle:
    START_STREAMING → stream processing (with replay) → STOP_STREAMING
    → build persisted message → on_turn_finished hook → REMOVE_STREAM
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from turnstream.config import ClientConfig
from turnstream.errors import StreamTransportError
from turnstream.messages import ChatMessage, build_message_from_stream, state_from_result
from turnstream.observability.logging import set_trace_context
from turnstream.runtime.accumulator import AccumulationResult
from turnstream.runtime.dispatcher import FrameBatchedDispatcher
from turnstream.runtime.processor import StreamProcessor
from turnstream.runtime.scheduler import FrameScheduler
from turnstream.state.actions import RemoveStream, StartStreaming, StopStreaming
from turnstream.state.store import ConversationStateStore
from turnstream.transport.base import TurnTransport

logger = logging.getLogger(__name__)

PENDING_PREFIX = "pending-"

TurnFinishedHook = Callable[[ChatMessage | None, AccumulationResult], Awaitable[None]]


@dataclass
class TurnOutcome:
    """What a finished turn task resolves to."""

    chat_id: str
    result: AccumulationResult | None = None  # None: the stream never opened
    message: ChatMessage | None = None


class TurnOrchestrator:
    """
    Owns the state store and runs turns against a transport.

    Example:
        async with HttpTurnTransport() as transport:
            orchestrator = TurnOrchestrator(transport)
            task = orchestrator.start_turn("Build a todo app")
            outcome = await task
            print(outcome.message.content if outcome.message else outcome.result)
    """

    def __init__(
        self,
        transport: TurnTransport,
        store: ConversationStateStore | None = None,
        *,
        config: ClientConfig | None = None,
        scheduler: FrameScheduler | None = None,
        on_turn_finished: TurnFinishedHook | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ClientConfig()
        self.store = store or ConversationStateStore()
        self.dispatcher = FrameBatchedDispatcher(
            self.store.dispatch_batch,
            scheduler or FrameScheduler(frame_interval=self.config.frame_interval_seconds),
        )
        self._transport = transport
        self._on_turn_finished = on_turn_finished
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[TurnOutcome]] = {}

    @property
    def active_chat_ids(self) -> list[str]:
        return [key for key, task in self._tasks.items() if not task.done()]

    def get_task(self, chat_id: str) -> asyncio.Task[TurnOutcome] | None:
        return self._tasks.get(chat_id)

    # === TURNS ===

    def start_turn(
        self,
        content: Any,
        chat_id: str | None = None,
        model: str | None = None,
    ) -> asyncio.Task[TurnOutcome]:
        """
        Start a turn and return the task running it.

        A turn already running under the same key is cancelled first.

        Args:
            content: Prompt sent to the backend
            chat_id: Existing conversation id, or None for a new conversation
            model: Model override for this turn
        """
        key = chat_id or f"{PENDING_PREFIX}{uuid.uuid4()}"

        previous = self._tasks.get(key)
        if previous is not None and not previous.done():
            logger.info(f"Cancelling running turn for {key} before starting a new one")
            previous.cancel()
        else:
            previous = None

        task = asyncio.create_task(
            self._run_turn(key, content, chat_id=chat_id, model=model, previous=previous),
            name=f"turn:{key}",
        )
        self._tasks[key] = task
        return task

    async def cancel_turn(self, chat_id: str) -> bool:
        """
        Cancel the running turn of a conversation.

        Returns:
            True if a running turn was cancelled, False if none was found
        """
        task = self._tasks.get(chat_id)
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            return True
        return False

    async def close(self) -> None:
        """Cancel every running turn and flush what is left."""
        for task in list(self._tasks.values()):
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._tasks.clear()
        self.dispatcher.close()

    async def _run_turn(
        self,
        key: str,
        content: Any,
        *,
        chat_id: str | None,
        model: str | None,
        previous: asyncio.Task[TurnOutcome] | None,
    ) -> TurnOutcome:
        # Let the cancelled turn stop its stream before this one resets the state
        if previous is not None:
            await asyncio.wait([previous])

        task = asyncio.current_task()
        active_chat_id = key
        set_trace_context(turn_id=uuid.uuid4().hex[:12], chat_id=key)

        def on_chat_id_resolved(old_chat_id: str, new_chat_id: str) -> None:
            nonlocal active_chat_id
            active_chat_id = new_chat_id
            if self._tasks.get(old_chat_id) is task:
                del self._tasks[old_chat_id]
            existing = self._tasks.get(new_chat_id)
            if existing is not None and existing is not task and not existing.done():
                logger.warning(f"Conversation {new_chat_id} already had a running turn; cancelling it")
                existing.cancel()
            self._tasks[new_chat_id] = task

        processor = StreamProcessor(
            self.dispatcher,
            self._transport,
            replay_budget=self.config.replay_budget,
            clock=self._clock,
            on_chat_id_resolved=on_chat_id_resolved,
        )

        self.dispatcher.enqueue(StartStreaming(chat_id=key))
        try:
            try:
                stream = await self._transport.send_message(content, chat_id=chat_id, model=model)
            except StreamTransportError as e:
                await processor.fail(key, str(e))
                return TurnOutcome(chat_id=key)

            result = await processor.process(stream, key)
            if result is None:
                return TurnOutcome(chat_id=active_chat_id)

            self.dispatcher.enqueue(StopStreaming(chat_id=active_chat_id))
            await self.dispatcher.wait_for_flush()

            message = None
            if result.meta is not None:
                message = build_message_from_stream(state_from_result(result), result.meta)

            if self._on_turn_finished:
                try:
                    await self._on_turn_finished(message, result)
                except Exception as e:
                    logger.error(f"on_turn_finished hook failed for {active_chat_id}: {e}")

            self.dispatcher.enqueue(RemoveStream(chat_id=active_chat_id))
            await self.dispatcher.wait_for_flush()

            logger.info(
                f"Turn finished for {active_chat_id}: completed={result.completed}, "
                f"error={result.error}"
            )
            return TurnOutcome(chat_id=active_chat_id, result=result, message=message)

        except asyncio.CancelledError:
            logger.info(f"Turn cancelled for {active_chat_id}")
            self.dispatcher.enqueue(StopStreaming(chat_id=active_chat_id))
            self.dispatcher.flush()
            raise

        finally:
            if self._tasks.get(active_chat_id) is task:
                del self._tasks[active_chat_id]
