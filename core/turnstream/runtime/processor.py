"""
Stream Processor - drives one turn stream and coordinates replay.

The read loop pulls bytes from a ``TurnStream``, decodes them into protocol
events, runs each through a ``TurnAccumulator`` and enqueues the resulting
actions on the dispatcher. When the stream ends before the turn is complete,
the processor reopens it from the last observed event id and merges the
continuation into the interrupted result.

Replay states:
    STREAMING                     reading the stream
    COMPLETED                     META phase=session_complete observed
    DISCONNECTED_PENDING_REPLAY   stream ended early; replay may follow
"""

import codecs
import logging
import time
from collections.abc import Callable
from dataclasses import replace
from enum import StrEnum

from turnstream.config import DEFAULT_REPLAY_BUDGET
from turnstream.errors import ReplayFailedError, StreamTransportError
from turnstream.protocol.sse import feed
from turnstream.runtime.accumulator import (
    AccumulationResult,
    Carryover,
    ChatIdResolvedCallback,
    MetaCallback,
    TurnAccumulator,
    merge_results,
)
from turnstream.runtime.dispatcher import FrameBatchedDispatcher
from turnstream.state.actions import RenameStream, SetError, StopStreaming
from turnstream.transport.base import TurnStream, TurnTransport

logger = logging.getLogger(__name__)

DISCONNECTED_ERROR = "Stream disconnected before completion"
REPLAY_FAILED_ERROR = "Stream disconnected before completion and replay failed"


class ReplayState(StrEnum):
    STREAMING = "streaming"
    COMPLETED = "completed"
    DISCONNECTED_PENDING_REPLAY = "disconnected_pending_replay"


class StreamProcessor:
    """
    Consumes a turn stream into the dispatcher and returns its result.

    Example:
        store = ConversationStateStore()
        dispatcher = FrameBatchedDispatcher(store.dispatch_batch)
        processor = StreamProcessor(dispatcher, transport)

        stream = await transport.send_message("Build a todo app")
        result = await processor.process(stream, "pending-1")
        # result.completed is True unless the stream was lost for good
    """

    def __init__(
        self,
        dispatcher: FrameBatchedDispatcher,
        transport: TurnTransport | None = None,
        *,
        replay_budget: int = DEFAULT_REPLAY_BUDGET,
        clock: Callable[[], float] = time.monotonic,
        on_meta: MetaCallback | None = None,
        on_chat_id_resolved: ChatIdResolvedCallback | None = None,
    ):
        self._dispatcher = dispatcher
        self._transport = transport
        self._replay_budget = replay_budget
        self._clock = clock
        self._on_meta = on_meta
        self._on_chat_id_resolved = on_chat_id_resolved
        self.state = ReplayState.STREAMING

    async def process(
        self,
        stream: TurnStream,
        chat_id: str,
        *,
        replay_attempt: int = 0,
    ) -> AccumulationResult | None:
        """Consume ``stream`` to the end, replaying once it ends early.

        Returns None only when the stream failed before delivering any event;
        in that case SET_ERROR and STOP_STREAMING have already been applied.
        """
        self.state = ReplayState.STREAMING
        return await self._process(
            stream,
            chat_id,
            replay_attempt=replay_attempt,
            carryover=None,
            run_id=None,
            resume_from=None,
        )

    async def fail(self, chat_id: str, error: str) -> None:
        """Surface a turn-level transport error and stop the turn."""
        logger.error(f"Turn stream failed for {chat_id}: {error}")
        self._dispatcher.enqueue(SetError(chat_id=chat_id, error=error))
        self._dispatcher.enqueue(StopStreaming(chat_id=chat_id))
        await self._dispatcher.wait_for_flush()

    # === READ LOOP ===

    async def _process(
        self,
        stream: TurnStream,
        chat_id: str,
        *,
        replay_attempt: int,
        carryover: Carryover | None,
        run_id: str | None,
        resume_from: str | None,
    ) -> AccumulationResult | None:
        accumulator = TurnAccumulator(
            chat_id,
            on_chat_id_resolved=self._resolve_chat_id,
            on_meta=self._on_meta,
            clock=self._clock,
            carryover=carryover,
        )

        try:
            await self._pump(stream, accumulator)
        except StreamTransportError as e:
            if replay_attempt > 0:
                partial = None
                if accumulator.events_seen:
                    await self._dispatcher.wait_for_flush()
                    partial = self._finish(accumulator, resume_from)
                raise ReplayFailedError(str(e), partial=partial) from e
            if accumulator.events_seen == 0:
                await self.fail(accumulator.active_chat_id, str(e))
                return None
            logger.warning(
                f"Stream read failed after {accumulator.events_seen} event(s): {e}",
                extra={"replay_attempt": replay_attempt},
            )
        finally:
            await stream.aclose()

        await self._dispatcher.wait_for_flush()
        result = self._finish(accumulator, resume_from)

        if accumulator.completed:
            self.state = ReplayState.COMPLETED
            return result

        self.state = ReplayState.DISCONNECTED_PENDING_REPLAY
        return await self._replay(
            result,
            replay_attempt=replay_attempt,
            carryover=accumulator.carryover(),
            run_id=accumulator.run_id or run_id,
        )

    @staticmethod
    def _finish(accumulator: TurnAccumulator, resume_from: str | None) -> AccumulationResult:
        result = accumulator.result()
        if result.last_event_id is None:
            result.last_event_id = resume_from
        return result

    async def _pump(self, stream: TurnStream, accumulator: TurnAccumulator) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""

        while True:
            chunk = await stream.read()
            if not chunk:
                break

            buffer += decoder.decode(chunk)
            decoded = feed(buffer)
            buffer = decoded.remaining

            for event_id, event in decoded.events:
                action = accumulator.apply(event, event_id)
                if action is not None:
                    self._dispatcher.enqueue(action)
            if decoded.last_id is not None:
                accumulator.advance_cursor(decoded.last_id)

        if buffer.strip():
            logger.debug(f"Discarding {len(buffer)} char(s) of unterminated stream data")

    # === REPLAY ===

    async def _replay(
        self,
        partial: AccumulationResult,
        *,
        replay_attempt: int,
        carryover: Carryover,
        run_id: str | None,
    ) -> AccumulationResult:
        chat_id = partial.chat_id

        if self._transport is None or run_id is None or replay_attempt >= self._replay_budget:
            logger.error(
                f"Turn for {chat_id} ended before completion; not replaying "
                f"(run_id={run_id}, attempt={replay_attempt}, budget={self._replay_budget})",
                extra={"replay_attempt": replay_attempt},
            )
            return await self._surface(partial, DISCONNECTED_ERROR)

        attempt = replay_attempt + 1
        logger.info(
            f"Replaying run {run_id} for {chat_id} from event {partial.last_event_id}",
            extra={"replay_attempt": attempt},
        )

        try:
            stream = await self._transport.open_turn_stream(
                chat_id,
                run_id=run_id,
                resume_from_event_id=partial.last_event_id,
            )
            continuation = await self._process(
                stream,
                chat_id,
                replay_attempt=attempt,
                carryover=carryover,
                run_id=run_id,
                resume_from=partial.last_event_id,
            )
        except StreamTransportError as e:
            return await self._replay_failed(partial, run_id, attempt, e)
        except ReplayFailedError as e:
            if e.partial is not None:
                partial = merge_results(partial, e.partial)
            return await self._replay_failed(partial, run_id, attempt, e)

        if continuation is None:
            return await self._replay_failed(
                partial, run_id, attempt, ReplayFailedError("replay returned no result")
            )
        return merge_results(partial, continuation)

    async def _replay_failed(
        self, partial: AccumulationResult, run_id: str, attempt: int, error: Exception
    ) -> AccumulationResult:
        logger.error(f"Replay of run {run_id} failed: {error}", extra={"replay_attempt": attempt})
        self.state = ReplayState.DISCONNECTED_PENDING_REPLAY
        return await self._surface(partial, REPLAY_FAILED_ERROR)

    async def _surface(self, partial: AccumulationResult, error: str) -> AccumulationResult:
        self._dispatcher.enqueue(SetError(chat_id=partial.chat_id, error=error))
        await self._dispatcher.wait_for_flush()
        return replace(partial, error=error)

    # === CALLBACKS ===

    def _resolve_chat_id(self, old_chat_id: str, new_chat_id: str) -> None:
        self._dispatcher.enqueue(RenameStream(old_chat_id=old_chat_id, new_chat_id=new_chat_id))
        if self._on_chat_id_resolved:
            self._on_chat_id_resolved(old_chat_id, new_chat_id)
