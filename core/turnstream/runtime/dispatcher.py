"""
Frame-Batched Dispatcher - coalesces state actions into one flush per frame.

Network chunks can arrive many times per second; applying each one to the
store would force a UI recomputation per packet. The dispatcher buffers
actions and hands them to its sink in a single batch on the next frame.

Guarantees:
- actions are never dropped and never reordered
- at most one flush is scheduled at a time
- an enqueue during a flush schedules exactly one more flush
"""

import asyncio
import logging
from collections.abc import Callable, Sequence

from turnstream.runtime.scheduler import FrameScheduler
from turnstream.state.actions import StreamAction

logger = logging.getLogger(__name__)

ActionSink = Callable[[Sequence[StreamAction]], None]


class FrameBatchedDispatcher:
    """
    Buffers actions and flushes them to a sink once per frame.

    Example:
        store = ConversationStateStore()
        dispatcher = FrameBatchedDispatcher(store.dispatch_batch)

        dispatcher.enqueue(AppendText(chat_id="c1", text="Hello"))
        dispatcher.enqueue(AppendText(chat_id="c1", text=" world"))
        await dispatcher.wait_for_flush()  # both applied, in one batch
    """

    def __init__(self, sink: ActionSink, scheduler: FrameScheduler | None = None):
        self._sink = sink
        self._scheduler = scheduler or FrameScheduler()
        self._pending: list[StreamAction] = []
        self._scheduled = False
        self._waiters: list[asyncio.Future[None]] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def scheduled(self) -> bool:
        return self._scheduled

    def enqueue(self, action: StreamAction) -> None:
        self._pending.append(action)
        if not self._scheduled:
            self._scheduled = True
            self._scheduler.schedule(self._on_frame)

    def _on_frame(self) -> None:
        # A frame may fire after an explicit flush already drained the buffer
        if not self._scheduled:
            return
        self.flush()

    def flush(self) -> None:
        """Apply every buffered action now, in arrival order."""
        self._scheduled = False
        batch, self._pending = self._pending, []
        waiters, self._waiters = self._waiters, []

        try:
            if batch:
                self._sink(batch)
        except Exception as e:
            logger.error(f"Dispatcher sink failed on a batch of {len(batch)} action(s): {e}")
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_exception(e)
            return

        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    async def wait_for_flush(self) -> None:
        """Wait until every action enqueued before this call has been applied."""
        if not self._pending and not self._scheduled:
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    def close(self) -> None:
        """Flush anything still buffered."""
        if self._pending or self._waiters:
            self.flush()
