"""Tests for FrameScheduler and FrameBatchedDispatcher."""

import asyncio

import pytest

from turnstream.runtime.dispatcher import FrameBatchedDispatcher
from turnstream.runtime.scheduler import FrameScheduler
from turnstream.state.actions import AppendText, StartStreaming
from turnstream.state.store import ConversationStateStore


class ManualFrames:
    """Frame hook that only fires when the test says so."""

    def __init__(self) -> None:
        self.callbacks = []

    def __call__(self, callback) -> None:
        self.callbacks.append(callback)

    def tick(self) -> None:
        callbacks, self.callbacks = self.callbacks, []
        for callback in callbacks:
            callback()


class RecordingSink:
    def __init__(self) -> None:
        self.batches = []

    def __call__(self, actions) -> None:
        self.batches.append(list(actions))


def text(i: int) -> AppendText:
    return AppendText(chat_id="c1", text=str(i))


class TestFrameScheduler:
    def test_uses_frame_hook_when_given(self):
        frames = ManualFrames()
        scheduler = FrameScheduler(request_frame=frames)
        fired = []

        scheduler.schedule(lambda: fired.append(1))
        assert scheduler.uses_frame_hook
        assert fired == []

        frames.tick()
        assert fired == [1]

    @pytest.mark.asyncio
    async def test_falls_back_to_timer(self):
        scheduler = FrameScheduler(frame_interval=0.001)
        fired = asyncio.Event()

        scheduler.schedule(fired.set)

        assert not scheduler.uses_frame_hook
        await asyncio.wait_for(fired.wait(), timeout=1.0)

    def test_default_interval_is_16ms(self):
        assert FrameScheduler().frame_interval == pytest.approx(0.016)


class TestCoalescing:
    def test_fifty_actions_one_flush(self):
        """Fifty enqueues in one tick reach the store as one batch."""
        frames = ManualFrames()
        store = ConversationStateStore()
        dispatcher = FrameBatchedDispatcher(store.dispatch_batch, FrameScheduler(request_frame=frames))

        for i in range(50):
            dispatcher.enqueue(AppendText(chat_id="c1", text="x"))

        assert len(frames.callbacks) == 1
        assert dispatcher.pending == 50
        assert store.flush_count == 0

        frames.tick()

        assert store.flush_count == 1
        assert store.get("c1").streaming_text == "x" * 50
        assert dispatcher.pending == 0

    def test_order_preserved_across_flushes(self):
        frames = ManualFrames()
        sink = RecordingSink()
        dispatcher = FrameBatchedDispatcher(sink, FrameScheduler(request_frame=frames))

        dispatcher.enqueue(text(1))
        dispatcher.enqueue(text(2))
        frames.tick()
        dispatcher.enqueue(text(3))
        frames.tick()

        assert sink.batches == [[text(1), text(2)], [text(3)]]

    def test_enqueue_during_flush_schedules_exactly_one_more(self):
        frames = ManualFrames()
        batches = []
        dispatcher: FrameBatchedDispatcher

        def sink(actions):
            batches.append(list(actions))
            if len(batches) == 1:
                dispatcher.enqueue(text(98))
                dispatcher.enqueue(text(99))

        dispatcher = FrameBatchedDispatcher(sink, FrameScheduler(request_frame=frames))
        dispatcher.enqueue(text(1))
        frames.tick()

        assert batches == [[text(1)]]
        assert len(frames.callbacks) == 1

        frames.tick()
        assert batches == [[text(1)], [text(98), text(99)]]
        assert frames.callbacks == []

    def test_explicit_flush_makes_pending_frame_a_noop(self):
        frames = ManualFrames()
        sink = RecordingSink()
        dispatcher = FrameBatchedDispatcher(sink, FrameScheduler(request_frame=frames))

        dispatcher.enqueue(text(1))
        dispatcher.flush()
        frames.tick()

        assert sink.batches == [[text(1)]]
        assert not dispatcher.scheduled

    def test_close_flushes_remaining(self):
        frames = ManualFrames()
        sink = RecordingSink()
        dispatcher = FrameBatchedDispatcher(sink, FrameScheduler(request_frame=frames))

        dispatcher.enqueue(text(1))
        dispatcher.close()

        assert sink.batches == [[text(1)]]


class TestWaitForFlush:
    @pytest.mark.asyncio
    async def test_returns_immediately_when_idle(self):
        dispatcher = FrameBatchedDispatcher(RecordingSink())
        await asyncio.wait_for(dispatcher.wait_for_flush(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_resolves_after_timer_flush(self):
        store = ConversationStateStore()
        dispatcher = FrameBatchedDispatcher(store.dispatch_batch, FrameScheduler(frame_interval=0.001))

        dispatcher.enqueue(StartStreaming(chat_id="c1"))
        dispatcher.enqueue(AppendText(chat_id="c1", text="done"))
        await asyncio.wait_for(dispatcher.wait_for_flush(), timeout=1.0)

        assert store.get("c1").streaming_text == "done"
        assert store.flush_count == 1

    @pytest.mark.asyncio
    async def test_sink_failure_propagates_to_waiter(self):
        def sink(actions):
            raise RuntimeError("store exploded")

        dispatcher = FrameBatchedDispatcher(sink, FrameScheduler(frame_interval=0.001))
        dispatcher.enqueue(text(1))

        with pytest.raises(RuntimeError, match="store exploded"):
            await asyncio.wait_for(dispatcher.wait_for_flush(), timeout=1.0)
