"""
Conversation State Store - the owner-held map of per-conversation stream state.

The store holds no global instance: whoever creates it (normally the turn
orchestrator) owns it and passes it to consumers. The map only ever changes
through ``stream_reducer``; the event loop serializes all writes, so no lock
is taken.

Example:
    store = ConversationStateStore()

    def on_change(state, actions):
        print(get_stream(state, "chat_1").streaming_text)

    store.subscribe(on_change)
    store.dispatch_batch([StartStreaming("chat_1"), AppendText("chat_1", "Hi")])
"""

import logging
from collections.abc import Callable, Sequence

from turnstream.state.actions import StreamAction
from turnstream.state.models import StreamMap, StreamState
from turnstream.state.reducer import get_stream, stream_reducer

logger = logging.getLogger(__name__)

# Called once per applied batch with the new map and the batch itself
StoreListener = Callable[[StreamMap, Sequence[StreamAction]], None]


class ConversationStateStore:
    """Applies action batches to the state map and notifies subscribers."""

    def __init__(self, initial: StreamMap | None = None):
        self._state: StreamMap = dict(initial or {})
        self._listeners: dict[str, StoreListener] = {}
        self._subscription_counter = 0
        self._flush_count = 0

    @property
    def state(self) -> StreamMap:
        """Current map. Treat as read-only; it is replaced, never mutated."""
        return self._state

    @property
    def flush_count(self) -> int:
        """Number of batches applied so far."""
        return self._flush_count

    def get(self, chat_id: str) -> StreamState:
        return get_stream(self._state, chat_id)

    def snapshot(self) -> dict[str, StreamState]:
        return dict(self._state)

    def dispatch(self, action: StreamAction) -> None:
        self.dispatch_batch([action])

    def dispatch_batch(self, actions: Sequence[StreamAction]) -> None:
        """Apply actions in order, then notify listeners once."""
        if not actions:
            return

        state = self._state
        for action in actions:
            state = stream_reducer(state, action)

        self._state = state
        self._flush_count += 1
        self._notify(actions)

    def subscribe(self, listener: StoreListener) -> str:
        """
        Register a listener for applied batches.

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"
        self._listeners[sub_id] = listener
        logger.debug(f"Store subscription {sub_id} registered")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Remove a listener.

        Returns:
            True if the subscription was found and removed
        """
        if subscription_id in self._listeners:
            del self._listeners[subscription_id]
            logger.debug(f"Store subscription {subscription_id} removed")
            return True
        return False

    def _notify(self, actions: Sequence[StreamAction]) -> None:
        state = self._state
        for sub_id, listener in list(self._listeners.items()):
            try:
                listener(state, actions)
            except Exception as e:
                logger.error(f"Store listener {sub_id} failed: {e}")
