"""Transport interfaces the stream processor depends on.

The processor only needs a pull-based byte stream and a way to open (or
reopen, from a cursor) a turn's stream. Any backend client satisfying these
protocols can drive it.
"""

from typing import Any, Protocol


class TurnStream(Protocol):
    """An abortable, pull-based byte stream for one turn."""

    async def read(self) -> bytes:
        """Return the next chunk, or b"" once the stream has ended."""
        ...

    async def aclose(self) -> None:
        ...


class TurnTransport(Protocol):
    """Opens turn streams against the backend."""

    async def send_message(
        self,
        content: Any,
        *,
        chat_id: str | None = None,
        model: str | None = None,
    ) -> TurnStream:
        """Submit a prompt and return the stream of the turn it starts."""
        ...

    async def open_turn_stream(
        self,
        chat_id: str,
        *,
        run_id: str,
        resume_from_event_id: str | None = None,
    ) -> TurnStream:
        """Reopen a run's stream, delivering only events after the cursor."""
        ...
