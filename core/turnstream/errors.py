"""Exceptions raised while consuming a turn stream.

Every failure here is scoped to one conversation's turn; none of them is
fatal to the process.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from turnstream.runtime.accumulator import AccumulationResult


class TurnStreamError(Exception):
    """Base class for turn stream failures."""

    pass


class StreamTransportError(TurnStreamError):
    """Opening or reading the HTTP stream failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EventDecodeError(TurnStreamError):
    """A single event payload was malformed. The stream continues without it."""

    pass


class ReplayFailedError(TurnStreamError):
    """The stream ended before completion and could not be resumed.

    ``partial`` holds whatever the failed replay pass applied before it broke.
    """

    def __init__(self, message: str, partial: "AccumulationResult | None" = None):
        super().__init__(message)
        self.partial = partial
