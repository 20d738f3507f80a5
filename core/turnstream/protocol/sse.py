"""
SSE framing decoder for turn streams.

Turns a text buffer of Server-Sent Events into ``(event_id, event)`` pairs.
The decoder is pure and resumable: the caller carries ``remaining`` into the
next call together with newly received text.

Handles:
- CRLF normalization
- multi-line ``data:`` fields (joined with newlines)
- ``id:`` fields (the resume cursor for replay)
- comment lines (``:`` prefix, used for heartbeats)
- the ``[DONE]`` terminator
"""

import json
import logging
from dataclasses import dataclass, field

from turnstream.errors import EventDecodeError
from turnstream.protocol.events import ProtocolEvent, parse_event

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class SSEFrame:
    """One blank-line-delimited SSE block."""

    data: str = ""
    id: str | None = None


@dataclass
class FeedResult:
    """Output of one feed() call."""

    events: list[tuple[str | None, ProtocolEvent]] = field(default_factory=list)
    remaining: str = ""
    skipped: int = 0  # frames dropped as malformed
    last_id: str | None = None  # latest id: of any complete frame, event or not


def parse_frame(block: str) -> SSEFrame:
    """Parse the field lines of a single SSE block."""
    data_lines: list[str] = []
    event_id: str | None = None

    for line in block.split("\n"):
        if not line or line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            data_lines.append(value)
        elif name == "id":
            # Per W3C, ids containing NULL are ignored
            if "\0" not in value:
                event_id = value
        # event:, retry: and unknown fields carry nothing for this protocol

    return SSEFrame(data="\n".join(data_lines), id=event_id)


def split_frames(buffer: str) -> tuple[list[SSEFrame], str]:
    """Split a buffer into complete frames plus the unterminated tail."""
    normalized = buffer.replace("\r\n", "\n")
    blocks = normalized.split("\n\n")
    remaining = blocks.pop()
    return [parse_frame(block) for block in blocks], remaining


def decode_frame(frame: SSEFrame) -> ProtocolEvent | None:
    """Decode a frame's JSON payload into a protocol event.

    Returns None for empty frames, the DONE sentinel, and unknown tags.

    Raises:
        EventDecodeError: the payload is not valid JSON or fails validation.
    """
    payload = frame.data.strip()
    if not payload or payload == DONE_SENTINEL:
        return None

    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError as e:
        raise EventDecodeError(f"Invalid JSON in stream frame: {e.msg}") from e

    return parse_event(decoded)


def feed(buffer: str) -> FeedResult:
    """Decode every complete frame in ``buffer``.

    Malformed frames are skipped with a warning; decoding continues with the
    next frame.
    """
    frames, remaining = split_frames(buffer)
    result = FeedResult(remaining=remaining)

    for frame in frames:
        if frame.id is not None:
            result.last_id = frame.id
        try:
            event = decode_frame(frame)
        except EventDecodeError as e:
            result.skipped += 1
            logger.warning("Skipping malformed stream event (id=%s): %s", frame.id, e)
            continue
        if event is not None:
            result.events.append((frame.id, event))

    return result
