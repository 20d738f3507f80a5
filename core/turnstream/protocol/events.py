"""Protocol event types for an assistant turn stream.

Defines a discriminated union of frozen pydantic models, one per wire tag.
These types form the contract between the backend event stream, the SSE
decoder, the turn accumulator, and the conversation state store.

Wire records are JSON objects tagged by ``type`` with camelCase field names;
the models expose snake_case attributes and accept either spelling on input.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from turnstream.errors import EventDecodeError

logger = logging.getLogger(__name__)

STREAM_EVENT_VERSION = "v1"


class ProtocolEventType(StrEnum):
    """Wire tags carried in the ``type`` field of every event."""

    META = "meta"
    TEXT = "text"
    THINKING_START = "thinking_start"
    THINKING_CONTENT = "thinking_content"
    THINKING_END = "thinking_end"
    FILE_START = "file_start"
    FILE_CONTENT = "file_content"
    FILE_END = "file_end"
    INSTALL_START = "install_start"
    INSTALL_CONTENT = "install_content"
    INSTALL_END = "install_end"
    SANDBOX_START = "sandbox_start"
    SANDBOX_END = "sandbox_end"
    COMMAND = "command"
    WEB_SEARCH = "web_search"
    URL_SCRAPE = "url_scrape"
    ERROR = "error"
    METRICS = "metrics"
    PREVIEW_URL = "preview_url"
    BUILD_STATUS = "build_status"
    DONE = "done"


class MetaPhase(StrEnum):
    """Lifecycle phase reported by META events."""

    SESSION_START = "session_start"
    TURN_START = "turn_start"
    TURN_COMPLETE = "turn_complete"
    SESSION_COMPLETE = "session_complete"  # terminal: the run will emit nothing more


class WireModel(BaseModel):
    """Base for immutable wire records (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize back to the camelCase JSON shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StreamEventBase(WireModel):
    version: str = STREAM_EVENT_VERSION


class MetaEvent(StreamEventBase):
    """Turn metadata: conversation/run identity and completion phase."""

    type: Literal["meta"] = "meta"
    chat_id: str
    user_message_id: str = ""
    assistant_message_id: str = ""
    is_new_chat: bool = False
    run_id: str | None = None
    turn: int | None = None
    phase: MetaPhase | None = None
    tool_count: int | None = None
    loop_stop_reason: str | None = None
    intent: str | None = None
    termination_reason: str | None = None
    token_usage: dict[str, Any] | None = None

    @property
    def is_session_complete(self) -> bool:
        return self.phase == MetaPhase.SESSION_COMPLETE


class TextEvent(StreamEventBase):
    """A chunk of assistant prose."""

    type: Literal["text"] = "text"
    content: str = ""


class ThinkingStartEvent(StreamEventBase):
    type: Literal["thinking_start"] = "thinking_start"


class ThinkingContentEvent(StreamEventBase):
    """A chunk of reasoning content."""

    type: Literal["thinking_content"] = "thinking_content"
    content: str = ""


class ThinkingEndEvent(StreamEventBase):
    type: Literal["thinking_end"] = "thinking_end"


class FileStartEvent(StreamEventBase):
    """A generated file begins; content follows in FILE_CONTENT events."""

    type: Literal["file_start"] = "file_start"
    path: str


class FileContentEvent(StreamEventBase):
    type: Literal["file_content"] = "file_content"
    content: str = ""


class FileEndEvent(StreamEventBase):
    type: Literal["file_end"] = "file_end"


class InstallStartEvent(StreamEventBase):
    type: Literal["install_start"] = "install_start"


class InstallContentEvent(StreamEventBase):
    """The current dependency batch (replaces any previous batch)."""

    type: Literal["install_content"] = "install_content"
    dependencies: list[str] = Field(default_factory=list)
    framework: str | None = None


class InstallEndEvent(StreamEventBase):
    type: Literal["install_end"] = "install_end"


class SandboxStartEvent(StreamEventBase):
    type: Literal["sandbox_start"] = "sandbox_start"
    project: str | None = None
    base: str | None = None


class SandboxEndEvent(StreamEventBase):
    type: Literal["sandbox_end"] = "sandbox_end"


class CommandEvent(StreamEventBase):
    """A shell command run in the sandbox, with its output when finished."""

    type: Literal["command"] = "command"
    command: str
    args: list[str] = Field(default_factory=list)
    exit_code: int | None = None
    stdout: str | None = None
    stderr: str | None = None


class WebSearchResultItem(WireModel):
    title: str = ""
    url: str = ""
    snippet: str = ""


class WebSearchEvent(StreamEventBase):
    type: Literal["web_search"] = "web_search"
    query: str = ""
    max_results: int | None = None
    answer: str | None = None
    results: list[WebSearchResultItem] | None = None
    error: str | None = None


class UrlScrapeSuccess(WireModel):
    status: Literal["success"] = "success"
    url: str
    final_url: str = ""
    title: str = ""
    snippet: str = ""


class UrlScrapeFailure(WireModel):
    status: Literal["error"] = "error"
    url: str
    error: str = ""


UrlScrapeResultItem = Annotated[
    UrlScrapeSuccess | UrlScrapeFailure,
    Field(discriminator="status"),
]


class UrlScrapeEvent(StreamEventBase):
    type: Literal["url_scrape"] = "url_scrape"
    results: list[UrlScrapeResultItem] = Field(default_factory=list)


class ErrorEvent(StreamEventBase):
    """Protocol-level error. Does not end the stream by itself."""

    type: Literal["error"] = "error"
    message: str = ""
    code: str | None = None
    details: dict[str, Any] | None = None


class MetricsEvent(StreamEventBase):
    type: Literal["metrics"] = "metrics"
    completion_time: float = 0
    input_tokens: int = 0
    output_tokens: int = 0


class PreviewUrlEvent(StreamEventBase):
    type: Literal["preview_url"] = "preview_url"
    url: str
    chat_id: str | None = None
    run_id: str | None = None


class BuildStatusEvent(StreamEventBase):
    """Build progress. Consumed by the build-status stream, not the turn state."""

    type: Literal["build_status"] = "build_status"
    chat_id: str = ""
    status: Literal["queued", "building", "success", "failed"] = "queued"
    build_id: str | None = None
    run_id: str | None = None
    preview_url: str | None = None
    error_report: Any = None


class DoneEvent(StreamEventBase):
    type: Literal["done"] = "done"


# Discriminated union of all protocol event types
ProtocolEvent = Annotated[
    MetaEvent
    | TextEvent
    | ThinkingStartEvent
    | ThinkingContentEvent
    | ThinkingEndEvent
    | FileStartEvent
    | FileContentEvent
    | FileEndEvent
    | InstallStartEvent
    | InstallContentEvent
    | InstallEndEvent
    | SandboxStartEvent
    | SandboxEndEvent
    | CommandEvent
    | WebSearchEvent
    | UrlScrapeEvent
    | ErrorEvent
    | MetricsEvent
    | PreviewUrlEvent
    | BuildStatusEvent
    | DoneEvent,
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[ProtocolEvent] = TypeAdapter(ProtocolEvent)
_KNOWN_TYPES = frozenset(t.value for t in ProtocolEventType)


def parse_event(payload: Any) -> ProtocolEvent | None:
    """Validate one decoded JSON payload into a typed event.

    Returns None for records whose ``type`` tag is not part of the protocol
    (newer backends may add tags; they are ignored rather than fatal).

    Raises:
        EventDecodeError: the payload is not an object, or a known tag fails
            validation.
    """
    if not isinstance(payload, dict):
        raise EventDecodeError(f"Event payload must be an object, got {type(payload).__name__}")

    event_type = payload.get("type")
    if not isinstance(event_type, str) or event_type not in _KNOWN_TYPES:
        logger.debug("Ignoring unknown stream event type: %r", event_type)
        return None

    try:
        return _EVENT_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise EventDecodeError(f"Malformed {event_type} event: {e.error_count()} error(s)") from e
