"""
Stream state models - the reconstructed view of one assistant turn.

All models are frozen; sequence fields are tuples. The reducer produces new
instances with ``dataclasses.replace`` so a conversation whose state did not
change keeps the exact same object across updates.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from turnstream.protocol.events import CommandEvent, MetaEvent, UrlScrapeEvent, WebSearchEvent


@dataclass(frozen=True)
class StreamedFile:
    """A generated file. Content grows in place while the file is active."""

    path: str
    content: str = ""
    is_complete: bool = False


@dataclass(frozen=True)
class TurnMetrics:
    completion_time: float = 0
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class StreamState:
    """
    State of one conversation's in-progress (or just finished) turn.

    Invariant: no path appears in both ``active_files`` and ``completed_files``.
    """

    is_streaming: bool = False
    is_thinking: bool = False
    is_sandboxing: bool = False

    streaming_text: str = ""
    thinking_text: str = ""
    thinking_duration: int | None = None  # whole seconds

    active_files: tuple[StreamedFile, ...] = ()
    completed_files: tuple[StreamedFile, ...] = ()
    installing_deps: tuple[str, ...] = ()

    command: CommandEvent | None = None  # most recent only
    web_searches: tuple[WebSearchEvent, ...] = ()
    url_scrape: UrlScrapeEvent | None = None
    metrics: TurnMetrics | None = None
    preview_url: str | None = None
    error: str | None = None
    meta: MetaEvent | None = None

    stream_chat_id: str | None = None  # key this state lives under

    def active_file(self, path: str) -> StreamedFile | None:
        for f in self.active_files:
            if f.path == path:
                return f
        return None


INITIAL_STREAM_STATE = StreamState()

# conversation id -> stream state
StreamMap = Mapping[str, StreamState]
