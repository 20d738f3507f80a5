"""
Turn Accumulator - interprets protocol events one at a time.

For each event the accumulator:
- returns zero or one state action for the dispatcher
- updates its running buffers (text, reasoning, files, deps, ...)
- tracks turn identity: conversation id resolution, run id, completion

The buffers form the ``AccumulationResult`` once the stream ends. Results of
an interrupted stream and of its replay are combined with ``merge_results``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from turnstream.observability.logging import set_trace_context
from turnstream.protocol.events import (
    CommandEvent,
    ErrorEvent,
    FileContentEvent,
    FileStartEvent,
    InstallContentEvent,
    MetaEvent,
    MetricsEvent,
    PreviewUrlEvent,
    ProtocolEvent,
    ProtocolEventType,
    TextEvent,
    ThinkingContentEvent,
    UrlScrapeEvent,
    WebSearchEvent,
)
from turnstream.state.actions import (
    AppendFileContent,
    AppendText,
    AppendThinking,
    CompleteFile,
    EndThinking,
    SetCommand,
    SetError,
    SetInstallingDeps,
    SetMeta,
    SetMetrics,
    SetPreviewUrl,
    SetSandboxing,
    SetUrlScrape,
    SetWebSearch,
    StartFile,
    StartThinking,
    StreamAction,
)
from turnstream.state.models import StreamedFile, TurnMetrics

logger = logging.getLogger(__name__)

ChatIdResolvedCallback = Callable[[str, str], None]  # (old_chat_id, new_chat_id)
MetaCallback = Callable[[MetaEvent], None]


@dataclass
class AccumulationResult:
    """Everything one accumulator pass observed, ready to persist or merge."""

    chat_id: str
    meta: MetaEvent | None = None
    text: str = ""
    thinking: str = ""
    completed_files: list[StreamedFile] = field(default_factory=list)
    installing_deps: list[str] = field(default_factory=list)
    installing_deps_touched: bool = False  # False: no install activity at all
    command: CommandEvent | None = None
    web_searches: list[WebSearchEvent] = field(default_factory=list)
    metrics: TurnMetrics | None = None
    preview_url: str | None = None
    completed: bool = False  # META phase=session_complete observed
    last_event_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation."""
        return {
            "chat_id": self.chat_id,
            "meta": self.meta.to_wire() if self.meta else None,
            "text": self.text,
            "thinking": self.thinking,
            "completed_files": [
                {"path": f.path, "content": f.content, "is_complete": f.is_complete}
                for f in self.completed_files
            ],
            "installing_deps": list(self.installing_deps),
            "installing_deps_touched": self.installing_deps_touched,
            "command": self.command.to_wire() if self.command else None,
            "web_searches": [w.to_wire() for w in self.web_searches],
            "metrics": (
                {
                    "completion_time": self.metrics.completion_time,
                    "input_tokens": self.metrics.input_tokens,
                    "output_tokens": self.metrics.output_tokens,
                }
                if self.metrics
                else None
            ),
            "preview_url": self.preview_url,
            "completed": self.completed,
            "last_event_id": self.last_event_id,
            "error": self.error,
        }


@dataclass(frozen=True)
class Carryover:
    """In-flight markers handed from an interrupted pass to its replay."""

    open_file: StreamedFile | None = None
    thinking_started_at: float | None = None


class TurnAccumulator:
    """
    Applies protocol events in arrival order.

    Example:
        acc = TurnAccumulator("chat_1")
        action = acc.apply(TextEvent(content="Hello"), event_id="run_1:1")
        # action == AppendText(chat_id="chat_1", text="Hello")
        result = acc.result()
    """

    def __init__(
        self,
        chat_id: str,
        *,
        on_chat_id_resolved: ChatIdResolvedCallback | None = None,
        on_meta: MetaCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
        carryover: Carryover | None = None,
    ):
        self._chat_id = chat_id
        self._on_chat_id_resolved = on_chat_id_resolved
        self._on_meta = on_meta
        self._clock = clock

        self._meta: MetaEvent | None = None
        self._completed = False
        self._last_event_id: str | None = None
        self._events_seen = 0

        self._text: list[str] = []
        self._thinking: list[str] = []
        self._thinking_started_at: float | None = None
        self._open_file: StreamedFile | None = None
        self._completed_files: list[StreamedFile] = []
        self._deps: list[str] = []
        self._deps_touched = False
        self._command: CommandEvent | None = None
        self._web_searches: list[WebSearchEvent] = []
        self._metrics: TurnMetrics | None = None
        self._preview_url: str | None = None
        self._error: str | None = None

        if carryover is not None:
            self._open_file = carryover.open_file
            self._thinking_started_at = carryover.thinking_started_at

        self._handlers: dict[str, Callable[[Any], StreamAction | None]] = {
            ProtocolEventType.META: self._on_meta_event,
            ProtocolEventType.TEXT: self._on_text,
            ProtocolEventType.THINKING_START: self._on_thinking_start,
            ProtocolEventType.THINKING_CONTENT: self._on_thinking_content,
            ProtocolEventType.THINKING_END: self._on_thinking_end,
            ProtocolEventType.FILE_START: self._on_file_start,
            ProtocolEventType.FILE_CONTENT: self._on_file_content,
            ProtocolEventType.FILE_END: self._on_file_end,
            ProtocolEventType.INSTALL_CONTENT: self._on_install_content,
            ProtocolEventType.INSTALL_END: self._on_install_end,
            ProtocolEventType.SANDBOX_START: self._on_sandbox_start,
            ProtocolEventType.SANDBOX_END: self._on_sandbox_end,
            ProtocolEventType.COMMAND: self._on_command,
            ProtocolEventType.WEB_SEARCH: self._on_web_search,
            ProtocolEventType.URL_SCRAPE: self._on_url_scrape,
            ProtocolEventType.ERROR: self._on_error,
            ProtocolEventType.METRICS: self._on_metrics,
            ProtocolEventType.PREVIEW_URL: self._on_preview_url,
            # INSTALL_START, BUILD_STATUS and DONE carry no turn state
        }

    # === IDENTITY ===

    @property
    def active_chat_id(self) -> str:
        """Conversation id actions are addressed to (changes on resolution)."""
        return self._chat_id

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def run_id(self) -> str | None:
        return self._meta.run_id if self._meta else None

    @property
    def last_event_id(self) -> str | None:
        return self._last_event_id

    @property
    def events_seen(self) -> int:
        return self._events_seen

    def advance_cursor(self, event_id: str) -> None:
        """Move the replay cursor past a frame that produced no event."""
        self._last_event_id = event_id

    def carryover(self) -> Carryover:
        return Carryover(open_file=self._open_file, thinking_started_at=self._thinking_started_at)

    # === APPLY ===

    def apply(self, event: ProtocolEvent, event_id: str | None = None) -> StreamAction | None:
        """Interpret one event; return the state action it implies, if any."""
        self._events_seen += 1
        if event_id is not None:
            self._last_event_id = event_id

        handler = self._handlers.get(event.type)
        if handler is None:
            return None
        return handler(event)

    def _on_meta_event(self, event: MetaEvent) -> StreamAction:
        self._meta = event

        if event.chat_id and event.chat_id != self._chat_id:
            old_chat_id = self._chat_id
            self._chat_id = event.chat_id
            logger.info(f"Conversation id resolved: {old_chat_id} -> {event.chat_id}")
            set_trace_context(chat_id=event.chat_id)
            if self._on_chat_id_resolved:
                self._on_chat_id_resolved(old_chat_id, event.chat_id)

        if event.run_id:
            set_trace_context(run_id=event.run_id)

        if event.is_session_complete:
            self._completed = True

        if self._on_meta:
            self._on_meta(event)

        return SetMeta(chat_id=self._chat_id, meta=event)

    def _on_text(self, event: TextEvent) -> StreamAction:
        self._text.append(event.content)
        return AppendText(chat_id=self._chat_id, text=event.content)

    def _on_thinking_start(self, _event: Any) -> StreamAction:
        self._thinking_started_at = self._clock()
        return StartThinking(chat_id=self._chat_id)

    def _on_thinking_content(self, event: ThinkingContentEvent) -> StreamAction:
        self._thinking.append(event.content)
        return AppendThinking(chat_id=self._chat_id, text=event.content)

    def _on_thinking_end(self, _event: Any) -> StreamAction:
        duration: int | None = None
        if self._thinking_started_at is not None:
            duration = int(self._clock() - self._thinking_started_at + 0.5)
        self._thinking_started_at = None
        return EndThinking(chat_id=self._chat_id, duration=duration)

    def _on_file_start(self, event: FileStartEvent) -> StreamAction | None:
        if not event.path:
            return None
        self._open_file = StreamedFile(path=event.path)
        return StartFile(chat_id=self._chat_id, file=self._open_file)

    def _on_file_content(self, event: FileContentEvent) -> StreamAction | None:
        if self._open_file is None:
            logger.debug("file_content with no open file ignored")
            return None
        self._open_file = replace(self._open_file, content=self._open_file.content + event.content)
        return AppendFileContent(
            chat_id=self._chat_id, path=self._open_file.path, content=event.content
        )

    def _on_file_end(self, _event: Any) -> StreamAction | None:
        if self._open_file is None:
            logger.debug("file_end with no open file ignored")
            return None
        done = replace(self._open_file, is_complete=True)
        self._completed_files = [f for f in self._completed_files if f.path != done.path]
        self._completed_files.append(done)
        self._open_file = None
        return CompleteFile(chat_id=self._chat_id, path=done.path)

    def _on_install_content(self, event: InstallContentEvent) -> StreamAction:
        self._deps = list(event.dependencies)
        self._deps_touched = True
        return SetInstallingDeps(chat_id=self._chat_id, deps=tuple(self._deps))

    def _on_install_end(self, _event: Any) -> StreamAction:
        self._deps = []
        self._deps_touched = True
        return SetInstallingDeps(chat_id=self._chat_id, deps=())

    def _on_sandbox_start(self, _event: Any) -> StreamAction:
        return SetSandboxing(chat_id=self._chat_id, is_sandboxing=True)

    def _on_sandbox_end(self, _event: Any) -> StreamAction:
        return SetSandboxing(chat_id=self._chat_id, is_sandboxing=False)

    def _on_command(self, event: CommandEvent) -> StreamAction:
        self._command = event
        return SetCommand(chat_id=self._chat_id, command=event)

    def _on_web_search(self, event: WebSearchEvent) -> StreamAction:
        if not self._web_searches or self._web_searches[-1].to_wire() != event.to_wire():
            self._web_searches.append(event)
        return SetWebSearch(chat_id=self._chat_id, web_search=event)

    def _on_url_scrape(self, event: UrlScrapeEvent) -> StreamAction:
        return SetUrlScrape(chat_id=self._chat_id, url_scrape=event)

    def _on_error(self, event: ErrorEvent) -> StreamAction:
        logger.warning(f"Stream reported error: {event.message}")
        self._error = event.message
        return SetError(chat_id=self._chat_id, error=event.message)

    def _on_metrics(self, event: MetricsEvent) -> StreamAction:
        self._metrics = TurnMetrics(
            completion_time=event.completion_time,
            input_tokens=event.input_tokens,
            output_tokens=event.output_tokens,
        )
        return SetMetrics(chat_id=self._chat_id, metrics=self._metrics)

    def _on_preview_url(self, event: PreviewUrlEvent) -> StreamAction:
        self._preview_url = event.url
        return SetPreviewUrl(chat_id=self._chat_id, url=event.url)

    # === RESULT ===

    def result(self) -> AccumulationResult:
        return AccumulationResult(
            chat_id=self._chat_id,
            meta=self._meta,
            text="".join(self._text),
            thinking="".join(self._thinking),
            completed_files=list(self._completed_files),
            installing_deps=list(self._deps),
            installing_deps_touched=self._deps_touched,
            command=self._command,
            web_searches=list(self._web_searches),
            metrics=self._metrics,
            preview_url=self._preview_url,
            completed=self._completed,
            last_event_id=self._last_event_id,
            error=self._error,
        )


def _merge_files(initial: list[StreamedFile], replay: list[StreamedFile]) -> list[StreamedFile]:
    """Union keyed by path; a path never regresses from complete to incomplete."""
    merged: dict[str, StreamedFile] = {f.path: f for f in initial}
    for f in replay:
        existing = merged.get(f.path)
        if existing is None or f.is_complete or not existing.is_complete:
            merged[f.path] = f
    return list(merged.values())


def merge_results(initial: AccumulationResult, replay: AccumulationResult) -> AccumulationResult:
    """Combine an interrupted pass with the pass that replayed its remainder."""
    return AccumulationResult(
        chat_id=replay.chat_id or initial.chat_id,
        meta=replay.meta if replay.meta is not None else initial.meta,
        text=initial.text + replay.text,
        thinking=initial.thinking + replay.thinking,
        completed_files=_merge_files(initial.completed_files, replay.completed_files),
        installing_deps=(
            list(replay.installing_deps)
            if replay.installing_deps_touched
            else list(initial.installing_deps)
        ),
        installing_deps_touched=initial.installing_deps_touched or replay.installing_deps_touched,
        command=replay.command if replay.command is not None else initial.command,
        web_searches=initial.web_searches + replay.web_searches,
        metrics=replay.metrics if replay.metrics is not None else initial.metrics,
        preview_url=replay.preview_url if replay.preview_url is not None else initial.preview_url,
        completed=replay.completed,
        last_event_id=replay.last_event_id or initial.last_event_id,
        error=replay.error or initial.error,
    )
