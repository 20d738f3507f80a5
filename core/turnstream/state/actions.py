"""State-mutation actions applied by the conversation state store.

Each action is a frozen dataclass tagged with a ``StreamActionType``. Every
action except RENAME_STREAM addresses exactly one conversation via
``chat_id``.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar

from turnstream.protocol.events import CommandEvent, MetaEvent, UrlScrapeEvent, WebSearchEvent
from turnstream.state.models import StreamedFile, TurnMetrics


class StreamActionType(StrEnum):
    REMOVE_STREAM = "remove_stream"
    START_STREAMING = "start_streaming"
    STOP_STREAMING = "stop_streaming"
    SET_ERROR = "set_error"
    SET_META = "set_meta"
    APPEND_TEXT = "append_text"
    START_THINKING = "start_thinking"
    APPEND_THINKING = "append_thinking"
    END_THINKING = "end_thinking"
    START_FILE = "start_file"
    APPEND_FILE_CONTENT = "append_file_content"
    COMPLETE_FILE = "complete_file"
    SET_INSTALLING_DEPS = "set_installing_deps"
    SET_SANDBOXING = "set_sandboxing"
    SET_COMMAND = "set_command"
    SET_WEB_SEARCH = "set_web_search"
    SET_URL_SCRAPE = "set_url_scrape"
    SET_METRICS = "set_metrics"
    SET_PREVIEW_URL = "set_preview_url"
    RENAME_STREAM = "rename_stream"


@dataclass(frozen=True)
class RemoveStream:
    type: ClassVar[StreamActionType] = StreamActionType.REMOVE_STREAM
    chat_id: str


@dataclass(frozen=True)
class StartStreaming:
    """Reset the conversation to a fresh, streaming state."""

    type: ClassVar[StreamActionType] = StreamActionType.START_STREAMING
    chat_id: str


@dataclass(frozen=True)
class StopStreaming:
    type: ClassVar[StreamActionType] = StreamActionType.STOP_STREAMING
    chat_id: str


@dataclass(frozen=True)
class SetError:
    type: ClassVar[StreamActionType] = StreamActionType.SET_ERROR
    chat_id: str
    error: str


@dataclass(frozen=True)
class SetMeta:
    type: ClassVar[StreamActionType] = StreamActionType.SET_META
    chat_id: str
    meta: MetaEvent


@dataclass(frozen=True)
class AppendText:
    type: ClassVar[StreamActionType] = StreamActionType.APPEND_TEXT
    chat_id: str
    text: str


@dataclass(frozen=True)
class StartThinking:
    type: ClassVar[StreamActionType] = StreamActionType.START_THINKING
    chat_id: str


@dataclass(frozen=True)
class AppendThinking:
    type: ClassVar[StreamActionType] = StreamActionType.APPEND_THINKING
    chat_id: str
    text: str


@dataclass(frozen=True)
class EndThinking:
    type: ClassVar[StreamActionType] = StreamActionType.END_THINKING
    chat_id: str
    duration: int | None


@dataclass(frozen=True)
class StartFile:
    type: ClassVar[StreamActionType] = StreamActionType.START_FILE
    chat_id: str
    file: StreamedFile


@dataclass(frozen=True)
class AppendFileContent:
    type: ClassVar[StreamActionType] = StreamActionType.APPEND_FILE_CONTENT
    chat_id: str
    path: str
    content: str


@dataclass(frozen=True)
class CompleteFile:
    type: ClassVar[StreamActionType] = StreamActionType.COMPLETE_FILE
    chat_id: str
    path: str


@dataclass(frozen=True)
class SetInstallingDeps:
    type: ClassVar[StreamActionType] = StreamActionType.SET_INSTALLING_DEPS
    chat_id: str
    deps: tuple[str, ...]


@dataclass(frozen=True)
class SetSandboxing:
    type: ClassVar[StreamActionType] = StreamActionType.SET_SANDBOXING
    chat_id: str
    is_sandboxing: bool


@dataclass(frozen=True)
class SetCommand:
    type: ClassVar[StreamActionType] = StreamActionType.SET_COMMAND
    chat_id: str
    command: CommandEvent | None


@dataclass(frozen=True)
class SetWebSearch:
    type: ClassVar[StreamActionType] = StreamActionType.SET_WEB_SEARCH
    chat_id: str
    web_search: WebSearchEvent


@dataclass(frozen=True)
class SetUrlScrape:
    type: ClassVar[StreamActionType] = StreamActionType.SET_URL_SCRAPE
    chat_id: str
    url_scrape: UrlScrapeEvent


@dataclass(frozen=True)
class SetMetrics:
    type: ClassVar[StreamActionType] = StreamActionType.SET_METRICS
    chat_id: str
    metrics: TurnMetrics | None


@dataclass(frozen=True)
class SetPreviewUrl:
    type: ClassVar[StreamActionType] = StreamActionType.SET_PREVIEW_URL
    chat_id: str
    url: str


@dataclass(frozen=True)
class RenameStream:
    """Move a conversation's state from a temporary key to its resolved id."""

    type: ClassVar[StreamActionType] = StreamActionType.RENAME_STREAM
    old_chat_id: str
    new_chat_id: str


StreamAction = (
    RemoveStream
    | StartStreaming
    | StopStreaming
    | SetError
    | SetMeta
    | AppendText
    | StartThinking
    | AppendThinking
    | EndThinking
    | StartFile
    | AppendFileContent
    | CompleteFile
    | SetInstallingDeps
    | SetSandboxing
    | SetCommand
    | SetWebSearch
    | SetUrlScrape
    | SetMetrics
    | SetPreviewUrl
    | RenameStream
)
