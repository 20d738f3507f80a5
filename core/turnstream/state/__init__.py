"""Per-conversation stream state: models, actions, reducer, and store."""

from turnstream.state.actions import (
    AppendFileContent,
    AppendText,
    AppendThinking,
    CompleteFile,
    EndThinking,
    RemoveStream,
    RenameStream,
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
    StartStreaming,
    StartThinking,
    StopStreaming,
    StreamAction,
    StreamActionType,
)
from turnstream.state.models import (
    INITIAL_STREAM_STATE,
    StreamedFile,
    StreamMap,
    StreamState,
    TurnMetrics,
)
from turnstream.state.reducer import get_stream, stream_reducer
from turnstream.state.store import ConversationStateStore, StoreListener

__all__ = [
    "INITIAL_STREAM_STATE",
    "StreamState",
    "StreamedFile",
    "StreamMap",
    "TurnMetrics",
    "StreamAction",
    "StreamActionType",
    "RemoveStream",
    "StartStreaming",
    "StopStreaming",
    "SetError",
    "SetMeta",
    "AppendText",
    "StartThinking",
    "AppendThinking",
    "EndThinking",
    "StartFile",
    "AppendFileContent",
    "CompleteFile",
    "SetInstallingDeps",
    "SetSandboxing",
    "SetCommand",
    "SetWebSearch",
    "SetUrlScrape",
    "SetMetrics",
    "SetPreviewUrl",
    "RenameStream",
    "get_stream",
    "stream_reducer",
    "ConversationStateStore",
    "StoreListener",
]
