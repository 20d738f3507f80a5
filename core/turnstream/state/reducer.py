"""
Pure reducer over the conversation state map.

``stream_reducer(state, action)`` never mutates its input. Conversations an
action does not address keep the identical ``StreamState`` object in the new
map; an action that changes nothing returns the input map itself.
"""

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any

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
from turnstream.state.models import INITIAL_STREAM_STATE, StreamMap, StreamState

logger = logging.getLogger(__name__)


def get_stream(state: StreamMap, chat_id: str) -> StreamState:
    """Read a conversation's state; missing conversations read as empty."""
    return state.get(chat_id, INITIAL_STREAM_STATE)


def _set_stream(state: StreamMap, chat_id: str, stream: StreamState) -> StreamMap:
    return {**state, chat_id: stream}


def _update(state: StreamMap, chat_id: str, **changes: Any) -> StreamMap:
    return _set_stream(state, chat_id, replace(get_stream(state, chat_id), **changes))


# ---------------------------------------------------------------------------
# Per-action transitions
# ---------------------------------------------------------------------------


def _remove_stream(state: StreamMap, action: RemoveStream) -> StreamMap:
    if action.chat_id not in state:
        return state
    return {k: v for k, v in state.items() if k != action.chat_id}


def _start_streaming(state: StreamMap, action: StartStreaming) -> StreamMap:
    return _set_stream(
        state,
        action.chat_id,
        replace(INITIAL_STREAM_STATE, is_streaming=True, stream_chat_id=action.chat_id),
    )


def _stop_streaming(state: StreamMap, action: StopStreaming) -> StreamMap:
    return _update(state, action.chat_id, is_streaming=False)


def _set_error(state: StreamMap, action: SetError) -> StreamMap:
    return _update(state, action.chat_id, error=action.error)


def _set_meta(state: StreamMap, action: SetMeta) -> StreamMap:
    return _update(state, action.chat_id, meta=action.meta, stream_chat_id=action.meta.chat_id)


def _append_text(state: StreamMap, action: AppendText) -> StreamMap:
    s = get_stream(state, action.chat_id)
    return _set_stream(state, action.chat_id, replace(s, streaming_text=s.streaming_text + action.text))


def _start_thinking(state: StreamMap, action: StartThinking) -> StreamMap:
    return _update(state, action.chat_id, is_thinking=True, thinking_duration=None)


def _append_thinking(state: StreamMap, action: AppendThinking) -> StreamMap:
    s = get_stream(state, action.chat_id)
    return _set_stream(state, action.chat_id, replace(s, thinking_text=s.thinking_text + action.text))


def _end_thinking(state: StreamMap, action: EndThinking) -> StreamMap:
    return _update(state, action.chat_id, is_thinking=False, thinking_duration=action.duration)


def _start_file(state: StreamMap, action: StartFile) -> StreamMap:
    s = get_stream(state, action.chat_id)
    path = action.file.path
    # A path being rewritten leaves the completed list until it completes again
    return _set_stream(
        state,
        action.chat_id,
        replace(
            s,
            active_files=tuple(f for f in s.active_files if f.path != path) + (action.file,),
            completed_files=tuple(f for f in s.completed_files if f.path != path),
        ),
    )


def _append_file_content(state: StreamMap, action: AppendFileContent) -> StreamMap:
    s = get_stream(state, action.chat_id)
    if s.active_file(action.path) is None:
        return state
    return _set_stream(
        state,
        action.chat_id,
        replace(
            s,
            active_files=tuple(
                replace(f, content=f.content + action.content) if f.path == action.path else f
                for f in s.active_files
            ),
        ),
    )


def _complete_file(state: StreamMap, action: CompleteFile) -> StreamMap:
    s = get_stream(state, action.chat_id)
    file = s.active_file(action.path)
    if file is None:
        logger.debug(
            "complete_file for inactive path %r in chat %s ignored", action.path, action.chat_id
        )
        return state
    return _set_stream(
        state,
        action.chat_id,
        replace(
            s,
            active_files=tuple(f for f in s.active_files if f.path != action.path),
            completed_files=s.completed_files + (replace(file, is_complete=True),),
        ),
    )


def _set_installing_deps(state: StreamMap, action: SetInstallingDeps) -> StreamMap:
    return _update(state, action.chat_id, installing_deps=tuple(action.deps))


def _set_sandboxing(state: StreamMap, action: SetSandboxing) -> StreamMap:
    return _update(state, action.chat_id, is_sandboxing=action.is_sandboxing)


def _set_command(state: StreamMap, action: SetCommand) -> StreamMap:
    return _update(state, action.chat_id, command=action.command)


def _set_web_search(state: StreamMap, action: SetWebSearch) -> StreamMap:
    s = get_stream(state, action.chat_id)
    if s.web_searches and s.web_searches[-1].to_wire() == action.web_search.to_wire():
        return state
    return _set_stream(
        state, action.chat_id, replace(s, web_searches=s.web_searches + (action.web_search,))
    )


def _set_url_scrape(state: StreamMap, action: SetUrlScrape) -> StreamMap:
    return _update(state, action.chat_id, url_scrape=action.url_scrape)


def _set_metrics(state: StreamMap, action: SetMetrics) -> StreamMap:
    return _update(state, action.chat_id, metrics=action.metrics)


def _set_preview_url(state: StreamMap, action: SetPreviewUrl) -> StreamMap:
    return _update(state, action.chat_id, preview_url=action.url)


def _rename_stream(state: StreamMap, action: RenameStream) -> StreamMap:
    existing = state.get(action.old_chat_id)
    if existing is None:
        logger.debug("rename_stream from unknown chat %s ignored", action.old_chat_id)
        return state
    if action.old_chat_id == action.new_chat_id:
        return state
    rest = {k: v for k, v in state.items() if k != action.old_chat_id}
    return {**rest, action.new_chat_id: replace(existing, stream_chat_id=action.new_chat_id)}


# Dispatch table: every StreamActionType must have exactly one transition
REDUCERS: dict[StreamActionType, Callable[[StreamMap, Any], StreamMap]] = {
    StreamActionType.REMOVE_STREAM: _remove_stream,
    StreamActionType.START_STREAMING: _start_streaming,
    StreamActionType.STOP_STREAMING: _stop_streaming,
    StreamActionType.SET_ERROR: _set_error,
    StreamActionType.SET_META: _set_meta,
    StreamActionType.APPEND_TEXT: _append_text,
    StreamActionType.START_THINKING: _start_thinking,
    StreamActionType.APPEND_THINKING: _append_thinking,
    StreamActionType.END_THINKING: _end_thinking,
    StreamActionType.START_FILE: _start_file,
    StreamActionType.APPEND_FILE_CONTENT: _append_file_content,
    StreamActionType.COMPLETE_FILE: _complete_file,
    StreamActionType.SET_INSTALLING_DEPS: _set_installing_deps,
    StreamActionType.SET_SANDBOXING: _set_sandboxing,
    StreamActionType.SET_COMMAND: _set_command,
    StreamActionType.SET_WEB_SEARCH: _set_web_search,
    StreamActionType.SET_URL_SCRAPE: _set_url_scrape,
    StreamActionType.SET_METRICS: _set_metrics,
    StreamActionType.SET_PREVIEW_URL: _set_preview_url,
    StreamActionType.RENAME_STREAM: _rename_stream,
}


def stream_reducer(state: StreamMap, action: StreamAction) -> StreamMap:
    """Apply one action to the conversation state map."""
    transition = REDUCERS.get(getattr(action, "type", None))
    if transition is None:
        logger.debug("Unknown stream action %r ignored", action)
        return state
    return transition(state, action)
