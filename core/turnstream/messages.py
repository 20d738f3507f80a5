"""
Persisted messages - turn a finished stream into the assistant chat message.

The message content is a sequence of tagged blocks followed by the prose,
separated by blank lines:

    <Thinking>...</Thinking>
    <file path="...">...</file>            (one per completed file)
    <edward_install>- dep ...</edward_install>
    <edward_command command="..." args='[...]' />
    <edward_web_search query="..." max_results="N" />   (one per search)
    prose
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from turnstream.protocol.events import MetaEvent
from turnstream.state.models import StreamState

if TYPE_CHECKING:
    from turnstream.runtime.accumulator import AccumulationResult


class ChatRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """An assistant message ready to store in (or refresh) the chat history."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    chat_id: str
    role: ChatRole = ChatRole.ASSISTANT
    content: str
    user_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completion_time: float | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None


def escape_html_attribute(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace('"', "&quot;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


def build_message_from_stream(state: StreamState, meta: MetaEvent) -> ChatMessage | None:
    """Render a finished turn as a chat message.

    Returns None when the turn has no assistant message id or conversation id,
    or when it produced no content at all.
    """
    if not meta.assistant_message_id or not meta.chat_id:
        return None

    parts: list[str] = []
    if state.thinking_text:
        parts.append(f"<Thinking>\n{state.thinking_text}\n</Thinking>")

    for f in state.completed_files:
        parts.append(f'<file path="{f.path}">\n{f.content}\n</file>')

    if state.installing_deps:
        deps = "\n".join(f"- {dep}" for dep in state.installing_deps)
        parts.append(f"<edward_install>\n{deps}\n</edward_install>")

    if state.command is not None:
        args = json.dumps(state.command.args, separators=(",", ":"), ensure_ascii=False)
        parts.append(f"<edward_command command=\"{state.command.command}\" args='{args}' />")

    for search in state.web_searches:
        if not search.query:
            continue
        max_results = f' max_results="{search.max_results}"' if search.max_results is not None else ""
        parts.append(
            f'<edward_web_search query="{escape_html_attribute(search.query)}"{max_results} />'
        )

    if state.streaming_text:
        parts.append(state.streaming_text)

    if not parts:
        return None

    metrics = state.metrics
    return ChatMessage(
        id=meta.assistant_message_id,
        chat_id=meta.chat_id,
        content="\n\n".join(parts),
        completion_time=metrics.completion_time if metrics else None,
        input_tokens=metrics.input_tokens if metrics else None,
        output_tokens=metrics.output_tokens if metrics else None,
    )


def state_from_result(result: AccumulationResult) -> StreamState:
    """Rebuild the finished stream state of a (possibly replayed) turn."""
    return StreamState(
        is_streaming=False,
        streaming_text=result.text,
        thinking_text=result.thinking,
        completed_files=tuple(result.completed_files),
        installing_deps=tuple(result.installing_deps),
        command=result.command,
        web_searches=tuple(result.web_searches),
        metrics=result.metrics,
        preview_url=result.preview_url,
        error=result.error,
        meta=result.meta,
        stream_chat_id=result.chat_id,
    )
