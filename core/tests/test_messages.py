"""Tests for building the persisted assistant message from a finished turn."""

from turnstream.messages import (
    ChatRole,
    build_message_from_stream,
    escape_html_attribute,
    state_from_result,
)
from turnstream.protocol.events import CommandEvent, MetaEvent, WebSearchEvent
from turnstream.runtime.accumulator import AccumulationResult
from turnstream.state.models import StreamedFile, StreamState, TurnMetrics

META = MetaEvent(chat_id="chat_1", assistant_message_id="msg_1", run_id="run_1")


class TestBuildMessage:
    def test_requires_ids(self):
        state = StreamState(streaming_text="hi")
        assert build_message_from_stream(state, MetaEvent(chat_id="chat_1")) is None
        assert build_message_from_stream(state, MetaEvent(chat_id="", assistant_message_id="m")) is None

    def test_empty_turn_has_no_message(self):
        assert build_message_from_stream(StreamState(), META) is None

    def test_prose_only(self):
        message = build_message_from_stream(StreamState(streaming_text="Hello"), META)
        assert message.id == "msg_1"
        assert message.chat_id == "chat_1"
        assert message.role is ChatRole.ASSISTANT
        assert message.content == "Hello"
        assert message.completion_time is None

    def test_all_parts_in_order(self):
        state = StreamState(
            thinking_text="plan",
            completed_files=(
                StreamedFile(path="src/a.ts", content="export {}", is_complete=True),
            ),
            installing_deps=("react", "zod"),
            command=CommandEvent(command="npm", args=["run", "build"]),
            web_searches=(
                WebSearchEvent(query='say "hi" & <bye>', max_results=3),
                WebSearchEvent(query=""),
                WebSearchEvent(query="plain"),
            ),
            streaming_text="All set.",
            metrics=TurnMetrics(completion_time=1.5, input_tokens=10, output_tokens=20),
        )

        message = build_message_from_stream(state, META)

        assert message.content == "\n\n".join(
            [
                "<Thinking>\nplan\n</Thinking>",
                '<file path="src/a.ts">\nexport {}\n</file>',
                "<edward_install>\n- react\n- zod\n</edward_install>",
                "<edward_command command=\"npm\" args='[\"run\",\"build\"]' />",
                '<edward_web_search query="say &quot;hi&quot; &amp; &lt;bye&gt;" max_results="3" />',
                '<edward_web_search query="plain" />',
                "All set.",
            ]
        )
        assert message.completion_time == 1.5
        assert message.input_tokens == 10
        assert message.output_tokens == 20

    def test_command_args_keep_non_ascii(self):
        state = StreamState(command=CommandEvent(command="echo", args=["héllo", "✓"]))
        message = build_message_from_stream(state, META)
        assert message.content == "<edward_command command=\"echo\" args='[\"héllo\",\"✓\"]' />"

    def test_camel_case_dump(self):
        message = build_message_from_stream(StreamState(streaming_text="x"), META)
        dumped = message.model_dump(mode="json", by_alias=True)
        assert dumped["chatId"] == "chat_1"
        assert dumped["role"] == "assistant"
        assert "createdAt" in dumped


class TestEscaping:
    def test_ampersand_escaped_first(self):
        assert escape_html_attribute("&lt;") == "&amp;lt;"


class TestStateFromResult:
    def test_rebuilds_finished_state(self):
        result = AccumulationResult(
            chat_id="chat_1",
            meta=META,
            text="partial rest",
            thinking="t",
            completed_files=[StreamedFile(path="a.ts", content="x", is_complete=True)],
            installing_deps=["zod"],
            web_searches=[WebSearchEvent(query="q")],
            preview_url="https://p",
            error="oops",
        )

        state = state_from_result(result)

        assert state.is_streaming is False
        assert state.streaming_text == "partial rest"
        assert state.completed_files == (StreamedFile(path="a.ts", content="x", is_complete=True),)
        assert state.installing_deps == ("zod",)
        assert state.preview_url == "https://p"
        assert state.error == "oops"
        assert state.stream_chat_id == "chat_1"
        assert build_message_from_stream(state, META).content.endswith("partial rest")
