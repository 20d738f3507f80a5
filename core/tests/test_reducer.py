"""Tests for the pure conversation state reducer."""

import pytest

from turnstream.protocol.events import CommandEvent, MetaEvent, UrlScrapeEvent, WebSearchEvent
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
    StreamActionType,
)
from turnstream.state.models import INITIAL_STREAM_STATE, StreamedFile, TurnMetrics
from turnstream.state.reducer import REDUCERS, get_stream, stream_reducer


def reduce_all(actions, state=None):
    state = {} if state is None else state
    for action in actions:
        state = stream_reducer(state, action)
    return state


# One representative action per type, all addressed to "c1"
SAMPLE_ACTIONS = [
    StartStreaming(chat_id="c1"),
    StopStreaming(chat_id="c1"),
    SetError(chat_id="c1", error="boom"),
    SetMeta(chat_id="c1", meta=MetaEvent(chat_id="c1")),
    AppendText(chat_id="c1", text="x"),
    StartThinking(chat_id="c1"),
    AppendThinking(chat_id="c1", text="t"),
    EndThinking(chat_id="c1", duration=2),
    StartFile(chat_id="c1", file=StreamedFile(path="a.ts")),
    AppendFileContent(chat_id="c1", path="a.ts", content="x"),
    CompleteFile(chat_id="c1", path="a.ts"),
    SetInstallingDeps(chat_id="c1", deps=("zod",)),
    SetSandboxing(chat_id="c1", is_sandboxing=True),
    SetCommand(chat_id="c1", command=CommandEvent(command="ls")),
    SetWebSearch(chat_id="c1", web_search=WebSearchEvent(query="q")),
    SetUrlScrape(chat_id="c1", url_scrape=UrlScrapeEvent()),
    SetMetrics(chat_id="c1", metrics=TurnMetrics(completion_time=1.0)),
    SetPreviewUrl(chat_id="c1", url="https://p"),
    RenameStream(old_chat_id="c1", new_chat_id="c1-real"),
    RemoveStream(chat_id="c1"),
]


class TestDispatchTable:
    def test_every_action_type_has_a_transition(self):
        assert set(REDUCERS) == set(StreamActionType)

    def test_samples_cover_every_action_type(self):
        assert {a.type for a in SAMPLE_ACTIONS} == set(StreamActionType)

    def test_unknown_action_returns_same_state(self):
        state = {"c1": INITIAL_STREAM_STATE}
        assert stream_reducer(state, object()) is state


class TestIsolation:
    @pytest.mark.parametrize("action", SAMPLE_ACTIONS, ids=lambda a: a.type.value)
    def test_other_conversations_keep_identical_state(self, action):
        """Mutating c1 never replaces or changes the stored object for c2."""
        c1 = reduce_all([StartStreaming(chat_id="c1"), StartFile(chat_id="c1", file=StreamedFile(path="a.ts"))])
        c2_state = reduce_all([StartStreaming(chat_id="c2"), AppendText(chat_id="c2", text="keep")])["c2"]
        state = {**c1, "c2": c2_state}

        new_state = stream_reducer(state, action)

        assert new_state["c2"] is c2_state
        assert c2_state.streaming_text == "keep"

    def test_input_map_not_mutated(self):
        state = reduce_all([StartStreaming(chat_id="c1")])
        before = dict(state)
        stream_reducer(state, AppendText(chat_id="c1", text="x"))
        assert state == before
        assert state["c1"].streaming_text == ""


class TestLifecycle:
    def test_start_streaming_resets(self):
        state = reduce_all(
            [
                StartStreaming(chat_id="c1"),
                AppendText(chat_id="c1", text="old"),
                SetError(chat_id="c1", error="e"),
                StartStreaming(chat_id="c1"),
            ]
        )
        s = state["c1"]
        assert s.is_streaming is True
        assert s.streaming_text == ""
        assert s.error is None
        assert s.stream_chat_id == "c1"

    def test_stop_streaming_keeps_content(self):
        state = reduce_all(
            [StartStreaming(chat_id="c1"), AppendText(chat_id="c1", text="hi"), StopStreaming(chat_id="c1")]
        )
        assert state["c1"].is_streaming is False
        assert state["c1"].streaming_text == "hi"

    def test_remove_stream(self):
        state = reduce_all([StartStreaming(chat_id="c1"), RemoveStream(chat_id="c1")])
        assert "c1" not in state
        assert get_stream(state, "c1") is INITIAL_STREAM_STATE

    def test_remove_missing_stream_is_identity(self):
        state = {}
        assert stream_reducer(state, RemoveStream(chat_id="nope")) is state

    def test_missing_conversation_reads_as_empty(self):
        assert get_stream({}, "nope") == INITIAL_STREAM_STATE


class TestText:
    def test_text_appends_in_order(self):
        state = reduce_all(
            [AppendText(chat_id="c1", text="ab"), AppendText(chat_id="c1", text="cd")]
        )
        assert state["c1"].streaming_text == "abcd"

    def test_thinking(self):
        state = reduce_all(
            [
                StartThinking(chat_id="c1"),
                AppendThinking(chat_id="c1", text="hmm "),
                AppendThinking(chat_id="c1", text="ok"),
            ]
        )
        assert state["c1"].is_thinking is True
        state = stream_reducer(state, EndThinking(chat_id="c1", duration=3))
        assert state["c1"].is_thinking is False
        assert state["c1"].thinking_text == "hmm ok"
        assert state["c1"].thinking_duration == 3


class TestFiles:
    def test_file_lifecycle(self):
        state = reduce_all(
            [
                StartFile(chat_id="c1", file=StreamedFile(path="a.ts")),
                AppendFileContent(chat_id="c1", path="a.ts", content="x"),
                AppendFileContent(chat_id="c1", path="a.ts", content="y"),
                CompleteFile(chat_id="c1", path="a.ts"),
            ]
        )
        s = state["c1"]
        assert s.active_files == ()
        assert s.completed_files == (StreamedFile(path="a.ts", content="xy", is_complete=True),)

    def test_completed_order_preserved(self):
        actions = []
        for path in ("b.ts", "a.ts", "c.ts"):
            actions += [
                StartFile(chat_id="c1", file=StreamedFile(path=path)),
                CompleteFile(chat_id="c1", path=path),
            ]
        state = reduce_all(actions)
        assert [f.path for f in state["c1"].completed_files] == ["b.ts", "a.ts", "c.ts"]

    def test_complete_unknown_path_is_identity(self):
        state = reduce_all([StartStreaming(chat_id="c1")])
        assert stream_reducer(state, CompleteFile(chat_id="c1", path="ghost.ts")) is state

    def test_duplicate_complete_is_identity(self):
        state = reduce_all(
            [StartFile(chat_id="c1", file=StreamedFile(path="a.ts")), CompleteFile(chat_id="c1", path="a.ts")]
        )
        assert stream_reducer(state, CompleteFile(chat_id="c1", path="a.ts")) is state

    def test_append_to_inactive_path_is_identity(self):
        state = reduce_all([StartStreaming(chat_id="c1")])
        assert stream_reducer(state, AppendFileContent(chat_id="c1", path="a.ts", content="x")) is state

    def test_restarting_completed_path_leaves_completed(self):
        state = reduce_all(
            [
                StartFile(chat_id="c1", file=StreamedFile(path="a.ts")),
                AppendFileContent(chat_id="c1", path="a.ts", content="v1"),
                CompleteFile(chat_id="c1", path="a.ts"),
                StartFile(chat_id="c1", file=StreamedFile(path="a.ts")),
            ]
        )
        s = state["c1"]
        assert [f.path for f in s.active_files] == ["a.ts"]
        assert s.completed_files == ()


class TestReplacements:
    def test_installing_deps_replaced_wholesale(self):
        state = reduce_all(
            [
                SetInstallingDeps(chat_id="c1", deps=("react", "zod")),
                SetInstallingDeps(chat_id="c1", deps=("vite",)),
            ]
        )
        assert state["c1"].installing_deps == ("vite",)
        state = stream_reducer(state, SetInstallingDeps(chat_id="c1", deps=()))
        assert state["c1"].installing_deps == ()

    def test_command_overwritten(self):
        state = reduce_all(
            [
                SetCommand(chat_id="c1", command=CommandEvent(command="ls")),
                SetCommand(chat_id="c1", command=CommandEvent(command="cat", args=["a.ts"])),
            ]
        )
        assert state["c1"].command.command == "cat"

    def test_last_write_wins_fields(self):
        meta = MetaEvent(chat_id="c1", run_id="r1")
        state = reduce_all(
            [
                SetSandboxing(chat_id="c1", is_sandboxing=True),
                SetMetrics(chat_id="c1", metrics=TurnMetrics(input_tokens=1)),
                SetMetrics(chat_id="c1", metrics=TurnMetrics(input_tokens=2)),
                SetPreviewUrl(chat_id="c1", url="https://one"),
                SetPreviewUrl(chat_id="c1", url="https://two"),
                SetMeta(chat_id="c1", meta=meta),
            ]
        )
        s = state["c1"]
        assert s.is_sandboxing is True
        assert s.metrics.input_tokens == 2
        assert s.preview_url == "https://two"
        assert s.meta is meta


class TestWebSearch:
    def test_adjacent_duplicates_suppressed(self):
        search = WebSearchEvent(query="python", max_results=5)
        state = reduce_all(
            [
                SetWebSearch(chat_id="c1", web_search=search),
                SetWebSearch(chat_id="c1", web_search=WebSearchEvent(query="python", max_results=5)),
            ]
        )
        assert len(state["c1"].web_searches) == 1

        state = stream_reducer(state, SetWebSearch(chat_id="c1", web_search=WebSearchEvent(query="rust")))
        assert [w.query for w in state["c1"].web_searches] == ["python", "rust"]

    def test_non_adjacent_duplicates_kept(self):
        state = reduce_all(
            [
                SetWebSearch(chat_id="c1", web_search=WebSearchEvent(query="a")),
                SetWebSearch(chat_id="c1", web_search=WebSearchEvent(query="b")),
                SetWebSearch(chat_id="c1", web_search=WebSearchEvent(query="a")),
            ]
        )
        assert [w.query for w in state["c1"].web_searches] == ["a", "b", "a"]


class TestRename:
    def test_rename_moves_accumulated_state(self):
        state = reduce_all(
            [
                StartStreaming(chat_id="pending-1"),
                AppendText(chat_id="pending-1", text="hello"),
                RenameStream(old_chat_id="pending-1", new_chat_id="chat_1"),
            ]
        )
        assert "pending-1" not in state
        assert state["chat_1"].streaming_text == "hello"
        assert state["chat_1"].is_streaming is True
        assert state["chat_1"].stream_chat_id == "chat_1"

    def test_rename_from_missing_key_is_identity(self):
        state = reduce_all([StartStreaming(chat_id="c1")])
        assert stream_reducer(state, RenameStream(old_chat_id="ghost", new_chat_id="c2")) is state

    def test_rename_to_same_key_is_identity(self):
        state = reduce_all([StartStreaming(chat_id="c1")])
        assert stream_reducer(state, RenameStream(old_chat_id="c1", new_chat_id="c1")) is state
