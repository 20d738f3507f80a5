"""Randomized check: active and completed files never share a path."""

import random

import pytest

from turnstream.protocol.events import (
    FileContentEvent,
    FileEndEvent,
    FileStartEvent,
    TextEvent,
)
from turnstream.runtime.accumulator import TurnAccumulator
from turnstream.state.actions import AppendFileContent, CompleteFile, StartFile
from turnstream.state.models import StreamedFile
from turnstream.state.reducer import stream_reducer

PATHS = ["a.ts", "b.ts", "c.ts", "src/index.ts"]


def assert_disjoint(state, chat_id="c1"):
    s = state.get(chat_id)
    if s is None:
        return
    active = {f.path for f in s.active_files}
    completed = [f.path for f in s.completed_files]
    assert active.isdisjoint(completed)
    assert len(completed) == len(set(completed))
    assert len(active) == len(s.active_files)


def random_event(rng: random.Random):
    roll = rng.random()
    if roll < 0.3:
        return FileStartEvent(path=rng.choice(PATHS))
    if roll < 0.6:
        return FileContentEvent(content=rng.choice("xyz"))
    if roll < 0.85:
        return FileEndEvent()
    return TextEvent(content="t")


def random_action(rng: random.Random):
    path = rng.choice(PATHS)
    roll = rng.random()
    if roll < 0.35:
        return StartFile(chat_id="c1", file=StreamedFile(path=path))
    if roll < 0.7:
        return AppendFileContent(chat_id="c1", path=path, content="x")
    return CompleteFile(chat_id="c1", path=path)


@pytest.mark.parametrize("seed", range(25))
def test_event_sequences_keep_paths_disjoint(seed):
    rng = random.Random(seed)
    acc = TurnAccumulator("c1")
    state = {}

    for _ in range(200):
        action = acc.apply(random_event(rng))
        if action is not None:
            state = stream_reducer(state, action)
        assert_disjoint(state)


@pytest.mark.parametrize("seed", range(25))
def test_arbitrary_action_sequences_keep_paths_disjoint(seed):
    """Even out-of-order actions the accumulator would never emit."""
    rng = random.Random(seed)
    state = {}

    for _ in range(200):
        state = stream_reducer(state, random_action(rng))
        assert_disjoint(state)


@pytest.mark.parametrize("seed", range(10))
def test_store_completed_files_agree_with_accumulator(seed):
    """A path restarted without a new end leaves the store but stays in the buffer."""
    rng = random.Random(seed)
    acc = TurnAccumulator("c1")
    state = {}

    for _ in range(150):
        action = acc.apply(random_event(rng))
        if action is not None:
            state = stream_reducer(state, action)

    expected = {f.path: f.content for f in acc.result().completed_files}
    actual = {f.path: f.content for f in state["c1"].completed_files} if "c1" in state else {}
    for path, content in actual.items():
        assert expected[path] == content
