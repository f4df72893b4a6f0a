"""Tests for ai_debate/context.py."""

import pytest

from ai_debate.context import build_context, recent_utterances
from tests.conftest import utter


@pytest.fixture
def log():
    return [utter("a" if i % 2 == 0 else "b", f"msg {i}") for i in range(8)]


def test_context_never_exceeds_window(log):
    assert len(build_context(log, "a", window=5)) == 5
    assert len(build_context(log, "a", window=3)) == 3


def test_context_keeps_log_order(log):
    fragments = build_context(log, "a", window=5)
    assert [f.content.split(": ", 1)[1] for f in fragments] == [f"msg {i}" for i in range(3, 8)]


def test_context_tags_self_and_other(log):
    fragments = build_context(log, "a", window=4)
    # msg 4 and 6 are from a, msg 5 and 7 from b
    assert [f.role for f in fragments] == ["self", "other", "self", "other"]


def test_context_prefixes_speaker_name():
    fragments = build_context([utter("claude", "Hello")], "gpt")
    assert fragments[0].content == "[CLAUDE]: Hello"
    assert fragments[0].role == "other"


def test_context_shorter_log_than_window():
    assert len(build_context([utter("a", "only")], "a", window=5)) == 1


def test_context_zero_window(log):
    assert build_context(log, "a", window=0) == []


def test_recent_utterances_negative_window_rejected(log):
    with pytest.raises(ValueError):
        recent_utterances(log, -1)
