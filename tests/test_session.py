"""Tests for conversation state and token accounting."""

import types

from chalk_cli import session as session_mod
from chalk_cli.session import Session, estimate_tokens


def _filled(n):
    s = Session()
    for i in range(n):
        if i % 2 == 0:
            s.add_user(f"q{i}")
        else:
            s.add_assistant(f"a{i}")
    return s


class TestCompact:
    def test_keeps_last_four(self):
        s = _filled(7)
        assert s.compact() == 4
        assert [m["content"] for m in s.messages] == ["a3", "q4", "a5", "q6"]

    def test_six_or_fewer_unchanged(self):
        s = _filled(6)
        assert s.compact() is None
        assert len(s.messages) == 6

    def test_empty(self):
        assert Session().compact() is None

    def test_counters_survive(self):
        s = _filled(8)
        s.record_usage(100, 20, 120)
        s.compact()
        assert s.total_tokens == 120


class TestUsage:
    def test_accumulates(self):
        s = Session()
        s.record_usage(10, 2, 12)
        s.record_usage(30, 5, 35)
        assert (s.prompt_tokens, s.completion_tokens, s.total_tokens) == (40, 7, 47)

    def test_reset_clears_everything(self):
        s = _filled(3)
        s.record_usage(1, 1, 2)
        s.reset()
        assert s.messages == []
        assert (s.prompt_tokens, s.completion_tokens, s.total_tokens) == (0, 0, 0)


def test_messages_have_role_and_content():
    s = Session()
    s.add_user("hi")
    s.add_assistant("hello")
    assert s.messages == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
    ]


def test_estimate_tokens_counts_content_plus_overhead(monkeypatch):
    fake = types.SimpleNamespace(encode=lambda text: text.split())
    monkeypatch.setattr(session_mod, "_encoder", lambda: fake)
    messages = [
        {"role": "user", "content": "one two three"},
        {"role": "assistant", "content": None},
    ]
    assert estimate_tokens(messages) == 3 + 4 * 2
