"""Tests for SQLite chat history persistence."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

import pytest

from zweek.chat.history import ConversationHistory, ConversationTurn, Role
from zweek.errors import PersistenceError
from zweek.history_store import SCHEMA_VERSION, HistoryStore


class TestSchema:
    """Tests for database initialization."""

    def test_creates_database_and_parents(self, tmp_path: Path) -> None:
        """Opening a store creates the file and missing directories."""
        db_path = tmp_path / "nested" / "dir" / "history.db"
        store = HistoryStore(db_path)
        try:
            assert db_path.exists()
            assert store.db_path == db_path
        finally:
            store.close()

    def test_records_schema_version(self, history_store: HistoryStore) -> None:
        conn = sqlite3.connect(history_store.db_path)
        try:
            (version,) = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        finally:
            conn.close()
        assert version == SCHEMA_VERSION

    def test_reopen_is_idempotent(self, tmp_path: Path) -> None:
        """A second store on the same file sees earlier sessions."""
        db_path = tmp_path / "history.db"
        first = HistoryStore(db_path)
        first.append_turn("user", "hello")
        first.close()

        second = HistoryStore(db_path)
        try:
            sessions = second.list_sessions()
            assert len(sessions) == 1
            assert sessions[0].message_count == 1
        finally:
            second.close()

    def test_unopenable_path_raises(self, tmp_path: Path) -> None:
        """A path under a regular file cannot be opened."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        with pytest.raises(PersistenceError):
            HistoryStore(blocker / "history.db")


class TestMessages:
    """Tests for appending and reading messages."""

    def test_read_recent_oldest_first(self, history_store: HistoryStore) -> None:
        for i in range(5):
            history_store.append_turn("user", f"m{i}")
        recent = history_store.read_recent(3)
        assert [m.content for m in recent] == ["m2", "m3", "m4"]

    def test_read_recent_zero(self, history_store: HistoryStore) -> None:
        history_store.append_turn("user", "x")
        assert history_store.read_recent(0) == []

    def test_read_recent_scoped_to_session(self, history_store: HistoryStore) -> None:
        """Messages from other sessions are not returned."""
        history_store.append_turn("user", "old session")
        history_store.start_new_session()
        history_store.append_turn("user", "new session")
        assert [m.content for m in history_store.read_recent(10)] == ["new session"]

    def test_append_returns_increasing_ids(self, history_store: HistoryStore) -> None:
        first = history_store.append_turn("user", "a")
        second = history_store.append_turn("assistant", "b")
        assert second > first

    def test_clear_session(self, history_store: HistoryStore) -> None:
        """Clearing removes the current session's messages and its row."""
        history_store.append_turn("user", "a")
        history_store.append_turn("assistant", "b")
        assert history_store.clear_session() == 2
        assert history_store.read_recent(10) == []
        assert history_store.list_sessions() == []

    def test_writes_from_another_thread(self, history_store: HistoryStore) -> None:
        """The worker thread gets its own connection."""
        worker = threading.Thread(target=history_store.append_turn, args=("user", "from worker"))
        worker.start()
        worker.join()
        assert [m.content for m in history_store.read_recent(10)] == ["from worker"]


class TestSessions:
    """Tests for listing and loading sessions."""

    def test_idle_session_not_listed(self, history_store: HistoryStore) -> None:
        """A session with no messages leaves no row."""
        assert history_store.list_sessions() == []

    def test_list_newest_first_with_counts(self, history_store: HistoryStore) -> None:
        history_store.append_turn("user", "a")
        first_id = history_store.current_session_id
        second_id = history_store.start_new_session()
        history_store.append_turn("user", "b")
        history_store.append_turn("assistant", "c")

        sessions = history_store.list_sessions()
        assert [s.session_id for s in sessions] == [second_id, first_id]
        assert [s.message_count for s in sessions] == [2, 1]

    def test_load_session_switches_current(self, history_store: HistoryStore) -> None:
        history_store.append_turn("user", "q")
        history_store.append_turn("assistant", "a")
        saved = history_store.current_session_id
        history_store.start_new_session()

        messages = history_store.load_session(saved)
        assert [(m.role, m.content) for m in messages] == [("user", "q"), ("assistant", "a")]
        assert history_store.current_session_id == saved

    def test_load_unknown_session_raises(self, history_store: HistoryStore) -> None:
        with pytest.raises(PersistenceError, match="Session not found"):
            history_store.load_session("session_nope")

    def test_session_id_format(self, history_store: HistoryStore) -> None:
        assert history_store.current_session_id.startswith("session_")


class TestHistoryMirroring:
    """Tests for ConversationHistory writing through to the store."""

    def test_exchange_is_mirrored(self, history_store: HistoryStore) -> None:
        history = ConversationHistory(history_store)
        history.append_exchange("hello", "t</think>\nhi")
        stored = history_store.read_recent(10)
        assert [(m.role, m.content) for m in stored] == [
            ("user", "hello"),
            ("assistant", "t</think>\nhi"),
        ]

    def test_store_failure_does_not_reach_caller(self, history_store: HistoryStore) -> None:
        """A closed or broken store is logged and ignored."""

        def broken(role: str, content: str) -> int:
            raise PersistenceError("disk full")

        history_store.append_turn = broken  # type: ignore[method-assign]
        history = ConversationHistory(history_store)
        history.append_exchange("q", "a")
        assert len(history) == 2

    def test_no_store_is_silent(self, caplog: pytest.LogCaptureFixture) -> None:
        """Without a store the mirror step does nothing and logs no failure."""
        history = ConversationHistory()
        with caplog.at_level(logging.WARNING, logger="zweek.errors"):
            history.append_exchange("q", "a")
        assert len(history) == 2
        assert "mirror exchange" not in caplog.text

    def test_replace_keeps_complete_pairs(self) -> None:
        """Orphan turns are dropped when loading a transcript."""
        history = ConversationHistory()
        history.replace([
            ConversationTurn(Role.ASSISTANT, "orphan reply"),
            ConversationTurn(Role.USER, "q1"),
            ConversationTurn(Role.ASSISTANT, "a1"),
            ConversationTurn(Role.USER, "dangling"),
        ])
        assert [t.content for t in history.turns()] == ["q1", "a1"]

    def test_recent_exchanges(self) -> None:
        history = ConversationHistory()
        for i in range(4):
            history.append_exchange(f"q{i}", f"a{i}")
        assert history.recent_exchanges(2) == [("q2", "a2"), ("q3", "a3")]
        assert history.recent_exchanges(0) == []
