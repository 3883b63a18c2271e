"""Tests for session manager."""

import pytest

from warden.infrastructure.database import AppDatabase
from warden.sessions.manager import SessionManager


@pytest.fixture
def session_manager():
    db = AppDatabase()
    db._init_test()
    return SessionManager(db.session_repo)


class TestSessionManager:
    def test_set_and_get(self, session_manager):
        session_manager.set("main", "sess-123")
        assert session_manager.get("main") == "sess-123"

    def test_get_nonexistent(self, session_manager):
        assert session_manager.get("nonexistent") is None

    def test_delete(self, session_manager):
        session_manager.set("main", "sess-123")
        session_manager.delete("main")
        assert session_manager.get("main") is None

    def test_get_all(self, session_manager):
        session_manager.set("main", "sess-1")
        session_manager.set("other", "sess-2")
        all_sessions = session_manager.get_all()
        assert len(all_sessions) == 2
        assert all_sessions["main"] == "sess-1"

    def test_load_from_db(self):
        db = AppDatabase()
        db._init_test()
        db.session_repo.set_session("main", "sess-db")

        sm = SessionManager(db.session_repo)
        sm.load_from_db()
        assert sm.get("main") == "sess-db"


class TestContextModes:
    def test_append_prefers_explicit(self, session_manager):
        session_manager.set("main", "stored")
        assert session_manager.session_for_run("main", "append") == "stored"
        assert session_manager.session_for_run("main", "append", "explicit") == "explicit"

    @pytest.mark.parametrize("mode", ["replace", "isolated"])
    def test_fresh_modes_ignore_sessions(self, session_manager, mode):
        session_manager.set("main", "stored")
        assert session_manager.session_for_run("main", mode, "explicit") is None

    def test_record_result(self, session_manager):
        session_manager.record_result("main", "append", "s-1")
        assert session_manager.get("main") == "s-1"
        session_manager.record_result("main", "replace", "s-2")
        assert session_manager.get("main") == "s-2"
        session_manager.record_result("main", "isolated", "s-3")
        assert session_manager.get("main") == "s-2"
        session_manager.record_result("main", "append", None)
        assert session_manager.get("main") == "s-2"
