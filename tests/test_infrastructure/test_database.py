"""Tests for database initialization and schema."""

from warden.infrastructure.database import AppDatabase


class TestAppDatabase:
    def test_init_creates_schema(self):
        db = AppDatabase()
        db._init_test()
        # Verify tables exist by querying them
        tables = db.db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ).fetchall()
        table_names = [row[0] for row in tables]
        assert "scheduled_tasks" in table_names
        assert "task_run_logs" in table_names
        assert "sessions" in table_names

    def test_migrated_columns(self):
        db = AppDatabase()
        db._init_test()
        task_columns = {row["name"] for row in db.db.execute("PRAGMA table_info(scheduled_tasks)")}
        log_columns = {row["name"] for row in db.db.execute("PRAGMA table_info(task_run_logs)")}
        assert "claimed_at" in task_columns
        assert "classification" in log_columns

    def test_repos_initialized(self):
        db = AppDatabase()
        db._init_test()
        assert db.task_repo is not None
        assert db.session_repo is not None

    def test_multiple_init_is_safe(self):
        db = AppDatabase()
        db._init_test()
        db._init_test()  # Should not raise

    def test_file_database_persists(self, tmp_path):
        path = tmp_path / "store" / "warden.db"
        db = AppDatabase()
        db.init(path)
        db.session_repo.set_session("main", "sess-1")
        db.close()
        assert not db.is_open

        reopened = AppDatabase()
        reopened.init(path)
        assert reopened.session_repo.get_session("main") == "sess-1"
        reopened.close()
