"""SQLite database schema, migrations, and AppDatabase composition root."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from warden.infrastructure.config import STORE_DIR
from warden.infrastructure.logger import logger
from warden.scheduling.repository import TaskRepository
from warden.sessions.repository import SessionRepository


def create_schema(db: sqlite3.Connection) -> None:
    """Create all tables and indexes. Safe to call multiple times (IF NOT EXISTS)."""
    db.executescript("""
        CREATE TABLE IF NOT EXISTS scheduled_tasks (
            id TEXT PRIMARY KEY,
            group_id TEXT NOT NULL,
            chat_id TEXT NOT NULL,
            prompt TEXT NOT NULL,
            schedule_kind TEXT NOT NULL,
            schedule_value TEXT NOT NULL,
            context_mode TEXT DEFAULT 'isolated',
            next_run TEXT,
            last_run TEXT,
            last_result TEXT,
            status TEXT DEFAULT 'active',
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_next_run ON scheduled_tasks(next_run);
        CREATE INDEX IF NOT EXISTS idx_status ON scheduled_tasks(status);

        CREATE TABLE IF NOT EXISTS task_run_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id TEXT NOT NULL,
            run_at TEXT NOT NULL,
            duration_ms INTEGER NOT NULL,
            status TEXT NOT NULL,
            result TEXT,
            error TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_task_run_logs ON task_run_logs(task_id, run_at);

        CREATE TABLE IF NOT EXISTS sessions (
            group_id TEXT PRIMARY KEY,
            session_id TEXT NOT NULL
        );
    """)

    _run_schema_migrations(db)


def _run_schema_migrations(db: sqlite3.Connection) -> None:
    """Run ALTER TABLE migrations. Each tolerates an already-applied column."""
    migrations = [
        "ALTER TABLE scheduled_tasks ADD COLUMN claimed_at TEXT",
        "ALTER TABLE task_run_logs ADD COLUMN classification TEXT",
    ]
    for statement in migrations:
        try:
            db.execute(statement)
            db.commit()
        except sqlite3.OperationalError:
            pass


class AppDatabase:
    """Composition root that initializes the DB and exposes repositories."""

    def __init__(self) -> None:
        self._db: sqlite3.Connection | None = None
        # Repositories are set after init
        self.task_repo: TaskRepository | None = None  # type: ignore[assignment]
        self.session_repo: SessionRepository | None = None  # type: ignore[assignment]

    @property
    def db(self) -> sqlite3.Connection:
        assert self._db is not None, "Database not initialized. Call init() first."
        return self._db

    @property
    def is_open(self) -> bool:
        return self._db is not None

    def init(self, db_path: Path | None = None) -> None:
        """Open (or create) the database file at the standard location."""
        db_path = db_path or STORE_DIR / "warden.db"
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(str(db_path))
        self._db.row_factory = sqlite3.Row
        self._init_repos()
        logger.info("Database ready", path=str(db_path))

    def _init_test(self) -> None:
        """For tests only. Creates a fresh in-memory database."""
        self._db = sqlite3.connect(":memory:")
        self._db.row_factory = sqlite3.Row
        self._init_repos()

    def _init_repos(self) -> None:
        assert self._db is not None
        create_schema(self._db)
        self.task_repo = TaskRepository(self._db)
        self.session_repo = SessionRepository(self._db)

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None


# Singleton instance
database = AppDatabase()
