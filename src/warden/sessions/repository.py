"""Continuation-session persistence, one active session per group."""

from __future__ import annotations

import sqlite3


class SessionRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def get_session(self, group_id: str) -> str | None:
        row = self._db.execute("SELECT session_id FROM sessions WHERE group_id = ?", (group_id,)).fetchone()
        return row["session_id"] if row else None

    def set_session(self, group_id: str, session_id: str) -> None:
        self._db.execute(
            "INSERT OR REPLACE INTO sessions (group_id, session_id) VALUES (?, ?)", (group_id, session_id)
        )
        self._db.commit()

    def delete_session(self, group_id: str) -> None:
        self._db.execute("DELETE FROM sessions WHERE group_id = ?", (group_id,))
        self._db.commit()

    def get_all_sessions(self) -> dict[str, str]:
        rows = self._db.execute("SELECT group_id, session_id FROM sessions").fetchall()
        return {row["group_id"]: row["session_id"] for row in rows}
