"""Session manager with in-memory cache and context-mode resolution."""

from __future__ import annotations

from warden.execution.types import ContextMode
from warden.infrastructure.logger import logger
from warden.sessions.repository import SessionRepository


class SessionManager:
    """Tracks the continuation session of each group.

    Context modes decide how a run relates to the group's conversation:
        append    continue the stored session, keep whatever the agent returns
        replace   start fresh, the returned session becomes the group's session
        isolated  start fresh, leave the stored session alone
    """

    def __init__(self, session_repo: SessionRepository) -> None:
        self._session_repo = session_repo
        self._sessions: dict[str, str] = {}

    def load_from_db(self) -> None:
        """Load all sessions from DB into memory cache."""
        self._sessions = self._session_repo.get_all_sessions()

    def get(self, group_id: str) -> str | None:
        return self._sessions.get(group_id)

    def set(self, group_id: str, session_id: str) -> None:
        self._sessions[group_id] = session_id
        self._session_repo.set_session(group_id, session_id)

    def delete(self, group_id: str) -> None:
        self._sessions.pop(group_id, None)
        self._session_repo.delete_session(group_id)

    def get_all(self) -> dict[str, str]:
        return dict(self._sessions)

    def session_for_run(self, group_id: str, context_mode: ContextMode, explicit: str | None = None) -> str | None:
        if context_mode != "append":
            return None
        return explicit or self.get(group_id)

    def record_result(self, group_id: str, context_mode: ContextMode, session_id: str | None) -> None:
        if context_mode == "isolated" or not session_id:
            return
        if session_id != self.get(group_id):
            logger.debug("Session updated", group=group_id, session_id=session_id, context_mode=context_mode)
            self.set(group_id, session_id)
