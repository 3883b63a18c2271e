"""Housekeeping for group workspaces: memory snapshots and log expiry."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from warden.groups.types import WorkspacePaths
from warden.groups.workspace import WorkspaceManager
from warden.infrastructure.config import LOG_MAX_AGE_DAYS, MEMORY_ARCHIVE_THRESHOLD
from warden.infrastructure.logger import logger

HISTORY_DIRNAME = ".history"


class ArchiveRecord(BaseModel):
    original_path: str
    archive_path: str
    line_count: int


class MaintenanceReport(BaseModel):
    group_id: str
    archives: list[ArchiveRecord] = Field(default_factory=list)
    cleaned: int = 0
    errors: list[str] = Field(default_factory=list)
    executed_at: datetime


def count_lines(path: Path) -> int:
    return len(path.read_text().splitlines())


class ContentArchiver:
    """Copies a memory artifact that grew past the threshold into a history folder.

    The artifact itself is never modified; it belongs to the agent.
    """

    def __init__(self, threshold_lines: int = MEMORY_ARCHIVE_THRESHOLD) -> None:
        self.threshold_lines = threshold_lines

    def should_archive(self, path: Path) -> bool:
        try:
            return count_lines(path) > self.threshold_lines
        except OSError:
            return False

    def archive(self, path: Path, archive_dir: Path) -> ArchiveRecord | None:
        """Write a timestamped copy. Returns None when the newest copy is already identical."""
        content = path.read_text()
        archive_dir.mkdir(parents=True, exist_ok=True)

        existing = sorted(archive_dir.glob(f"{path.stem}_*{path.suffix}"))
        if existing and existing[-1].read_text() == content:
            return None

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        target = archive_dir / f"{path.stem}_{stamp}{path.suffix}"
        n = 1
        while target.exists():
            target = archive_dir / f"{path.stem}_{stamp}_{n}{path.suffix}"
            n += 1
        target.write_text(content)
        return ArchiveRecord(
            original_path=str(path),
            archive_path=str(target),
            line_count=len(content.splitlines()),
        )


class LogCleaner:
    """Deletes files in a log directory last modified more than max_age_days ago."""

    def __init__(self, max_age_days: int = LOG_MAX_AGE_DAYS) -> None:
        self.max_age_days = max_age_days

    def should_delete(self, path: Path, now: float | None = None) -> bool:
        if not path.is_file():
            return False
        age_s = (now if now is not None else time.time()) - path.stat().st_mtime
        return age_s > self.max_age_days * 86400

    def get_old_logs(self, log_dir: Path, now: float | None = None) -> list[Path]:
        if not log_dir.is_dir():
            return []
        return sorted(p for p in log_dir.iterdir() if self.should_delete(p, now))

    def clean(self, log_dir: Path, now: float | None = None) -> int:
        deleted = 0
        for path in self.get_old_logs(log_dir, now):
            path.unlink(missing_ok=True)
            deleted += 1
        return deleted


class WorkspaceMaintenance:
    """Runs the archiver and the log cleaner over each group's workspace."""

    def __init__(
        self,
        workspace: WorkspaceManager,
        archiver: ContentArchiver | None = None,
        cleaner: LogCleaner | None = None,
    ) -> None:
        self._workspace = workspace
        self._archiver = archiver or ContentArchiver()
        self._cleaner = cleaner or LogCleaner()

    def run_for_group(self, paths: WorkspacePaths) -> MaintenanceReport:
        report = MaintenanceReport(group_id=paths.group_id, executed_at=datetime.now(timezone.utc))

        if self._archiver.should_archive(paths.memory_file):
            try:
                record = self._archiver.archive(paths.memory_file, paths.group_dir / HISTORY_DIRNAME)
                if record is not None:
                    report.archives.append(record)
            except OSError as err:
                report.errors.append(f"Archive error: {err}")

        try:
            report.cleaned = self._cleaner.clean(paths.logs_dir)
        except OSError as err:
            report.errors.append(f"Clean error: {err}")

        if report.archives or report.cleaned or report.errors:
            logger.info(
                "Workspace maintenance",
                group=paths.group_id,
                archived=len(report.archives),
                cleaned=report.cleaned,
                errors=report.errors or None,
            )
        return report

    def run(self) -> list[MaintenanceReport]:
        """One pass over every group that has a workspace."""
        return [self.run_for_group(self._workspace.paths_for(folder)) for folder in self._workspace.list_groups()]

    async def tick(self) -> None:
        await asyncio.to_thread(self.run)
