"""Configuration constants, .env parsing, and timeout settings."""

from __future__ import annotations

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def read_env_file(keys: list[str]) -> dict[str, str]:
    """Parse .env file and return values for requested keys.

    Does NOT load into os.environ — callers decide what to do with values.
    This keeps secrets out of the process environment so they don't leak
    to child processes.
    """
    env_file = Path.cwd() / ".env"
    try:
        content = env_file.read_text()
    except OSError:
        return {}

    result: dict[str, str] = {}
    wanted = set(keys)

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        eq_idx = trimmed.find("=")
        if eq_idx == -1:
            continue
        key = trimmed[:eq_idx].strip()
        if key not in wanted:
            continue
        value = trimmed[eq_idx + 1 :].strip()
        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        if value:
            result[key] = value

    return result


def get_setting(key: str, default: str = "") -> str:
    """Read a setting from os.environ, falling back to .env, then the default."""
    value = os.environ.get(key)
    if value:
        return value
    return read_env_file([key]).get(key, default)


def _int_setting(key: str, default: int) -> int:
    raw = get_setting(key, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


ASSISTANT_NAME: str = get_setting("ASSISTANT_NAME", "Warden")

# Absolute paths
WARDEN_HOME: Path = Path(os.environ.get("WARDEN_HOME") or Path.cwd()).expanduser()
HOME_DIR: Path = Path.home()

MOUNT_ALLOWLIST_PATH: Path = HOME_DIR / ".config" / "warden" / "mount-allowlist.json"
STORE_DIR: Path = (WARDEN_HOME / "store").resolve()
GROUPS_DIR: Path = (WARDEN_HOME / "groups").resolve()
DATA_DIR: Path = (WARDEN_HOME / "data").resolve()
MAIN_GROUP_FOLDER: str = "main"
MEMORY_FILENAME: str = "CLAUDE.md"

# Agent execution
AGENT_RUNNER_MODE: str = get_setting("AGENT_RUNNER_MODE", "container")
CONTAINER_IMAGE: str = get_setting("CONTAINER_IMAGE", "warden-agent:latest")
CONTAINER_RUNTIME: str = get_setting("CONTAINER_RUNTIME", "docker")
CONTAINER_TIMEOUT: int = _int_setting("CONTAINER_TIMEOUT", 300_000)  # ms
CONTAINER_MAX_OUTPUT_SIZE: int = _int_setting("CONTAINER_MAX_OUTPUT_SIZE", 10 * 1024 * 1024)  # 10MB
KILL_GRACE_PERIOD: int = _int_setting("KILL_GRACE_PERIOD", 1_000)  # ms

OUTPUT_START_MARKER: str = get_setting("OUTPUT_START_MARKER", "---WARDEN_OUTPUT_START---")
OUTPUT_END_MARKER: str = get_setting("OUTPUT_END_MARKER", "---WARDEN_OUTPUT_END---")

ANTHROPIC_BASE_URL: str = get_setting("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
CLAUDE_MODEL: str = get_setting("CLAUDE_MODEL", "claude-sonnet-4-20250514")

# Scheduling
SCHEDULER_POLL_INTERVAL: float = float(_int_setting("SCHEDULER_POLL_INTERVAL", 60))  # seconds
TASK_TIMEOUT: float = float(_int_setting("TASK_TIMEOUT", 600))  # seconds
MAX_CONCURRENT_TASKS: int = max(1, _int_setting("MAX_CONCURRENT_TASKS", 5))
STALE_CLAIM_AFTER: float = TASK_TIMEOUT * 2

# Workspace maintenance
MEMORY_ARCHIVE_THRESHOLD: int = _int_setting("MEMORY_ARCHIVE_THRESHOLD", 200)  # lines
LOG_MAX_AGE_DAYS: int = _int_setting("LOG_MAX_AGE_DAYS", 90)
MAINTENANCE_INTERVAL: float = float(_int_setting("MAINTENANCE_INTERVAL", 24 * 60 * 60))  # seconds


def _resolve_timezone() -> str:
    tz = os.environ.get("TZ", "")
    if not tz:
        try:
            # On Linux, read /etc/timezone or use the TZ symlink
            tz_file = Path("/etc/timezone")
            if tz_file.exists():
                tz = tz_file.read_text().strip()
            else:
                local_tz = Path("/etc/localtime").resolve()
                # Extract IANA name from path like /usr/share/zoneinfo/America/New_York
                parts = local_tz.parts
                if "zoneinfo" in parts:
                    tz = "/".join(parts[parts.index("zoneinfo") + 1 :])
        except OSError:
            tz = ""

    if not tz:
        return "UTC"

    try:
        ZoneInfo(tz)
        return tz
    except (ZoneInfoNotFoundError, ValueError):
        return "UTC"


TIMEZONE: str = _resolve_timezone()


def get_zone(name: str | None = None) -> ZoneInfo:
    """The configured scheduling zone. All schedule arithmetic happens in it."""
    return ZoneInfo(name or TIMEZONE)


class TimeoutConfig:
    """Deadline configuration for agent execution."""

    def __init__(self, container_timeout: int = CONTAINER_TIMEOUT, kill_grace: int = KILL_GRACE_PERIOD) -> None:
        self.container_timeout = container_timeout
        self.kill_grace = kill_grace

    @property
    def deadline_s(self) -> float:
        return self.container_timeout / 1000

    @property
    def kill_grace_s(self) -> float:
        return self.kill_grace / 1000

    def for_group(self, config: object | None) -> TimeoutConfig:
        """TimeoutConfig for one group, honouring its ContainerConfig timeout when set."""
        group_timeout = getattr(config, "timeout", None) or self.container_timeout
        return TimeoutConfig(group_timeout, self.kill_grace)
