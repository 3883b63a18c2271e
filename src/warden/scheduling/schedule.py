"""Next-run computation for once / interval / cron schedules.

Everything here is pure: no clock reads, no I/O. Callers pass the reference
time and the zone explicitly. Naive datetimes are read as wall-clock time in
that zone; returned datetimes are aware and expressed in it.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo

from croniter import croniter

from warden.errors import ScheduleValidationError
from warden.scheduling.types import ScheduleKind

SCHEDULE_KINDS = ("once", "interval", "cron")

# Fixed reference used only to prove an expression can ever fire
_VALIDATION_BASE = datetime(2000, 1, 1)


def localize(dt: datetime, tz: tzinfo) -> datetime:
    return dt.replace(tzinfo=tz) if dt.tzinfo is None else dt.astimezone(tz)


def format_timestamp(dt: datetime) -> str:
    """Storage form: UTC, fixed width, so string order equals time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(raw: str) -> datetime:
    dt = datetime.fromisoformat(raw)
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def parse_interval(value: str) -> int:
    """Interval length in seconds. Zero and negative values are rejected."""
    try:
        seconds = int(str(value).strip())
    except ValueError:
        raise ScheduleValidationError(f"Invalid interval: {value!r}") from None
    if seconds <= 0:
        raise ScheduleValidationError(f"Invalid interval: {value!r} (must be a positive number of seconds)")
    return seconds


def parse_cron_expression(expression: str) -> str:
    """Validate a 5-field or 6-field (leading seconds) cron expression.

    Returns the expression in croniter's field order, which takes seconds as
    the trailing field.
    """
    fields = expression.split()
    if len(fields) not in (5, 6):
        raise ScheduleValidationError(f"Invalid cron expression: {expression!r} (expected 5 or 6 fields)")
    if len(fields) == 6:
        fields = fields[1:] + fields[:1]
    normalized = " ".join(fields)

    try:
        croniter(normalized, _VALIDATION_BASE).get_next(datetime)
    except (ValueError, KeyError) as err:
        raise ScheduleValidationError(f"Invalid cron expression: {expression!r}") from err
    return normalized


def parse_once(value: str, tz: tzinfo) -> datetime | None:
    """Scheduled instant of a one-shot task; None means 'as soon as possible'."""
    if not value.strip():
        return None
    try:
        return localize(datetime.fromisoformat(value.strip()), tz)
    except ValueError:
        raise ScheduleValidationError(f"Invalid timestamp: {value!r}") from None


def validate_schedule(kind: str, value: str, tz: tzinfo = timezone.utc) -> None:
    """Raise ScheduleValidationError unless (kind, value) can produce run times."""
    if kind == "cron":
        parse_cron_expression(value)
    elif kind == "interval":
        parse_interval(value)
    elif kind == "once":
        parse_once(value, tz)
    else:
        raise ScheduleValidationError(f"Unknown schedule kind: {kind!r}")


def next_cron_time(expression: str, reference: datetime, tz: tzinfo) -> datetime:
    """Earliest instant strictly after ``reference`` matching the expression.

    Matching happens on wall-clock time in ``tz``, so a daily 09:00 stays at
    09:00 local across DST changes.
    """
    normalized = parse_cron_expression(expression)
    base = localize(reference, tz)
    itr = croniter(normalized, base.replace(tzinfo=None))
    candidate = itr.get_next(datetime).replace(tzinfo=tz)
    # Repeated wall-clock hour at fall-back can map to an instant before the base
    while candidate <= base:
        candidate = itr.get_next(datetime).replace(tzinfo=tz)
    return candidate


def next_run(
    kind: ScheduleKind | str,
    value: str,
    reference_time: datetime,
    last_run: datetime | None = None,
    tz: tzinfo = timezone.utc,
) -> datetime | None:
    """Next eligible run, or None when the schedule is exhausted.

    once:     the scheduled instant (or reference_time) until it has run, then None.
    interval: last_run + interval, or reference_time if never run. A result
              already in the past collapses to reference_time: one catch-up
              run instead of a burst of missed ticks.
    cron:     next match strictly after reference_time.
    """
    reference = localize(reference_time, tz)

    if kind == "once":
        if last_run is not None:
            return None
        return parse_once(value, tz) or reference

    if kind == "interval":
        seconds = parse_interval(value)
        if last_run is None:
            return reference
        candidate = localize(last_run, tz) + timedelta(seconds=seconds)
        return reference if candidate < reference else candidate

    if kind == "cron":
        return next_cron_time(value, reference, tz)

    raise ScheduleValidationError(f"Unknown schedule kind: {kind!r}")


def first_run(kind: ScheduleKind | str, value: str, reference_time: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """Run time assigned when a task is created or activated."""
    validate_schedule(kind, value, tz)
    result = next_run(kind, value, reference_time, None, tz)
    assert result is not None
    return result
