"""Tests for next-run computation."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from warden.errors import ScheduleValidationError
from warden.scheduling.schedule import (
    first_run,
    format_timestamp,
    next_cron_time,
    next_run,
    parse_cron_expression,
    parse_timestamp,
    validate_schedule,
)

UTC = timezone.utc
NEW_YORK = ZoneInfo("America/New_York")


class TestInterval:
    def test_never_run_is_due_now(self):
        now = datetime(2026, 2, 13, 9, 0, tzinfo=UTC)
        assert next_run("interval", "3600", now, None, UTC) == now

    def test_next_is_last_run_plus_interval(self):
        last = datetime(2026, 2, 13, 9, 0, tzinfo=UTC)
        now = last + timedelta(seconds=30)
        assert next_run("interval", "3600", now, last, UTC) == last + timedelta(hours=1)

    def test_missed_ticks_collapse_to_one_catch_up(self):
        last = datetime(2026, 2, 13, 9, 0, tzinfo=UTC)
        now = last + timedelta(hours=5, minutes=10)
        assert next_run("interval", "3600", now, last, UTC) == now

    @pytest.mark.parametrize("value", ["0", "-60", "abc", "", "1.5"])
    def test_invalid_intervals(self, value):
        with pytest.raises(ScheduleValidationError, match="Invalid interval"):
            validate_schedule("interval", value)


class TestCron:
    def test_daily_at_eight_after_it_passed(self):
        now = datetime(2026, 2, 13, 9, 0, tzinfo=UTC)
        assert next_run("cron", "0 8 * * *", now, None, UTC) == datetime(2026, 2, 14, 8, 0, tzinfo=UTC)

    def test_strictly_after_reference(self):
        now = datetime(2026, 2, 13, 8, 0, tzinfo=UTC)
        assert next_cron_time("0 8 * * *", now, UTC) == datetime(2026, 2, 14, 8, 0, tzinfo=UTC)

    def test_six_field_has_leading_seconds(self):
        now = datetime(2026, 2, 13, 8, 59, 0, tzinfo=UTC)
        assert next_cron_time("30 0 9 * * *", now, UTC) == datetime(2026, 2, 13, 9, 0, 30, tzinfo=UTC)
        assert parse_cron_expression("30 0 9 * * *") == "0 9 * * * 30"

    def test_wall_clock_kept_across_dst(self):
        # US spring-forward: 2026-03-08
        before = datetime(2026, 3, 6, 12, 0, tzinfo=NEW_YORK)
        first = next_cron_time("0 9 * * *", before, NEW_YORK)
        second = next_cron_time("0 9 * * *", first, NEW_YORK)

        assert (first.hour, first.utcoffset()) == (9, timedelta(hours=-5))
        assert (second.hour, second.utcoffset()) == (9, timedelta(hours=-4))
        assert second.astimezone(UTC) - first.astimezone(UTC) == timedelta(hours=23)

    def test_naive_reference_read_in_zone(self):
        naive = datetime(2026, 2, 13, 9, 0)
        result = next_cron_time("0 8 * * *", naive, NEW_YORK)
        assert result == datetime(2026, 2, 14, 8, 0, tzinfo=NEW_YORK)

    @pytest.mark.parametrize("expression", ["", "invalid", "* * *", "61 * * * *", "* * * * * * *"])
    def test_invalid_expressions(self, expression):
        with pytest.raises(ScheduleValidationError, match="Invalid cron"):
            validate_schedule("cron", expression)


class TestOnce:
    def test_timestamp_value(self):
        now = datetime(2026, 2, 13, 9, 0, tzinfo=UTC)
        assert next_run("once", "2026-03-01T10:00:00", now, None, UTC) == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)

    def test_empty_value_means_now(self):
        now = datetime(2026, 2, 13, 9, 0, tzinfo=UTC)
        assert next_run("once", "", now, None, UTC) == now

    def test_exhausted_after_running(self):
        now = datetime(2026, 2, 13, 9, 0, tzinfo=UTC)
        assert next_run("once", "", now, now, UTC) is None

    def test_invalid_timestamp(self):
        with pytest.raises(ScheduleValidationError, match="Invalid timestamp"):
            validate_schedule("once", "next tuesday")


class TestFirstRun:
    def test_interval_runs_immediately(self):
        now = datetime(2026, 2, 13, 9, 0, tzinfo=UTC)
        assert first_run("interval", "60", now, UTC) == now

    def test_unknown_kind(self):
        with pytest.raises(ScheduleValidationError, match="Unknown schedule kind"):
            first_run("weekly", "x", datetime(2026, 1, 1, tzinfo=UTC))

    def test_is_pure(self):
        now = datetime(2026, 2, 13, 9, 0, tzinfo=UTC)
        assert first_run("cron", "*/15 * * * *", now, UTC) == first_run("cron", "*/15 * * * *", now, UTC)


class TestTimestamps:
    def test_storage_form_is_utc_and_sortable(self):
        local = datetime(2026, 2, 13, 9, 0, tzinfo=NEW_YORK)
        stored = format_timestamp(local)
        assert stored == "2026-02-13T14:00:00.000+00:00"
        assert parse_timestamp(stored) == local
        assert format_timestamp(datetime(2026, 2, 13, 8, 0, tzinfo=UTC)) < stored
