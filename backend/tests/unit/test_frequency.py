"""Unit tests for schedule frequency parsing and next-run evaluation"""

from datetime import datetime, timedelta, timezone

import pytest

from errors import InvalidFrequency
from sync.frequency import CRON, INTERVAL, Frequency, is_weekend, parse_interval


class TestParseInterval:

    @pytest.mark.parametrize("value,expected", [
        ("1h", timedelta(hours=1)),
        ("30m", timedelta(minutes=30)),
        ("1d", timedelta(days=1)),
        ("2w", timedelta(weeks=2)),
        ("PT1H", timedelta(hours=1)),
        ("PT30M", timedelta(minutes=30)),
        ("P1D", timedelta(days=1)),
        ("P1DT2H", timedelta(days=1, hours=2)),
    ])
    def test_valid_intervals(self, value, expected):
        assert parse_interval(value) == expected

    @pytest.mark.parametrize("value", ["", "soon", "P", "PT", "1y", "-5m"])
    def test_invalid_intervals(self, value):
        with pytest.raises(InvalidFrequency):
            parse_interval(value)

    def test_interval_shorter_than_a_minute_rejected(self):
        with pytest.raises(InvalidFrequency):
            parse_interval("30s")


class TestFrequency:

    def test_unknown_kind_rejected(self):
        with pytest.raises(InvalidFrequency):
            Frequency.parse("weekly", "1")

    def test_invalid_cron_rejected(self):
        with pytest.raises(InvalidFrequency):
            Frequency.parse(CRON, "not a cron")

    def test_unknown_timezone_rejected(self):
        with pytest.raises(InvalidFrequency):
            Frequency.parse(CRON, "0 * * * *", timezone="Mars/Olympus")

    def test_interval_next_run(self):
        frequency = Frequency.parse(INTERVAL, "1h")
        anchor = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)
        assert frequency.next_run_after(anchor) == anchor + timedelta(hours=1)

    def test_cron_next_run_is_strictly_after_anchor(self):
        frequency = Frequency.parse(CRON, "0 * * * *")
        anchor = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)
        assert frequency.next_run_after(anchor) == datetime(2024, 3, 4, 11, 0, tzinfo=timezone.utc)

    def test_cron_evaluated_in_schedule_timezone(self):
        # 09:00 in New York is 14:00 UTC during standard time
        frequency = Frequency.parse(CRON, "0 9 * * *", timezone="America/New_York")
        anchor = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert frequency.next_run_after(anchor, "America/New_York") == datetime(2024, 1, 15, 14, 0, tzinfo=timezone.utc)


class TestWeekend:

    def test_saturday_is_weekend(self):
        assert is_weekend(datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc)) is True

    def test_monday_is_not_weekend(self):
        assert is_weekend(datetime(2024, 3, 11, 12, 0, tzinfo=timezone.utc)) is False

    def test_weekend_uses_timezone(self):
        # Friday 23:30 UTC is already Saturday in Tokyo
        moment = datetime(2024, 3, 8, 23, 30, tzinfo=timezone.utc)
        assert is_weekend(moment, "UTC") is False
        assert is_weekend(moment, "Asia/Tokyo") is True
