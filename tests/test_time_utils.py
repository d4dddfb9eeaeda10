from datetime import datetime, timedelta, timezone

import pytest

from riskdesk.time_utils import days_ago, now_utc, now_utc_iso, parse_timestamp

UTC = timezone.utc


class TestParseTimestamp:

    @pytest.mark.parametrize(
        "raw",
        [
            "2026-03-02T10:15:00Z",
            "2026-03-02T10:15:00+00:00",
            "2026-03-02 10:15:00",
            "2026/03/02T10:15:00Z",
            1772446500000,
            "1772446500000",
        ],
    )
    def test_formats(self, raw):
        assert parse_timestamp(raw) == datetime(2026, 3, 2, 10, 15, tzinfo=UTC)

    def test_naive_datetime_taken_as_utc(self):
        assert parse_timestamp(datetime(2026, 3, 2, 10, 15)).tzinfo is UTC

    def test_aware_datetime_unchanged(self):
        dt = datetime(2026, 3, 2, 10, 15, tzinfo=timezone(timedelta(hours=2)))
        assert parse_timestamp(dt) is dt

    @pytest.mark.parametrize("raw", ["", "   "])
    def test_empty_rejected(self, raw):
        with pytest.raises(ValueError):
            parse_timestamp(raw)


def test_now_helpers_are_utc():
    assert now_utc().tzinfo is UTC
    assert parse_timestamp(now_utc_iso()).tzinfo is not None


def test_days_ago():
    now = datetime(2026, 3, 2, tzinfo=UTC)
    assert days_ago(1.5, now=now) == datetime(2026, 2, 28, 12, tzinfo=UTC)
