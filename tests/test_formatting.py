from datetime import datetime, timedelta, timezone

import pytest

from mentorlink.utils.formatting import format_company_name, resolve_display_name, time_ago


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  acme   widgets llc ", "Acme Widgets LLC"),
        ("o'reilly media", "O'Reilly Media"),
        ("hewlett-packard enterprise", "Hewlett-Packard Enterprise"),
        ("mcdonald", "McDonald"),
        ("macdonald", "MacDonald"),
        ("jp morgan", "JPMorgan"),
        ("ibm", "IBM"),
        ("rocky ii films", "Rocky II Films"),
        ("machine learning co", "Machine Learning Co"),
        ("macy retail group", "Macy Retail Group"),
        ("mack trucks", "Mack Trucks"),
        ("", ""),
        (None, ""),
    ],
)
def test_format_company_name(raw, expected):
    assert format_company_name(raw) == expected


def test_resolve_display_name_skips_blanks_and_placeholder():
    assert resolve_display_name(None, "  ", "Anonymous User", "kim") == "kim"
    assert resolve_display_name(None, "") == "Anonymous"


def test_time_ago_buckets():
    now = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

    assert time_ago(now - timedelta(seconds=30), now) == "Just now"
    assert time_ago(now - timedelta(minutes=5), now) == "5m ago"
    assert time_ago(now - timedelta(hours=3), now) == "3h ago"
    assert time_ago(now - timedelta(days=2), now) == "2d ago"
    assert time_ago(datetime(2024, 4, 1, 8, 0), now) == "2024-04-01"
