import datetime as dt

from loveslices.core.clock import as_utc, elapsed_seconds, iso


def test_elapsed_seconds_rounds_to_nearest_second():
    start = dt.datetime(2024, 1, 1, 12, 0, 0, tzinfo=dt.timezone.utc)
    assert elapsed_seconds(start, start + dt.timedelta(seconds=1.4)) == 1
    assert elapsed_seconds(start, start + dt.timedelta(seconds=1.6)) == 2
    assert elapsed_seconds(start, start + dt.timedelta(minutes=5)) == 300


def test_elapsed_seconds_mixes_naive_and_aware():
    start = dt.datetime(2024, 1, 1, 12, 0, 0)
    end = dt.datetime(2024, 1, 1, 12, 0, 30, tzinfo=dt.timezone.utc)
    assert elapsed_seconds(start, end) == 30


def test_as_utc_converts_offsets():
    plus_two = dt.timezone(dt.timedelta(hours=2))
    value = dt.datetime(2024, 1, 1, 14, 0, tzinfo=plus_two)
    assert as_utc(value).hour == 12


def test_iso_uses_z_suffix():
    value = dt.datetime(2024, 3, 4, 5, 6, 7, tzinfo=dt.timezone.utc)
    assert iso(value) == "2024-03-04T05:06:07Z"
    assert iso(None) is None
