from datetime import datetime

import pytest

from stockledger.time_utils import (
    EPOCH,
    parse_iso_datetime,
    parse_report_window,
    parse_window_bound,
    to_utc_z,
    utcnow,
)


def test_bare_date_start_is_start_of_day():
    assert parse_window_bound("2024-03-01", end=False) == datetime(2024, 3, 1)


def test_bare_date_end_is_last_millisecond():
    assert parse_window_bound("2024-03-01", end=True) == datetime(2024, 3, 1, 23, 59, 59, 999000)


def test_offsets_are_normalized_to_utc():
    assert parse_iso_datetime("2024-03-01T12:00:00+02:00") == datetime(2024, 3, 1, 10, 0, 0)
    assert parse_iso_datetime("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12, 0, 0)


def test_blank_bound_is_none():
    assert parse_window_bound("", end=False) is None
    assert parse_window_bound(None, end=True) is None


def test_window_defaults():
    start, end = parse_report_window(None, None)
    assert start == EPOCH
    assert end > datetime(2020, 1, 1)


def test_inverted_window_is_rejected():
    with pytest.raises(ValueError):
        parse_report_window("2024-03-02", "2024-03-01")


def test_malformed_bound_is_rejected():
    with pytest.raises(ValueError):
        parse_report_window("yesterday", None)


def test_to_utc_z_keeps_milliseconds():
    assert to_utc_z(datetime(2024, 3, 1, 10, 0, 0, 500)) == "2024-03-01T10:00:00.000Z"
    assert to_utc_z(datetime(2024, 3, 1, 23, 59, 59, 999000)) == "2024-03-01T23:59:59.999Z"
    assert to_utc_z(None) is None


def test_utcnow_has_millisecond_precision():
    assert utcnow().microsecond % 1000 == 0


def test_serialized_timestamp_round_trips_as_a_bound():
    stamp = datetime(2024, 3, 1, 23, 59, 59, 999000)
    assert parse_window_bound(to_utc_z(stamp), end=True) == stamp
