"""Tests for display formatters and time helpers."""
import pytest
from datetime import datetime, timedelta, timezone

from conftest import T0
from models.enums import Resolution
from utils.formatters import format_watts, format_kwh, format_timestamp, time_ago
from utils.timeutil import ceil_time, floor_time, parse_iso, same_period, to_iso, to_utc


def test_format_watts():
    assert format_watts(850) == "850.0 W"
    assert format_watts(1500) == "1.50 kW"
    assert format_watts(None) == "N/A"


def test_format_kwh():
    assert format_kwh(1.23456) == "1.235 kWh"
    assert format_kwh(2, decimals=1) == "2.0 kWh"
    assert format_kwh(None) == "N/A"


def test_format_timestamp():
    assert format_timestamp(T0) == "2024-03-04 12:00:00 UTC"
    assert format_timestamp(None) == "N/A"


def test_time_ago():
    assert time_ago(T0 - timedelta(seconds=30), now=T0) == "30s ago"
    assert time_ago(T0 - timedelta(minutes=5), now=T0) == "5m ago"
    assert time_ago(T0 - timedelta(hours=3), now=T0) == "3h ago"
    assert time_ago(T0 - timedelta(days=2), now=T0) == "2d ago"
    assert time_ago(None) == "never"


def test_iso_sorts_chronologically():
    a = T0 + timedelta(microseconds=5)
    b = T0 + timedelta(seconds=1)
    assert to_iso(a) < to_iso(b)
    assert parse_iso(to_iso(a)) == a


def test_to_utc_treats_naive_as_utc():
    assert to_utc(datetime(2024, 3, 4, 12, 0)) == T0
    assert to_utc("2024-03-04T13:00:00+01:00") == T0
    assert to_utc(None) is None


def test_floor_and_ceil():
    t = T0 + timedelta(minutes=17, seconds=3)
    assert floor_time(t, Resolution.HOUR) == T0
    assert floor_time(t, Resolution.MINUTE) == T0 + timedelta(minutes=17)
    assert floor_time(t, Resolution.DAY) == datetime(2024, 3, 4, tzinfo=timezone.utc)
    assert ceil_time(t, Resolution.HOUR) == T0 + timedelta(hours=1)
    assert ceil_time(T0, Resolution.HOUR) == T0


def test_same_period():
    assert same_period(T0, T0 + timedelta(seconds=59))
    assert not same_period(T0, T0 + timedelta(seconds=60))
    assert same_period(T0, T0 + timedelta(minutes=59), "hour")
