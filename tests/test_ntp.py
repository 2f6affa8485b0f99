import time

import pytest

from rtpintercept.ntp import to_ntp, to_time


@pytest.mark.parametrize("ts", [time.time_ns(), 0])
def test_time_round_trip_within_a_millisecond(ts):
    assert abs(to_time(to_ntp(ts)) - ts) <= 1_000_000


@pytest.mark.parametrize(
    "ts", [0, 65535, 16606669245815957503, 9487534653230284800]
)
def test_ntp_round_trip_is_exact(ts):
    assert to_ntp(to_time(ts)) == ts


def test_ntp_zero_is_year_1900():
    assert to_time(0) == -2208988800 * 1_000_000_000


def test_unix_epoch_integer_part():
    assert to_ntp(0) >> 32 == 2208988800
    assert to_ntp(0) & 0xFFFFFFFF == 0