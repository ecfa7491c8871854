import pytest

from ktapc.timer import (
    NSEC_PER_MSEC,
    NSEC_PER_SEC,
    NSEC_PER_USEC,
    TimerIntervalError,
    parse_interval,
)


@pytest.mark.parametrize(
    "text, factor",
    [
        ("10s", NSEC_PER_SEC),
        ("10sec", NSEC_PER_SEC),
        ("10ms", NSEC_PER_MSEC),
        ("10msec", NSEC_PER_MSEC),
        ("10us", NSEC_PER_USEC),
        ("10usec", NSEC_PER_USEC),
    ],
)
def test_units(text, factor):
    assert parse_interval(text) == 10 * factor


def test_long_and_short_units_agree():
    assert parse_interval("3sec") == parse_interval("3s")
    assert parse_interval("3msec") == parse_interval("3ms")
    assert parse_interval("3usec") == parse_interval("3us")


def test_unit_ordering():
    assert parse_interval("1s") > parse_interval("1ms") > parse_interval("1us")


def test_text_after_space_is_ignored():
    assert parse_interval("5ms trailing") == parse_interval("5ms")


def test_leading_zeros_are_decimal():
    assert parse_interval("010s") == 10 * NSEC_PER_SEC


def test_zero_count():
    assert parse_interval("0s") == 0


@pytest.mark.parametrize(
    "text", ["", "10", "ms", "10m", "10 ms", "10secs", "-1s", "abc", "1.5s"]
)
def test_invalid_intervals(text):
    with pytest.raises(TimerIntervalError, match="cannot parse timer interval"):
        parse_interval(text)


def test_count_beyond_int_range():
    with pytest.raises(TimerIntervalError):
        parse_interval("99999999999s")


def test_error_keeps_text():
    with pytest.raises(TimerIntervalError) as info:
        parse_interval("7days")
    assert info.value.text == "7days"
    assert isinstance(info.value, ValueError)


def test_non_string_rejected():
    with pytest.raises(TypeError):
        parse_interval(10)