import sys

import pytest

from ktapc.net import format_ip_addr


def _field(octets):
    return int.from_bytes(bytes(octets), sys.byteorder)


@pytest.mark.parametrize(
    "octets", [(127, 0, 0, 1), (192, 0, 2, 1), (0, 0, 0, 0), (255, 255, 255, 255)]
)
def test_memory_order_round_trip(octets):
    assert format_ip_addr(_field(octets)) == ".".join(map(str, octets))


def test_only_low_32_bits_used():
    value = _field((10, 1, 2, 3))
    assert format_ip_addr(value + (1 << 32)) == format_ip_addr(value)


def test_negative_is_wrapped():
    assert format_ip_addr(-1) == "255.255.255.255"


def test_four_octets_in_range():
    parts = format_ip_addr(0x12345678).split(".")
    assert len(parts) == 4
    assert all(0 <= int(p) <= 255 for p in parts)


@pytest.mark.parametrize("bad", ["127.0.0.1", None, 1.0, False])
def test_rejects_non_numbers(bad):
    with pytest.raises(TypeError):
        format_ip_addr(bad)