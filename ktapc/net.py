"""Formatting of IPv4 addresses held as raw 32-bit socket fields."""

from __future__ import annotations

import sys

__all__ = ["format_ip_addr"]


def format_ip_addr(ip: int) -> str:
    """Return the dotted form of an IPv4 address.

    The number is the 32-bit network-order field as read from memory, so its
    bytes are printed in host memory order. Only the low 32 bits are used.
    """
    if isinstance(ip, bool) or not isinstance(ip, int):
        raise TypeError("wrong type of argument 1")
    raw = (ip & 0xFFFFFFFF).to_bytes(4, sys.byteorder)
    return ".".join(str(b) for b in raw)