"""ANSI escape sequences for terminal output."""

from __future__ import annotations

__all__ = [
    "clear_screen",
    "set_color",
    "set_color2",
    "set_color3",
    "reset_color",
    "new_line",
]

_ESC = "\033["


def _number(value: object, index: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"wrong type of argument {index}")
    return value


def clear_screen() -> str:
    """Move the cursor to the top left, then clear to the end of the screen."""
    return f"{_ESC}1;1H{_ESC}J"


def set_color(fg: int) -> str:
    """Select Graphic Rendition for a foreground color.

    Black (30), Red (31), Green (32), Brown (33), Blue (34), Purple (35),
    Cyan (36), Light Gray (37).
    """
    fg = _number(fg, 1)
    return f"{_ESC}{fg}m"


def set_color2(fg: int, bg: int) -> str:
    """Select Graphic Rendition for a foreground and a background color.

    Backgrounds: Black (40), Red (41), Green (42), Yellow (43), Blue (44),
    Magenta (45), Cyan (46), White (47).
    """
    fg = _number(fg, 1)
    bg = _number(bg, 2)
    return f"{_ESC}{fg};{bg}m"


def set_color3(fg: int, bg: int, attr: int) -> str:
    """Select Graphic Rendition for colors and an attribute.

    Attributes: all off (0), bold (1), underline (4), slow blink (5),
    rapid blink (6), negative image (7). An attribute of 0 is left out.
    """
    fg = _number(fg, 1)
    bg = _number(bg, 2)
    attr = _number(attr, 3)
    if attr:
        return f"{_ESC}{fg};{bg};{attr}m"
    return f"{_ESC}{fg};{bg}m"


def reset_color() -> str:
    """Reset foreground, background and attribute to their defaults."""
    return f"{_ESC}0;0m"


def new_line() -> str:
    """A new line."""
    return "\n"