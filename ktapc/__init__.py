"""Script lexer, C declaration parser and runtime helpers for a tracing language."""

__version__ = "0.4.0"
__all__ = ["ansi", "cparser", "ctokens", "ctypes", "lexer", "net", "timer"]