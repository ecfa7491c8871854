"""Lexical analyzer for ktap scripts."""

from __future__ import annotations

import enum
import re
from typing import Iterator, Optional, Union

TK_OFS = 256
MAX_LINE = 0x7FFFFF00

_ULONG_MAX = (1 << 64) - 1

_ERR_XLINES = "chunk has too many lines"
_ERR_XNUMBER = "malformed number"
_ERR_XLSTR = "unfinished long string"
_ERR_XLCOM = "unfinished long comment"
_ERR_XSTR = "unfinished string"
_ERR_XESC = "invalid escape sequence"
_ERR_XLDELIM = "invalid long string delimiter"
_ERR_XTOKEN = "'{}' expected"

_SPACE = " \t\n\v\f\r"
_DIGITS = "0123456789"
_XDIGITS = "0123456789abcdefABCDEF"

_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
}


class Tok(enum.IntEnum):
    """Multi-character and reserved-word tokens."""

    TRACE = TK_OFS + 1
    TRACE_END = enum.auto()
    ARGSTR = enum.auto()
    PROBENAME = enum.auto()
    FFI = enum.auto()
    ARG0 = enum.auto()
    ARG1 = enum.auto()
    ARG2 = enum.auto()
    ARG3 = enum.auto()
    ARG4 = enum.auto()
    ARG5 = enum.auto()
    ARG6 = enum.auto()
    ARG7 = enum.auto()
    ARG8 = enum.auto()
    ARG9 = enum.auto()
    PROFILE = enum.auto()
    TICK = enum.auto()
    PID = enum.auto()
    TID = enum.auto()
    UID = enum.auto()
    CPU = enum.auto()
    EXECNAME = enum.auto()
    INCR = enum.auto()
    AND = enum.auto()
    BREAK = enum.auto()
    DO = enum.auto()
    ELSE = enum.auto()
    ELSEIF = enum.auto()
    END = enum.auto()
    FALSE = enum.auto()
    FOR = enum.auto()
    FUNCTION = enum.auto()
    GOTO = enum.auto()
    IF = enum.auto()
    IN = enum.auto()
    LOCAL = enum.auto()
    NIL = enum.auto()
    NOT = enum.auto()
    OR = enum.auto()
    REPEAT = enum.auto()
    RETURN = enum.auto()
    THEN = enum.auto()
    TRUE = enum.auto()
    UNTIL = enum.auto()
    WHILE = enum.auto()
    CONCAT = enum.auto()
    DOTS = enum.auto()
    EQ = enum.auto()
    GE = enum.auto()
    LE = enum.auto()
    NE = enum.auto()
    LABEL = enum.auto()
    NUMBER = enum.auto()
    NAME = enum.auto()
    STRING = enum.auto()
    EOF = enum.auto()

    @property
    def symbol(self) -> str:
        """The text shown for this token."""
        return _TOKEN_NAMES[self.value - TK_OFS - 1]


_TOKEN_NAMES = (
    "trace", "trace_end", "argstr", "probename", "ffi",
    "arg0", "arg1", "arg2", "arg3", "arg4", "arg5", "arg6", "arg7",
    "arg8", "arg9", "profile", "tick",
    "pid", "tid", "uid", "cpu", "execname", "+=",
    "&&", "break", "do", "else", "elseif", "end", "false",
    "for", "function", "goto", "if", "in", "var", "nil",
    "!", "||",
    "repeat", "return", "then", "true", "until", "while",
    "..", "...", "==", ">=", "<=",
    "!=", "::", "<number>", "<name>",
    "<string>", "<eof>",
)

TK_RESERVED = Tok.WHILE - TK_OFS

_RESERVED = {
    _TOKEN_NAMES[i]: Tok(TK_OFS + 1 + i) for i in range(TK_RESERVED)
}

Token = Union[Tok, str]

_NUMBER_RE = re.compile(r"0[xX]([0-9a-fA-F]+)|0([0-7]*)|([1-9][0-9]*)")


class LexError(Exception):
    """Raised on malformed script text."""

    def __init__(self, chunkname: str, line: int, message: str,
                 near: Optional[str] = None):
        self.chunkname = chunkname
        self.line = line
        self.message = message
        self.near = near
        text = f"{chunkname}:{line}: {message}"
        if near is not None:
            text += f" near '{near}'"
        super().__init__(text)


def token2str(tok: Token) -> str:
    """Printable form of a token."""
    if isinstance(tok, Tok):
        return tok.symbol
    code = ord(tok)
    if code < 32 or code == 127:
        return f"char({code})"
    return tok


def _str2number(text: str) -> Optional[int]:
    if "n" in text or "N" in text:
        return None
    m = _NUMBER_RE.match(text)
    if m is None:
        return None
    rest = text[m.end():]
    if rest.strip(_SPACE):
        return None
    if m.group(1) is not None:
        value = int(m.group(1), 16)
    elif m.group(2) is not None:
        value = int("0" + m.group(2), 8)
    else:
        value = int(m.group(3))
    value = min(value, _ULONG_MAX)
    return value - (1 << 64) if value >= (1 << 63) else value


def _isident(ch: Optional[str]) -> bool:
    return ch is not None and ch.isascii() and (ch.isalnum() or ch == "_")


def _isdigit(ch: Optional[str]) -> bool:
    return ch is not None and ch in _DIGITS


class Lexer:
    """Splits ktap script text into tokens."""

    def __init__(self, source: str, chunkname: str = "?"):
        self.source = source
        self.chunkname = chunkname
        self.c: Optional[str] = None
        self.tok: Optional[Token] = None
        self.tokval: object = None
        self.linenumber = 1
        self.lastline = 1
        self._pos = 0
        self._buf: list[str] = []
        self._lookahead: Token = Tok.EOF
        self._lookaheadval: object = None

        self._next()
        if self.c == "\ufeff":
            self._next()
        if self.c == "#":
            while True:
                self._next()
                if self.c is None:
                    return
                if self._iseol():
                    break
            self._newline()

    # -- character handling ---------------------------------------------

    def _next(self) -> Optional[str]:
        if self._pos < len(self.source):
            self.c = self.source[self._pos]
            self._pos += 1
        else:
            self.c = None
        return self.c

    def _save(self, ch: str) -> None:
        self._buf.append(ch)

    def _savenext(self) -> Optional[str]:
        if self.c is not None:
            self._save(self.c)
        return self._next()

    def _iseol(self) -> bool:
        return self.c in ("\n", "\r")

    def _newline(self) -> None:
        old = self.c
        self._next()
        if self._iseol() and self.c != old:
            self._next()
        self.linenumber += 1
        if self.linenumber >= MAX_LINE:
            self._error(self.tok, _ERR_XLINES)

    def _error(self, tok: Optional[Token], message: str) -> None:
        if tok is None:
            near = None
        elif tok in (Tok.NAME, Tok.STRING, Tok.NUMBER):
            near = "".join(self._buf)
        else:
            near = token2str(tok)
        raise LexError(self.chunkname, self.linenumber, message, near)

    # -- terminals ------------------------------------------------------

    def _number(self) -> int:
        c = self.c
        xp = "e"
        if c == "0" and (self._savenext() or "").lower() == "x":
            xp = "p"
        while (_isident(self.c) or self.c == "."
               or (self.c in ("-", "+") and (c or "").lower() == xp)):
            c = self.c
            self._savenext()
        value = _str2number("".join(self._buf))
        if value is None:
            self._error(self.tok, _ERR_XNUMBER)
        return value

    def _skipeq(self) -> int:
        s = self.c
        count = 0
        while self._savenext() == "=":
            count += 1
        return count if self.c == s else -count - 1

    def _longstring(self, is_string: bool, sep: int) -> Optional[str]:
        self._savenext()
        if self._iseol():
            self._newline()
        while True:
            if self.c is None:
                self._error(Tok.EOF, _ERR_XLSTR if is_string else _ERR_XLCOM)
            elif self.c == "]":
                if self._skipeq() == sep:
                    self._savenext()
                    break
            elif self._iseol():
                self._save("\n")
                self._newline()
                if not is_string:
                    self._buf.clear()
            else:
                self._savenext()
        if not is_string:
            return None
        skip = 2 + sep
        return "".join(self._buf[skip:len(self._buf) - skip])

    def _escape(self) -> None:
        c = self._next()
        if c in _ESCAPES:
            self._save(_ESCAPES[c])
            self._next()
        elif c == "x":
            value = 0
            for _ in range(2):
                ch = self._next()
                if ch is None or ch not in _XDIGITS:
                    self._error(Tok.STRING, _ERR_XESC)
                value = value * 16 + int(ch, 16)
            self._save(chr(value))
            self._next()
        elif c == "z":
            self._next()
            while self.c is not None and self.c in _SPACE:
                if self._iseol():
                    self._newline()
                else:
                    self._next()
        elif c in ("\n", "\r"):
            self._save("\n")
            self._newline()
        elif c in ("\\", '"', "'"):
            self._save(c)
            self._next()
        elif c is None:
            return
        elif not _isdigit(c):
            self._error(Tok.STRING, _ERR_XESC)
        else:
            value = int(c)
            if _isdigit(self._next()):
                value = value * 10 + int(self.c)
                if _isdigit(self._next()):
                    value = value * 10 + int(self.c)
                    if value > 255:
                        self._error(Tok.STRING, _ERR_XESC)
                    self._next()
            self._save(chr(value))

    def _string(self) -> str:
        delim = self.c
        self._savenext()
        while self.c != delim:
            if self.c is None:
                self._error(Tok.EOF, _ERR_XSTR)
            elif self._iseol():
                self._error(Tok.STRING, _ERR_XSTR)
            elif self.c == "\\":
                self._escape()
            else:
                self._savenext()
        self._savenext()
        return "".join(self._buf[1:-1])

    # -- scanner --------------------------------------------------------

    def _pair(self, second: str, single: Token, double: Token) -> Token:
        self._next()
        if self.c != second:
            return single
        self._next()
        return double

    def _scan(self) -> tuple[Token, object]:
        self._buf.clear()
        while True:
            c = self.c
            if _isident(c):
                if _isdigit(c):
                    return Tok.NUMBER, self._number()
                while True:
                    self._savenext()
                    if not _isident(self.c):
                        break
                name = "".join(self._buf)
                return _RESERVED.get(name, Tok.NAME), name

            if c in ("\n", "\r"):
                self._newline()
            elif c in (" ", "\t", "\v", "\f"):
                self._next()
            elif c == "#":
                while not self._iseol() and self.c is not None:
                    self._next()
            elif c == "-":
                self._next()
                if self.c != "-":
                    return "-", None
                self._next()
                if self.c == "[":
                    sep = self._skipeq()
                    self._buf.clear()
                    if sep >= 0:
                        self._longstring(False, sep)
                        self._buf.clear()
                        continue
                while not self._iseol() and self.c is not None:
                    self._next()
            elif c == "[":
                sep = self._skipeq()
                if sep >= 0:
                    return Tok.STRING, self._longstring(True, sep)
                if sep == -1:
                    return "[", None
                self._error(Tok.STRING, _ERR_XLDELIM)
            elif c == "+":
                return self._pair("=", "+", Tok.INCR), None
            elif c == "=":
                return self._pair("=", "=", Tok.EQ), None
            elif c == "<":
                return self._pair("=", "<", Tok.LE), None
            elif c == ">":
                return self._pair("=", ">", Tok.GE), None
            elif c == "!":
                return self._pair("=", Tok.NOT, Tok.NE), None
            elif c == ":":
                return self._pair(":", ":", Tok.LABEL), None
            elif c in ('"', "'"):
                return Tok.STRING, self._string()
            elif c == ".":
                if self._savenext() == ".":
                    self._next()
                    if self.c == ".":
                        self._next()
                        return Tok.DOTS, None
                    return Tok.CONCAT, None
                if not _isdigit(self.c):
                    return ".", None
                return Tok.NUMBER, self._number()
            elif c is None:
                return Tok.EOF, None
            elif c == "&":
                return self._pair("&", "&", Tok.AND), None
            elif c == "|":
                return self._pair("|", "|", Tok.OR), None
            else:
                self._next()
                return c, None

    # -- public API -----------------------------------------------------

    def next(self) -> Token:
        """Advance to the next token and return it."""
        self.lastline = self.linenumber
        if self._lookahead == Tok.EOF:
            self.tok, self.tokval = self._scan()
        else:
            self.tok, self.tokval = self._lookahead, self._lookaheadval
            self._lookahead, self._lookaheadval = Tok.EOF, None
        return self.tok

    def lookahead(self) -> Token:
        """Scan the following token without consuming it."""
        if self._lookahead != Tok.EOF:
            raise RuntimeError("a lookahead token is already pending")
        self._lookahead, self._lookaheadval = self._scan()
        return self._lookahead

    def read_string_until(self, c: str) -> str:
        """Read raw text up to the character c, making it the current string token."""
        self._buf.clear()
        while self.c == " ":
            self._next()
        while True:
            self._savenext()
            if self.c == c or self.c is None:
                break
        if self.c != c:
            self._error(self.tok, _ERR_XTOKEN.format(c))
        text = "".join(self._buf)
        self.tok = Tok.STRING
        self.tokval = text
        return text


def tokenize(source: str) -> Iterator[tuple[Token, object]]:
    """Yield (token, value) pairs up to, not including, the end of input."""
    lexer = Lexer(source)
    while lexer.next() != Tok.EOF:
        yield lexer.tok, lexer.tokval