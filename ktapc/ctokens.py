"""Tokenizer for C declarations and the evaluator for integer constant expressions."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .ctypes import DEFAULT_ALIGN_MASK, CParserError

_INT64_MASK = (1 << 64) - 1


class TokenType(enum.IntEnum):
    """Kind of a token in a C declaration."""

    NIL = 0
    NUMBER = 1
    STRING = 2
    TOKEN = 3

    THREE_BEGIN = 4
    VA_ARG = 5

    TWO_BEGIN = 6
    LEFT_SHIFT = 7
    RIGHT_SHIFT = 8
    LOGICAL_AND = 9
    LOGICAL_OR = 10
    LESS_EQUAL = 11
    GREATER_EQUAL = 12
    EQUAL = 13
    NOT_EQUAL = 14

    ONE_BEGIN = 15
    OPEN_CURLY = 16
    CLOSE_CURLY = 17
    SEMICOLON = 18
    COMMA = 19
    COLON = 20
    ASSIGN = 21
    OPEN_PAREN = 22
    CLOSE_PAREN = 23
    OPEN_SQUARE = 24
    CLOSE_SQUARE = 25
    DOT = 26
    AMPERSAND = 27
    LOGICAL_NOT = 28
    BITWISE_NOT = 29
    MINUS = 30
    PLUS = 31
    STAR = 32
    DIVIDE = 33
    MODULUS = 34
    LESS = 35
    GREATER = 36
    BITWISE_XOR = 37
    BITWISE_OR = 38
    QUESTION = 39
    POUND = 40

    REFERENCE = 27
    MULTIPLY = 32
    BITWISE_AND = 27


_TOK3 = ("...",)
_TOK2 = ("<<", ">>", "&&", "||", "<=", ">=", "==", "!=")
_TOK1 = "{};,:=()[].&!~-+*/%<>^|?#"

_WHITESPACE = "\t\n \v\r"


def _is_ident_start(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch == "_"


def _is_ident_char(ch: str) -> bool:
    return _is_ident_start(ch) or ("0" <= ch <= "9")


def _to_int64(value: int) -> int:
    value &= _INT64_MASK
    return value - (1 << 64) if value >= (1 << 63) else value


@dataclass
class Token:
    """A token: its kind, its integer value for numbers and its text otherwise."""

    type: TokenType
    integer: int = 0
    text: str = ""

    @property
    def size(self) -> int:
        return len(self.text)

    def matches(self, *words: str) -> bool:
        """True if the token text is one of the given words."""
        return self.text in words


class Tokenizer:
    """Splits C declaration text into tokens, tracking the line number."""

    def __init__(self, text: str):
        self.text = text
        self.line = 1
        self.pos = 0
        self.prev = 0
        self.align_mask = DEFAULT_ALIGN_MASK

    def _char(self, i: int) -> str:
        return self.text[i] if i < len(self.text) else ""

    def _skip_space_and_comments(self, s: int) -> int:
        text = self.text
        while True:
            while s < len(text) and text[s] in _WHITESPACE:
                if text[s] == "\n":
                    self.line += 1
                s += 1

            if text.startswith("//", s):
                nl = text.find("\n", s)
                if nl < 0:
                    raise CParserError("non-terminated comment")
                s = nl
            elif text.startswith("/*", s):
                end = text.find("*/", s + 2)
                if end < 0:
                    raise CParserError("non-terminated comment")
                self.line += text.count("\n", s + 2, end)
                s = end + 2
            else:
                return s

    def _scan_number(self, s: int) -> tuple[int, int]:
        text = self.text
        negative = False
        if self._char(s) in "+-" and self._char(s):
            negative = self._char(s) == "-"
            s += 1
        if self._char(s) == "0" and self._char(s + 1) in ("x", "X") and (
            self._char(s + 2) and self._char(s + 2) in "0123456789abcdefABCDEF"
        ):
            base, digits, s = 16, "0123456789abcdefABCDEF", s + 2
        elif self._char(s) == "0":
            base, digits = 8, "01234567"
        else:
            base, digits = 10, "0123456789"
        start = s
        while s < len(text) and text[s] in digits:
            s += 1
        value = int(text[start:s], base) if s > start else 0
        if negative:
            value = -value
            value = max(value, -(1 << 63))
        else:
            value = min(value, _INT64_MASK)
        return _to_int64(value), s

    def next_token(self) -> Token:
        """Read the next token; a NIL token marks the end of the text."""
        s = self.pos
        if self.text.startswith("\ufeff", s):
            s += 1
        s = self._skip_space_and_comments(s)
        if s >= len(self.text):
            self.pos = s
            return Token(TokenType.NIL)

        self.prev = s
        text = self.text

        for i, sym in enumerate(_TOK3):
            if text.startswith(sym, s):
                self.pos = s + 3
                return Token(TokenType(TokenType.THREE_BEGIN + 1 + i), text=sym)
        for i, sym in enumerate(_TOK2):
            if text.startswith(sym, s):
                self.pos = s + 2
                return Token(TokenType(TokenType.TWO_BEGIN + 1 + i), text=sym)
        ch = text[s]
        index = _TOK1.find(ch)
        if index >= 0:
            self.pos = s + 1
            return Token(TokenType(TokenType.ONE_BEGIN + 1 + index), text=ch)

        if "0" <= ch <= "9":
            value, s = self._scan_number(s)
            while self._char(s) and self._char(s) in "uUlL":
                s += 1
            self.pos = s
            return Token(TokenType.NUMBER, integer=value)

        if ch in ("'", '"'):
            s += 1
            start = s
            while self._char(s) != ch:
                c = self._char(s)
                if not c or (c == "\\" and not self._char(s + 1)):
                    raise CParserError("string not finished")
                if c == "\\":
                    s += 1
                s += 1
            self.pos = s + 1
            return Token(TokenType.STRING, text=text[start:s])

        if _is_ident_start(ch):
            start = s
            while s < len(text) and _is_ident_char(text[s]):
                s += 1
            self.pos = s
            return Token(TokenType.TOKEN, text=text[start:s])

        raise CParserError(f"invalid character {self.line}")

    def require_token(self) -> Token:
        """Read the next token, failing at the end of the text."""
        tok = self.next_token()
        if tok.type == TokenType.NIL:
            raise CParserError("unexpected end")
        return tok

    def check_token(self, kind: TokenType, text: str | None, message: str) -> Token:
        """Read a token that must be of the given kind (and text, for words)."""
        tok = self.next_token()
        if (
            tok.type == TokenType.NIL
            or tok.type != kind
            or (tok.type == TokenType.TOKEN and tok.text != (text or ""))
        ):
            raise CParserError(message)
        return tok

    def put_back(self) -> None:
        """Step back to the start of the last token read."""
        self.pos = self.prev


class _ConstantEvaluator:
    def __init__(self, tokenizer: Tokenizer, tok: Token):
        self.p = tokenizer
        self.tok = tok

    def _advance(self) -> None:
        self.tok = self.p.require_token()

    def primary(self) -> int:
        tok = self.tok
        if tok.type == TokenType.NUMBER:
            self.tok = self.p.next_token()
            return tok.integer
        if tok.type == TokenType.TOKEN:
            raise CParserError("TODO: support name lookup in constant table")
        if tok.type == TokenType.OPEN_PAREN:
            raise CParserError("TODO: handle open parent token in constant1")
        raise CParserError(
            f"unexpected token whilst parsing constant at line {self.p.line}"
        )

    def unary(self) -> int:
        kind = self.tok.type
        if kind == TokenType.LOGICAL_NOT:
            self._advance()
            return int(not self.unary())
        if kind == TokenType.BITWISE_NOT:
            self._advance()
            return ~self.unary()
        if kind == TokenType.PLUS:
            self._advance()
            return self.unary()
        if kind == TokenType.MINUS:
            self._advance()
            return _to_int64(-self.unary())
        if self.tok.type == TokenType.TOKEN and self.tok.matches(
            "sizeof", "alignof", "__alignof__", "__alignof"
        ):
            raise CParserError("TODO: support sizeof")
        return self.primary()

    def multiplicative(self) -> int:
        left = self.unary()
        while True:
            kind = self.tok.type
            if kind == TokenType.MULTIPLY:
                self._advance()
                left = _to_int64(left * self.unary())
            elif kind in (TokenType.DIVIDE, TokenType.MODULUS):
                self._advance()
                right = self.unary()
                if right == 0:
                    raise CParserError(
                        f"division by zero in constant on line {self.p.line}"
                    )
                quotient = abs(left) // abs(right)
                if (left < 0) != (right < 0):
                    quotient = -quotient
                if kind == TokenType.DIVIDE:
                    left = _to_int64(quotient)
                else:
                    left = _to_int64(left - quotient * right)
            else:
                return left

    def additive(self) -> int:
        left = self.multiplicative()
        while True:
            if self.tok.type == TokenType.PLUS:
                self._advance()
                left = _to_int64(left + self.multiplicative())
            elif self.tok.type == TokenType.MINUS:
                self._advance()
                left = _to_int64(left - self.multiplicative())
            else:
                return left

    def shift(self) -> int:
        left = self.additive()
        while self.tok.type in (TokenType.LEFT_SHIFT, TokenType.RIGHT_SHIFT):
            kind = self.tok.type
            self._advance()
            count = self.additive()
            if not 0 <= count < 64:
                raise CParserError(
                    f"invalid shift count in constant on line {self.p.line}"
                )
            if kind == TokenType.LEFT_SHIFT:
                left = _to_int64(left << count)
            else:
                left >>= count
        return left

    def relational(self) -> int:
        left = self.shift()
        while True:
            kind = self.tok.type
            if kind == TokenType.LESS:
                self._advance()
                left = int(left < self.shift())
            elif kind == TokenType.LESS_EQUAL:
                self._advance()
                left = int(left <= self.shift())
            elif kind == TokenType.GREATER:
                self._advance()
                left = int(left > self.shift())
            elif kind == TokenType.GREATER_EQUAL:
                self._advance()
                left = int(left >= self.shift())
            else:
                return left

    def equality(self) -> int:
        left = self.relational()
        while True:
            if self.tok.type == TokenType.EQUAL:
                self._advance()
                left = int(left == self.relational())
            elif self.tok.type == TokenType.NOT_EQUAL:
                self._advance()
                left = int(left != self.relational())
            else:
                return left

    def bit_and(self) -> int:
        left = self.equality()
        while self.tok.type == TokenType.BITWISE_AND:
            self._advance()
            left &= self.equality()
        return left

    def bit_xor(self) -> int:
        left = self.bit_and()
        while self.tok.type == TokenType.BITWISE_XOR:
            self._advance()
            left ^= self.bit_and()
        return left

    def bit_or(self) -> int:
        left = self.bit_xor()
        while self.tok.type == TokenType.BITWISE_OR:
            self._advance()
            left |= self.bit_xor()
        return left

    def logical_and(self) -> int:
        left = self.bit_or()
        while self.tok.type == TokenType.LOGICAL_AND:
            self._advance()
            right = self.bit_or()
            left = int(bool(left) and bool(right))
        return left

    def logical_or(self) -> int:
        left = self.logical_and()
        while self.tok.type == TokenType.LOGICAL_OR:
            self._advance()
            right = self.logical_and()
            left = int(bool(left) or bool(right))
        return left

    def conditional(self) -> int:
        left = self.logical_or()
        if self.tok.type != TokenType.QUESTION:
            return left
        self._advance()
        middle = self.conditional()
        if self.tok.type != TokenType.COLON:
            raise CParserError(
                f"invalid ternery (? :) in constant on line {self.p.line}"
            )
        self._advance()
        right = self.conditional()
        return middle if left else right


def calculate_constant(tokenizer: Tokenizer) -> int:
    """Evaluate an integer constant expression at the tokenizer's position."""
    evaluator = _ConstantEvaluator(tokenizer, tokenizer.require_token())
    result = evaluator.conditional()
    if evaluator.tok.type != TokenType.NIL:
        tokenizer.put_back()
    return result