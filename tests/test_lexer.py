import pytest

from ktapc.lexer import LexError, Lexer, Tok, token2str, tokenize


def test_simple_statement():
    assert list(tokenize("var x = 10")) == [
        (Tok.LOCAL, "var"),
        (Tok.NAME, "x"),
        ("=", None),
        (Tok.NUMBER, 10),
    ]


def test_reserved_words_and_plain_names():
    toks = [t for t, _ in tokenize("trace while and profile foo")]
    assert toks == [Tok.TRACE, Tok.WHILE, Tok.NAME, Tok.PROFILE, Tok.NAME]


def test_operators():
    toks = [t for t, _ in tokenize("+= == <= >= != :: .. ... && || ! + < & |")]
    assert toks == [
        Tok.INCR, Tok.EQ, Tok.LE, Tok.GE, Tok.NE, Tok.LABEL, Tok.CONCAT,
        Tok.DOTS, Tok.AND, Tok.OR, Tok.NOT, "+", "<", "&", "|",
    ]


def test_hex_and_octal_numbers():
    assert list(tokenize("0x10 010 7")) == [
        (Tok.NUMBER, 16), (Tok.NUMBER, 8), (Tok.NUMBER, 7),
    ]


@pytest.mark.parametrize("text", ["1.5", ".5", "08", "1e5", "0x"])
def test_malformed_numbers(text):
    with pytest.raises(LexError):
        list(tokenize(text))


def test_string_escapes():
    assert list(tokenize(r'"a\tb\x41\65\\"')) == [(Tok.STRING, "a\tbAA\\")]


def test_single_quoted_string():
    assert list(tokenize("'it\\'s'")) == [(Tok.STRING, "it's")]


@pytest.mark.parametrize("text", [r'"\256"', r'"\q"', r'"\xZZ"', '"abc', '"a\nb"'])
def test_bad_strings(text):
    with pytest.raises(LexError):
        list(tokenize(text))


def test_long_strings():
    assert list(tokenize("[[hello]]")) == [(Tok.STRING, "hello")]
    assert list(tokenize("[==[a]]b]==]")) == [(Tok.STRING, "a]]b")]
    assert list(tokenize("[[\nline]]")) == [(Tok.STRING, "line")]


def test_long_string_errors():
    with pytest.raises(LexError):
        list(tokenize("[[never closed"))
    with pytest.raises(LexError):
        list(tokenize("[=x"))


def test_bracket_token():
    assert [t for t, _ in tokenize("a[1]")] == [Tok.NAME, "[", Tok.NUMBER, "]"]


def test_comments_and_line_numbers():
    lex = Lexer("-- comment\nx\n--[[ multi\nline ]] y # tail\nz")
    assert lex.next() == Tok.NAME and lex.tokval == "x"
    assert lex.linenumber == 2
    assert lex.next() == Tok.NAME and lex.tokval == "y"
    assert lex.linenumber == 4
    assert lex.next() == Tok.NAME and lex.tokval == "z"
    assert lex.next() == Tok.EOF


def test_unfinished_long_comment():
    with pytest.raises(LexError):
        list(tokenize("--[[ open"))


def test_shebang_line_skipped():
    lex = Lexer("#!/usr/bin/env ktap\nprint")
    assert lex.next() == Tok.NAME
    assert lex.tokval == "print"
    assert lex.linenumber == 2


def test_lookahead():
    lex = Lexer("a b")
    assert lex.next() == Tok.NAME
    assert lex.lookahead() == Tok.NAME
    assert lex.tokval == "a"
    lex.next()
    assert lex.tokval == "b"
    assert lex.next() == Tok.EOF


def test_read_string_until():
    lex = Lexer("trace   syscalls:* { print() }")
    assert lex.next() == Tok.TRACE
    text = lex.read_string_until("{")
    assert text == "syscalls:* "
    assert lex.tok == Tok.STRING
    assert lex.tokval == text
    assert lex.next() == "{"


def test_read_string_until_missing():
    lex = Lexer("profile 10s")
    lex.next()
    with pytest.raises(LexError):
        lex.read_string_until("{")


def test_token2str():
    assert token2str(Tok.EQ) == "=="
    assert token2str(Tok.LOCAL) == "var"
    assert token2str(Tok.EOF) == "<eof>"
    assert token2str("+") == "+"
    assert token2str("\x01") == "char(1)"


def test_error_carries_location():
    with pytest.raises(LexError) as info:
        list(Lexer("x\n\"open", "script.kp").source and tokenize("x\n\"open"))
    assert info.value.line == 2


def test_error_chunkname():
    lex = Lexer('"abc', "script.kp")
    with pytest.raises(LexError) as info:
        lex.next()
    assert info.value.chunkname == "script.kp"
    assert str(info.value).startswith("script.kp:1:")