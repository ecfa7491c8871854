# ktapc

ktapc holds front-end pieces of a compiler for tracing scripts. The scripts use a
small Lua-like language. The package contains:

- **`ktapc.lexer`**: a lexer for the script language. It handles numbers, short and
  long strings, comments, `+=`, `!=`, `&&`, `||`, `::` and reserved words such as
  `trace`, `trace_end`, `probename`, `argstr` and `var`.
- **`ktapc.cparser`** with **`ktapc.ctokens`** and **`ktapc.ctypes`**: a parser for
  C declarations. It reads function prototypes, structs, unions, typedefs,
  `__attribute__` forms and `#pragma pack`, and builds a table of C symbols
  (`CSymbol`) in a `CTypeRegistry`.
- **`ktapc.ansi`**, **`ktapc.timer`** and **`ktapc.net`**: helpers for ANSI escape
  sequences, timer interval strings such as `"10ms"`, and dotted IPv4 formatting.

## Installing

```
pip install .
pip install ".[test]"   # with the test suite's requirements
```

## Tokenizing a script

```python
from ktapc.lexer import Lexer, Tok, tokenize, token2str

for tok, value in tokenize('trace syscalls:* { print(argstr) }'):
    print(token2str(tok), value)

lex = Lexer("var x = 0x10", chunkname="example")
lex.next()
assert lex.tok == Tok.LOCAL
```

Tokens are either members of `Tok` or single characters such as `"{"`.
`Lexer.lookahead()` scans one token ahead without consuming it, and
`Lexer.read_string_until(c)` reads raw text up to a given character.

Bad input raises `ktapc.lexer.LexError`. Examples are an unfinished string, an
invalid escape sequence or a malformed number. The message names the chunk, the
line and the token involved.

## Parsing C declarations

Every declared function needs an address. You pass a resolver to the registry:
any callable that takes a symbol name and returns an address. Without a resolver,
or when it returns 0, declaring a function raises `CParserError`.

```python
from ktapc.ctypes import CTypeRegistry, FfiType
from ktapc.cparser import CParser

registry = CTypeRegistry(resolver=lambda name: 0xDEADBEEF)
parser = CParser(registry)

parser.parse_cdef("typedef long time_t;")
parser.parse_cdef("struct tm { int tm_sec; int tm_min; long tm_year; };")
parser.parse_cdef("void time_to_tm(time_t secs, int offset, struct tm *result);")

func = registry.csymbol(registry.lookup_csymbol_id("time_to_tm"))
arg_types = [registry.csymbol(i).type for i in func.arg_ids]
assert arg_types == [FfiType.INT64, FfiType.INT32, FfiType.PTR]
```

Pointer types get their own symbols, for example `"struct tm *"`. Two declarations
of the same pointer type resolve to the same symbol id. `CParser.parse_new(text)`
parses a single type and returns its `CType`; `CParser.lookup_csymbol_id(text)`
returns the symbol id of a named type. `ctype_size(ct)` gives a type's size in
bytes. Malformed declarations raise `ktapc.ctypes.CParserError`.

You can also evaluate integer constant expressions on their own:

```python
from ktapc.ctokens import Tokenizer, calculate_constant

assert calculate_constant(Tokenizer("1 << 4 | 3")) == 19
```

## Runtime helpers

```python
from ktapc import ansi, timer, net

ansi.set_color2(31, 40)          # '\x1b[31;40m'
timer.parse_interval("10ms")     # 10000000 nanoseconds
net.format_ip_addr(0x0100007F)   # '127.0.0.1' on a little-endian host
```

`timer.parse_interval` accepts the suffixes `s`/`sec`, `ms`/`msec` and `us`/`usec`.
Any other suffix raises `timer.TimerIntervalError`. `net.format_ip_addr` prints
the bytes of the 32-bit value in host memory order.

## What the package does not do

- It has no command-line tool. It does not parse scripts into bytecode, write
  bytecode, or load and run scripts; only the lexer stage of the script language
  is here.
- The C declaration parser does not support enums, `static` declarations,
  inner function declarators such as `void (*signal(int, void (*)(int)))(int)`,
  or C++ references.
- Constant expressions cannot use parentheses, names or `sizeof`/`alignof`;
  these raise `CParserError`.