"""Parser for C declarations: builds symbols for the virtual machine."""

from __future__ import annotations

import dataclasses
from typing import Optional

from .ctokens import Token, Tokenizer, TokenType, calculate_constant
from .ctypes import (
    C_CALL,
    FAST_CALL,
    FUNCTION_ALIGN_MASK,
    MAX_TYPE_NAME_LEN,
    POINTER_MAX,
    POINTER_SIZE,
    PTR_ALIGN_MASK,
    STD_CALL,
    CParserError,
    CType,
    CTypeKind,
    CTypeRegistry,
)

_CONST = frozenset({"const", "__const", "__const__"})
_VOLATILE = frozenset({"volatile", "__volatile", "__volatile__"})
_RESTRICT = frozenset({"restrict", "__restrict", "__restrict__"})

# alignment mask of __attribute__((aligned)) with no argument
_ALIGNED_DEFAULT = 15
_ALIGN_MASKS = {1: 0, 2: 1, 4: 3, 8: 7, 16: 15}
# size of the prefix pointer counted against the name length limit
_PREFIX_RESERVE = 8

_END = 0
_PRAGMA_POP = 1

_UNSIGNED = 0x01
_SIGNED = 0x02
_LONG = 0x04
_SHORT = 0x08
_INT = 0x10
_CHAR = 0x20
_LONG_LONG = 0x40
_INT8 = 0x80
_INT16 = 0x100
_INT32 = 0x200
_INT64 = 0x400

_TYPE_WORDS = {
    "unsigned": _UNSIGNED,
    "signed": _SIGNED,
    "short": _SHORT,
    "char": _CHAR,
    "int": _INT,
    "__int8": _INT8,
    "__int16": _INT16,
    "__int32": _INT32,
    "__int64": _INT64,
}


def _assign(dst: CType, src: CType) -> None:
    for f in dataclasses.fields(CType):
        setattr(dst, f.name, getattr(src, f.name))


def _is_word(tok: Token, words: frozenset) -> bool:
    return tok.type == TokenType.TOKEN and tok.text in words


def _set_type_name(kind: CTypeKind, name: str) -> str:
    if kind == CTypeKind.STRUCT:
        prefix = "struct "
    elif kind == CTypeKind.UNION:
        prefix = "union "
    else:
        raise CParserError("Only set type name for struct or union")
    if len(name) + _PREFIX_RESERVE > MAX_TYPE_NAME_LEN:
        raise CParserError(f"type name too long: {name}")
    return prefix + name


def _max_bitfield_size(kind: CTypeKind) -> int:
    return {
        CTypeKind.BOOL: 1,
        CTypeKind.INT8: 8,
        CTypeKind.INT16: 16,
        CTypeKind.INT32: 32,
        CTypeKind.ENUM: 32,
        CTypeKind.INT64: 64,
    }.get(kind, -1)


def _builtin_name(flags: int) -> str:
    u = "u" if flags & _UNSIGNED else ""
    if flags & _CHAR:
        if flags & _SIGNED:
            return "int8_t"
        if flags & _UNSIGNED:
            return "uint8_t"
        return "int8_t"
    if flags & _INT8:
        return u + "int8_t"
    if flags & _INT16:
        return u + "int16_t"
    if flags & _INT32:
        return u + "int32_t"
    if flags & (_INT64 | _LONG_LONG):
        return u + "int64_t"
    if flags & _SHORT:
        return u + "int16_t"
    if flags & _LONG:
        return u + "int64_t"
    return u + "int32_t"


class CParser:
    """Parses C declarations into the symbols of a type registry."""

    def __init__(self, registry: CTypeRegistry):
        self.registry = registry

    # -- public entry points --------------------------------------------

    def parse_cdef(self, text: str) -> None:
        """Parse declarations and definitions as given to ffi.cdef."""
        p = Tokenizer(text)
        if self._parse_root(p) == _PRAGMA_POP:
            raise CParserError(
                f"pragma pop without an associated push on line {p.line}"
            )

    def parse_new(self, text: str) -> CType:
        """Parse a type as given to ffi.new and return it."""
        p = Tokenizer(text)
        ct = self._parse_type(p)
        self._parse_argument(p, ct, False)
        self.registry.update_csym(ct)
        return ct

    def lookup_csymbol_id(self, text: str) -> int:
        """Return the symbol id of a named type."""
        p = Tokenizer(text)
        ct = self._parse_type(p)
        self.registry.update_csym(ct)
        return ct.ffi_cs_id

    # -- types ----------------------------------------------------------

    def _parse_type(self, p: Tokenizer) -> CType:
        ct = CType()
        tok = p.require_token()

        while self._parse_attribute(p, tok, ct, False):
            tok = p.require_token()

        while True:
            if tok.type != TokenType.TOKEN:
                raise CParserError(
                    f"unexpected value before type name on line {p.line}"
                )
            if tok.text in _CONST:
                ct.const_mask = 1
                tok = p.require_token()
            elif tok.text in _VOLATILE or tok.text in _RESTRICT:
                tok = p.require_token()
            else:
                break

        if tok.text == "struct":
            ct.kind = CTypeKind.STRUCT
            self._parse_record(p, ct)
        elif tok.text == "union":
            ct.kind = CTypeKind.UNION
            self._parse_record(p, ct)
        elif tok.text == "enum":
            ct.kind = CTypeKind.ENUM
            self._parse_record(p, ct)
        else:
            p.put_back()
            name = self._parse_type_name(p)
            lct = self.registry.lookup_type(name)
            if lct is None:
                raise CParserError(f'unknown type: "{name}"')
            self._instantiate_typedef(p, ct, lct)

        while True:
            tok = p.next_token()
            if tok.type == TokenType.NIL:
                break
            if _is_word(tok, _CONST) or _is_word(tok, _VOLATILE):
                continue
            p.put_back()
            break
        return ct

    def _parse_type_name(self, p: Tokenizer) -> str:
        tok = p.require_token()
        flags = 0
        at_end = False
        while tok.type == TokenType.TOKEN:
            word = tok.text
            if word == "long":
                flags |= _LONG_LONG if flags & _LONG else _LONG
            elif word in _TYPE_WORDS:
                flags |= _TYPE_WORDS[word]
            elif word != "register":
                break
            tok = p.next_token()
            if tok.type == TokenType.NIL:
                at_end = True
                break

        if not flags:
            return tok.text
        if not at_end:
            p.put_back()
        return _builtin_name(flags)

    @staticmethod
    def _instantiate_typedef(p: Tokenizer, tt: CType, ft: CType) -> None:
        pt = tt.copy()
        _assign(tt, ft)
        tt.const_mask |= pt.const_mask
        tt.is_packed = pt.is_packed
        if tt.is_packed:
            tt.align_mask = 0
        else:
            tt.align_mask = max(min(p.align_mask, tt.align_mask), pt.align_mask)

    # -- records --------------------------------------------------------

    def _parse_record(self, p: Tokenizer, ct: CType) -> None:
        tok = p.require_token()

        if tok.type == TokenType.TOKEN:
            name = _set_type_name(ct.kind, tok.text)
            lct = self.registry.lookup_type(name)
            if lct is None:
                ct.ffi_base_cs_id = ct.ffi_cs_id = -1
            else:
                if lct.kind != ct.kind:
                    previous = self.registry.csymbol(lct.ffi_cs_id).name
                    raise CParserError(
                        f"type '{name}' previously declared as '{previous}'"
                    )
                self._instantiate_typedef(p, ct, lct)
            tok = p.next_token()
            if tok.type == TokenType.NIL:
                return
            has_name = True
        else:
            name = _set_type_name(ct.kind, f"{p.line} line")
            ct.ffi_base_cs_id = ct.ffi_cs_id = -1
            has_name = False

        if tok.type != TokenType.OPEN_CURLY:
            p.put_back()
            if not has_name:
                raise CParserError("noname record type declaration")
            ct.ffi_base_cs_id = self.registry.build_fake_record(name, ct.kind)
            ct.ffi_cs_id = ct.ffi_base_cs_id
            return

        if ct.is_defined:
            raise CParserError(f"redefinition in line {p.line}")

        start_top = self.registry.stack_top()
        self._parse_struct(p, ct)
        ct.is_defined = True
        ct.ffi_base_cs_id = self.registry.build_record(name, ct.kind, start_top)
        ct.ffi_cs_id = ct.ffi_base_cs_id
        self.registry.register_type(name, ct)

    def _parse_struct(self, p: Tokenizer, ct: CType) -> None:
        while True:
            tok = p.require_token()
            if tok.type == TokenType.CLOSE_CURLY:
                return
            if ct.is_variable_struct:
                raise CParserError(
                    "can't have members after a variable sized member "
                    f"on line {p.line}"
                )
            p.put_back()

            mbase = self._parse_type(p)
            while True:
                mt = mbase.copy()
                if ct.is_variable_struct:
                    raise CParserError(
                        "can't have members after a variable sized member "
                        f"on line {p.line}"
                    )
                mname = self._parse_argument(p, mt, False)

                direct = (mt.pointers - int(mt.is_array)) == 0
                if not mt.is_defined and direct:
                    raise CParserError(
                        f"member type is undefined on line {p.line}"
                    )
                if mt.kind == CTypeKind.VOID and direct:
                    raise CParserError(
                        f"member type can not be void on line {p.line}"
                    )

                mt.has_member_name = mname is not None and mname.size > 0
                self.registry.push(mt, mname.text if mt.has_member_name else None)

                tok = p.require_token()
                if tok.type == TokenType.SEMICOLON:
                    break
                if tok.type != TokenType.COMMA:
                    raise CParserError(
                        f"unexpected token in struct definition on line {p.line}"
                    )

    # -- attributes -----------------------------------------------------

    def _parse_attribute(
        self, p: Tokenizer, tok: Token, ct: CType, allow_asm: bool
    ) -> bool:
        if tok.type != TokenType.TOKEN:
            return False
        word = tok.text

        if allow_asm and word in ("__asm__", "__asm"):
            p.check_token(
                TokenType.OPEN_PAREN,
                None,
                f"unexpected token after __asm__ on line {p.line}",
            )
            tok = p.require_token()
            while tok.type == TokenType.STRING:
                tok = p.require_token()
            if tok.type != TokenType.CLOSE_PAREN:
                raise CParserError(
                    f"unexpected token after __asm__ on line {p.line}"
                )
            return True

        if word in ("__attribute__", "__declspec"):
            self._parse_attribute_body(p, ct)
            return True

        if word == "__cdecl":
            ct.calling_convention = C_CALL
            return True
        if word == "__fastcall":
            ct.calling_convention = FAST_CALL
            return True
        if word == "__stdcall":
            ct.calling_convention = STD_CALL
            return True
        return word in ("__extension__", "extern")

    def _parse_attribute_body(self, p: Tokenizer, ct: CType) -> None:
        p.check_token(
            TokenType.OPEN_PAREN,
            None,
            f"expected parenthesis after __attribute__ or __declspec on line {p.line}",
        )
        parens = 1
        while True:
            tok = p.require_token()
            if tok.type == TokenType.OPEN_PAREN:
                parens += 1
            elif tok.type == TokenType.CLOSE_PAREN:
                parens -= 1
                if parens == 0:
                    return
            elif tok.type != TokenType.TOKEN:
                continue
            elif tok.text in ("align", "aligned", "__aligned__"):
                ct.align_mask = max(self._parse_align(p), ct.align_mask)
            elif tok.text in ("packed", "__packed__"):
                ct.align_mask = 0
                ct.is_packed = True
            elif tok.text in ("mode", "__mode__"):
                self._parse_mode(p, ct)
            elif tok.text in ("cdecl", "__cdecl__"):
                ct.calling_convention = C_CALL
            elif tok.text in ("fastcall", "__fastcall__"):
                ct.calling_convention = FAST_CALL
            elif tok.text in ("stdcall", "__stdcall__"):
                ct.calling_convention = STD_CALL

    @staticmethod
    def _parse_align(p: Tokenizer) -> int:
        tok = p.require_token()
        if tok.type == TokenType.CLOSE_PAREN:
            p.put_back()
            return _ALIGNED_DEFAULT
        if tok.type != TokenType.OPEN_PAREN:
            raise CParserError(f"expected align(#) on line {p.line}")
        tok = p.require_token()
        if tok.type != TokenType.NUMBER:
            raise CParserError(f"expected align(#) on line {p.line}")
        if tok.integer not in _ALIGN_MASKS:
            raise CParserError(f"unsupported align size on line {p.line}")
        align = _ALIGN_MASKS[tok.integer]
        p.check_token(
            TokenType.CLOSE_PAREN, None, f"expected align(#) on line {p.line}"
        )
        return align

    @staticmethod
    def _parse_mode(p: Tokenizer, ct: CType) -> None:
        p.check_token(
            TokenType.OPEN_PAREN, None, f"expected mode(MODE) on line {p.line}"
        )
        tok = p.require_token()
        if tok.type != TokenType.TOKEN:
            raise CParserError(f"expected mode(MODE) on line {p.line}")
        word = tok.text
        if word in ("QI", "__QI__", "byte", "__byte__"):
            ct.kind, ct.base_size, ct.align_mask = CTypeKind.INT8, 1, 0
        elif word in ("HI", "__HI__"):
            ct.kind, ct.base_size, ct.align_mask = CTypeKind.INT16, 2, 1
        elif word in ("SI", "__SI__"):
            ct.kind, ct.base_size, ct.align_mask = CTypeKind.INT32, 4, 3
        elif word in ("DI", "__DI__"):
            ct.kind, ct.base_size, ct.align_mask = CTypeKind.INT64, 8, 7
        else:
            raise CParserError(f"unexpected mode on line {p.line}")
        p.check_token(
            TokenType.CLOSE_PAREN, None, f"expected mode(MODE) on line {p.line}"
        )

    # -- declarators ----------------------------------------------------

    @staticmethod
    def _increase_ptr_deref_level(p: Tokenizer, ct: CType) -> None:
        if ct.pointers == POINTER_MAX:
            raise CParserError(
                "maximum number of pointer derefs reached - use a struct to "
                f"break up the pointers on line {p.line}"
            )
        ct.pointers += 1
        ct.const_mask <<= 1

    def _parse_function_arguments(self, p: Tokenizer, ct: CType) -> None:
        args = 0
        while True:
            tok = p.require_token()
            if tok.type == TokenType.CLOSE_PAREN:
                return
            if args:
                if tok.type != TokenType.COMMA:
                    raise CParserError(
                        f"unexpected token in function argument {args} "
                        f"on line {p.line}"
                    )
                tok = p.require_token()

            if tok.type == TokenType.VA_ARG:
                ct.has_var_arg = True
                p.check_token(
                    TokenType.CLOSE_PAREN,
                    "",
                    f"unexpected token after ... in function on line {p.line}",
                )
                return
            if tok.type != TokenType.TOKEN:
                raise CParserError(
                    f"unexpected token in function argument {args + 1} "
                    f"on line {p.line}"
                )

            p.put_back()
            at = self._parse_type(p)
            self._parse_argument(p, at, False)
            at.is_array = False

            if at.kind == CTypeKind.VOID and at.pointers == 0:
                if args:
                    raise CParserError(
                        f"can't have argument of type void on line {p.line}"
                    )
                p.check_token(
                    TokenType.CLOSE_PAREN,
                    "",
                    f"unexpected void in function on line {p.line}",
                )
                return
            self.registry.push(at)
            args += 1

    def _parse_function(
        self, p: Tokenizer, ct: CType, name: Optional[Token], allow_asm: bool
    ) -> None:
        self.registry.push(ct)
        _assign(
            ct,
            CType(
                base_size=POINTER_SIZE,
                align_mask=min(FUNCTION_ALIGN_MASK, p.align_mask),
                kind=CTypeKind.FUNCTION,
                is_defined=True,
            ),
        )

        if name is None:
            while True:
                tok = p.require_token()
                if tok.type == TokenType.STAR:
                    if ct.kind == CTypeKind.FUNCTION:
                        ct.kind = CTypeKind.FUNCTION_PTR
                    else:
                        self._increase_ptr_deref_level(p, ct)
                elif not self._parse_attribute(p, tok, ct, allow_asm):
                    raise CParserError("TODO: inner function not supported for now.")

        self._parse_function_arguments(p, ct)

    def _parse_array(self, p: Tokenizer, ct: CType) -> None:
        if ct.pointers == POINTER_MAX:
            raise CParserError(
                "maximum number of pointer derefs reached - use a struct to "
                "break up the pointers"
            )
        ct.is_array = True
        ct.pointers += 1
        ct.const_mask <<= 1
        tok = p.require_token()

        if ct.pointers == 1 and not ct.is_defined:
            raise CParserError(f"array of undefined type on line {p.line}")
        if ct.is_variable_struct or ct.is_variable_array:
            raise CParserError(
                f"can't have an array of a variably sized type on line {p.line}"
            )

        message = f"invalid character in array on line {p.line}"
        if tok.type == TokenType.QUESTION:
            ct.is_variable_array = True
            ct.variable_increment = POINTER_SIZE if ct.pointers > 1 else ct.base_size
            p.check_token(TokenType.CLOSE_SQUARE, "", message)
        elif tok.type == TokenType.CLOSE_SQUARE:
            ct.array_size = 0
        elif _is_word(tok, _RESTRICT):
            ct.array_size = 0
            p.check_token(TokenType.CLOSE_SQUARE, "", message)
        else:
            p.put_back()
            asize = calculate_constant(p)
            if asize < 0:
                raise CParserError(
                    f"array size can not be negative on line {p.line}"
                )
            ct.array_size = asize
            p.check_token(TokenType.CLOSE_SQUARE, "", message)

    def _parse_argument2(
        self, p: Tokenizer, ct: CType, allow_asm: bool
    ) -> Optional[Token]:
        name: Optional[Token] = None
        while True:
            tok = p.next_token()
            if tok.type == TokenType.NIL:
                break
            if tok.type == TokenType.STAR:
                self._increase_ptr_deref_level(p, ct)
                if not ct.is_packed:
                    ct.align_mask = max(
                        min(PTR_ALIGN_MASK, p.align_mask), ct.align_mask
                    )
            elif tok.type == TokenType.REFERENCE:
                raise CParserError("NYI: c++ reference types")
            elif self._parse_attribute(p, tok, ct, allow_asm):
                pass
            elif tok.type == TokenType.OPEN_PAREN:
                self._parse_function(p, ct, name, allow_asm)
            elif tok.type == TokenType.OPEN_SQUARE:
                self._parse_array(p, ct)
            elif tok.type == TokenType.COLON:
                bsize = calculate_constant(p)
                if (
                    ct.pointers
                    or bsize < 0
                    or bsize > _max_bitfield_size(ct.kind)
                ):
                    raise CParserError(f"invalid bitfield on line {p.line}")
                ct.is_bitfield = True
                ct.bit_size = bsize
            elif tok.type != TokenType.TOKEN:
                p.put_back()
                break
            elif tok.text in _CONST:
                ct.const_mask |= 1
            elif tok.text in _VOLATILE or tok.text in _RESTRICT:
                pass
            else:
                name = tok
        return name

    def _parse_argument(
        self, p: Tokenizer, ct: CType, allow_asm: bool
    ) -> Optional[Token]:
        name = self._parse_argument2(p, ct, allow_asm)
        while True:
            tok = p.next_token()
            if tok.type == TokenType.NIL:
                break
            if not self._parse_attribute(p, tok, ct, allow_asm):
                p.put_back()
                break
        return name

    # -- top level ------------------------------------------------------

    def _parse_typedef(self, p: Tokenizer) -> None:
        base_type = self._parse_type(p)
        while True:
            arg_type = base_type.copy()
            name = self._parse_argument(p, arg_type, False)
            if name is None or not name.size:
                raise CParserError(
                    f"Can't have a typedef without a name on line {p.line}"
                )
            if arg_type.is_variable_array:
                raise CParserError(
                    f"Can't typedef a variable length array on line {p.line}"
                )
            self.registry.register_type(name.text, arg_type)

            tok = p.require_token()
            if tok.type == TokenType.SEMICOLON:
                return
            if tok.type != TokenType.COMMA:
                raise CParserError(
                    f"Unexpected character in typedef on line {p.line}"
                )

    def _parse_pragma(self, p: Tokenizer) -> int:
        message = f"unexpected pre processor directive on line {p.line}"
        p.check_token(TokenType.TOKEN, "pragma", message)
        p.check_token(TokenType.TOKEN, "pack", message)
        invalid = f"invalid pack directive on line {p.line}"
        p.check_token(TokenType.OPEN_PAREN, "", invalid)
        tok = p.require_token()

        if tok.type == TokenType.NUMBER:
            if tok.integer not in _ALIGN_MASKS:
                raise CParserError(
                    f"pack directive with invalid pack size on line {p.line}"
                )
            p.align_mask = tok.integer - 1
            p.check_token(TokenType.CLOSE_PAREN, "", invalid)
        elif _is_word(tok, frozenset({"push"})):
            previous_alignment = p.align_mask
            p.check_token(TokenType.CLOSE_PAREN, "", invalid)
            if self._parse_root(p) != _PRAGMA_POP:
                raise CParserError(
                    "reached end of string without a pragma pop to match "
                    f"the push on line {p.line}"
                )
            p.align_mask = previous_alignment
        elif _is_word(tok, frozenset({"pop"})):
            p.check_token(TokenType.CLOSE_PAREN, "", invalid)
            return _PRAGMA_POP
        else:
            raise CParserError(invalid)
        return _END

    def _parse_root(self, p: Tokenizer) -> int:
        while True:
            tok = p.next_token()
            if tok.type == TokenType.NIL:
                return _END
            if tok.type == TokenType.SEMICOLON:
                continue
            if tok.type == TokenType.POUND:
                if self._parse_pragma(p) == _PRAGMA_POP:
                    return _PRAGMA_POP
                continue
            if tok.type != TokenType.TOKEN:
                raise CParserError(f"unexpected character on line {p.line}")
            if tok.text in ("__extension__", "extern"):
                continue
            if tok.text == "typedef":
                self._parse_typedef(p)
                continue
            if tok.text == "static":
                raise CParserError("TODO: support static keyword.")

            p.put_back()
            decl_type = self._parse_type(p)
            while True:
                name = self._parse_argument(p, decl_type, True)
                if name is not None and name.size:
                    self.registry.build_func(decl_type, name.text)
                tok = p.require_token()
                if tok.type == TokenType.SEMICOLON:
                    break
                if tok.type != TokenType.COMMA:
                    raise CParserError(f"missing semicolon on line {p.line}")