"""C type descriptions and the symbol tables built while parsing C declarations."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Callable, Optional

MAX_TYPE_NAME_LEN = 64
POINTER_SIZE = 8
POINTER_BITS = 2
POINTER_MAX = (1 << POINTER_BITS) - 1
PTR_ALIGN_MASK = POINTER_SIZE - 1
FUNCTION_ALIGN_MASK = POINTER_SIZE - 1
DEFAULT_ALIGN_MASK = 7

C_CALL = 0
STD_CALL = 1
FAST_CALL = 2


class CParserError(Exception):
    """Raised when a C declaration cannot be parsed or registered."""


class CTypeKind(enum.IntEnum):
    """Kind of a parsed C type."""

    INVALID = 0
    VOID = 1
    BOOL = 2
    INT8 = 3
    INT16 = 4
    INT32 = 5
    INT64 = 6
    INTPTR = 7
    ENUM = 8
    UNION = 9
    STRUCT = 10
    FUNCTION = 11
    FUNCTION_PTR = 12


class FfiType(enum.Enum):
    """Type of a symbol as seen by the virtual machine."""

    VOID = ("void", 0, 1)
    UINT8 = ("uint8_t", 1, 1)
    INT8 = ("int8_t", 1, 1)
    UINT16 = ("uint16_t", 2, 2)
    INT16 = ("int16_t", 2, 2)
    UINT32 = ("uint32_t", 4, 4)
    INT32 = ("int32_t", 4, 4)
    UINT64 = ("uint64_t", 8, 8)
    INT64 = ("int64_t", 8, 8)
    PTR = ("pointer", POINTER_SIZE, POINTER_SIZE)
    FUNC = ("function", POINTER_SIZE, POINTER_SIZE)
    STRUCT = ("struct", 0, 1)
    UNION = ("union", 0, 1)
    UNKNOWN = ("unknown", 0, 1)

    @property
    def c_name(self) -> str:
        return self.value[0]

    @property
    def size(self) -> int:
        return self.value[1]

    @property
    def align(self) -> int:
        return self.value[2]


_BUILTIN_TYPES = {
    "void": (FfiType.VOID, CTypeKind.VOID, False),
    "int8_t": (FfiType.INT8, CTypeKind.INT8, False),
    "uint8_t": (FfiType.UINT8, CTypeKind.INT8, True),
    "int16_t": (FfiType.INT16, CTypeKind.INT16, False),
    "uint16_t": (FfiType.UINT16, CTypeKind.INT16, True),
    "int32_t": (FfiType.INT32, CTypeKind.INT32, False),
    "uint32_t": (FfiType.UINT32, CTypeKind.INT32, True),
    "int64_t": (FfiType.INT64, CTypeKind.INT64, False),
    "uint64_t": (FfiType.UINT64, CTypeKind.INT64, True),
}


@dataclass
class CType:
    """A C type as seen by the declaration parser."""

    base_size: int = 0
    ffi_base_cs_id: int = 0
    ffi_cs_id: int = 0
    bit_size: int = 0
    bit_offset: int = 0
    array_size: int = 0
    variable_increment: int = 0
    offset: int = 0
    align_mask: int = 0
    pointers: int = 0
    const_mask: int = 0
    kind: CTypeKind = CTypeKind.INVALID
    is_reference: bool = False
    is_array: bool = False
    is_defined: bool = False
    is_null: bool = False
    has_member_name: bool = False
    calling_convention: int = C_CALL
    has_var_arg: bool = False
    is_variable_array: bool = False
    is_variable_struct: bool = False
    variable_size_known: bool = False
    is_bitfield: bool = False
    has_bitfield: bool = False
    is_jitted: bool = False
    is_packed: bool = False
    is_unsigned: bool = False

    def copy(self) -> "CType":
        return dataclasses.replace(self)


@dataclass
class StructMember:
    """A member of a struct or union symbol."""

    name: str
    id: int
    len: int = -1


@dataclass
class CSymbol:
    """A symbol handed to the virtual machine: base type, pointer, record or function."""

    name: str
    type: FfiType
    members: Optional[list[StructMember]] = None
    align: int = 0
    ret_id: int = -1
    arg_ids: list[int] = field(default_factory=list)
    has_var_arg: bool = False
    addr: int = 0
    deref_id: int = -1

    @property
    def member_count(self) -> int:
        """Number of members, or -1 for a record that is only declared."""
        return -1 if self.members is None else len(self.members)


def ctype_size(ct: CType) -> int:
    """Size in bytes of a C type."""
    if ct.pointers - int(ct.is_array):
        return POINTER_SIZE * (ct.array_size if ct.is_array else 1)
    if not ct.is_defined or ct.kind == CTypeKind.VOID:
        raise CParserError("can't calculate size of an undefined type")
    if ct.variable_size_known:
        return ct.base_size + ct.variable_increment
    if ct.is_variable_array or ct.is_variable_struct:
        raise CParserError(
            "internal error: calc size of variable type with unknown size"
        )
    return ct.base_size * (ct.array_size if ct.is_array else 1)


@dataclass
class _StackEntry:
    name: str
    ct: CType


class CTypeRegistry:
    """Symbols for the virtual machine, named types for the parser and a work stack."""

    def __init__(self, resolver: Optional[Callable[[str], int]] = None):
        self.resolver = resolver
        self.symbols: list[CSymbol] = []
        self._types: list[tuple[str, CType]] = []
        self._stack: list[_StackEntry] = []

    # -- symbols --------------------------------------------------------

    def csymbol(self, cs_id: int) -> CSymbol:
        return self.symbols[cs_id]

    def register_csymbol(self, cs: CSymbol) -> int:
        self.symbols.append(cs)
        return len(self.symbols) - 1

    def lookup_csymbol_id(self, name: str) -> int:
        return next(
            (i for i, cs in enumerate(self.symbols) if cs.name == name), -1
        )

    # -- named types ----------------------------------------------------

    def _lookup_builtin_type(self, name: str) -> Optional[CType]:
        builtin = _BUILTIN_TYPES.get(name)
        if builtin is None:
            return None
        ftype, kind, unsigned = builtin
        cs_id = self.register_csymbol(CSymbol(name=ftype.c_name, type=ftype))
        ct = CType(
            ffi_base_cs_id=cs_id,
            ffi_cs_id=cs_id,
            kind=kind,
            is_unsigned=unsigned,
            base_size=ftype.size,
            align_mask=ftype.align - 1,
            is_defined=True,
        )
        return self.register_type(name, ct)

    def lookup_type(self, name: str) -> Optional[CType]:
        """Find a registered type by name, registering a builtin on demand."""
        for type_name, ct in self._types:
            if type_name == name:
                return ct
        return self._lookup_builtin_type(name)

    def register_type(self, name: str, ct: CType) -> CType:
        stored = ct.copy()
        self._types.append((name, stored))
        return stored

    # -- work stack -----------------------------------------------------

    def push(self, ct: CType, name: Optional[str] = None) -> None:
        self.update_csym(ct)
        self._stack.append(_StackEntry(name or "", ct.copy()))

    def stack_top(self) -> int:
        return len(self._stack)

    def reset_stack(self, top: int) -> None:
        """Drop every stack entry at or above position top."""
        self._stack = self._stack[:top]

    def update_csym(self, ct: CType) -> None:
        """Point a pointer type at its pointer symbol, creating it if needed."""
        if ct.ffi_cs_id < 0:
            raise CParserError("type has no symbol")
        if not ct.pointers:
            return
        found = next(
            (
                nct
                for _, nct in self._types
                if nct.kind == ct.kind
                and nct.ffi_base_cs_id == ct.ffi_base_cs_id
                and nct.pointers == ct.pointers
            ),
            None,
        )
        if found is None:
            ct.ffi_cs_id = self.build_pointer(ct)
            self.register_type(self.csymbol(ct.ffi_cs_id).name, ct)
        else:
            ct.ffi_cs_id = found.ffi_cs_id

    # -- symbol builders ------------------------------------------------

    @staticmethod
    def _record_type(kind: CTypeKind) -> FfiType:
        if kind == CTypeKind.STRUCT:
            return FfiType.STRUCT
        if kind == CTypeKind.UNION:
            return FfiType.UNION
        raise CParserError("invalid struct/union definition.")

    def build_record(self, name: str, kind: CTypeKind, start_top: int) -> int:
        """Build a struct or union symbol from the stack entries above start_top."""
        if self.stack_top() <= start_top or not name:
            raise CParserError("invalid struct/union definition.")
        ftype = self._record_type(kind)

        cs_id = self.lookup_csymbol_id(name)
        if cs_id >= 0:
            existing = self.csymbol(cs_id)
            if existing.type not in (FfiType.STRUCT, FfiType.UNION):
                raise CParserError(f"'{name}' is not a struct or union")
            if existing.members is not None:
                raise CParserError(f"redefinition of '{name}'")

        members = [
            StructMember(
                name=entry.name,
                id=entry.ct.ffi_cs_id,
                len=entry.ct.array_size if entry.ct.is_array else -1,
            )
            for entry in self._stack[start_top:]
        ]
        record = CSymbol(name=name, type=ftype, members=members)
        if cs_id < 0:
            cs_id = self.register_csymbol(record)
        else:
            self.symbols[cs_id] = record

        self.reset_stack(start_top)
        return cs_id

    def build_fake_record(self, name: str, kind: CTypeKind) -> int:
        """Build a declared-only struct or union symbol, reusing an existing one."""
        if not name:
            raise CParserError("invalid fake struct/union definition.")
        if kind not in (CTypeKind.STRUCT, CTypeKind.UNION):
            raise CParserError("invalid fake struct/union definition.")
        cs_id = self.lookup_csymbol_id(name)
        if cs_id >= 0:
            return cs_id
        return self.register_csymbol(
            CSymbol(name=name, type=self._record_type(kind), members=None)
        )

    def build_pointer(self, ct: CType) -> int:
        """Build a pointer symbol that dereferences to the symbol of ct."""
        ref = self.csymbol(ct.ffi_cs_id)
        name = f"{ref.name} *"
        if len(name) >= MAX_TYPE_NAME_LEN:
            raise CParserError(f"type name too long: {name}")
        return self.register_csymbol(
            CSymbol(name=name, type=FfiType.PTR, deref_id=ct.ffi_cs_id)
        )

    def build_func(self, ct: CType, name: str) -> int:
        """Build a function symbol; the stack holds the return type then the arguments."""
        if self.stack_top() == 0 or not name:
            raise CParserError("invalid function definition.")

        if ct.has_var_arg and self.lookup_type("void *") is None:
            self.build_pointer(self.lookup_type("void"))

        addr = self.resolver(name) if self.resolver is not None else 0
        if not addr:
            raise CParserError(f"wrong function address for {name}")

        func = CSymbol(
            name=name,
            type=FfiType.FUNC,
            has_var_arg=ct.has_var_arg,
            addr=addr,
            ret_id=self._stack[0].ct.ffi_cs_id,
            arg_ids=[entry.ct.ffi_cs_id for entry in self._stack[1:]],
        )
        cs_id = self.register_csymbol(func)
        self.reset_stack(0)
        return cs_id

    def dump_stack(self) -> str:
        lines = [
            "---------------------------",
            f"start of ctype stack ({self.stack_top()}) dump: ",
        ]
        for i, entry in enumerate(self._stack):
            ct = entry.ct
            lines.append(
                f"[{i}] -> cp_ctype: {int(ct.kind)}, "
                f"sym_type: {self.csymbol(ct.ffi_cs_id).type.name}, "
                f"pointer: {ct.pointers} symbol_id: {ct.ffi_cs_id}, "
                f"name: {entry.name}"
            )
        return "\n".join(lines) + "\n"