import pytest

from ktapc.ctypes import (
    CParserError,
    CSymbol,
    CType,
    CTypeKind,
    CTypeRegistry,
    FfiType,
    POINTER_SIZE,
    ctype_size,
)

ADDR = 0xDEADBEEF


@pytest.fixture
def reg():
    return CTypeRegistry(lambda name: ADDR)


def test_builtin_lookup_registers_symbol(reg):
    ct = reg.lookup_type("uint64_t")
    assert ct.kind == CTypeKind.INT64
    assert ct.is_unsigned
    assert ct.is_defined
    cs = reg.csymbol(ct.ffi_cs_id)
    assert cs.type == FfiType.UINT64
    assert cs.name == "uint64_t"
    assert reg.lookup_csymbol_id("uint64_t") == ct.ffi_cs_id


def test_builtin_lookup_is_cached(reg):
    first = reg.lookup_type("int32_t")
    second = reg.lookup_type("int32_t")
    assert first is second
    assert len(reg.symbols) == 1


def test_unknown_type_returns_none(reg):
    assert reg.lookup_type("struct nothing") is None
    assert reg.lookup_csymbol_id("nothing") == -1


def test_register_type_stores_copy(reg):
    ct = CType(kind=CTypeKind.INT32, base_size=4, is_defined=True)
    stored = reg.register_type("myint", ct)
    ct.base_size = 99
    assert reg.lookup_type("myint") is stored
    assert stored.base_size == 4


def test_build_pointer_name_and_deref(reg):
    void = reg.lookup_type("void")
    pid = reg.build_pointer(void)
    cs = reg.csymbol(pid)
    assert cs.name == "void *"
    assert cs.type == FfiType.PTR
    assert cs.deref_id == void.ffi_cs_id


def test_update_csym_reuses_pointer_symbol(reg):
    base = reg.lookup_type("int32_t")
    a = base.copy()
    a.pointers = 1
    reg.update_csym(a)
    b = base.copy()
    b.pointers = 1
    reg.update_csym(b)
    assert a.ffi_cs_id == b.ffi_cs_id
    assert reg.csymbol(a.ffi_cs_id).name == "int32_t *"
    assert reg.lookup_type("int32_t *").ffi_cs_id == a.ffi_cs_id


def test_update_csym_rejects_missing_symbol(reg):
    with pytest.raises(CParserError):
        reg.update_csym(CType(ffi_cs_id=-1))


def test_push_and_reset_stack(reg):
    ct = reg.lookup_type("int8_t")
    reg.push(ct, "a")
    reg.push(ct)
    assert reg.stack_top() == 2
    reg.reset_stack(1)
    assert reg.stack_top() == 1
    assert "name: a" in reg.dump_stack()


def test_build_record_from_stack(reg):
    long_ct = reg.lookup_type("int64_t")
    start = reg.stack_top()
    reg.push(long_ct, "ts_sec")
    arr = long_ct.copy()
    arr.is_array = True
    arr.pointers = 1
    arr.array_size = 4
    reg.push(arr, "ts_nsec")
    rid = reg.build_record("struct timespec", CTypeKind.STRUCT, start)
    cs = reg.csymbol(rid)
    assert cs.type == FfiType.STRUCT
    assert cs.member_count == 2
    assert [m.name for m in cs.members] == ["ts_sec", "ts_nsec"]
    assert cs.members[0].len == -1
    assert cs.members[1].len == 4
    assert reg.stack_top() == start


def test_fake_record_then_definition_reuses_id(reg):
    fid = reg.build_fake_record("struct foo", CTypeKind.STRUCT)
    assert reg.csymbol(fid).member_count == -1
    assert reg.build_fake_record("struct foo", CTypeKind.STRUCT) == fid
    reg.push(reg.lookup_type("int32_t"), "val")
    rid = reg.build_record("struct foo", CTypeKind.STRUCT, 0)
    assert rid == fid
    assert reg.csymbol(rid).member_count == 1


def test_union_record_type(reg):
    reg.push(reg.lookup_type("int32_t"), "val")
    rid = reg.build_record("union u", CTypeKind.UNION, 0)
    assert reg.csymbol(rid).type == FfiType.UNION


def test_build_record_errors(reg):
    with pytest.raises(CParserError):
        reg.build_record("struct empty", CTypeKind.STRUCT, 0)
    reg.push(reg.lookup_type("int32_t"), "x")
    with pytest.raises(CParserError):
        reg.build_record("enum e", CTypeKind.ENUM, 0)
    with pytest.raises(CParserError):
        reg.build_fake_record("enum e", CTypeKind.ENUM)


def test_build_func(reg):
    ret = reg.lookup_type("uint64_t")
    arg = reg.lookup_type("int32_t")
    reg.push(ret)
    reg.push(arg)
    fid = reg.build_func(CType(), "sched_clock")
    cs = reg.csymbol(fid)
    assert cs.type == FfiType.FUNC
    assert cs.addr == ADDR
    assert cs.ret_id == ret.ffi_cs_id
    assert cs.arg_ids == [arg.ffi_cs_id]
    assert reg.stack_top() == 0


def test_build_func_var_arg_creates_void_pointer(reg):
    reg.push(reg.lookup_type("int32_t"))
    fid = reg.build_func(CType(has_var_arg=True), "printk")
    assert reg.csymbol(fid).has_var_arg
    assert reg.lookup_csymbol_id("void *") >= 0


def test_build_func_without_address(reg):
    unresolved = CTypeRegistry(lambda name: 0)
    unresolved.push(unresolved.lookup_type("void"))
    with pytest.raises(CParserError):
        unresolved.build_func(CType(), "missing")


def test_build_func_needs_stack(reg):
    with pytest.raises(CParserError):
        reg.build_func(CType(), "f")


def test_register_csymbol_returns_index(reg):
    first = reg.register_csymbol(CSymbol(name="a", type=FfiType.INT8))
    second = reg.register_csymbol(CSymbol(name="b", type=FfiType.INT8))
    assert second == first + 1
    assert reg.lookup_csymbol_id("b") == second


def test_ctype_size_pointer_and_array(reg):
    base = reg.lookup_type("int16_t")
    ptr = base.copy()
    ptr.pointers = 1
    assert ctype_size(ptr) == POINTER_SIZE
    arr = base.copy()
    arr.is_array = True
    arr.pointers = 1
    arr.array_size = 5
    assert ctype_size(arr) == base.base_size * 5
    assert ctype_size(base) == FfiType.INT16.size


def test_ctype_size_errors(reg):
    with pytest.raises(CParserError):
        ctype_size(reg.lookup_type("void"))
    with pytest.raises(CParserError):
        ctype_size(CType(kind=CTypeKind.STRUCT))
    with pytest.raises(CParserError):
        ctype_size(CType(kind=CTypeKind.STRUCT, is_defined=True,
                         is_variable_struct=True))


def test_ctype_size_variable_known():
    ct = CType(kind=CTypeKind.STRUCT, is_defined=True, base_size=8,
               is_variable_struct=True, variable_size_known=True,
               variable_increment=16)
    assert ctype_size(ct) == ct.base_size + ct.variable_increment