from __future__ import annotations

from pathlib import Path

import pytest

from passrecon import ir
from passrecon.errors import ParseError, ReconError
from passrecon.ir_printer import format_function, format_module
from passrecon.parser import parse_file, parse_module
from passrecon.types import INT, ArrayType, BasicType, InterfaceType, PointerType, SliceType, StructType

PASSES = Path(__file__).resolve().parent / "passes"

HEADER = "pass demo : L0 -> L1\n"


def _parse(body: str) -> ir.PassModule:
    return parse_module(HEADER + body, path="demo.pir")


def test_header_and_schema() -> None:
    module = _parse(
        """
        type L1.Expr interface
        type L1.Pair struct { Left L1.Expr; Right *L1.Leaf; }
        type L1.Leaf [4]uint8
        type L1.List []L1.Expr
        type L1.Blob opaque
        type L1.Name string
        """
    )
    assert (module.name, module.source_lang, module.dest_lang) == ("demo", "L0", "L1")
    assert list(module.schema) == ["L1.Expr", "L1.Pair", "L1.Leaf", "L1.List", "L1.Blob", "L1.Name"]
    pair = module.schema.struct("L1.Pair")
    assert pair is not None
    assert [f.name for f in pair.fields] == ["Left", "Right"]
    assert isinstance(pair.fields[0].type, InterfaceType)
    assert str(pair.fields[0].type) == "L1.Expr"
    right = pair.fields[1].type
    assert isinstance(right, PointerType)
    assert right.elem == ArrayType(BasicType("uint8"), 4, name="L1.Leaf")
    assert isinstance(module.schema.lookup("L1.List"), SliceType)
    assert module.schema.lookup("L1.Name") == BasicType("string", name="L1.Name")


def test_function_structure() -> None:
    module = _parse(
        """
        type L1.Pair struct { A int; B int }

        func Make(x int, flag bool) L1.Pair {
        b0:
            %t0 = alloc L1.Pair
            %t1 = field %t0, 1
            store %t1, x
            if flag then b1 else b2
        b1:
            %t2 = unop "*" %t0
            return %t2
        b2:
            panic "no"
        }
        """
    )
    fn = module.functions["Make"]
    assert fn.entry == "b0"
    assert list(fn.blocks) == ["b0", "b1", "b2"]
    assert [(p.name, str(p.type)) for p in fn.params] == [("x", "int"), ("flag", "bool")]
    assert str(fn.result) == "L1.Pair"
    b0 = fn.blocks["b0"]
    alloc, store = b0.instructions
    assert isinstance(alloc, ir.Alloc) and alloc.name == "t0"
    assert isinstance(store, ir.Store)
    assert isinstance(store.addr, ir.FieldAddr) and store.addr.base is alloc and store.addr.field == 1
    assert store.value is fn.params[0]
    assert store.loc.line == 9
    assert isinstance(b0.terminator, ir.If)
    assert b0.terminator.cond is fn.params[1]
    ret = fn.blocks["b1"].terminator
    assert isinstance(ret, ir.Return)
    assert isinstance(ret.value, ir.UnOp) and ret.value.operand is alloc
    panic = fn.blocks["b2"].terminator
    assert isinstance(panic, ir.Panic) and panic.value.value == "no"


def test_value_forms() -> None:
    module = _parse(
        """
        type L1.Expr interface
        type L1.Num int
        type L1.Arr [2]int

        func F(e L1.Expr, n int) L1.Expr {
        b0:
            %a = alloc L1.Arr
            %i = index %a, 1
            %s = slice %a
            %c = call @L1.wrap(e, -3, "s", nil, true) : L1.Expr
            %p = typeassert e, L1.Num
            %ok = extract %p, 1
            %k = const 7 : L1.Num
            %m = makeiface %k : L1.Expr
            %b = binop "+" n, 1
            %neg = unop "-" n
            jump b1
        b1:
            return %c
        }
        """
    )
    fn = module.functions["F"]
    call = fn.blocks["b1"].terminator.value
    assert isinstance(call, ir.Call)
    assert isinstance(call.callee, ir.FuncRef) and call.callee.name == "L1.wrap"
    assert [a.value for a in call.args[1:]] == [-3, "s", None, True]
    assert str(call.type) == "L1.Expr"
    text = format_function(fn)
    assert "jump b1" in text
    assert "return call(@L1.wrap, e, -3, \"s\", nil, true)" in text


def test_effects_parse_into_effect_instructions() -> None:
    module = _parse(
        """
        func F(x int) int {
        b0:
            %m = makemap()
            mapupdate(%m, x, 1)
            go(@worker, x)
            rundefers()
            return x
        }
        """
    )
    instrs = module.functions["F"].blocks["b0"].instructions
    assert [type(i) for i in instrs] == [ir.MakeMap, ir.MapUpdate, ir.Go, ir.RunDefers]
    assert instrs[1].operands[0] is instrs[0]
    assert instrs[0].name == "m"


def test_types_may_be_declared_after_use() -> None:
    module = _parse(
        """
        type L1.Outer struct { In L1.Inner }
        type L1.Inner struct { X int }
        """
    )
    outer = module.schema.struct("L1.Outer")
    assert outer is not None
    inner = outer.fields[0].type
    assert isinstance(inner, StructType)
    assert str(inner) == "L1.Inner"
    assert [f.name for f in inner.fields] == ["X"]


def test_comments_are_ignored() -> None:
    module = _parse("// nothing here\ntype L1.Num int // trailing\n")
    assert module.schema.lookup("L1.Num") == BasicType("int", name="L1.Num")


@pytest.mark.parametrize(
    "body, message",
    [
        ("type L1.A L1.Missing\n", "unknown type L1.Missing"),
        ("type L1.A int\ntype L1.A int\n", "declared twice"),
        ("type L1.A struct { X L1.B }\ntype L1.B struct { Y L1.A }\n", "recursive type"),
        ("type L1.A struct { X int; X int }\n", "duplicate field X"),
        ("func F(x int, x int) int {\nb0:\n return x\n}\n", "duplicate parameter x"),
        ("func F() int {\nb0:\n return %t0\n}\n", "undefined value %t0"),
        ("func F() int {\nb0:\n return y\n}\n", "undefined name y"),
        ("func F() int {\nb0:\n %t0 = alloc int\n %t0 = alloc int\n return 1\n}\n", "defined twice"),
        ("func F() int {\nb0:\n return 1\nb0:\n return 2\n}\n", "block b0 declared twice"),
        ("func F() int {\nb0:\n return 1\n}\nfunc F() int {\nb0:\n return 1\n}\n", "function F declared twice"),
        ("func F() int {\nb0:\n %t0 = alloc int\n %t1 = field %t0, 0\n return 1\n}\n", "field of non-struct"),
        (
            "type L1.P struct { A int }\nfunc F() int {\nb0:\n %t0 = alloc L1.P\n %t1 = field %t0, 1\n return 1\n}\n",
            "out of range",
        ),
        ("func F() int {\nb0:\n %t0 = alloc int\n %t1 = index %t0, 0\n return 1\n}\n", "index of non-array"),
        ("func F(x int) int {\nb0:\n %t0 = unop \"*\" x\n return 1\n}\n", "dereference of non-pointer"),
        ("func F(x *int) int {\nb0:\n %t0 = slice x\n return 1\n}\n", "slice of non-array"),
    ],
)
def test_semantic_errors(body: str, message: str) -> None:
    with pytest.raises(ParseError) as excinfo:
        _parse(body)
    assert message in str(excinfo.value)


def test_syntax_error_has_position() -> None:
    with pytest.raises(ParseError) as excinfo:
        parse_module("pass demo : L0 -> L1\nfunc F( {\n")
    err = excinfo.value
    assert err.line == 2
    assert err.column is not None
    assert str(err).startswith("2:")
    assert isinstance(err, ReconError)


def test_missing_header_is_rejected() -> None:
    with pytest.raises(ParseError):
        parse_module("type L1.A int\n")


def test_parse_file_records_path() -> None:
    path = PASSES / "remove_one_armed_if.pir"
    module = parse_file(path)
    assert module.path == str(path)
    assert module.name == "remove-one-armed-if"
    assert module.functions["IfThen"].loc.file == str(path)
    assert list(module.functions) == ["Entry", "IfThen", "Not", "Begin", "Unsupported", "helper"]


def test_dump_lists_schema_and_functions() -> None:
    module = _parse(
        """
        type L1.Pair struct { A int; B int }

        func F(x int) int {
        b0:
            %t0 = alloc L1.Pair
            return x
        }
        """
    )
    assert format_module(module) == (
        "pass demo : L0 -> L1\n\n"
        "type L1.Pair struct{A int; B int}\n\n"
        "func F(x int) int {\n"
        "b0:\n"
        "    %t0 = alloc L1.Pair\n"
        "    return x\n"
        "}"
    )
    assert module.functions["F"].params[0].type == INT
