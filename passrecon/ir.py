from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .types import (
    BOOL,
    ArrayType,
    BasicType,
    OpaqueType,
    PointerType,
    Schema,
    SliceType,
    StructType,
    TupleType,
    Type,
    pointee,
)


@dataclass(frozen=True)
class Location:
    file: str = "<unknown>"
    line: int = 0
    column: int = 0


class Value:
    """A node of the expression graph. Values compare and hash by identity."""


class Instruction:
    pass


class Terminator:
    pass


# Values


@dataclass(frozen=True, eq=False)
class Const(Value):
    value: object
    type: Type


@dataclass(frozen=True, eq=False)
class FuncRef(Value):
    name: str
    type: Type = BasicType("func")


@dataclass(frozen=True, eq=False)
class Parameter(Value):
    name: str
    type: Type


@dataclass(frozen=True, eq=False)
class Call(Value):
    callee: Value
    args: Tuple[Value, ...]
    type: Type = TupleType()


@dataclass(frozen=True, eq=False)
class TypeAssert(Value):
    operand: Value
    asserted: Type
    comma_ok: bool = True

    @property
    def type(self) -> Type:
        if self.comma_ok:
            return TupleType((self.asserted, BOOL))
        return self.asserted


@dataclass(frozen=True, eq=False)
class Extract(Value):
    base: Value
    index: int

    @property
    def type(self) -> Type:
        tup = self.base.type  # type: ignore[attr-defined]
        if isinstance(tup, TupleType) and 0 <= self.index < len(tup.elems):
            return tup.elems[self.index]
        return OpaqueType()


@dataclass(frozen=True, eq=False)
class MakeInterface(Value):
    operand: Value
    type: Type


@dataclass(frozen=True, eq=False)
class FieldAddr(Value):
    base: Value
    field: int

    @property
    def struct(self) -> Optional[StructType]:
        elem = pointee(self.base.type)  # type: ignore[attr-defined]
        return elem if isinstance(elem, StructType) else None

    @property
    def type(self) -> Type:
        struct = self.struct
        if struct is None or not 0 <= self.field < len(struct.fields):
            return PointerType(OpaqueType())
        return PointerType(struct.fields[self.field].type)


@dataclass(frozen=True, eq=False)
class IndexAddr(Value):
    base: Value
    index: Value

    @property
    def array(self) -> Optional[ArrayType]:
        elem = pointee(self.base.type)  # type: ignore[attr-defined]
        return elem if isinstance(elem, ArrayType) else None

    @property
    def type(self) -> Type:
        array = self.array
        return PointerType(array.elem if array is not None else OpaqueType())


DEREF = "*"

_COMPARISONS = frozenset({"==", "!=", "<", "<=", ">", ">="})


@dataclass(frozen=True, eq=False)
class UnOp(Value):
    op: str
    operand: Value

    @property
    def type(self) -> Type:
        operand_type = self.operand.type  # type: ignore[attr-defined]
        if self.op == DEREF:
            return pointee(operand_type) or OpaqueType()
        return operand_type


@dataclass(frozen=True, eq=False)
class BinOp(Value):
    op: str
    left: Value
    right: Value

    @property
    def type(self) -> Type:
        if self.op in _COMPARISONS:
            return BOOL
        return self.left.type  # type: ignore[attr-defined]


@dataclass(frozen=True, eq=False)
class Slice(Value):
    base: Value

    @property
    def type(self) -> Type:
        elem = pointee(self.base.type)  # type: ignore[attr-defined]
        if isinstance(elem, ArrayType):
            return SliceType(elem.elem)
        return SliceType(OpaqueType())


# Instructions


@dataclass(frozen=True, eq=False)
class Alloc(Instruction, Value):
    """A stack allocation; both the instruction and the address it yields."""

    name: str
    allocated: Type
    loc: Location = Location()

    @property
    def type(self) -> Type:
        return PointerType(self.allocated)


@dataclass(frozen=True, eq=False)
class Store(Instruction):
    addr: Value
    value: Value
    loc: Location = Location()


@dataclass(frozen=True, eq=False)
class EffectInstruction(Instruction, Value):
    """Concurrency or uncontrolled side effect; never reconstructed."""

    mnemonic = "effect"

    operands: Tuple[Value, ...] = ()
    name: Optional[str] = None
    loc: Location = Location()

    @property
    def type(self) -> Type:
        return OpaqueType()


class Send(EffectInstruction):
    mnemonic = "send"


class Go(EffectInstruction):
    mnemonic = "go"


class Defer(EffectInstruction):
    mnemonic = "defer"


class RunDefers(EffectInstruction):
    mnemonic = "rundefers"


class MapUpdate(EffectInstruction):
    mnemonic = "mapupdate"


class MakeMap(EffectInstruction):
    mnemonic = "makemap"


class MakeChan(EffectInstruction):
    mnemonic = "makechan"


class Select(EffectInstruction):
    mnemonic = "select"


EFFECTS: Dict[str, type] = {
    cls.mnemonic: cls for cls in (Send, Go, Defer, RunDefers, MapUpdate, MakeMap, MakeChan, Select)
}


# Terminators


@dataclass(frozen=True)
class If(Terminator):
    cond: Value
    then: str
    els: str
    loc: Location = Location()


@dataclass(frozen=True)
class Jump(Terminator):
    target: str
    loc: Location = Location()


@dataclass(frozen=True)
class Return(Terminator):
    value: Value
    loc: Location = Location()


@dataclass(frozen=True)
class Panic(Terminator):
    value: Value
    loc: Location = Location()


@dataclass
class BasicBlock:
    name: str
    instructions: List[Instruction] = field(default_factory=list)
    terminator: Optional[Terminator] = None


@dataclass
class Function:
    name: str
    params: List[Parameter]
    result: Optional[Type]
    entry: str
    blocks: Dict[str, BasicBlock] = field(default_factory=dict)
    source: Optional[str] = None
    loc: Location = Location()


@dataclass
class PassModule:
    name: str
    source_lang: str
    dest_lang: str
    schema: Schema
    functions: Dict[str, Function] = field(default_factory=dict)
    path: Optional[str] = None
