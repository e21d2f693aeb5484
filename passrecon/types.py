from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, Optional, Tuple


@dataclass(frozen=True)
class Type:
    # Declared name from the schema; anonymous types print structurally.
    name: Optional[str] = field(default=None, kw_only=True)

    def __str__(self) -> str:
        return self.name or self.describe()

    def describe(self) -> str:
        return "<type>"


@dataclass(frozen=True)
class BasicType(Type):
    kind: str

    def describe(self) -> str:
        return self.kind


@dataclass(frozen=True)
class Field:
    name: str
    type: Type


@dataclass(frozen=True)
class StructType(Type):
    fields: Tuple[Field, ...] = ()

    def describe(self) -> str:
        inner = "; ".join(f"{f.name} {f.type}" for f in self.fields)
        return f"struct{{{inner}}}"

    def field(self, index: int) -> Field:
        return self.fields[index]


@dataclass(frozen=True)
class ArrayType(Type):
    elem: Type
    length: Optional[int] = None

    def describe(self) -> str:
        length = "?" if self.length is None else str(self.length)
        return f"[{length}]{self.elem}"


@dataclass(frozen=True)
class SliceType(Type):
    elem: Type

    def describe(self) -> str:
        return f"[]{self.elem}"


@dataclass(frozen=True)
class PointerType(Type):
    elem: Type

    def describe(self) -> str:
        return f"*{self.elem}"


@dataclass(frozen=True)
class InterfaceType(Type):
    def describe(self) -> str:
        return "interface{}"


@dataclass(frozen=True)
class TupleType(Type):
    elems: Tuple[Type, ...] = ()

    def describe(self) -> str:
        return "(" + ", ".join(str(e) for e in self.elems) + ")"


@dataclass(frozen=True)
class OpaqueType(Type):
    """A type whose size is unknown to every layout provider."""

    def describe(self) -> str:
        return "opaque"


BASIC_KINDS = frozenset(
    {
        "bool",
        "int",
        "int8",
        "int16",
        "int32",
        "int64",
        "uint",
        "uint8",
        "uint16",
        "uint32",
        "uint64",
        "uintptr",
        "float32",
        "float64",
        "complex64",
        "complex128",
        "string",
        "unsafe.Pointer",
        "map",
        "chan",
        "func",
    }
)

# Reference kinds occupy one machine word.
REFERENCE_KINDS = frozenset({"unsafe.Pointer", "map", "chan", "func"})

BOOL = BasicType("bool")
INT = BasicType("int")
STRING = BasicType("string")
UNTYPED_NIL = BasicType("untyped nil")


def pointee(ptr: Type) -> Optional[Type]:
    if isinstance(ptr, PointerType):
        return ptr.elem
    return None


class Schema:
    """Named composite, sequence and scalar types of the languages a pass relates."""

    def __init__(self) -> None:
        self._types: Dict[str, Type] = {}

    def define(self, name: str, typ: Type) -> Type:
        named = replace(typ, name=name)
        self._types[name] = named
        return named

    def lookup(self, name: str) -> Optional[Type]:
        return self._types.get(name)

    def struct(self, name: str) -> Optional[StructType]:
        typ = self._types.get(name)
        return typ if isinstance(typ, StructType) else None

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)
