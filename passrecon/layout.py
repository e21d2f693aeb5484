"""Layout providers: byte sizes and field offsets for schema types.

Reconstruction only ever asks two questions, `sizeof(T)` and
`offsetsof(struct)`, so any ABI can be plugged in. Two are provided:

  - `StdSizes`: word-size/max-alignment rules of the gc toolchain, pure Python.
  - `TargetLayout`: sizes and alignments from an LLVM data layout via llvmlite,
    either an explicit layout string or the host target machine's.
"""

from __future__ import annotations

from typing import Dict, List, Protocol

from llvmlite import binding as llvm  # type: ignore
from llvmlite import ir  # type: ignore

from .errors import LayoutError
from .types import (
    REFERENCE_KINDS,
    ArrayType,
    BasicType,
    InterfaceType,
    OpaqueType,
    PointerType,
    SliceType,
    StructType,
    TupleType,
    Type,
)


class LayoutProvider(Protocol):
    def sizeof(self, typ: Type) -> int:
        ...

    def offsetsof(self, typ: StructType) -> List[int]:
        ...


_BASIC_SIZES = {
    "bool": 1,
    "int8": 1,
    "uint8": 1,
    "int16": 2,
    "uint16": 2,
    "int32": 4,
    "uint32": 4,
    "float32": 4,
    "int64": 8,
    "uint64": 8,
    "float64": 8,
    "complex64": 8,
    "complex128": 16,
}

_WORD_KINDS = frozenset({"int", "uint", "uintptr"}) | REFERENCE_KINDS


def _align(offset: int, alignment: int) -> int:
    return (offset + alignment - 1) // alignment * alignment


def _is_unsized(typ: Type) -> bool:
    return isinstance(typ, OpaqueType) or (isinstance(typ, ArrayType) and typ.length is None)


def _struct_offsets(field_types, sizeof, alignof) -> List[int]:
    # The last field's size never moves an offset, so it may be unknown.
    offsets: List[int] = []
    offset = 0
    last = len(field_types) - 1
    for i, ftype in enumerate(field_types):
        offset = _align(offset, alignof(ftype))
        offsets.append(offset)
        if i < last:
            offset += sizeof(ftype)
    return offsets


class StdSizes:
    """Sizes for a target with the given word size and maximum alignment."""

    def __init__(self, word_size: int = 8, max_align: int = 8) -> None:
        if word_size <= 0 or max_align <= 0:
            raise ValueError("word_size and max_align must be positive")
        self.word_size = word_size
        self.max_align = max_align

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"StdSizes(word_size={self.word_size}, max_align={self.max_align})"

    def alignof(self, typ: Type) -> int:
        if _is_unsized(typ):
            return 1
        if isinstance(typ, ArrayType):
            return self.alignof(typ.elem)
        if isinstance(typ, StructType):
            return max([1] + [self.alignof(f.type) for f in typ.fields])
        if isinstance(typ, TupleType):
            return max([1] + [self.alignof(e) for e in typ.elems])
        if isinstance(typ, (SliceType, InterfaceType)):
            return self.word_size
        if isinstance(typ, BasicType) and typ.kind == "string":
            return self.word_size
        size = self.sizeof(typ)
        if isinstance(typ, BasicType) and typ.kind.startswith("complex"):
            size //= 2
        return max(1, min(size, self.max_align))

    def sizeof(self, typ: Type) -> int:
        if isinstance(typ, BasicType):
            if typ.kind in _BASIC_SIZES:
                return _BASIC_SIZES[typ.kind]
            if typ.kind in _WORD_KINDS:
                return self.word_size
            if typ.kind == "string":
                return 2 * self.word_size
            raise LayoutError(f"no size for basic kind {typ.kind!r} ({typ})")
        if isinstance(typ, PointerType):
            return self.word_size
        if isinstance(typ, SliceType):
            return 3 * self.word_size
        if isinstance(typ, InterfaceType):
            return 2 * self.word_size
        if isinstance(typ, ArrayType):
            if typ.length is None:
                raise LayoutError(f"array {typ} has no static length")
            if typ.length == 0:
                return 0
            esize = self.sizeof(typ.elem)
            return _align(esize, self.alignof(typ.elem)) * (typ.length - 1) + esize
        if isinstance(typ, StructType):
            if not typ.fields:
                return 0
            offsets = self.offsetsof(typ)
            size = offsets[-1] + self.sizeof(typ.fields[-1].type)
            return _align(size, self.alignof(typ))
        if isinstance(typ, TupleType):
            if not typ.elems:
                return 0
            offsets = _struct_offsets(list(typ.elems), self.sizeof, self.alignof)
            return _align(offsets[-1] + self.sizeof(typ.elems[-1]), self.alignof(typ))
        raise LayoutError(f"no size for {typ} ({type(typ).__name__})")

    def offsetsof(self, typ: StructType) -> List[int]:
        return _struct_offsets([f.type for f in typ.fields], self.sizeof, self.alignof)


def _pointer_size_bits(data_layout: str) -> int:
    """
    Derive the default address space pointer size from a data layout string
    (`p:32:32` or `p0:64:64`). Falls back to 64 if no such fragment is present.
    """
    for frag in data_layout.split("-"):
        parts = frag.split(":")
        if parts[0] in ("p", "p0") and len(parts) >= 2 and parts[1].isdigit():
            return int(parts[1])
    return 64


class TargetLayout:
    """Layout computed by LLVM for a concrete data layout string."""

    def __init__(self, data_layout: str) -> None:
        self.data_layout = data_layout
        try:
            self.target_data = llvm.create_target_data(data_layout)
        except RuntimeError as exc:
            raise LayoutError(f"invalid data layout {data_layout!r}: {exc}") from exc
        self.word_bits = _pointer_size_bits(data_layout)
        self._lowered: Dict[Type, ir.Type] = {}

    @classmethod
    def host(cls) -> "TargetLayout":
        llvm.initialize_native_target()
        llvm.initialize_native_asmprinter()
        target = llvm.Target.from_default_triple()
        tm = target.create_target_machine(reloc="pic", codemodel="small")
        return cls(str(tm.target_data))

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"TargetLayout({self.data_layout!r})"

    def sizeof(self, typ: Type) -> int:
        return int(self.lower(typ).get_abi_size(self.target_data))

    def alignof(self, typ: Type) -> int:
        if _is_unsized(typ):
            return 1
        return int(self.lower(typ).get_abi_alignment(self.target_data))

    def offsetsof(self, typ: StructType) -> List[int]:
        return _struct_offsets([f.type for f in typ.fields], self.sizeof, self.alignof)

    def lower(self, typ: Type) -> ir.Type:
        cached = self._lowered.get(typ)
        if cached is None:
            cached = self._lower(typ)
            self._lowered[typ] = cached
        return cached

    def _lower(self, typ: Type) -> ir.Type:
        word = ir.IntType(self.word_bits)
        ptr = ir.IntType(8).as_pointer()
        if isinstance(typ, BasicType):
            kind = typ.kind
            if kind == "bool":
                return ir.IntType(8)
            if kind in ("int8", "int16", "int32", "int64"):
                return ir.IntType(int(kind[3:]))
            if kind in ("uint8", "uint16", "uint32", "uint64"):
                return ir.IntType(int(kind[4:]))
            if kind in ("int", "uint", "uintptr"):
                return word
            if kind == "float32":
                return ir.FloatType()
            if kind == "float64":
                return ir.DoubleType()
            if kind == "complex64":
                return ir.LiteralStructType([ir.FloatType(), ir.FloatType()])
            if kind == "complex128":
                return ir.LiteralStructType([ir.DoubleType(), ir.DoubleType()])
            if kind == "string":
                return ir.LiteralStructType([ptr, word])
            if kind in REFERENCE_KINDS:
                return ptr
            raise LayoutError(f"no LLVM lowering for basic kind {kind!r} ({typ})")
        if isinstance(typ, PointerType):
            return ptr
        if isinstance(typ, SliceType):
            return ir.LiteralStructType([ptr, word, word])
        if isinstance(typ, InterfaceType):
            return ir.LiteralStructType([ptr, ptr])
        if isinstance(typ, ArrayType):
            if typ.length is None:
                raise LayoutError(f"array {typ} has no static length")
            return ir.ArrayType(self.lower(typ.elem), typ.length)
        if isinstance(typ, StructType):
            return ir.LiteralStructType([self.lower(f.type) for f in typ.fields])
        if isinstance(typ, TupleType):
            return ir.LiteralStructType([self.lower(e) for e in typ.elems])
        if isinstance(typ, OpaqueType):
            raise LayoutError(f"opaque type {typ} has no layout")
        raise LayoutError(f"no LLVM lowering for {typ} ({type(typ).__name__})")
