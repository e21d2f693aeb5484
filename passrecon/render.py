"""Reconstruction of a declarative body from a function's CFG and heap.

`ExprRenderer` turns a value into surface syntax. Its key move is rendering a
dereferenced allocation as one composite literal built from the slots the
stores filled in. `BodyRenderer` walks the tree-shaped CFG from the entry and
emits nested `if/else`, `return` and `panic` forms.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional, Set

from . import ir
from .errors import ControlFlowShapeError, ReconError
from .heap import Cell, Heap
from .ir_printer import format_literal, format_term, format_value


def is_static_zero(value: ir.Value) -> bool:
    # Only the literal nil constant counts; other zero values are not recognized.
    return isinstance(value, ir.Const) and value.value is None


def unrecognized(value: ir.Value) -> str:
    return f"[[unrecognized value of kind {type(value).__name__}]]"


class ExprRenderer:
    def __init__(self, heap: Heap) -> None:
        self.heap = heap
        # Allocations and loads currently being expanded; re-entering one is a cycle.
        self._active: Set[ir.Value] = set()

    def render(self, value: ir.Value) -> str:
        if isinstance(value, ir.FuncRef):
            return value.name
        if isinstance(value, ir.Const):
            return format_literal(value.value)
        if isinstance(value, ir.Call):
            args = ", ".join(self.render(arg) for arg in value.args)
            return f"{self.render(value.callee)}({args})"
        if isinstance(value, ir.Extract):
            if value.index == 1 and isinstance(value.base, ir.TypeAssert):
                probe = value.base
                return f"is[{probe.asserted}]?({self.render(probe.operand)})"
            return f"{self.render(value.base)}@{value.index}"
        if isinstance(value, ir.MakeInterface):
            return self.render(value.operand)
        if isinstance(value, ir.Parameter):
            return f"PARAM.{value.name}"
        if isinstance(value, ir.Slice):
            literal = self._slice_literal(value)
            if literal is not None:
                return literal
        if isinstance(value, ir.FieldAddr):
            struct = value.struct
            if struct is None or not 0 <= value.field < len(struct.fields):
                raise ControlFlowShapeError(f"field {value.field} of a non-struct or short struct pointer")
            return f"{self.render(value.base)}.{struct.field(value.field).name}"
        if isinstance(value, ir.UnOp):
            if value.op == ir.DEREF:
                if isinstance(value.operand, ir.Alloc):
                    cell = self.heap.cell_of(value.operand)
                    if cell is not None:
                        with self._expanding(value.operand, f"%{value.operand.name} contains itself"):
                            return self._composite_literal(cell)
                loaded, populated = self.heap.load(value.operand)
                if populated and loaded is not None:
                    with self._expanding(value, f"load of {format_value(value.operand)} yields itself"):
                        return self.render(loaded)
            return f"{value.op} {self.render(value.operand)}"
        return unrecognized(value)

    @contextmanager
    def _expanding(self, key: ir.Value, message: str) -> Iterator[None]:
        if key in self._active:
            alloc = key.name if isinstance(key, ir.Alloc) else None
            raise ControlFlowShapeError(f"cyclic value: {message}", alloc=alloc)
        self._active.add(key)
        try:
            yield
        finally:
            self._active.discard(key)

    def _composite_literal(self, cell: Cell) -> str:
        items = cell.items()
        if cell.is_complete():
            elems = ", ".join(self.render(v) for _, v in items if v is not None)
        else:
            elems = ", ".join(f"{offset}: {self.render(v)}" for offset, v in items if v is not None)
        return f"{cell.type}{{{elems}}}"

    def _slice_literal(self, value: ir.Slice) -> Optional[str]:
        base = value.base
        if not isinstance(base, ir.Alloc):
            return None
        cell = self.heap.cell_of(base)
        if cell is None:
            return None
        unset = cell.unset()
        if unset:
            raise ControlFlowShapeError(
                f"slice over partially initialized %{base.name}: offsets {unset} unset",
                alloc=base.name,
            )
        with self._expanding(base, f"%{base.name} contains itself"):
            elems = ", ".join(self.render(v) for _, v in cell.items() if v is not None)
        return f"{value.type}{{{elems}}}"


class BodyRenderer:
    """Renders a function body by structural recursion over its CFG."""

    def __init__(self, fn: ir.Function, exprs: ExprRenderer, indent: str = "\t") -> None:
        self.fn = fn
        self.exprs = exprs
        self.indent = indent

    def render(self, block: Optional[str] = None) -> str:
        out: List[str] = []
        self._walk(block or self.fn.entry, 0, out, set())
        return "".join(out)

    def _walk(self, name: str, depth: int, out: List[str], visited: Set[str]) -> None:
        if name in visited:
            raise ControlFlowShapeError(
                f"block {name!r} reached more than once", function=self.fn.name, block=name
            )
        visited.add(name)
        block = self.fn.blocks.get(name)
        if block is None:
            raise ControlFlowShapeError(f"unknown block {name!r}", function=self.fn.name)
        term = block.terminator
        pad = self.indent * depth
        try:
            if isinstance(term, ir.If):
                out.append(f"{pad}if ({self.exprs.render(term.cond)}) {{\n")
                self._walk(term.then, depth + 1, out, visited)
                out.append(f"{pad}}} else {{\n")
                self._walk(term.els, depth + 1, out, visited)
                out.append(f"{pad}}}\n")
            elif isinstance(term, ir.Jump):
                self._walk(term.target, depth, out, visited)
            elif isinstance(term, ir.Return):
                result = "ZERO" if is_static_zero(term.value) else self.exprs.render(term.value)
                out.append(f"{pad}return ({result})\n")
            elif isinstance(term, ir.Panic):
                out.append(f"{pad}panic({self.exprs.render(term.value)})\n")
            elif term is None:
                raise ControlFlowShapeError("block is missing a terminator")
            else:
                raise ControlFlowShapeError(
                    f"unexpected terminator: {format_term(term)} ({type(term).__name__})"
                )
        except ReconError as err:
            raise err.locate(function=self.fn.name, block=name)
