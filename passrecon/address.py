from __future__ import annotations

from typing import Tuple

from . import ir
from .errors import ControlFlowShapeError, UnconstrainedIndexError
from .ir_printer import format_value
from .layout import LayoutProvider


def const_int(value: ir.Value) -> int:
    """Return the integer behind a constant index, or fail."""
    if isinstance(value, ir.Const) and isinstance(value.value, int) and not isinstance(value.value, bool):
        return value.value
    raise UnconstrainedIndexError(f"index {format_value(value)} is not a compile-time integer constant")


class AddressResolver:
    """Folds allocation/field/index address chains to (allocation, byte offset)."""

    def __init__(self, layout: LayoutProvider) -> None:
        self.layout = layout

    def resolve(self, addr: ir.Value) -> Tuple[ir.Alloc, int]:
        return self._resolve(addr, 0)

    def _resolve(self, addr: ir.Value, offset: int) -> Tuple[ir.Alloc, int]:
        if isinstance(addr, ir.Alloc):
            return addr, offset
        if isinstance(addr, ir.FieldAddr):
            struct = addr.struct
            if struct is None:
                raise ControlFlowShapeError(
                    f"field address {format_value(addr)} through a non-struct pointer"
                )
            offsets = self.layout.offsetsof(struct)
            if not 0 <= addr.field < len(offsets):
                raise ControlFlowShapeError(
                    f"field index {addr.field} out of range for {struct} ({len(offsets)} fields)"
                )
            return self._resolve(addr.base, offset + offsets[addr.field])
        if isinstance(addr, ir.IndexAddr):
            array = addr.array
            if array is None:
                raise ControlFlowShapeError(
                    f"index address {format_value(addr)} through a non-array pointer"
                )
            index = const_int(addr.index)
            return self._resolve(addr.base, offset + index * self.layout.sizeof(array.elem))
        raise ControlFlowShapeError(
            f"not an address expression: {format_value(addr)} ({type(addr).__name__})"
        )
