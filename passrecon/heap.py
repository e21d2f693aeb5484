"""Write-once memory model for one function's stack allocations.

Every allocation is expanded up front into the leaf slots of its type, keyed
by byte offset. Stores may only fill a declared, still-empty slot; there is no
overwrite. After all stores are applied the heap is only read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from . import ir
from .address import AddressResolver
from .errors import MemoryDisciplineError
from .ir_printer import format_value
from .layout import LayoutProvider
from .types import ArrayType, StructType, Type

_log = logging.getLogger(__name__)


@dataclass
class Cell:
    type: Type
    slots: Dict[int, Optional[ir.Value]] = field(default_factory=dict)

    def declare(self, base: int, typ: Type, layout: LayoutProvider) -> None:
        """Declare one empty slot per leaf of `typ`, starting at `base`."""
        if isinstance(typ, ArrayType) and typ.length is not None:
            if typ.length == 0:
                return
            elem_size = layout.sizeof(typ.elem)
            if elem_size == 0:
                return
            for i in range(typ.length):
                self.declare(base + i * elem_size, typ.elem, layout)
        elif isinstance(typ, StructType):
            for offset, fld in zip(layout.offsetsof(typ), typ.fields):
                self.declare(base + offset, fld.type, layout)
        else:
            self.slots[base] = None

    def offsets(self) -> List[int]:
        return sorted(self.slots)

    def items(self) -> List[Tuple[int, Optional[ir.Value]]]:
        return [(offset, self.slots[offset]) for offset in self.offsets()]

    def unset(self) -> List[int]:
        return [offset for offset, value in self.items() if value is None]

    def is_complete(self) -> bool:
        return all(value is not None for value in self.slots.values())


class Heap:
    def __init__(self, layout: LayoutProvider) -> None:
        self.layout = layout
        self.resolver = AddressResolver(layout)
        self.cells: Dict[ir.Alloc, Cell] = {}

    def alloc(self, alloc: ir.Alloc) -> Cell:
        if alloc in self.cells:
            raise MemoryDisciplineError(f"allocation %{alloc.name} registered twice", alloc=alloc.name)
        cell = Cell(type=alloc.allocated)
        cell.declare(0, alloc.allocated, self.layout)
        _log.debug("offsets: %s => %s", alloc.type, cell.offsets())
        self.cells[alloc] = cell
        return cell

    def store(self, addr: ir.Value, value: ir.Value) -> None:
        alloc, offset = self.resolver.resolve(addr)
        cell = self._cell(alloc)
        if offset not in cell.slots:
            raise MemoryDisciplineError(
                f"offset {offset} not valid within %{alloc.name} ({alloc.type}); {cell.offsets()}",
                alloc=alloc.name,
            )
        old = cell.slots[offset]
        if old is not None:
            raise MemoryDisciplineError(
                f"offset {offset} within %{alloc.name} already initialized to {format_value(old)}",
                alloc=alloc.name,
            )
        cell.slots[offset] = value
        _log.debug("store %%%s+%d <- %s", alloc.name, offset, format_value(value))

    def load(self, addr: ir.Value) -> Tuple[Optional[ir.Value], bool]:
        """Return the slot's value and whether it has been populated."""
        alloc, offset = self.resolver.resolve(addr)
        cell = self._cell(alloc)
        if offset not in cell.slots:
            raise MemoryDisciplineError(
                f"load of offset {offset} not valid within %{alloc.name} ({alloc.type}); {cell.offsets()}",
                alloc=alloc.name,
            )
        value = cell.slots[offset]
        return value, value is not None

    def cell_of(self, alloc: ir.Alloc) -> Optional[Cell]:
        return self.cells.get(alloc)

    def describe(self) -> List[str]:
        lines = []
        for alloc, cell in self.cells.items():
            contents = ", ".join(
                f"{offset}: {format_value(value) if value is not None else '<unset>'}"
                for offset, value in cell.items()
            )
            lines.append(f"%{alloc.name}: {cell.type} {{{contents}}}")
        return lines

    def _cell(self, alloc: ir.Alloc) -> Cell:
        cell = self.cells.get(alloc)
        if cell is None:
            raise MemoryDisciplineError(f"no allocation for %{alloc.name}", alloc=alloc.name)
        return cell
