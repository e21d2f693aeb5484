from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from . import ir
from .cfg import check_tree_shape, reject_effects
from .errors import ReconError, SignatureError
from .heap import Heap
from .ir_printer import format_instr, format_signature
from .layout import LayoutProvider
from .render import BodyRenderer, ExprRenderer

_log = logging.getLogger(__name__)


@dataclass
class Reconstruction:
    function: ir.Function
    body: str
    trace: List[str] = field(default_factory=list)


@dataclass
class Failure:
    function: str
    error: ReconError


@dataclass
class ModuleReport:
    module: ir.PassModule
    results: List[Reconstruction] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def reconstruct_function(fn: ir.Function, layout: LayoutProvider) -> Reconstruction:
    """Reconstruct one function: reject effects, check shape, fill the heap, render."""
    reject_effects(fn)
    check_tree_shape(fn)
    heap = Heap(layout)
    _populate(fn, heap)
    body = BodyRenderer(fn, ExprRenderer(heap)).render()
    return Reconstruction(function=fn, body=body, trace=heap.describe())


def _populate(fn: ir.Function, heap: Heap) -> None:
    # Every allocation is registered before any store is applied.
    for kind in (ir.Alloc, ir.Store):
        for block in fn.blocks.values():
            for instr in block.instructions:
                if not isinstance(instr, kind):
                    continue
                try:
                    if isinstance(instr, ir.Alloc):
                        heap.alloc(instr)
                    else:
                        heap.store(instr.addr, instr.value)
                except ReconError as err:
                    raise err.locate(
                        function=fn.name,
                        block=block.name,
                        instr=format_instr(instr),
                        alloc=instr.name if isinstance(instr, ir.Alloc) else None,
                        line=instr.loc.line or None,
                    )


def is_reconstructed(name: str) -> bool:
    """Exported per-variant functions only; `Entry` and initializers are skipped."""
    if name == "Entry" or name.startswith("init"):
        return False
    return name[:1].isupper()


def check_entry(module: ir.PassModule) -> None:
    entry = module.functions.get("Entry")
    if entry is None:
        return
    if len(entry.params) != 1 or entry.result is None:
        raise SignatureError(f"weird Entry signature: {format_signature(entry)}", function="Entry")


def check_morph_signature(module: ir.PassModule, fn: ir.Function) -> None:
    """A function named after a source struct takes one parameter per field."""
    struct = module.schema.struct(f"{module.source_lang}.{fn.name}")
    if struct is None:
        return
    if len(fn.params) != len(struct.fields):
        raise SignatureError(
            f"bad signature: cannot morph {len(struct.fields)} fields into {len(fn.params)} parameters",
            function=fn.name,
        )


def reconstruct_module(
    module: ir.PassModule,
    layout: LayoutProvider,
    keep_going: bool = True,
) -> ModuleReport:
    check_entry(module)
    report = ModuleReport(module=module)
    for name, fn in module.functions.items():
        if not is_reconstructed(name):
            report.skipped.append(name)
            continue
        _log.info("reconstructing %s.%s", module.name, name)
        try:
            check_morph_signature(module, fn)
            report.results.append(reconstruct_function(fn, layout))
        except ReconError as err:
            err.locate(function=name)
            if not keep_going:
                raise
            _log.error("%s: %s: %s", module.name, err.kind, err)
            report.failures.append(Failure(function=name, error=err))
    return report
