"""Structural checks over a function's CFG, run before anything is rendered.

Reconstruction only handles tree-shaped control flow: starting at the entry,
every reachable block has exactly one incoming edge (the entry has none), so
loops and merges are rejected outright. Effect instructions are rejected
wherever they appear, reachable or not.
"""

from __future__ import annotations

from typing import Dict, List

from . import ir
from .errors import ControlFlowShapeError, UnsupportedEffectError
from .ir_printer import format_instr, format_term


def successors(term: ir.Terminator) -> List[str]:
    if isinstance(term, ir.If):
        return [term.then, term.els]
    if isinstance(term, ir.Jump):
        return [term.target]
    if isinstance(term, (ir.Return, ir.Panic)):
        return []
    raise ControlFlowShapeError(f"unexpected terminator: {format_term(term)} ({type(term).__name__})")


def _line(loc: ir.Location) -> int | None:
    return loc.line or None


def reject_effects(fn: ir.Function) -> None:
    for block in fn.blocks.values():
        for instr in block.instructions:
            if isinstance(instr, ir.EffectInstruction):
                raise UnsupportedEffectError(
                    f"{instr.mnemonic} is not supported",
                    function=fn.name,
                    block=block.name,
                    instr=format_instr(instr),
                    line=_line(instr.loc),
                )


def check_tree_shape(fn: ir.Function) -> List[str]:
    """Validate the reachable CFG and return its blocks in walk order."""
    if fn.entry not in fn.blocks:
        raise ControlFlowShapeError(f"entry block {fn.entry!r} missing", function=fn.name)
    preds: Dict[str, List[str]] = {fn.entry: []}
    order: List[str] = []
    work: List[str] = [fn.entry]
    while work:
        name = work.pop()
        order.append(name)
        block = fn.blocks[name]
        if block.terminator is None:
            raise ControlFlowShapeError("block is missing a terminator", function=fn.name, block=name)
        try:
            succs = successors(block.terminator)
        except ControlFlowShapeError as err:
            raise err.locate(function=fn.name, block=name)
        for succ in succs:
            if succ not in fn.blocks:
                raise ControlFlowShapeError(
                    f"edge targets unknown block {succ!r}", function=fn.name, block=name
                )
            if succ == fn.entry:
                raise ControlFlowShapeError(
                    f"entry block {succ!r} is a branch target (loop)", function=fn.name, block=name
                )
            if succ in preds:
                seen = preds[succ] + [name]
                raise ControlFlowShapeError(
                    f"block {succ!r} reached from more than one predecessor ({', '.join(seen)})",
                    function=fn.name,
                    block=succ,
                )
            preds[succ] = [name]
        # Visit "then" before "else" so walk order matches rendering order.
        work.extend(reversed(succs))
    return order
