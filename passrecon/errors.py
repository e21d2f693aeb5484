from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class ReconError(Exception):
    """Base for every failure that aborts reconstruction of one function.

    Lower layers fill in the context they know; the per-function pipeline
    completes the rest via `locate` as the error propagates.
    """

    message: str
    function: Optional[str] = None
    block: Optional[str] = None
    instr: Optional[str] = None
    alloc: Optional[str] = None
    line: Optional[int] = None

    def __str__(self) -> str:
        context = []
        if self.function is not None:
            context.append(f"function {self.function}")
        if self.block is not None:
            context.append(f"block {self.block}")
        if self.instr is not None:
            context.append(f"instr {self.instr}")
        if self.alloc is not None:
            context.append(f"alloc {self.alloc}")
        if self.line is not None:
            context.append(f"line {self.line}")
        if not context:
            return self.message
        return f"{self.message} [{', '.join(context)}]"

    @property
    def kind(self) -> str:
        return type(self).__name__

    def locate(
        self,
        function: Optional[str] = None,
        block: Optional[str] = None,
        instr: Optional[str] = None,
        alloc: Optional[str] = None,
        line: Optional[int] = None,
    ) -> "ReconError":
        """Fill in missing context fields and return self for re-raising."""
        if self.function is None:
            self.function = function
        if self.block is None:
            self.block = block
        if self.instr is None:
            self.instr = instr
        if self.alloc is None:
            self.alloc = alloc
        if self.line is None:
            self.line = line
        return self


class LayoutError(ReconError):
    pass


class MemoryDisciplineError(ReconError):
    pass


class ControlFlowShapeError(ReconError):
    pass


class UnconstrainedIndexError(ReconError):
    pass


class UnsupportedEffectError(ReconError):
    pass


class SignatureError(ReconError):
    pass


@dataclass
class ParseError(ReconError):
    column: Optional[int] = None

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        where = f"{self.line}:{self.column}" if self.column is not None else str(self.line)
        return f"{where}: {self.message}"
