from __future__ import annotations

import pytest

from passrecon.errors import (
    ControlFlowShapeError,
    LayoutError,
    MemoryDisciplineError,
    ParseError,
    ReconError,
    UnconstrainedIndexError,
    UnsupportedEffectError,
)


def test_message_without_context() -> None:
    assert str(LayoutError("no size for opaque")) == "no size for opaque"


def test_context_suffix() -> None:
    err = MemoryDisciplineError(
        "offset 8 within %t0 already initialized to 5",
        function="IfThen",
        block="b0",
        instr="store field(%t0, 1), 7",
        alloc="t0",
    )
    assert str(err) == (
        "offset 8 within %t0 already initialized to 5 "
        "[function IfThen, block b0, instr store field(%t0, 1), 7, alloc t0]"
    )
    assert err.kind == "MemoryDisciplineError"


def test_locate_fills_only_missing_fields() -> None:
    err = ControlFlowShapeError("merge", block="b3")
    assert err.locate(function="F", block="b0", line=4) is err
    assert (err.function, err.block, err.line) == ("F", "b3", 4)


@pytest.mark.parametrize(
    "cls",
    [LayoutError, MemoryDisciplineError, ControlFlowShapeError, UnconstrainedIndexError, UnsupportedEffectError],
)
def test_taxonomy_shares_base(cls: type) -> None:
    with pytest.raises(ReconError):
        raise cls("boom")


def test_parse_error_position() -> None:
    assert str(ParseError("unexpected token", line=3, column=7)) == "3:7: unexpected token"
    assert str(ParseError("unexpected token", line=3)) == "3: unexpected token"
    assert str(ParseError("empty input")) == "empty input"
