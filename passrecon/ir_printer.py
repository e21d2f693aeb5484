from __future__ import annotations

import json

from . import ir
from .types import Schema


def format_literal(value: object) -> str:
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value)
    return str(value)


def format_value(value: ir.Value) -> str:
    """Operand form of a value; anonymous values print inline."""
    if isinstance(value, ir.Alloc):
        return f"%{value.name}"
    if isinstance(value, ir.Parameter):
        return value.name
    if isinstance(value, ir.Const):
        return format_literal(value.value)
    if isinstance(value, ir.FuncRef):
        return f"@{value.name}"
    if isinstance(value, ir.FieldAddr):
        return f"field({format_value(value.base)}, {value.field})"
    if isinstance(value, ir.IndexAddr):
        return f"index({format_value(value.base)}, {format_value(value.index)})"
    if isinstance(value, ir.UnOp):
        return f"unop({json.dumps(value.op)}, {format_value(value.operand)})"
    if isinstance(value, ir.BinOp):
        return f"binop({json.dumps(value.op)}, {format_value(value.left)}, {format_value(value.right)})"
    if isinstance(value, ir.Call):
        args = "".join(f", {format_value(a)}" for a in value.args)
        return f"call({format_value(value.callee)}{args})"
    if isinstance(value, ir.TypeAssert):
        return f"typeassert({format_value(value.operand)}, {value.asserted})"
    if isinstance(value, ir.Extract):
        return f"extract({format_value(value.base)}, {value.index})"
    if isinstance(value, ir.MakeInterface):
        return f"makeiface({format_value(value.operand)}, {value.type})"
    if isinstance(value, ir.Slice):
        return f"slice({format_value(value.base)})"
    if isinstance(value, ir.EffectInstruction):
        return f"%{value.name}" if value.name else f"<{value.mnemonic}>"
    return f"<{type(value).__name__}>"


def format_instr(instr: ir.Instruction) -> str:
    if isinstance(instr, ir.Alloc):
        return f"%{instr.name} = alloc {instr.allocated}"
    if isinstance(instr, ir.Store):
        return f"store {format_value(instr.addr)}, {format_value(instr.value)}"
    if isinstance(instr, ir.EffectInstruction):
        operands = ", ".join(format_value(o) for o in instr.operands)
        text = f"{instr.mnemonic}({operands})"
        return f"%{instr.name} = {text}" if instr.name else text
    return "<invalid instr>"


def format_term(term: ir.Terminator) -> str:
    if isinstance(term, ir.If):
        return f"if {format_value(term.cond)} then {term.then} else {term.els}"
    if isinstance(term, ir.Jump):
        return f"jump {term.target}"
    if isinstance(term, ir.Return):
        return f"return {format_value(term.value)}"
    if isinstance(term, ir.Panic):
        return f"panic {format_value(term.value)}"
    return f"<invalid terminator {type(term).__name__}>"


def format_block(block: ir.BasicBlock) -> str:
    lines = [f"{block.name}:"]
    for instr in block.instructions:
        lines.append(f"    {format_instr(instr)}")
    if block.terminator is not None:
        lines.append(f"    {format_term(block.terminator)}")
    return "\n".join(lines)


def format_signature(fn: ir.Function) -> str:
    params = ", ".join(f"{p.name} {p.type}" for p in fn.params)
    result = f" {fn.result}" if fn.result is not None else ""
    return f"func {fn.name}({params}){result}"


def format_function(fn: ir.Function) -> str:
    blocks = "\n".join(format_block(block) for block in fn.blocks.values())
    return f"{format_signature(fn)} {{\n{blocks}\n}}"


def format_schema(schema: Schema) -> str:
    lines = []
    for name in schema:
        typ = schema.lookup(name)
        assert typ is not None
        lines.append(f"type {name} {typ.describe()}")
    return "\n".join(lines)


def format_module(module: ir.PassModule) -> str:
    parts = [f"pass {module.name} : {module.source_lang} -> {module.dest_lang}"]
    if len(module.schema):
        parts.append(format_schema(module.schema))
    parts.extend(format_function(fn) for fn in module.functions.values())
    return "\n\n".join(parts)
