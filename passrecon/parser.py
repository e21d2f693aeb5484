from __future__ import annotations

import ast
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Set

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedInput

from . import ir
from .errors import ParseError
from .types import (
    BASIC_KINDS,
    BOOL,
    INT,
    STRING,
    UNTYPED_NIL,
    ArrayType,
    BasicType,
    Field,
    InterfaceType,
    OpaqueType,
    PointerType,
    Schema,
    SliceType,
    StructType,
    TupleType,
    Type,
    pointee,
)

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()

_PARSER = Lark(
    _GRAMMAR_SRC,
    parser="lalr",
    start="start",
    propagate_positions=True,
    maybe_placeholders=False,
)


def parse_module(source: str, path: Optional[str] = None) -> ir.PassModule:
    try:
        tree = _PARSER.parse(source)
    except UnexpectedInput as err:
        message = str(err).strip().splitlines()[0] if str(err).strip() else "syntax error"
        raise ParseError(
            message,
            line=getattr(err, "line", None),
            column=getattr(err, "column", None),
        ) from err
    return _ModuleBuilder(path).build(tree)


def parse_file(path: Path) -> ir.PassModule:
    return parse_module(path.read_text(), path=str(path))


def _name(node: Tree | Token) -> str:
    if isinstance(node, Tree):
        data = node.data
        if isinstance(data, Token):
            return data.value
        return data
    return node.type


def _error(message: str, node: Tree | Token | None) -> ParseError:
    if isinstance(node, Token):
        return ParseError(message, line=node.line, column=node.column)
    if isinstance(node, Tree) and not node.meta.empty:
        return ParseError(message, line=node.meta.line, column=node.meta.column)
    return ParseError(message)


class _ModuleBuilder:
    def __init__(self, path: Optional[str]) -> None:
        self.path = path
        self._type_decls: Dict[str, Tree] = {}
        self._resolved: Dict[str, Type] = {}
        self._resolving: Set[str] = set()

    def build(self, tree: Tree) -> ir.PassModule:
        header = tree.children[0]
        name, source_lang, dest_lang = (tok.value for tok in header.children)
        items = [child for child in tree.children[1:] if isinstance(child, Tree)]
        for item in items:
            if _name(item) != "type_decl":
                continue
            name_tok = item.children[0]
            if name_tok.value in self._type_decls:
                raise _error(f"type {name_tok.value} declared twice", name_tok)
            self._type_decls[name_tok.value] = item
        schema = Schema()
        for type_name, decl in self._type_decls.items():
            schema.define(type_name, self._resolve_named(type_name, decl.children[0]))
        module = ir.PassModule(
            name=name,
            source_lang=source_lang,
            dest_lang=dest_lang,
            schema=schema,
            path=self.path,
        )
        for item in items:
            if _name(item) != "func_decl":
                continue
            fn = _FunctionBuilder(self, item).build()
            if fn.name in module.functions:
                raise _error(f"function {fn.name} declared twice", item)
            module.functions[fn.name] = fn
        return module

    def loc(self, node: Tree | Token) -> ir.Location:
        file = self.path or "<unknown>"
        if isinstance(node, Token):
            return ir.Location(file=file, line=node.line or 0, column=node.column or 0)
        if node.meta.empty:
            return ir.Location(file=file)
        return ir.Location(file=file, line=node.meta.line, column=node.meta.column)

    # --- types ---------------------------------------------------------

    def _resolve_named(self, name: str, where: Token) -> Type:
        resolved = self._resolved.get(name)
        if resolved is not None:
            return resolved
        decl = self._type_decls.get(name)
        if decl is None:
            if name in BASIC_KINDS:
                return BasicType(name)
            raise _error(f"unknown type {name}", where)
        if name in self._resolving:
            raise _error(f"recursive type {name}", where)
        self._resolving.add(name)
        body = self.type_of(decl.children[1])
        self._resolving.discard(name)
        resolved = replace(body, name=name)
        self._resolved[name] = resolved
        return resolved

    def type_of(self, tree: Tree) -> Type:
        kind = _name(tree)
        children = tree.children
        if kind == "named_type":
            return self._resolve_named(children[0].value, children[0])
        if kind == "array_type":
            return ArrayType(self.type_of(children[1]), int(children[0].value))
        if kind == "slice_type":
            return SliceType(self.type_of(children[0]))
        if kind == "pointer_type":
            return PointerType(self.type_of(children[0]))
        if kind == "struct_type":
            fields: List[Field] = []
            seen: Set[str] = set()
            for fld in children:
                name_tok = fld.children[0]
                if name_tok.value in seen:
                    raise _error(f"duplicate field {name_tok.value}", name_tok)
                seen.add(name_tok.value)
                fields.append(Field(name_tok.value, self.type_of(fld.children[1])))
            return StructType(tuple(fields))
        if kind == "interface_type":
            return InterfaceType()
        if kind == "opaque_type":
            return OpaqueType()
        raise TypeError(f"Unexpected type node: {kind}")


class _FunctionBuilder:
    def __init__(self, module: _ModuleBuilder, tree: Tree) -> None:
        self.module = module
        self.tree = tree
        self.params: Dict[str, ir.Parameter] = {}
        self.locals: Dict[str, ir.Value] = {}

    def build(self) -> ir.Function:
        children = list(self.tree.children)
        name_tok = children[0]
        result: Optional[Type] = None
        blocks: Dict[str, ir.BasicBlock] = {}
        for child in children[1:]:
            kind = _name(child)
            if kind == "param":
                self._add_param(child)
            elif kind == "block":
                block = self._build_block(child)
                if block.name in blocks:
                    raise _error(f"block {block.name} declared twice", child)
                blocks[block.name] = block
            else:
                result = self.module.type_of(child)
        return ir.Function(
            name=name_tok.value,
            params=list(self.params.values()),
            result=result,
            entry=next(iter(blocks)),
            blocks=blocks,
            source=self.module.path,
            loc=self.module.loc(name_tok),
        )

    def _add_param(self, tree: Tree) -> None:
        name_tok = tree.children[0]
        if name_tok.value in self.params:
            raise _error(f"duplicate parameter {name_tok.value}", name_tok)
        self.params[name_tok.value] = ir.Parameter(name_tok.value, self.module.type_of(tree.children[1]))

    def _define(self, local: Token, value: ir.Value) -> None:
        if local.value in self.locals:
            raise _error(f"value {local.value} defined twice", local)
        self.locals[local.value] = value

    # --- blocks --------------------------------------------------------

    def _build_block(self, tree: Tree) -> ir.BasicBlock:
        label = tree.children[0]
        block = ir.BasicBlock(name=label.value)
        for stmt in tree.children[1:-1]:
            self._build_stmt(stmt, block)
        block.terminator = self._build_terminator(tree.children[-1])
        return block

    def _build_stmt(self, tree: Tree, block: ir.BasicBlock) -> None:
        kind = _name(tree)
        loc = self.module.loc(tree)
        if kind == "bind":
            local, value_def = tree.children
            if _name(value_def) == "alloc":
                alloc = ir.Alloc(name=local.value[1:], allocated=self.module.type_of(value_def.children[0]), loc=loc)
                block.instructions.append(alloc)
                self._define(local, alloc)
                return
            self._define(local, self._value_def(value_def))
            return
        if kind == "store":
            addr, value = (self._operand(c) for c in tree.children)
            block.instructions.append(ir.Store(addr=addr, value=value, loc=loc))
            return
        if kind in ("effect", "bound_effect"):
            children = list(tree.children)
            local = children.pop(0) if kind == "bound_effect" else None
            effect_tok = children[0]
            operands = tuple(self._operand(o) for o in children[1].children) if len(children) > 1 else ()
            instr = ir.EFFECTS[effect_tok.value](
                operands=operands,
                name=local.value[1:] if local is not None else None,
                loc=loc,
            )
            block.instructions.append(instr)
            if local is not None:
                self._define(local, instr)
            return
        raise TypeError(f"Unexpected statement node: {kind}")

    def _build_terminator(self, tree: Tree) -> ir.Terminator:
        kind = _name(tree)
        loc = self.module.loc(tree)
        children = tree.children
        if kind == "if_term":
            return ir.If(cond=self._operand(children[0]), then=children[1].value, els=children[2].value, loc=loc)
        if kind == "jump_term":
            return ir.Jump(target=children[0].value, loc=loc)
        if kind == "return_term":
            return ir.Return(value=self._operand(children[0]), loc=loc)
        if kind == "panic_term":
            return ir.Panic(value=self._operand(children[0]), loc=loc)
        raise TypeError(f"Unexpected terminator node: {kind}")

    # --- values --------------------------------------------------------

    def _value_def(self, tree: Tree) -> ir.Value:
        kind = _name(tree)
        children = tree.children
        if kind == "field_addr":
            base = self._operand(children[0])
            index = int(children[1].value)
            struct = pointee(_type_of(base))
            if not isinstance(struct, StructType):
                raise _error(f"field of non-struct pointer ({_type_of(base)})", tree)
            if not 0 <= index < len(struct.fields):
                raise _error(f"field index {index} out of range for {struct}", children[1])
            return ir.FieldAddr(base=base, field=index)
        if kind == "index_addr":
            base = self._operand(children[0])
            if not isinstance(pointee(_type_of(base)), ArrayType):
                raise _error(f"index of non-array pointer ({_type_of(base)})", tree)
            return ir.IndexAddr(base=base, index=self._operand(children[1]))
        if kind == "unop":
            op = ast.literal_eval(children[0].value)
            operand = self._operand(children[1])
            if op == ir.DEREF and not isinstance(_type_of(operand), PointerType):
                raise _error(f"dereference of non-pointer ({_type_of(operand)})", tree)
            return ir.UnOp(op=op, operand=operand)
        if kind == "binop":
            op = ast.literal_eval(children[0].value)
            return ir.BinOp(op=op, left=self._operand(children[1]), right=self._operand(children[2]))
        if kind == "call":
            callee = self._operand(children[0])
            args: tuple = ()
            result: Type = TupleType()
            for child in children[1:]:
                if _name(child) == "operands":
                    args = tuple(self._operand(a) for a in child.children)
                else:
                    result = self.module.type_of(child)
            return ir.Call(callee=callee, args=args, type=result)
        if kind == "type_assert":
            return ir.TypeAssert(operand=self._operand(children[0]), asserted=self.module.type_of(children[1]))
        if kind == "extract":
            return ir.Extract(base=self._operand(children[0]), index=int(children[1].value))
        if kind == "make_iface":
            return ir.MakeInterface(operand=self._operand(children[0]), type=self.module.type_of(children[1]))
        if kind == "slice":
            base = self._operand(children[0])
            if not isinstance(pointee(_type_of(base)), ArrayType):
                raise _error(f"slice of non-array pointer ({_type_of(base)})", tree)
            return ir.Slice(base=base)
        if kind == "const":
            literal = self._operand(children[0])
            assert isinstance(literal, ir.Const)
            return ir.Const(value=literal.value, type=self.module.type_of(children[1]))
        raise TypeError(f"Unexpected value node: {kind}")

    def _operand(self, node: Tree) -> ir.Value:
        kind = _name(node)
        if kind == "local":
            tok = node.children[0]
            value = self.locals.get(tok.value)
            if value is None:
                raise _error(f"undefined value {tok.value}", tok)
            return value
        if kind == "param_ref":
            tok = node.children[0]
            param = self.params.get(tok.value)
            if param is None:
                raise _error(f"undefined name {tok.value}", tok)
            return param
        if kind == "funcref":
            return ir.FuncRef(node.children[0].value[1:])
        if kind == "int_lit":
            return ir.Const(int(node.children[0].value), INT)
        if kind == "str_lit":
            return ir.Const(ast.literal_eval(node.children[0].value), STRING)
        if kind == "nil_lit":
            return ir.Const(None, UNTYPED_NIL)
        if kind == "true_lit":
            return ir.Const(True, BOOL)
        if kind == "false_lit":
            return ir.Const(False, BOOL)
        raise TypeError(f"Unexpected operand node: {kind}")


def _type_of(value: ir.Value) -> Type:
    return value.type  # type: ignore[attr-defined]
