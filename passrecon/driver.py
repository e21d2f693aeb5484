#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, TextIO

from .errors import LayoutError, ParseError, ReconError
from .ir_printer import format_module, format_signature
from .layout import LayoutProvider, StdSizes, TargetLayout
from .parser import parse_file
from .reconstruct import ModuleReport, reconstruct_module

_log = logging.getLogger(__name__)

LAYOUTS = ("host", "gc64", "gc32")


@dataclass
class DriverOptions:
    paths: List[Path] = field(default_factory=list)
    layout: str = "host"
    data_layout: Optional[str] = None
    keep_going: bool = True
    trace: bool = False
    dump_ir: bool = False
    log_level: str = "WARNING"


def build_layout(options: DriverOptions) -> LayoutProvider:
    if options.data_layout:
        return TargetLayout(options.data_layout)
    if options.layout == "gc64":
        return StdSizes(word_size=8, max_align=8)
    if options.layout == "gc32":
        return StdSizes(word_size=4, max_align=4)
    if options.layout == "host":
        return TargetLayout.host()
    raise ValueError(f"unknown layout {options.layout!r}")


def collect_paths(paths: List[Path]) -> List[Path]:
    """Expand directories to the `.pir` listings they contain, sorted."""
    files: List[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(path.glob("*.pir")))
        elif path.is_file():
            files.append(path)
        else:
            raise FileNotFoundError(f"no such file or directory: {path}")
    return files


def _indent(body: str, prefix: str = "\t") -> str:
    return "".join(prefix + line for line in body.splitlines(keepends=True))


def format_report(report: ModuleReport, trace: bool = False) -> str:
    module = report.module
    source = Path(module.path).name if module.path else module.name
    out = [f"### {source}: {module.source_lang} -> {module.dest_lang}\n"]
    for result in report.results:
        out.append(f"{format_signature(result.function)}\n")
        out.append("{{{\n")
        out.append(_indent(result.body))
        out.append("}}}\n")
        if trace:
            out.extend(f"// {line}\n" for line in result.trace)
    return "".join(out)


def run(options: DriverOptions, out: Optional[TextIO] = None, err: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    err = err or sys.stderr
    try:
        files = collect_paths(options.paths)
    except FileNotFoundError as exc:
        print(f"passrecon: {exc}", file=err)
        return 2
    try:
        layout = build_layout(options)
    except LayoutError as exc:
        print(f"passrecon: {exc}", file=err)
        return 2
    _log.info("layout: %r", layout)
    status = 0
    for path in files:
        _log.info("reading %s", path)
        try:
            module = parse_file(path)
        except ParseError as exc:
            print(f"passrecon: {path}:{exc}", file=err)
            return 2
        if options.dump_ir:
            print(format_module(module), file=out)
        try:
            report = reconstruct_module(module, layout, keep_going=options.keep_going)
        except ReconError as exc:
            print(f"passrecon: {path}: {exc.kind}: {exc}", file=err)
            if not options.keep_going:
                return 1
            status = 1
            continue
        out.write(format_report(report, trace=options.trace))
        if not report.ok:
            status = 1
    return status


def parse_args(argv: Optional[List[str]] = None) -> DriverOptions:
    ap = argparse.ArgumentParser(
        prog="passrecon",
        description="passrecon: reconstruct declarative pass bodies from their CFG listings",
    )
    ap.add_argument("paths", type=Path, nargs="+", metavar="PATH", help="Pass listing (.pir) or directory of listings")
    ap.add_argument("--layout", choices=LAYOUTS, default="host", help="Size/alignment rules (default: host target)")
    ap.add_argument("--data-layout", help="Explicit LLVM data layout string; overrides --layout")
    mode = ap.add_mutually_exclusive_group()
    mode.add_argument(
        "--keep-going",
        dest="keep_going",
        action="store_true",
        default=True,
        help="Report a failing function and continue with the rest (default)",
    )
    mode.add_argument(
        "--fail-fast",
        dest="keep_going",
        action="store_false",
        help="Stop at the first function that cannot be reconstructed",
    )
    ap.add_argument("--trace", action="store_true", help="Print each function's allocation contents after its body")
    ap.add_argument("--dump-ir", action="store_true", help="Print the parsed listing before reconstruction")
    ap.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Diagnostics written to stderr (default: WARNING)",
    )
    args = ap.parse_args(argv)
    return DriverOptions(
        paths=list(args.paths),
        layout=args.layout,
        data_layout=args.data_layout,
        keep_going=args.keep_going,
        trace=args.trace,
        dump_ir=args.dump_ir,
        log_level=args.log_level,
    )


def main(argv: Optional[List[str]] = None) -> int:
    options = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, options.log_level),
        format="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    return run(options)


if __name__ == "__main__":
    raise SystemExit(main())
