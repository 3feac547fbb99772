"""SASM entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional

import numpy as np

from hooks import HookRegistry
from interpreter import SASM_VERSION, ExitSignal, Interpreter, SASMRuntimeError, TracebackFormatter
from lexer import SASMParseError, SASMParseErrorGroup
from parser import JumpInstruction, Parser, SourceLocation


PROMPT = ">>> "
REPL_FILENAME = "<repl>"


def format_parse_error(error: SASMParseError) -> str:
    where = []
    if error.line is not None:
        where.append(f"line {error.line}")
    if error.column is not None:
        where.append(f"column {error.column}")
    if not where:
        return f"ParseError: {error}"
    return f"ParseError on {', '.join(where)}: {error}"


def report_parse_errors(group: SASMParseErrorGroup) -> None:
    for error in group.errors:
        print(format_parse_error(error), file=sys.stderr)


def install_tracer(hooks: HookRegistry) -> None:
    """Echo every executed instruction to stderr."""

    @hooks.event("before_instruction", owner="trace")
    def _trace(interpreter: Interpreter, instruction, location: Optional[SourceLocation]) -> None:
        line = location.line if location else "-"
        print(f"[trace] {interpreter.steps:06d} {line}: {instruction}", file=sys.stderr)


def run_repl(
    verbose: bool,
    *,
    hooks: Optional[HookRegistry] = None,
    rng: Optional[np.random.Generator] = None,
    max_steps: Optional[int] = None,
) -> int:
    print("SASM Interpreter")
    print(f"v{SASM_VERSION}\n")
    mid_line = False

    def _output_sink(text: str) -> None:
        nonlocal mid_line
        if text:
            mid_line = not text.endswith("\n")
        sys.stdout.write(text)
        sys.stdout.flush()

    interpreter = Interpreter(
        filename=REPL_FILENAME,
        verbose=verbose,
        output_sink=_output_sink,
        rng=rng,
        hooks=hooks,
        max_steps=max_steps,
    )
    parser = Parser("", REPL_FILENAME)
    formatter = TracebackFormatter(interpreter)
    line_number = 0

    while True:
        # SAY leaves the cursor mid-line; start the prompt on a fresh one.
        if mid_line:
            print()
            mid_line = False
        try:
            line = input(PROMPT)
        except EOFError:
            print()
            break
        line_number += 1

        stripped = line.strip()
        if stripped == "":
            continue

        try:
            instruction = parser.parse_line(stripped)
        except SASMParseError as error:
            error.line = line_number
            print(format_parse_error(error), file=sys.stderr)
            continue

        if isinstance(instruction, JumpInstruction):
            print("Jumps are not supported in REPL mode", file=sys.stderr)
            continue

        location = SourceLocation(file=REPL_FILENAME, line=line_number, statement=stripped)
        # The step limit applies to each input line on its own.
        interpreter.steps = 0
        try:
            interpreter.execute_instruction(instruction, location)
        except ExitSignal as sig:
            return sig.code
        except SASMRuntimeError as error:
            print(formatter.format_text(error, verbose=interpreter.verbose), file=sys.stderr)

    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="SASM reference interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit env snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--trace", action="store_true", help="Echo each executed instruction to stderr")
    parser.add_argument("--max-steps", type=int, default=None, help="Halt after this many executed instructions")
    parser.add_argument("--seed", type=int, default=None, help="Seed for RNG")
    parser.add_argument("--version", action="version", version=f"SASM {SASM_VERSION}")
    args = parser.parse_args(argv)

    hooks = HookRegistry()
    if args.trace:
        install_tracer(hooks)

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        return run_repl(
            verbose=args.verbose,
            hooks=hooks,
            rng=np.random.default_rng(args.seed),
            max_steps=args.max_steps,
        )

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    interpreter = Interpreter(
        source=source_text,
        filename=filename,
        verbose=args.verbose,
        rng=np.random.default_rng(args.seed),
        hooks=hooks,
        max_steps=args.max_steps,
    )
    try:
        interpreter.run()
    except SASMParseErrorGroup as group:
        report_parse_errors(group)
        return 1
    except ExitSignal as sig:
        return sig.code
    except SASMRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    return 0


def main() -> int:
    return run_cli()


if __name__ == "__main__":
    raise SystemExit(run_cli())
