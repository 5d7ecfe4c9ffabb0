"""bfvm entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from extensions import BFExtensionError, RuntimeServices, load_runtime_services
from interpreter import BFRuntimeError, Interpreter, TracebackFormatter, text_input
from lexer import BFParseError
from tape import TAPE_SIZE
from translator import Instruction, compile_program


def run_repl(interpreter: Interpreter) -> int:
    print("\x1b[38;2;153;221;255mbfvm\033[0m REPL. Enter code, blank line to run buffer.") # "bfvm" in light blue
    had_output = False
    sink = interpreter.output_sink

    def _output_sink(value: int) -> None:
        nonlocal had_output
        had_output = True
        sink(value)

    interpreter.output_sink = _output_sink
    # input() buffers sys.stdin ahead, so ',' reads through the same text layer.
    interpreter.input_provider = text_input(sys.stdin)
    buffer: List[str] = []

    while True:
        prompt = "\x1b[38;2;153;221;255m>>>\033[0m " if not buffer else "\x1b[38;2;153;221;255m..>\033[0m " # light blue
        if had_output:
            # Ensure prompt starts on a fresh line if the program printed anything
            print()
            had_output = False
        try:
            line = input(prompt)
        except EOFError:
            print()
            break

        stripped = line.strip()

        if not buffer and stripped != "":
            try:
                program = compile_program(line, "<string>")
            except BFParseError:
                # An unbalanced line starts a multi-line buffer
                buffer.append(line)
                continue
            _execute_entry(interpreter, program)
            continue

        if stripped == "" and buffer:
            source_text = "\n".join(buffer)
            buffer.clear()
            try:
                program = compile_program(source_text, "<string>")
            except BFParseError as error:
                print(f"ParseError: {error}", file=sys.stderr)
                continue
            _execute_entry(interpreter, program)
            continue

        if stripped != "":
            buffer.append(line)
    return 0


def _execute_entry(interpreter: Interpreter, program: List[Instruction]) -> None:
    # The tape is shared by every entry; a failed entry leaves it as it was at the fault.
    try:
        interpreter.execute(program)
    except BFRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=interpreter.verbose), file=sys.stderr)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="bfvm reference interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Record every step and show tape snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--tape-size", type=int, default=TAPE_SIZE, help=f"Number of tape cells (default {TAPE_SIZE})")
    parser.add_argument("--tape-start", type=int, default=None, help="Initial pointer position (default: middle of the tape)")
    parser.add_argument("--stall-on-input", action="store_true", help="Keep the program counter on ',' after a read, so reads repeat until input runs out")
    parser.add_argument("--ext", action="append", default=[], metavar="PATH", help="Load an extension (.py) or extension list (.bfx); repeatable")
    return parser


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        services: RuntimeServices = load_runtime_services(args.ext)
    except BFExtensionError as error:
        print(f"ExtensionError: {error}", file=sys.stderr)
        return 1

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        source_text = ""
        filename = "<string>"
    elif args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    try:
        interpreter = Interpreter(
            source=source_text,
            filename=filename,
            verbose=args.verbose,
            tape_size=args.tape_size,
            tape_start=args.tape_start,
            advance_after_input=not args.stall_on_input,
            services=services,
        )
    except ValueError as exc:
        print(f"ConfigError: {exc}", file=sys.stderr)
        return 1

    if args.program is None:
        return run_repl(interpreter)

    try:
        interpreter.run()
    except BFParseError as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return 1
    except BFRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
