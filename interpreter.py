from __future__ import annotations
import json
import os
import sys
from collections import deque
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Deque, Dict, List, Optional, TextIO

from extensions import HookRegistry, RuntimeServices, StepContext
from tape import TAPE_SIZE, BFRuntimeError, Tape
from translator import (
    DecrementCell,
    Halt,
    IncrementCell,
    InputCell,
    Instruction,
    LoopBegin,
    LoopEnd,
    MovePointerBackward,
    MovePointerForward,
    OutputCell,
    SourceLocation,
    compile_program,
)

InputProvider = Callable[[], Optional[int]]
OutputSink = Callable[[int], None]

# Verbose mode keeps only the most recent steps.
STEP_HISTORY = 1024


class InputExhausted(BFRuntimeError):
    """Input requested but the input channel had no byte left."""


def stream_input(stream: BinaryIO) -> InputProvider:
    """Adapt a binary stream into an input provider returning one byte or None at EOF."""

    def _read() -> Optional[int]:
        data = stream.read(1)
        if not data:
            return None
        return data[0]

    return _read


def text_input(stream: TextIO, encoding: str = "utf-8") -> InputProvider:
    """Input provider over a text stream, for sharing stdin with ``input()``.

    Characters are encoded and handed out one byte at a time.
    """
    pending: Deque[int] = deque()

    def _read() -> Optional[int]:
        if not pending:
            ch = stream.read(1)
            if not ch:
                return None
            pending.extend(ch.encode(encoding))
        return pending.popleft()

    return _read


def stream_output(stream: BinaryIO, *, flush: bool = False) -> OutputSink:
    def _write(value: int) -> None:
        stream.write(bytes((value,)))
        if flush:
            stream.flush()

    return _write


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    pc: int
    rule: str
    source_location: Optional[SourceLocation]
    tape_snapshot: Optional[Dict[str, Any]]


class StateLogger:
    """Counts executed steps; in verbose mode keeps the last ``history`` entries."""

    def __init__(self, verbose: bool, history: int = STEP_HISTORY) -> None:
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=history)
        self.next_state_index = 0

    def record(
        self,
        *,
        pc: int,
        instruction: Instruction,
        tape_snapshot: Optional[Dict[str, Any]] = None,
    ) -> int:
        step_index = self.next_state_index
        self.next_state_index += 1
        if self.verbose:
            self.entries.append(
                StateEntry(
                    step_index=step_index,
                    state_id=f"s_{step_index:06d}",
                    pc=pc,
                    rule=instruction.symbol,
                    source_location=instruction.location,
                    tape_snapshot=tape_snapshot,
                )
            )
        return step_index


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool = False,
        tape_size: int = TAPE_SIZE,
        tape_start: Optional[int] = None,
        advance_after_input: bool = True,
        services: Optional[RuntimeServices] = None,
        input_provider: Optional[InputProvider] = None,
        output_sink: Optional[OutputSink] = None,
    ) -> None:
        self.source = source
        normalized_filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.filename = normalized_filename
        self.verbose = verbose
        self.tape_size = tape_size
        self.tape_start = tape_start
        # With False, ',' leaves the program counter in place and keeps
        # reading until input runs out.
        self.advance_after_input = advance_after_input
        self.services = services or RuntimeServices()
        self.hook_registry: HookRegistry = self.services.hook_registry
        self.input_provider = input_provider or stream_input(sys.stdin.buffer)
        self.output_sink = output_sink or stream_output(sys.stdout.buffer, flush=True)
        self.tape = Tape(tape_size, tape_start)
        self.logger = StateLogger(verbose)
        self.program: List[Instruction] = []
        self.pc = 0

    def parse(self) -> List[Instruction]:
        return compile_program(self.source, self.filename)

    def reset(self) -> None:
        self.tape = Tape(self.tape_size, self.tape_start)
        self.logger = StateLogger(self.verbose)
        self.pc = 0

    def run(self) -> None:
        program = self.parse()
        self.reset()
        self._emit_event("program_start", program)
        self.execute(program)
        self._emit_event("program_end", 0)

    def execute(self, program: List[Instruction]) -> None:
        """Run a Halt-terminated instruction list against ``self.tape``."""
        self.program = program
        self.pc = 0
        try:
            self._dispatch_loop(program)
        except BFRuntimeError as error:
            self._annotate(error)
            self._report_error(error)
            raise
        except Exception as exc:
            # Convert unexpected Python-level exceptions into BFRuntimeError
            # so callers (REPL/CLI) can format them as program tracebacks.
            wrapped = BFRuntimeError(f"Internal interpreter error: {exc}", rule="internal")
            self._annotate(wrapped)
            self._report_error(wrapped)
            raise wrapped from exc

    def _report_error(self, error: BFRuntimeError) -> None:
        # A failing on_error hook must not mask the error being reported.
        try:
            self.hook_registry.emit("on_error", self, error)
        except Exception as hook_exc:
            error.__context__ = hook_exc

    def _dispatch_loop(self, program: List[Instruction]) -> None:
        tape = self.tape
        log_step = self._log_step
        has_output_hooks = self.hook_registry.has_handlers("on_output")
        has_input_hooks = self.hook_registry.has_handlers("on_input")
        pc = 0

        while True:
            self.pc = pc
            instruction = program[pc]
            log_step(pc, instruction)
            if isinstance(instruction, IncrementCell):
                tape.increment()
                pc += 1
            elif isinstance(instruction, DecrementCell):
                tape.decrement()
                pc += 1
            elif isinstance(instruction, MovePointerForward):
                tape.move_right()
                pc += 1
            elif isinstance(instruction, MovePointerBackward):
                tape.move_left()
                pc += 1
            elif isinstance(instruction, LoopBegin):
                if tape.is_zero():
                    assert instruction.target is not None, f"unresolved jump target at pc {pc}"
                    pc = instruction.target
                else:
                    pc += 1
            elif isinstance(instruction, LoopEnd):
                if tape.is_zero():
                    pc += 1
                else:
                    pc = instruction.target
            elif isinstance(instruction, OutputCell):
                value = tape.read()
                self.output_sink(value)
                if has_output_hooks:
                    self._emit_event("on_output", value)
                pc += 1
            elif isinstance(instruction, InputCell):
                value = self.input_provider()
                if value is None:
                    raise InputExhausted("Input error: no byte available", rule=",")
                tape.write(value)
                if has_input_hooks:
                    self._emit_event("on_input", value)
                if self.advance_after_input:
                    pc += 1
            elif isinstance(instruction, Halt):
                return
            else:
                raise TypeError(f"Unknown instruction {instruction!r}")

    def _annotate(self, error: BFRuntimeError) -> None:
        if self.program and 0 <= self.pc < len(self.program):
            instruction = self.program[self.pc]
            if error.location is None:
                error.location = instruction.location
            if error.rule is None:
                error.rule = instruction.symbol
        error.pc = self.pc
        if self.logger.next_state_index:
            error.step_index = self.logger.next_state_index - 1

    def _emit_event(self, event: str, payload: Any) -> None:
        try:
            self.hook_registry.emit(event, self, payload)
        except BFRuntimeError:
            raise
        except Exception as exc:
            loc = None
            if 0 <= self.pc < len(self.program):
                loc = self.program[self.pc].location
            raise BFRuntimeError(
                f"Extension hook '{event}' failed: {exc}",
                location=loc,
                rule="EXT",
            ) from exc

    def _log_step(self, pc: int, instruction: Instruction) -> None:
        snapshot = self.tape.snapshot() if self.verbose else None
        step_index = self.logger.record(pc=pc, instruction=instruction, tape_snapshot=snapshot)

        # Run extension step rules (every N steps) after recording.
        if not self.hook_registry.has_step_rules:
            return
        try:
            self.hook_registry.after_step(
                self,
                StepContext(step_index=step_index, pc=pc, rule=instruction.symbol, location=instruction.location),
            )
        except BFRuntimeError:
            raise
        except Exception as exc:
            raise BFRuntimeError(
                f"Extension step rule failed: {exc}",
                location=instruction.location,
                rule="EXT",
            ) from exc


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def format_text(self, error: BFRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        location = error.location
        if location:
            lines.append(f"  File \"{location.file}\", line {location.line}, column {location.column}, in <program>")
            if location.statement:
                lines.append(f"    {location.statement}")
        else:
            lines.append("  <unknown location> in <program>")
        if error.step_index is not None:
            lines.append(f"    Step: {error.step_index}  PC: {error.pc}")
        tape = self.interpreter.tape
        lines.append(f"    Pointer: {tape.pointer}  Cell: {tape.read()}")
        if verbose:
            cells = ", ".join(f"{k}={v}" for k, v in tape.window().items())
            lines.append(f"    Tape: {cells}")
        rule = error.rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (instruction: {rule})")
        return "\n".join(lines)

    def to_json(self, error: BFRuntimeError) -> str:
        frame: Dict[str, Any] = {"name": "<program>", "pc": error.pc, "step_index": error.step_index}
        if error.location:
            frame["source_location"] = {
                "file": error.location.file,
                "line": error.location.line,
                "column": error.location.column,
                "statement": error.location.statement,
            }
        frame["tape"] = self.interpreter.tape.snapshot()
        recent = list(self.interpreter.logger.entries)[-16:]
        if recent:
            frame["recent_steps"] = [
                {"step_index": e.step_index, "state_id": e.state_id, "pc": e.pc, "rule": e.rule} for e in recent
            ]
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "rule": error.rule,
                "failing_step_index": error.step_index,
            },
            "traceback": [frame],
        }
        return json.dumps(data, indent=2)
