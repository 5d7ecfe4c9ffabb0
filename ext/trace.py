"""bfvm extension: periodic execution trace.

Every ``BFVM_TRACE_EVERY`` steps (default 1) prints the step index, program
counter, instruction, pointer and current cell value to stderr.
"""

from __future__ import annotations

import os
import sys
from typing import Any

from extensions import ExtensionAPI, StepContext

BFVM_EXTENSION_NAME = "trace"
BFVM_EXTENSION_API_VERSION = 1


def _every_n() -> int:
    raw = os.environ.get("BFVM_TRACE_EVERY", "1")
    try:
        return max(1, int(raw))
    except ValueError:
        return 1


def _trace_step(interpreter: Any, ctx: StepContext) -> None:
    tape = interpreter.tape
    print(
        f"[trace] step={ctx.step_index} pc={ctx.pc} op={ctx.rule} ptr={tape.pointer} cell={tape.read()}",
        file=sys.stderr,
    )


def bfvm_register(ext: ExtensionAPI) -> None:
    ext.metadata(version="0.1.0")
    ext.every_n_steps(_every_n(), _trace_step)
