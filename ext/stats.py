"""bfvm extension: instruction counts.

Counts executed instructions by symbol, plus bytes read and written, and
prints a summary to stderr when the program ends or fails.
"""

from __future__ import annotations

import sys
from collections import Counter
from typing import Any

from extensions import ExtensionAPI, StepContext

BFVM_EXTENSION_NAME = "stats"
BFVM_EXTENSION_API_VERSION = 1


class _Stats:
    def __init__(self) -> None:
        self.ops: Counter = Counter()
        self.bytes_in = 0
        self.bytes_out = 0

    def on_step(self, _interpreter: Any, ctx: StepContext) -> None:
        self.ops[ctx.rule] += 1

    def on_input(self, _interpreter: Any, _value: int) -> None:
        self.bytes_in += 1

    def on_output(self, _interpreter: Any, _value: int) -> None:
        self.bytes_out += 1

    def report(self, *_args: Any) -> None:
        total = sum(self.ops.values())
        ops = " ".join(f"{sym}={count}" for sym, count in sorted(self.ops.items()))
        print(f"[stats] steps={total} in={self.bytes_in} out={self.bytes_out} {ops}", file=sys.stderr)


def bfvm_register(ext: ExtensionAPI) -> None:
    ext.metadata(version="0.1.0")
    stats = _Stats()
    ext.every_n_steps(1, stats.on_step)
    ext.on_input(stats.on_input)
    ext.on_output(stats.on_output)
    ext.on_program_end(stats.report)
    ext.on_error(stats.report)
