from __future__ import annotations
from typing import Any, Dict, Optional

import numpy as np
from numpy.typing import NDArray

from lexer import BFError

TAPE_SIZE = 30000


class BFRuntimeError(BFError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[Any] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rule = rule
        self.pc: Optional[int] = None
        self.step_index: Optional[int] = None


class PointerOverflow(BFRuntimeError):
    """Pointer moved past the last cell."""


class PointerUnderflow(BFRuntimeError):
    """Pointer moved before cell 0."""


class Tape:
    """Fixed-size byte memory with a single movable pointer.

    Cells are ``uint8``; increment and decrement wrap modulo 256. Moving the
    pointer off either end raises instead of wrapping.
    """

    def __init__(self, size: int = TAPE_SIZE, start: Optional[int] = None) -> None:
        if size <= 0:
            raise ValueError(f"Tape size must be positive, got {size}")
        if start is None:
            start = size // 2
        if not 0 <= start < size:
            raise ValueError(f"Tape start {start} outside 0..{size - 1}")
        self.cells: NDArray[np.uint8] = np.zeros(size, dtype=np.uint8)
        self.size = size
        self.start = start
        self.pointer = start

    def move_right(self) -> None:
        if self.pointer >= self.size - 1:
            raise PointerOverflow(f"Pointer out of bounds, overflow past cell {self.size - 1}", rule=">")
        self.pointer += 1

    def move_left(self) -> None:
        if self.pointer <= 0:
            raise PointerUnderflow("Pointer out of bounds, underflow below cell 0", rule="<")
        self.pointer -= 1

    def increment(self) -> None:
        # Python int arithmetic; uint8 scalar overflow warns.
        self.cells[self.pointer] = (int(self.cells[self.pointer]) + 1) & 0xFF

    def decrement(self) -> None:
        self.cells[self.pointer] = (int(self.cells[self.pointer]) - 1) & 0xFF

    def read(self) -> int:
        return int(self.cells[self.pointer])

    def write(self, value: int) -> None:
        self.cells[self.pointer] = int(value) & 0xFF

    def is_zero(self) -> bool:
        return bool(self.cells[self.pointer] == 0)

    def window(self, radius: int = 8) -> Dict[int, int]:
        lo = max(0, self.pointer - radius)
        hi = min(self.size, self.pointer + radius + 1)
        return {i: int(v) for i, v in zip(range(lo, hi), self.cells[lo:hi])}

    def snapshot(self, radius: int = 8) -> Dict[str, Any]:
        return {"pointer": self.pointer, "cells": self.window(radius)}
