from __future__ import annotations
from dataclasses import dataclass
from typing import List


class BFError(Exception):
    """Base class for interpreter errors."""


class BFParseError(BFError):
    """Raised when translation fails."""


@dataclass
class Token:
    type: str
    symbol: str
    index: int
    line: int
    column: int


SYMBOLS = {
    ">": "RIGHT",
    "<": "LEFT",
    "+": "INC",
    "-": "DEC",
    ".": "OUT",
    ",": "IN",
    "[": "BEGIN",
    "]": "END",
}


class Lexer:
    """Filters source text down to instruction symbols.

    Every character outside ``SYMBOLS`` is a comment. Token indices count
    positions in the filtered stream, so they double as instruction addresses.
    """

    def __init__(self, text: str, filename: str) -> None:
        self.text = text
        self.filename = filename
        self.index = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        symbols = SYMBOLS
        text = self.text
        n = len(text)

        while self.index < n:
            ch: str = text[self.index]
            if ch in symbols:
                tokens_append(Token(symbols[ch], ch, len(tokens), self.line, self.column))
            _advance()
        return tokens

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
