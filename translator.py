from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from lexer import BFParseError, Lexer, Token


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


class UnmatchedLoopEnd(BFParseError):
    """A ']' with no open '[' before it."""

    def __init__(self, message: str, *, location: SourceLocation, index: int) -> None:
        super().__init__(message)
        self.location = location
        self.index = index


class UnmatchedLoopBegin(BFParseError):
    """A '[' still open at end of input."""

    def __init__(self, message: str, *, location: SourceLocation, index: int) -> None:
        super().__init__(message)
        self.location = location
        self.index = index


@dataclass
class Instruction:
    location: Optional[SourceLocation]

    symbol = ""


@dataclass
class MovePointerForward(Instruction):
    symbol = ">"


@dataclass
class MovePointerBackward(Instruction):
    symbol = "<"


@dataclass
class IncrementCell(Instruction):
    symbol = "+"


@dataclass
class DecrementCell(Instruction):
    symbol = "-"


@dataclass
class OutputCell(Instruction):
    symbol = "."


@dataclass
class InputCell(Instruction):
    symbol = ","


@dataclass
class LoopBegin(Instruction):
    # Address just past the matching LoopEnd; patched once that is seen.
    target: Optional[int] = None

    symbol = "["


@dataclass
class LoopEnd(Instruction):
    # Address just past the matching LoopBegin.
    target: int = 0

    symbol = "]"


@dataclass
class Halt(Instruction):
    symbol = "HALT"


SIMPLE_INSTRUCTIONS = {
    "RIGHT": MovePointerForward,
    "LEFT": MovePointerBackward,
    "INC": IncrementCell,
    "DEC": DecrementCell,
    "OUT": OutputCell,
    "IN": InputCell,
}


class Translator:
    def __init__(self, tokens: List[Token], filename: str, source_lines: List[str]) -> None:
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines

    def translate(self) -> List[Instruction]:
        instructions: List[Instruction] = []
        emit = instructions.append
        stack: List[int] = []
        simple = SIMPLE_INSTRUCTIONS

        for token in self.tokens:
            location = self._location_from_token(token)
            kind = simple.get(token.type)
            if kind is not None:
                emit(kind(location=location))
                continue
            if token.type == "BEGIN":
                stack.append(token.index)
                emit(LoopBegin(location=location))
                continue
            if token.type == "END":
                if not stack:
                    raise UnmatchedLoopEnd(
                        f"Unmatched ']' at {self.filename}:{token.line}:{token.column}",
                        location=location,
                        index=token.index,
                    )
                begin_index = stack.pop()
                begin = instructions[begin_index]
                assert isinstance(begin, LoopBegin) and begin.target is None
                begin.target = token.index + 1
                emit(LoopEnd(location=location, target=begin_index + 1))
                continue
            raise BFParseError(f"Unknown token type {token.type} at {self.filename}:{token.line}:{token.column}")

        if stack:
            # Report the innermost unclosed bracket.
            begin = instructions[stack[-1]]
            loc = begin.location
            raise UnmatchedLoopBegin(
                f"Unmatched '[' at {loc.file}:{loc.line}:{loc.column}",
                location=loc,
                index=stack[-1],
            )
        return instructions

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_text = self.source_lines[token.line - 1] if 0 < token.line <= len(self.source_lines) else ""
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=line_text.strip())


def translate(source: str, filename: str = "<string>") -> List[Instruction]:
    tokens = Lexer(source, filename).tokenize()
    return Translator(tokens, filename, source.split("\n")).translate()


def compile_program(source: str, filename: str = "<string>") -> List[Instruction]:
    """Translate ``source`` and append the terminating Halt."""
    instructions = translate(source, filename)
    instructions.append(Halt(location=None))
    return instructions
