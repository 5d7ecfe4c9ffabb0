import pytest

from translator import (
    DecrementCell,
    Halt,
    IncrementCell,
    InputCell,
    LoopBegin,
    LoopEnd,
    MovePointerBackward,
    MovePointerForward,
    OutputCell,
    UnmatchedLoopBegin,
    UnmatchedLoopEnd,
    compile_program,
    translate,
)
from lexer import BFParseError


def _loop_pairs(instructions):
    pairs = []
    stack = []
    for index, instruction in enumerate(instructions):
        if isinstance(instruction, LoopBegin):
            stack.append(index)
        elif isinstance(instruction, LoopEnd):
            pairs.append((stack.pop(), index))
    assert not stack
    return pairs


def _targets(instructions):
    return [getattr(i, "target", None) for i in instructions]


def test_simple_symbols_map_one_to_one():
    instructions = translate("><+-.,")
    assert [type(i) for i in instructions] == [
        MovePointerForward,
        MovePointerBackward,
        IncrementCell,
        DecrementCell,
        OutputCell,
        InputCell,
    ]


def test_nested_loop_targets():
    instructions = translate("+[>[-]<-]")
    assert _targets(instructions) == [None, 9, None, 6, None, 4, None, None, 2]


@pytest.mark.parametrize(
    "source",
    ["[]", "[][]", "[[]]", "+[->+<]", "[[[]][]]", "++[>++[>+<-]<-]>>.", "[-[-[-]]]"],
)
def test_balanced_loops_have_symmetric_targets(source):
    instructions = translate(source)
    pairs = _loop_pairs(instructions)
    assert pairs
    for begin, end in pairs:
        assert instructions[end].target == begin + 1
        assert instructions[begin].target == end + 1


@pytest.mark.parametrize("source", ["]", "+]", "[]]", "[]][", "]]][[["])
def test_unmatched_loop_end(source):
    with pytest.raises(UnmatchedLoopEnd):
        translate(source)


@pytest.mark.parametrize("source", ["[", "+[", "[[]", "[[[]]"])
def test_unmatched_loop_begin(source):
    with pytest.raises(UnmatchedLoopBegin):
        translate(source)


def test_unmatched_errors_are_parse_errors():
    with pytest.raises(BFParseError):
        translate("[")
    with pytest.raises(BFParseError):
        translate("]")


def test_unmatched_loop_end_location():
    with pytest.raises(UnmatchedLoopEnd) as info:
        translate("ab\n  ]")
    error = info.value
    assert error.index == 0
    assert (error.location.line, error.location.column) == (2, 3)
    assert "<string>:2:3" in str(error)


def test_unmatched_loop_begin_reports_innermost_open():
    with pytest.raises(UnmatchedLoopBegin) as info:
        translate("+[[]")
    assert info.value.index == 1
    assert info.value.location.column == 2


def test_comments_do_not_change_targets():
    plain = translate("+[->+<]")
    commented = translate("+ start [ - move > add + back < ] end\n")
    assert [type(i) for i in plain] == [type(i) for i in commented]
    assert _targets(plain) == _targets(commented)


def test_translation_is_deterministic():
    source = "++[>+<-]\n>.[,]"
    assert translate(source) == translate(source)


def test_location_carries_source_line():
    instructions = translate("  +  \n-", "prog.b")
    assert instructions[0].location.file == "prog.b"
    assert instructions[0].location.statement == "+"
    assert instructions[1].location.line == 2


def test_compile_program_appends_single_halt():
    program = compile_program("+[-]")
    assert isinstance(program[-1], Halt)
    assert sum(isinstance(i, Halt) for i in program) == 1
    assert len(program) == 5
    # A trailing ']' that falls through lands on the Halt.
    assert program[1].target == 4


def test_empty_program():
    assert translate("") == []
    program = compile_program("just words")
    assert len(program) == 1 and isinstance(program[0], Halt)


def test_instruction_symbols():
    assert [i.symbol for i in compile_program("><+-.,[]")] == [">", "<", "+", "-", ".", ",", "[", "]", "HALT"]


def test_statement_uses_newline_split_lines():
    # Only "\n" ends a line; "\r" and "\f" stay inside the statement text.
    instructions = translate("a\rb +\n\f-")
    assert instructions[0].location.line == 1
    assert instructions[0].location.statement == "a\rb +"
    assert instructions[1].location.line == 2
    assert instructions[1].location.statement == "-"
