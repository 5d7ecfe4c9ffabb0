import io
import sys
from pathlib import Path

import pytest

from bfvm import run_cli

PRINT_A = "++++++++[>++++++++<-]>+."
STATS_EXT = str(Path(__file__).resolve().parent.parent / "ext" / "stats.py")


@pytest.fixture
def stdin_bytes(monkeypatch):
    def _set(data):
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(data)))

    return _set


@pytest.fixture
def repl_lines(monkeypatch):
    def _set(lines):
        pending = list(lines)

        def _input(prompt=""):
            if not pending:
                raise EOFError
            return pending.pop(0)

        monkeypatch.setattr("builtins.input", _input)

    return _set


def test_literal_source(capsys):
    assert run_cli(["-source", PRINT_A]) == 0
    assert capsys.readouterr().out == "A"


def test_source_file(tmp_path, capsys):
    path = tmp_path / "print_a.b"
    path.write_text("print A\n" + PRINT_A + "\n", encoding="utf-8")
    assert run_cli([str(path)]) == 0
    assert capsys.readouterr().out == "A"


def test_missing_file(tmp_path, capsys):
    assert run_cli([str(tmp_path / "missing.b")]) == 1
    assert "Failed to read" in capsys.readouterr().err


def test_parse_error(capsys):
    assert run_cli(["-source", "[["]) == 1
    assert "ParseError: Unmatched '['" in capsys.readouterr().err


def test_runtime_error_traceback(capsys):
    assert run_cli(["-source", "+.<", "--tape-start", "0", "--traceback-json"]) == 1
    captured = capsys.readouterr()
    assert captured.out == "\x01"
    assert "PointerUnderflow: Pointer out of bounds" in captured.err
    assert '"type": "PointerUnderflow"' in captured.err


def test_overflow_with_small_tape(capsys):
    assert run_cli(["-source", ">>>", "--tape-size", "3"]) == 1
    assert "PointerOverflow" in capsys.readouterr().err


def test_invalid_tape_geometry(capsys):
    assert run_cli(["-source", "+", "--tape-size", "0"]) == 1
    assert "ConfigError" in capsys.readouterr().err


def test_source_flag_needs_program(capsys):
    assert run_cli(["-source"]) == 1


def test_reads_stdin(stdin_bytes, capsys):
    stdin_bytes(b"Z")
    assert run_cli(["-source", ",."]) == 0
    assert capsys.readouterr().out == "Z"


def test_stall_on_input_exhausts_stdin(stdin_bytes, capsys):
    stdin_bytes(b"Z")
    assert run_cli(["-source", ",.", "--stall-on-input"]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "InputExhausted" in captured.err


def test_extension_flag(capsys):
    assert run_cli(["-source", "+.", "--ext", STATS_EXT]) == 0
    assert "[stats] steps=3" in capsys.readouterr().err


def test_bad_extension_path(capsys):
    assert run_cli(["-source", "+", "--ext", "does/not/exist.py"]) == 1
    assert "ExtensionError" in capsys.readouterr().err


def test_repl_runs_lines_and_buffers(repl_lines, capsys):
    repl_lines([PRINT_A, "[-", "]", "", "+" * 66 + "."])
    assert run_cli([]) == 0
    assert "A\nB\n" in capsys.readouterr().out


def test_repl_reports_errors_and_continues(repl_lines, capsys):
    repl_lines(["]", "", "<" * 20000, "+" * 65 + "."])
    assert run_cli(["--tape-size", "100"]) == 0
    captured = capsys.readouterr()
    assert "ParseError: Unmatched ']'" in captured.err
    assert "PointerUnderflow" in captured.err
    assert "A" in captured.out


def test_repl_input_reads_piped_stdin_after_code(monkeypatch, capsys):
    # input() and ',' share one text stream: the code line, then its data.
    monkeypatch.setattr(sys, "stdin", io.StringIO(",.,.\nZY"))
    assert run_cli([]) == 0
    assert "ZY" in capsys.readouterr().out


def test_repl_input_exhausted_is_reported(repl_lines, monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.StringIO("Q"))
    repl_lines([",.", ","])
    assert run_cli([]) == 0
    captured = capsys.readouterr()
    assert "Q" in captured.out
    assert "InputExhausted" in captured.err
