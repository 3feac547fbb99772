import json

import pytest

import sasm
from interpreter import SASM_VERSION


@pytest.fixture
def script(tmp_path):
    def _write(text, name="prog.sasm"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def repl_input(monkeypatch):
    def _feed(*lines):
        pending = list(lines)

        def _input(prompt=""):
            if not pending:
                raise EOFError
            return pending.pop(0)

        monkeypatch.setattr("builtins.input", _input)

    return _feed


def test_runs_script_file(script, capsys):
    path = script("VAR x\nMOV x, 0\nINC x\nCMP x, 1\nJNE -2\nDMP x\n")
    assert sasm.run_cli([path]) == 0
    assert capsys.readouterr().out == "1\n"


def test_source_flag_runs_literal_text(capsys):
    assert sasm.run_cli(["-source", "SAY 'hi'"]) == 0
    assert capsys.readouterr().out == "hi"


def test_parse_errors_are_all_reported(script, capsys):
    path = script("SAY 'a'\nFOO\nMOV 1, 2\n")
    assert sasm.run_cli([path]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "ParseError on line 2: Invalid instruction: FOO" in captured.err
    assert "ParseError on line 3:" in captured.err


def test_runtime_error_prints_traceback(script, capsys):
    path = script("VAR x\nMOV x, 1\nDIV x, 0\n")
    assert sasm.run_cli([path]) == 1
    err = capsys.readouterr().err
    assert err.startswith("Traceback (most recent call last):")
    assert "DivisionByZero: Division by zero (line 3, instruction: DIV)" in err


def test_traceback_json_flag(capsys):
    assert sasm.run_cli(["-source", "JMP 5", "--traceback-json"]) == 1
    err = capsys.readouterr().err
    payload = err[err.index("{"):]
    data = json.loads(payload)
    assert data["error"]["type"] == "IllegalGoto"
    assert data["error"]["message"] == "Illegal jump to line 6"


def test_verbose_flag_includes_snapshot(capsys):
    assert sasm.run_cli(["-source", "MOV x, 1\nDIV x, 0", "-verbose"]) == 1
    assert "Env snapshot:" in capsys.readouterr().err


def test_die_sets_exit_code(capsys):
    assert sasm.run_cli(["-source", "SAY 'a'\nDIE 7\nSAY 'b'"]) == 7
    assert capsys.readouterr().out == "a"


def test_missing_file(tmp_path, capsys):
    assert sasm.run_cli([str(tmp_path / "absent.sasm")]) == 1
    assert "Failed to read" in capsys.readouterr().err


def test_max_steps(capsys):
    assert sasm.run_cli(["-source", "JMP 0", "--max-steps", "5"]) == 1
    assert "StepLimitExceeded" in capsys.readouterr().err


def test_seed_makes_random_reproducible(capsys):
    source = "RNG x, 1, 1000000\nDMP x\nRNG x, 1, 1000000\nDMP x"
    sasm.run_cli(["-source", source, "--seed", "42"])
    first = capsys.readouterr().out
    sasm.run_cli(["-source", source, "--seed", "42"])
    assert capsys.readouterr().out == first


def test_trace_flag(capsys):
    assert sasm.run_cli(["-source", "SAY 'hi'", "--trace"]) == 0
    captured = capsys.readouterr()
    assert captured.out == "hi"
    assert "[trace] 000001 1: SAY 'hi'" in captured.err


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as exc:
        sasm.run_cli(["--version"])
    assert exc.value.code == 0
    assert SASM_VERSION in capsys.readouterr().out


def test_source_flag_without_program(capsys):
    assert sasm.run_cli(["-source"]) == 1
    assert "-source requires a program string" in capsys.readouterr().err


def test_repl_session(repl_input, capsys):
    repl_input("VAR x", "", "MOV x, 5", "DMP x", "JMP 1", "FOO", "DIV x, 0", "SAY 'hi'")
    assert sasm.run_cli([]) == 0
    captured = capsys.readouterr()
    assert captured.out.startswith(f"SASM Interpreter\nv{SASM_VERSION}\n")
    assert "5\n" in captured.out
    assert "hi\n" in captured.out
    assert "Jumps are not supported in REPL mode" in captured.err
    assert "ParseError on line 6: Invalid instruction: FOO" in captured.err
    assert "DivisionByZero: Division by zero (instruction: DIV)" in captured.err


def test_repl_state_survives_errors(repl_input, capsys):
    repl_input("MOV x, 1", "MOV x, 'text'", "INC x", "DMP x")
    assert sasm.run_repl(verbose=False) == 0
    captured = capsys.readouterr()
    assert "MismatchedTypes" in captured.err
    assert "2\n" in captured.out


def test_repl_die_returns_code(repl_input, capsys):
    repl_input("SAY 'bye'", "DIE 2", "SAY 'never'")
    assert sasm.run_repl(verbose=False) == 2
    out = capsys.readouterr().out
    assert "bye" in out
    assert "never" not in out


def test_repl_reads_from_same_input(repl_input, capsys):
    repl_input("RSV name", "41", "SAY name")
    assert sasm.run_repl(verbose=False) == 0
    assert "41" in capsys.readouterr().out


def test_parse_error_shows_column(script, capsys):
    path = script("VAR x\nMOV x; 5\n")
    assert sasm.run_cli([path]) == 1
    assert "ParseError on line 2, column 6: Unexpected token: `;`" in capsys.readouterr().err


def test_repl_step_limit_is_per_line(repl_input, capsys):
    repl_input("VAR x", "MOV x, 1", "INC x", "DMP x")
    assert sasm.run_repl(verbose=False, max_steps=1) == 0
    captured = capsys.readouterr()
    assert "StepLimitExceeded" not in captured.err
    assert "2\n" in captured.out
