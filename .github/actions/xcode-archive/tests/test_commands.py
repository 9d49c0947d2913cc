"""Tests for :mod:`xcode_archive.commands`."""

from __future__ import annotations

import subprocess
import sys
import typing as typ

import pytest
from plumbum import local
from plumbum.commands.processes import ProcessExecutionError

from xcode_archive.commands import (
    RunResult,
    coerce_run_result,
    process_error_to_run_result,
    run_cmd,
)

if typ.TYPE_CHECKING:
    from xcode_archive.commands import RunMethod


def _python_command(*args: str) -> object:
    command = local[sys.executable]
    return command[list(args)] if args else command


def test_run_cmd_returns_stdout_by_default(capsys: pytest.CaptureFixture[str]) -> None:
    """The call method returns decoded stdout and echoes the command."""
    script = "import sys; sys.stdout.write('hello')"
    assert run_cmd(_python_command("-c", script)) == "hello"
    assert "$ " in capsys.readouterr().out


@pytest.mark.parametrize("method", ["call", "run", "run_fg"], ids=lambda value: value)
def test_run_cmd_rejects_non_plumbum_inputs(method: RunMethod) -> None:
    """Objects without ``formulate`` are rejected."""
    with pytest.raises(TypeError, match="plumbum command"):
        run_cmd(object(), method=method)


def test_run_cmd_run_method_never_raises() -> None:
    """Failures come back as a :class:`RunResult`."""
    script = "import sys; sys.stdout.write('out'); sys.stderr.write('err'); sys.exit(5)"
    result = run_cmd(_python_command("-c", script), method="run")

    assert isinstance(result, RunResult)
    assert result.returncode == 5
    assert result.output == "outerr"


def test_run_cmd_call_propagates_failures() -> None:
    """The call method raises plumbum's error."""
    with pytest.raises(ProcessExecutionError) as excinfo:
        run_cmd(_python_command("-c", "import sys; sys.exit(3)"))
    assert excinfo.value.retcode == 3


def test_run_cmd_merges_stderr_in_order() -> None:
    """``stderr=subprocess.STDOUT`` keeps interleaved lines in sequence."""
    script = "echo compile; echo warning: deprecated >&2; echo link"
    result = run_cmd(local["sh"]["-c", script], method="run", stderr=subprocess.STDOUT)

    assert isinstance(result, RunResult)
    assert result.output == "compile\nwarning: deprecated\nlink\n"


def test_run_cmd_echo_can_be_disabled(capsys: pytest.CaptureFixture[str]) -> None:
    """Callers printing their own command line suppress the default echo."""
    run_cmd(_python_command("-c", "pass"), echo=False)
    assert capsys.readouterr().out == ""


def test_run_cmd_feeds_stdin() -> None:
    """``stdin`` data reaches the child process."""
    script = "import sys; sys.stdout.write(sys.stdin.read().upper())"
    result = run_cmd(_python_command("-c", script), method="run", stdin="compile")
    assert isinstance(result, RunResult)
    assert result.stdout == "COMPILE"


def test_run_cmd_passes_runtime_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Variables changed after import still reach child processes."""
    monkeypatch.setenv("XCODE_ARCHIVE_MARKER", "visible")
    script = "import os, sys; sys.stdout.write(os.environ['XCODE_ARCHIVE_MARKER'])"
    assert run_cmd(_python_command("-c", script)) == "visible"


def test_run_cmd_rejects_unknown_method() -> None:
    """Unknown strategies are a programming error."""
    with pytest.raises(ValueError, match="Unknown run method"):
        run_cmd(_python_command("-c", "pass"), method="spawn")  # type: ignore[arg-type]


def test_coerce_run_result_decodes_bytes() -> None:
    """Byte output is decoded with replacement."""
    result = coerce_run_result((1, b"ok", b"\xff"))
    assert result == RunResult(1, "ok", "�")
    assert coerce_run_result(result) is result


def test_process_error_to_run_result() -> None:
    """Execution errors keep their status and streams."""
    exc = ProcessExecutionError(["xcodebuild"], 65, "out", "err")
    assert process_error_to_run_result(exc) == RunResult(65, "out", "err")
