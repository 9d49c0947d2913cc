r"""Run plumbum command invocations for the Xcode toolchain.

:func:`run_cmd` echoes each invocation before executing it so CI logs show
exactly what was run. Three strategies are available: ``call`` (return
stdout, raise on failure), ``run`` (capture everything, never raise on a
non-zero exit) and ``run_fg`` (stream to the terminal).

Examples
--------
Capture ``xcodebuild -version`` without raising::

    >>> from plumbum import local
    >>> result = run_cmd(local["xcodebuild"]["-version"], method="run")
    $ xcodebuild -version
    >>> result.returncode
    0

Feed captured build output through ``xcpretty``::

    >>> run_cmd(local["xcpretty"], method="run", stdin=raw_output)
    $ xcpretty
"""

from __future__ import annotations

import collections.abc as cabc
import os
import typing as typ

import typer
from plumbum import local
from plumbum.commands.processes import ProcessExecutionError

__all__ = [
    "RunMethod",
    "RunResult",
    "SupportsFormulate",
    "coerce_run_result",
    "process_error_to_run_result",
    "run_cmd",
]

RunMethod = typ.Literal["call", "run", "run_fg"]


class RunResult(typ.NamedTuple):
    """Structured representation of plumbum ``run`` results."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Return stdout followed by stderr, as a terminal would show them."""
        return f"{self.stdout}{self.stderr}"


@typ.runtime_checkable
class SupportsFormulate(typ.Protocol):
    """Objects that expose a shell representation via ``formulate``."""

    def formulate(self) -> cabc.Sequence[str]:  # pragma: no cover - protocol
        ...


@typ.runtime_checkable
class SupportsCall(SupportsFormulate, typ.Protocol):
    """Commands that can be invoked like ``cmd()``."""

    def __call__(
        self, *args: object, **kwargs: object
    ) -> object:  # pragma: no cover - protocol
        ...


@typ.runtime_checkable
class SupportsRun(SupportsFormulate, typ.Protocol):
    """Commands that implement :meth:`run`."""

    def run(
        self, *args: object, **run_kwargs: object
    ) -> object:  # pragma: no cover - protocol
        ...


@typ.runtime_checkable
class SupportsRunFg(SupportsFormulate, typ.Protocol):
    """Commands that expose :meth:`run_fg` for foreground execution."""

    def run_fg(self, **run_kwargs: object) -> object:  # pragma: no cover - protocol
        ...


@typ.runtime_checkable
class SupportsWithEnv(SupportsFormulate, typ.Protocol):
    """Commands that support environment overrides via :meth:`with_env`."""

    def with_env(self, **env: str) -> SupportsWithEnv:  # pragma: no cover - protocol
        ...


@typ.runtime_checkable
class SupportsStdin(SupportsFormulate, typ.Protocol):
    """Commands that accept stdin data through ``cmd << data``."""

    def __lshift__(self, data: str) -> SupportsFormulate:  # pragma: no cover
        ...


def _ensure_text(value: str | bytes | None) -> str:
    """Return ``value`` as ``str`` replacing undecodable bytes."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return value.decode("utf-8", errors="replace")


def coerce_run_result(result: RunResult | cabc.Sequence[object]) -> RunResult:
    """Normalise *result* into a :class:`RunResult`."""
    if isinstance(result, RunResult):
        return result
    try:
        returncode_obj, stdout_obj, stderr_obj = result  # type: ignore[misc]
    except ValueError as exc:  # pragma: no cover - defensive programming
        msg = "plumbum run() results must unpack into (returncode, stdout, stderr)"
        raise TypeError(msg) from exc
    return RunResult(
        int(typ.cast("int", returncode_obj)),
        _ensure_text(typ.cast("str | bytes | None", stdout_obj)),
        _ensure_text(typ.cast("str | bytes | None", stderr_obj)),
    )


def process_error_to_run_result(exc: ProcessExecutionError) -> RunResult:
    """Convert ``exc`` into a :class:`RunResult` for consistent handling."""
    return RunResult(
        int(exc.retcode),
        _ensure_text(getattr(exc, "stdout", "")),
        _ensure_text(getattr(exc, "stderr", "")),
    )


def _collect_runtime_env() -> dict[str, str] | None:
    """Return the process environment when it diverges from plumbum's copy.

    plumbum snapshots the environment at import time; variables the step
    unsets or exports afterwards only reach child processes through an
    explicit override.
    """
    plumbum_env = typ.cast("cabc.Mapping[str, str]", local.env)
    base_env = {key: str(value) for key, value in plumbum_env.items()}
    runtime_env = {key: str(value) for key, value in os.environ.items()}
    return None if runtime_env == base_env else runtime_env


def _apply_environment(
    cmd: SupportsFormulate, runtime_env: dict[str, str] | None
) -> SupportsFormulate:
    if runtime_env is None:
        return cmd
    if not isinstance(cmd, SupportsWithEnv):  # pragma: no cover - defensive
        msg = "Command does not support environment overrides"
        raise TypeError(msg)
    return typ.cast("SupportsFormulate", cmd.with_env(**runtime_env))


def _apply_stdin(cmd: SupportsFormulate, stdin: str | None) -> SupportsFormulate:
    if stdin is None:
        return cmd
    if not isinstance(cmd, SupportsStdin):  # pragma: no cover - defensive
        msg = "Command does not accept stdin data"
        raise TypeError(msg)
    return cmd << stdin


def run_cmd(
    cmd: object,
    *,
    method: RunMethod = "call",
    stdin: str | None = None,
    echo: bool = True,
    **run_kwargs: object,
) -> object:
    """Execute ``cmd`` using plumbum semantics after echoing it.

    Callers that print their own rendering of a pipeline pass
    ``echo=False``; ``run_kwargs`` go to the selected plumbum method, so
    ``stderr=subprocess.STDOUT`` keeps both streams in their original order.
    """
    if not isinstance(cmd, SupportsFormulate):
        msg = "run_cmd requires a plumbum command invocation"
        raise TypeError(msg)

    if echo:
        typer.echo(f"$ {cmd}")

    prepared = _apply_stdin(_apply_environment(cmd, _collect_runtime_env()), stdin)
    handler = _RUN_HANDLERS.get(method)
    if handler is None:
        msg = f"Unknown run method: {method}"
        raise ValueError(msg)
    return handler(prepared, run_kwargs)


def _call_handler(command: SupportsFormulate, run_kwargs: dict[str, object]) -> object:
    if not isinstance(command, SupportsCall):
        msg = "Command does not support call semantics"
        raise TypeError(msg)
    return command(**run_kwargs)


def _run_handler(
    command: SupportsFormulate, run_kwargs: dict[str, object]
) -> RunResult:
    if not isinstance(command, SupportsRun):
        msg = "Command does not support run()"
        raise TypeError(msg)
    run_options = dict(run_kwargs)
    run_options.setdefault("retcode", None)
    try:
        raw_result = command.run(**run_options)
    except ProcessExecutionError as exc:
        return process_error_to_run_result(exc)
    return coerce_run_result(typ.cast("cabc.Sequence[object]", raw_result))


def _run_fg_handler(
    command: SupportsFormulate, run_kwargs: dict[str, object]
) -> object:
    if not isinstance(command, SupportsRunFg):
        msg = "Command does not support foreground execution"
        raise TypeError(msg)
    return command.run_fg(**run_kwargs)


_MethodHandler = cabc.Callable[[SupportsFormulate, dict[str, object]], object]

_RUN_HANDLERS: dict[RunMethod, _MethodHandler] = {
    "call": _call_handler,
    "run": typ.cast("_MethodHandler", _run_handler),
    "run_fg": _run_fg_handler,
}
