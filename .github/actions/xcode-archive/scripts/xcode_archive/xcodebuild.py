"""Build and run ``xcodebuild`` invocations.

The command builders only assemble argument vectors; execution goes through
:func:`run_plain` or :func:`run_with_xcpretty` so both output tools share the
same failure handling.
"""

from __future__ import annotations

import dataclasses
import re
import shlex
import subprocess
import typing as typ

import typer
from plumbum import local
from plumbum.commands.processes import ProcessExecutionError

from .commands import RunResult, run_cmd
from .errors import ToolchainError

if typ.TYPE_CHECKING:
    from pathlib import Path

__all__ = [
    "ArchiveCommand",
    "ExportCommand",
    "XcodeVersion",
    "parse_xcode_version",
    "run_plain",
    "run_with_xcpretty",
    "xcode_version",
    "xcpretty_version",
]

XCODEBUILD = "xcodebuild"
XCPRETTY = "xcpretty"

_VERSION_RE = re.compile(r"^Xcode\s+(?P<version>\d+(?:\.\d+)*)\s*$", re.MULTILINE)
_BUILD_RE = re.compile(r"^Build version\s+(?P<build>\S+)\s*$", re.MULTILINE)


class XcodeVersion(typ.NamedTuple):
    """Installed Xcode version as reported by ``xcodebuild -version``."""

    version: str
    build_version: str
    major: int


def parse_xcode_version(output: str) -> XcodeVersion:
    """Parse ``xcodebuild -version`` output.

    Examples
    --------
    >>> parse_xcode_version("Xcode 9.2\\nBuild version 9C40b\\n")
    XcodeVersion(version='9.2', build_version='9C40b', major=9)
    """
    version_match = _VERSION_RE.search(output)
    build_match = _BUILD_RE.search(output)
    if version_match is None or build_match is None:
        msg = f"Unexpected xcodebuild -version output: {output.strip()!r}"
        raise ToolchainError(msg, output=output)
    version = version_match.group("version")
    return XcodeVersion(version, build_match.group("build"), int(version.split(".")[0]))


def xcode_version() -> XcodeVersion:
    """Return the version of the active Xcode."""
    result = typ.cast(
        "RunResult", run_cmd(local[XCODEBUILD]["-version"], method="run")
    )
    if result.returncode != 0:
        msg = f"Failed to get the version of xcodebuild: {result.output.strip()}"
        raise ToolchainError(msg, output=result.output)
    return parse_xcode_version(result.stdout)


def xcpretty_version() -> str:
    """Return the version string printed by ``xcpretty -version``."""
    result = typ.cast("RunResult", run_cmd(local[XCPRETTY]["-version"], method="run"))
    if result.returncode != 0:
        msg = f"Failed to get the xcpretty version: {result.output.strip()}"
        raise ToolchainError(msg, output=result.output)
    return result.output.strip()


@dataclasses.dataclass(slots=True, kw_only=True)
class ArchiveCommand:
    """``xcodebuild archive`` for a project or workspace."""

    project_path: Path
    is_workspace: bool
    scheme: str
    archive_path: Path
    configuration: str = ""
    force_team_id: str = ""
    force_provisioning_profile_specifier: str = ""
    force_provisioning_profile: str = ""
    force_code_sign_identity: str = ""
    clean: bool = False
    extra_options: tuple[str, ...] = ()

    def argv(self) -> list[str]:
        """Return the arguments passed to ``xcodebuild``."""
        args = [
            "-workspace" if self.is_workspace else "-project",
            str(self.project_path),
            "-scheme",
            self.scheme,
        ]
        if self.configuration:
            args += ["-configuration", self.configuration]
        settings = {
            "DEVELOPMENT_TEAM": self.force_team_id,
            "PROVISIONING_PROFILE_SPECIFIER": self.force_provisioning_profile_specifier,
            "PROVISIONING_PROFILE": self.force_provisioning_profile,
            "CODE_SIGN_IDENTITY": self.force_code_sign_identity,
        }
        args += [f"{key}={value}" for key, value in settings.items() if value]
        args += list(self.extra_options)
        if self.clean:
            args.append("clean")
        args += ["archive", "-archivePath", str(self.archive_path)]
        return args

    def printable(self) -> str:
        """Return the shell-quoted command line."""
        return shlex.join([XCODEBUILD, *self.argv()])


@dataclasses.dataclass(slots=True, kw_only=True)
class ExportCommand:
    """``xcodebuild -exportArchive`` for an existing archive."""

    archive_path: Path
    export_dir: Path
    export_options_plist: Path

    def argv(self) -> list[str]:
        """Return the arguments passed to ``xcodebuild``."""
        return [
            "-exportArchive",
            "-archivePath",
            str(self.archive_path),
            "-exportPath",
            str(self.export_dir),
            "-exportOptionsPlist",
            str(self.export_options_plist),
        ]

    def printable(self) -> str:
        """Return the shell-quoted command line."""
        return shlex.join([XCODEBUILD, *self.argv()])


XcodebuildCommand = ArchiveCommand | ExportCommand


def run_plain(command: XcodebuildCommand, *, capture: bool = False) -> str:
    """Run ``xcodebuild`` without a formatter.

    With ``capture`` the output is collected (and echoed) so callers can
    scan it; otherwise it streams straight to the terminal and an empty
    string is returned.

    Raises
    ------
    ToolchainError
        Raised when ``xcodebuild`` exits non-zero.
    """
    invocation = local[XCODEBUILD][command.argv()]
    if not capture:
        try:
            run_cmd(invocation, method="run_fg")
        except ProcessExecutionError as exc:
            msg = f"xcodebuild exited with status {exc.retcode}"
            raise ToolchainError(msg) from exc
        return ""

    result = typ.cast(
        "RunResult", run_cmd(invocation, method="run", stderr=subprocess.STDOUT)
    )
    typer.echo(result.output, nl=False)
    if result.returncode != 0:
        msg = f"xcodebuild exited with status {result.returncode}"
        raise ToolchainError(msg, output=result.output)
    return result.output


def run_with_xcpretty(command: XcodebuildCommand) -> str:
    """Run ``xcodebuild`` and format its output with ``xcpretty``.

    The raw ``xcodebuild`` output is returned, and attached to the
    :class:`ToolchainError` on failure, so it can be published as a log.
    A failing formatter only produces a warning.
    """
    typer.echo(f"$ set -o pipefail && {command.printable()} | {XCPRETTY}")
    raw = typ.cast(
        "RunResult",
        run_cmd(
            local[XCODEBUILD][command.argv()],
            method="run",
            echo=False,
            stderr=subprocess.STDOUT,
        ),
    )
    formatted = typ.cast(
        "RunResult",
        run_cmd(local[XCPRETTY], method="run", stdin=raw.output, echo=False),
    )
    if formatted.returncode == 0:
        typer.echo(formatted.stdout, nl=False)
    else:
        typer.echo(
            f"::warning title=xcpretty::xcpretty exited with status "
            f"{formatted.returncode}; showing raw output",
            err=True,
        )
        typer.echo(raw.output, nl=False)

    if raw.returncode != 0:
        msg = f"xcodebuild exited with status {raw.returncode}"
        raise ToolchainError(msg, output=raw.output)
    return raw.output
