"""Scripted stand-ins for the Xcode toolchain used by the archive tests.

:class:`FakeLocal` replaces ``plumbum.local`` in the modules under test.
Each registered tool answers invocations through a handler returning
``(returncode, stdout, stderr)``; the default handlers create the files a
real ``xcodebuild`` or ``zip`` would.
"""

from __future__ import annotations

import dataclasses
import plistlib
import shlex
import typing as typ
from pathlib import Path
from xml.parsers.expat import ExpatError

import pytest
from plumbum.commands.processes import ProcessExecutionError

if typ.TYPE_CHECKING:
    from collections import abc as cabc

__all__ = [
    "FakeInvocation",
    "FakeLocal",
    "FakeTool",
    "arg_after",
    "default_xcodebuild",
    "default_xcpretty",
    "default_zip",
    "make_archive",
    "make_xcodebuild",
]

Handler = typ.Callable[["FakeInvocation"], tuple[int, str, str]]
_RENAMED_METHODS = {
    "app-store-connect": "app-store",
    "release-testing": "ad-hoc",
    "debugging": "development",
    "mac-application": "development",
}


@dataclasses.dataclass
class FakeInvocation:
    """Stand-in for a bound plumbum command."""

    tool: FakeTool
    args: tuple[str, ...] = ()
    env: dict[str, str] | None = None
    cwd: str | None = None
    stdin: str | None = None
    run_kwargs: dict[str, object] = dataclasses.field(default_factory=dict)

    def formulate(self) -> list[str]:
        return [self.tool.name, *self.args]

    def __str__(self) -> str:
        return shlex.join(self.formulate())

    def __getitem__(self, args: object) -> FakeInvocation:
        extra = args if isinstance(args, (list, tuple)) else (args,)
        return dataclasses.replace(
            self, args=(*self.args, *(str(arg) for arg in extra))
        )

    def with_env(self, **env: str) -> FakeInvocation:
        return dataclasses.replace(self, env=env)

    def with_cwd(self, path: str) -> FakeInvocation:
        return dataclasses.replace(self, cwd=path)

    def __lshift__(self, data: str) -> FakeInvocation:
        return dataclasses.replace(self, stdin=data)

    def run(self, retcode: object = 0, **kwargs: object) -> tuple[int, str, str]:
        result = self.tool.dispatch(dataclasses.replace(self, run_kwargs=kwargs))
        if retcode is not None and result[0] != retcode:
            raise ProcessExecutionError(self.formulate(), *result)
        return result

    def run_fg(self, **_: object) -> None:
        rc, out, err = self.tool.dispatch(self)
        if rc != 0:
            raise ProcessExecutionError(self.formulate(), rc, out, err)

    def __call__(self, **_: object) -> str:
        rc, out, err = self.tool.dispatch(self)
        if rc != 0:
            raise ProcessExecutionError(self.formulate(), rc, out, err)
        return out


@dataclasses.dataclass
class FakeTool:
    """A named executable whose behaviour is supplied by ``handler``."""

    name: str
    handler: Handler
    calls: list[FakeInvocation] = dataclasses.field(default_factory=list)

    def dispatch(self, invocation: FakeInvocation) -> tuple[int, str, str]:
        self.calls.append(invocation)
        return self.handler(invocation)


class FakeLocal:
    """Mapping of executable names to :class:`FakeTool` instances."""

    def __init__(self) -> None:
        self.tools: dict[str, FakeTool] = {}

    def register(self, name: str, handler: Handler) -> FakeTool:
        tool = FakeTool(name, handler)
        self.tools[name] = tool
        return tool

    def calls(self, name: str) -> list[list[str]]:
        tool = self.tools.get(name)
        return [list(call.args) for call in tool.calls] if tool else []

    def __getitem__(self, name: str) -> FakeInvocation:
        if name not in self.tools:
            pytest.fail(f"unexpected command: {name}")
        return FakeInvocation(self.tools[name])


def arg_after(invocation: FakeInvocation, flag: str) -> str:
    """Return the argument following ``flag`` in ``invocation``."""
    return invocation.args[invocation.args.index(flag) + 1]


def make_archive(
    archive: Path,
    *,
    bundle_id: str = "com.example.App",
    platform: str = "macos",
    framework_dsyms: cabc.Iterable[str] = ("Lib.framework.dSYM",),
) -> Path:
    """Lay out a minimal ``.xcarchive`` holding ``App.app`` and its dSYMs."""
    app = archive / "Products" / "Applications" / "App.app"
    info_dir = app / "Contents" if platform == "macos" else app
    info_dir.mkdir(parents=True)
    (info_dir / "Info.plist").write_bytes(
        plistlib.dumps({"CFBundleIdentifier": bundle_id})
    )
    dsyms = archive / "dSYMs"
    for name in ("App.app.dSYM", *framework_dsyms):
        (dsyms / name / "Contents").mkdir(parents=True)
        (dsyms / name / "Contents" / "Info.plist").write_text(name, encoding="utf-8")
    return archive


def _exported_artifact(archive: Path, method: str) -> Path:
    # macOS apps keep Info.plist under Contents/.
    app = archive / "Products" / "Applications" / "App.app"
    if not (app / "Contents").is_dir():
        return Path("App.ipa")
    return Path("App.pkg" if method == "app-store" else "App.app")


def make_xcodebuild(platform: str = "macos") -> Handler:
    """Return an ``xcodebuild`` handler that archives for ``platform``.

    Exports write only the artifact the options' ``method`` produces: an
    ``ipa`` for iOS, a ``pkg`` for macOS App Store and an ``app`` otherwise.
    """

    def handler(invocation: FakeInvocation) -> tuple[int, str, str]:
        args = invocation.args
        if args == ("-version",):
            return 0, "Xcode 15.2\nBuild version 15C500b\n", ""
        if "-exportArchive" in args:
            options = Path(arg_after(invocation, "-exportOptionsPlist"))
            try:
                parsed = plistlib.loads(options.read_bytes())
            except (ExpatError, OSError, ValueError) as exc:
                return 70, "", f"error: exportOptionsPlist is invalid: {exc}\n"
            method = str(parsed.get("method", "development"))
            method = _RENAMED_METHODS.get(method, method)
            export_dir = Path(arg_after(invocation, "-exportPath"))
            archive = Path(arg_after(invocation, "-archivePath"))
            artifact = export_dir / _exported_artifact(archive, method)
            if artifact.suffix == ".app":
                (artifact / "Contents").mkdir(parents=True)
            else:
                artifact.write_text(artifact.suffix[1:], encoding="utf-8")
            return 0, "** EXPORT SUCCEEDED **\n", ""
        if "archive" in args:
            make_archive(Path(arg_after(invocation, "-archivePath")), platform=platform)
            return 0, "** ARCHIVE SUCCEEDED **\n", ""
        return 1, "", f"unexpected xcodebuild arguments: {args}\n"

    return handler


default_xcodebuild = make_xcodebuild()


def default_xcpretty(invocation: FakeInvocation) -> tuple[int, str, str]:
    """Return a version or a condensed copy of stdin."""
    if invocation.args == ("-version",):
        return 0, "0.3.0\n", ""
    lines = (invocation.stdin or "").splitlines()
    return 0, "".join(f"> {line}\n" for line in lines), ""


def default_zip(invocation: FakeInvocation) -> tuple[int, str, str]:
    """Create the requested archive so callers can check it exists."""
    zip_path = Path(invocation.args[1])
    source = Path(invocation.cwd or ".") / invocation.args[2]
    if not source.exists():
        return 12, "", f"zip error: Nothing to do! ({source})\n"
    zip_path.write_text(f"zip of {invocation.args[2]}", encoding="utf-8")
    return 0, f"  adding: {invocation.args[2]}/\n", ""


