"""Shared pytest fixtures for the Xcode archive action."""

from __future__ import annotations

import importlib.util
import sys
import typing as typ
from pathlib import Path

import pytest
from plumbum import local

from test_support.xcode_toolchain import (
    FakeLocal,
    default_xcodebuild,
    default_xcpretty,
    default_zip,
)
from xcode_archive import codesign, output, xcodebuild
from xcode_archive.environment import RUBY_ENV_KEYS

if typ.TYPE_CHECKING:
    from collections import abc as cabc
else:  # pragma: no cover - runtime fallback for annotations
    cabc = typ.cast("object", None)

SCRIPTS_DIR = Path(__file__).resolve().parents[1] / "scripts"

PUBLISHED_KEYS = (
    output.XCODE_RAW_RESULT_TEXT_PATH,
    output.EXPORTED_FILE_PATH,
    output.DSYM_PATH,
    output.XCARCHIVE_PATH,
    output.XCARCHIVE_DIR_PATH,
    output.APP_PATH,
    output.IDEDISTRIBUTION_LOGS_PATH,
)


@pytest.fixture
def scripts_dir() -> Path:
    """Return the path to the Xcode archive action scripts."""
    return SCRIPTS_DIR


@pytest.fixture
def load_module(monkeypatch: pytest.MonkeyPatch) -> cabc.Callable[[str], object]:
    """Return a loader that imports a script module with fresh state."""

    def _load(name: str) -> object:
        module_name = f"xcode_archive_script_{name}"
        script_path = SCRIPTS_DIR / f"{name}.py"
        if not script_path.exists():
            msg = f"Unknown script: {name}"
            raise FileNotFoundError(msg)

        monkeypatch.syspath_prepend(str(SCRIPTS_DIR))
        monkeypatch.delitem(sys.modules, module_name, raising=False)

        spec = importlib.util.spec_from_file_location(module_name, script_path)
        if spec is None or spec.loader is None:
            msg = f"Failed to load module specification for {name}"
            raise RuntimeError(msg)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    return _load


@pytest.fixture(autouse=True)
def _reset_argv(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure Cyclopts parsers do not inherit pytest's CLI arguments."""
    monkeypatch.setattr(sys, "argv", ["uv"])


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Restore published and Ruby variables the step writes or removes."""
    for key in (*PUBLISHED_KEYS, *RUBY_ENV_KEYS):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    for key in RUBY_ENV_KEYS:
        monkeypatch.setitem(local.env, key, "")
        monkeypatch.delitem(local.env, key)
    monkeypatch.delenv("GITHUB_ENV", raising=False)
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)


@pytest.fixture
def gh_output_files(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> tuple[Path, Path]:
    """Set ``GITHUB_ENV``/``GITHUB_OUTPUT`` to files within ``tmp_path``."""
    env_file = tmp_path / "github.env"
    output_file = tmp_path / "github.out"
    monkeypatch.setenv("GITHUB_ENV", str(env_file))
    monkeypatch.setenv("GITHUB_OUTPUT", str(output_file))
    return env_file, output_file


@pytest.fixture
def fake_local(monkeypatch: pytest.MonkeyPatch) -> FakeLocal:
    """Replace the toolchain seen by every module with scripted fakes."""
    fake = FakeLocal()
    fake.register("xcodebuild", default_xcodebuild)
    fake.register("xcpretty", default_xcpretty)
    fake.register("zip", default_zip)
    for module in (xcodebuild, codesign, output):
        monkeypatch.setattr(module, "local", fake)
    return fake
