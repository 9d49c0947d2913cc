"""Publish step artifacts to the CI environment.

Every published artifact ends up in three places: the current process
environment, ``GITHUB_ENV`` (for later steps) and ``GITHUB_OUTPUT`` under a
lower-cased key (for ``steps.<id>.outputs``).
"""

from __future__ import annotations

import logging
import os
import shutil
import typing as typ
from pathlib import Path

from plumbum import local
from plumbum.commands.processes import ProcessExecutionError

from .commands import run_cmd
from .errors import ExportError

__all__ = [
    "APP_PATH",
    "DSYM_PATH",
    "EXPORTED_FILE_PATH",
    "IDEDISTRIBUTION_LOGS_PATH",
    "XCARCHIVE_DIR_PATH",
    "XCARCHIVE_PATH",
    "XCODE_RAW_RESULT_TEXT_PATH",
    "export_env",
    "export_output_dir",
    "export_output_file",
    "export_output_file_content",
    "zip_and_export_output",
]

logger = logging.getLogger(__name__)

XCODE_RAW_RESULT_TEXT_PATH: typ.Final = "XCODE_RAW_RESULT_TEXT_PATH"
EXPORTED_FILE_PATH: typ.Final = "EXPORTED_FILE_PATH"
DSYM_PATH: typ.Final = "DSYM_PATH"
XCARCHIVE_PATH: typ.Final = "XCARCHIVE_PATH"
XCARCHIVE_DIR_PATH: typ.Final = "XCARCHIVE_DIR_PATH"
APP_PATH: typ.Final = "APP_PATH"
IDEDISTRIBUTION_LOGS_PATH: typ.Final = "IDEDISTRIBUTION_LOGS_PATH"


def _format_entry(key: str, value: str) -> str:
    """Format ``key``/``value`` for a GitHub environment or output file."""
    if "\n" not in value:
        return f"{key}={value}\n"
    delimiter = f"gh_{key.upper()}"
    return f"{key}<<{delimiter}\n{value}\n{delimiter}\n"


def _append(path: Path, key: str, value: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(_format_entry(key, value))


def export_env(key: str, value: str) -> None:
    """Expose ``key=value`` to this process and to subsequent CI steps."""
    os.environ[key] = value
    if env_file := os.environ.get("GITHUB_ENV"):
        _append(Path(env_file), key, value)
    if output_file := os.environ.get("GITHUB_OUTPUT"):
        _append(Path(output_file), key.lower(), value)


def _remove_existing(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def export_output_file(source: Path, destination: Path, key: str) -> Path:
    """Copy the ``source`` file to ``destination`` and publish it as ``key``."""
    if source.resolve() != destination.resolve():
        destination.parent.mkdir(parents=True, exist_ok=True)
        _remove_existing(destination)
        shutil.copy2(source, destination)
    export_env(key, str(destination))
    return destination


def export_output_dir(source: Path, destination: Path, key: str) -> Path:
    """Copy the ``source`` directory to ``destination`` and publish it as ``key``.

    Symlinks inside bundles are preserved; when ``source`` already is the
    destination only the environment variable is written.
    """
    if source.resolve() != destination.resolve():
        destination.parent.mkdir(parents=True, exist_ok=True)
        _remove_existing(destination)
        shutil.copytree(source, destination, symlinks=True)
    export_env(key, str(destination))
    return destination


def export_output_file_content(content: str, destination: Path, key: str) -> Path:
    """Write ``content`` to ``destination`` and publish it as ``key``."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(content, encoding="utf-8")
    export_env(key, str(destination))
    return destination


def zip_and_export_output(source: Path, zip_path: Path, key: str) -> Path:
    """Zip ``source`` into ``zip_path`` and publish the archive as ``key``.

    ``zip`` runs from the parent directory so the archive holds a single
    top-level entry named after ``source``; ``-y`` keeps bundle symlinks.
    """
    if not source.exists():
        msg = f"Cannot zip missing path: {source}"
        raise ExportError(msg)
    zip_path.parent.mkdir(parents=True, exist_ok=True)
    _remove_existing(zip_path)

    command = local["zip"]["-rTy", str(zip_path), source.name].with_cwd(
        str(source.parent)
    )
    try:
        run_cmd(command)
    except ProcessExecutionError as exc:
        msg = f"Failed to zip {source} into {zip_path}: {exc}"
        raise ExportError(msg) from exc
    if not zip_path.is_file():
        msg = f"zip did not produce {zip_path}"
        raise ExportError(msg)

    export_env(key, str(zip_path))
    logger.info("Zipped '%s' -> '%s'", source, zip_path)
    return zip_path
