"""Helpers shared by the archive step's command-line entry points."""

from __future__ import annotations

import logging
import sys
import typing as typ
from os import environ

import cyclopts
import typer
from cyclopts import App

from .environment import normalize_input_env
from .errors import ArchiveError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = ["configure_app", "configure_logging", "run_app"]


def configure_app(help_text: str) -> App:
    """Return a Cyclopts app reading its parameters from ``INPUT_*`` too."""
    return App(help=help_text, config=cyclopts.config.Env("INPUT_", command=False))


def configure_logging(level: int = logging.INFO) -> None:
    """Send log records to stderr as bare messages, as CI logs expect."""
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)


def run_app(
    app: App, *, argv: cabc.Sequence[str] | None = None, title: str = "Failure"
) -> None:
    """Execute ``app`` and report user-facing errors as workflow annotations."""
    if argv is None:
        tokens = [] if "PYTEST_CURRENT_TEST" in environ else list(sys.argv[1:])
    else:
        tokens = list(argv)

    normalize_input_env()
    try:
        app(tokens)
    except (ArchiveError, FileNotFoundError, ValueError) as exc:
        typer.echo(f"::error title={title}::{exc}", err=True)
        raise SystemExit(1) from exc
