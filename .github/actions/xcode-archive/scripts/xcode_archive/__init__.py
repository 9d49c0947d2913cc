"""Archive and export Xcode projects from a CI runner.

This package drives ``xcodebuild`` to archive a scheme, exports an app,
installer package or IPA with generated export options, and publishes the
resulting artifacts, debug symbols and failure logs to the CI environment.
"""

from __future__ import annotations

from .config import ArchiveConfig, ArchiveInputs, build_config
from .errors import (
    ArchiveError,
    ExportError,
    InputError,
    SigningError,
    ToolchainError,
)
from .pipeline import ArchiveResult, run_archive_step

__all__ = [
    "ArchiveConfig",
    "ArchiveError",
    "ArchiveInputs",
    "ArchiveResult",
    "ExportError",
    "InputError",
    "SigningError",
    "ToolchainError",
    "build_config",
    "run_archive_step",
]
