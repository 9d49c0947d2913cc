"""Environment helpers shared by the archive step."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from plumbum import local

__all__ = [
    "RUBY_ENV_KEYS",
    "normalize_input_env",
    "temp_dir",
    "unset_ruby_env",
]

logger = logging.getLogger(__name__)

RUBY_ENV_KEYS: tuple[str, ...] = (
    "GEM_HOME",
    "GEM_PATH",
    "RUBYLIB",
    "RUBYOPT",
    "BUNDLE_BIN_PATH",
    "_ORIGINAL_GEM_PATH",
    "BUNDLE_GEMFILE",
)


def normalize_input_env(prefix: str = "INPUT_") -> None:
    """Rewrite dashed input keys (``INPUT_OUTPUT-DIR``) to underscore keys.

    An existing underscore key wins over its dashed twin. The dashed
    variants are always removed so cyclopts never sees both.
    """
    alt_prefix = prefix.replace("_", "-")
    updates: dict[str, str] = {}
    removals: list[str] = []
    for key, value in os.environ.items():
        if not key.startswith((prefix, alt_prefix)) or "-" not in key:
            continue
        normalized = key.replace("-", "_")
        if normalized not in os.environ:
            updates[normalized] = value
        removals.append(key)
    for key, value in updates.items():
        os.environ[key] = value
    for key in removals:
        os.environ.pop(key, None)


def temp_dir(prefix: str) -> Path:
    """Create and return a fresh temporary directory named after ``prefix``."""
    return Path(tempfile.mkdtemp(prefix=f"{prefix}-"))


def unset_ruby_env() -> list[str]:
    """Drop the caller's Ruby/Bundler variables and return the removed keys.

    ``xcodebuild -exportArchive`` shells out to Xcode's bundled Ruby, which
    breaks when it inherits a Bundler environment from the CI runner.
    plumbum launches children from its own copy of the environment, so the
    keys are removed from both.
    """
    removed = [key for key in RUBY_ENV_KEYS if key in os.environ or key in local.env]
    for key in removed:
        os.environ.pop(key, None)
        if key in local.env:
            del local.env[key]
    if removed:
        logger.info("Unset Ruby environment: %s", ", ".join(removed))
    return removed
