"""Error types shared across the Xcode archive step."""

from __future__ import annotations

__all__ = [
    "ArchiveError",
    "ExportError",
    "InputError",
    "SigningError",
    "ToolchainError",
]


class ArchiveError(RuntimeError):
    """Raised when the archive step cannot continue."""


class InputError(ArchiveError):
    """Raised when a step input is missing or invalid."""


class ToolchainError(ArchiveError):
    """Raised when an Xcode toolchain command fails.

    ``output`` carries whatever the command printed before failing so the
    caller can publish it as a diagnostic log.
    """

    def __init__(self, message: str, *, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class ExportError(ArchiveError):
    """Raised when an artifact cannot be produced or published."""


class SigningError(ArchiveError):
    """Raised when no usable code-signing identity and profile pair exists."""
