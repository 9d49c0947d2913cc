"""Inspect the contents of an ``.xcarchive`` bundle."""

from __future__ import annotations

import dataclasses
import logging
import plistlib
from pathlib import Path
from xml.parsers.expat import ExpatError

from .errors import ExportError

__all__ = ["ArchiveDSYMs", "bundle_ids", "find_dsyms", "find_embedded_app"]

logger = logging.getLogger(__name__)


@dataclasses.dataclass(slots=True, frozen=True)
class ArchiveDSYMs:
    """Debug symbol bundles found in an archive."""

    app: Path
    frameworks: tuple[Path, ...]


def find_embedded_app(archive_path: Path) -> Path:
    """Return the single application bundle stored in ``archive_path``."""
    pattern = "Products/Applications/*.app"
    matches = sorted(archive_path.glob(pattern))
    if not matches:
        msg = f"No embedded app found with pattern: {archive_path / pattern}"
        raise ExportError(msg)
    if len(matches) > 1:
        msg = f"Multiple embedded app found with pattern: {archive_path / pattern}"
        raise ExportError(msg)
    return matches[0]


def find_dsyms(archive_path: Path) -> ArchiveDSYMs:
    """Split the archive's dSYMs into the app dSYM and framework dSYMs."""
    dsyms_dir = archive_path / "dSYMs"
    if not dsyms_dir.is_dir():
        msg = f"No dSYMs directory in archive: {archive_path}"
        raise ExportError(msg)

    app_dsyms: list[Path] = []
    framework_dsyms: list[Path] = []
    for candidate in sorted(dsyms_dir.glob("*.dSYM")):
        if candidate.name.endswith(".app.dSYM"):
            app_dsyms.append(candidate)
        else:
            framework_dsyms.append(candidate)

    if not app_dsyms:
        msg = f"No app dSYM found in {dsyms_dir}"
        raise ExportError(msg)
    if len(app_dsyms) > 1:
        logger.warning("Multiple app dSYMs found, using %s", app_dsyms[0].name)
    return ArchiveDSYMs(app_dsyms[0], tuple(framework_dsyms))


def _info_plist(bundle: Path, platform: str) -> Path:
    if platform == "macos":
        return bundle / "Contents" / "Info.plist"
    return bundle / "Info.plist"


def _plugins_dir(bundle: Path, platform: str) -> Path:
    if platform == "macos":
        return bundle / "Contents" / "PlugIns"
    return bundle / "PlugIns"


def _read_bundle_id(bundle: Path, platform: str) -> str:
    info_path = _info_plist(bundle, platform)
    try:
        with info_path.open("rb") as handle:
            info = plistlib.load(handle)
    except (ExpatError, OSError, ValueError) as exc:
        msg = f"Failed to read {info_path}: {exc}"
        raise ExportError(msg) from exc
    bundle_id = info.get("CFBundleIdentifier") if isinstance(info, dict) else None
    if not isinstance(bundle_id, str) or not bundle_id:
        msg = f"CFBundleIdentifier missing from {info_path}"
        raise ExportError(msg)
    return bundle_id


def bundle_ids(archive_path: Path, platform: str) -> list[str]:
    """Return the bundle IDs that need a provisioning profile on export.

    The main application comes first, followed by its app extensions.
    """
    app = find_embedded_app(archive_path)
    ids = [_read_bundle_id(app, platform)]
    for extension in sorted(_plugins_dir(app, platform).glob("*.appex")):
        ids.append(_read_bundle_id(extension, platform))
    return ids
