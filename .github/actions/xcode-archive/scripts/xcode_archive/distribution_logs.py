"""Recover Xcode's IDE distribution logs after a failed export."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .errors import ArchiveError
from .output import IDEDISTRIBUTION_LOGS_PATH, zip_and_export_output

__all__ = [
    "CRITICAL_LOG_NAME",
    "find_distribution_logs_path",
    "publish_distribution_logs",
]

logger = logging.getLogger(__name__)

CRITICAL_LOG_NAME = "IDEDistribution.critical.log"

_BUNDLE_RE = re.compile(
    r"IDEDistribution: -\[IDEDistributionLogging _createLoggingBundleAtPath:\]: "
    r"Created bundle at path '(?P<log_path>.*)'"
)


def find_distribution_logs_path(output: str) -> Path | None:
    """Return the logging bundle path announced in ``xcodebuild`` output."""
    for line in output.splitlines():
        if match := _BUNDLE_RE.search(line):
            return Path(match.group("log_path"))
    return None


def publish_distribution_logs(output: str, zip_path: Path) -> Path | None:
    """Zip and publish the distribution logs referenced by ``output``.

    Best effort: every failure is logged as a warning and ``None`` is
    returned, so the export error that led here stays the reported one.
    """
    logs_dir = find_distribution_logs_path(output)
    if logs_dir is None:
        logger.warning("No xcdistributionlogs path found in the xcodebuild output")
        return None
    try:
        zip_and_export_output(logs_dir, zip_path, IDEDISTRIBUTION_LOGS_PATH)
    except (ArchiveError, OSError) as exc:
        logger.warning("Failed to export %s, error: %s", IDEDISTRIBUTION_LOGS_PATH, exc)
        return None

    critical_log = logs_dir / CRITICAL_LOG_NAME
    logger.warning("%s:", CRITICAL_LOG_NAME)
    try:
        logger.info("%s", critical_log.read_text(encoding="utf-8", errors="replace"))
    except OSError as exc:
        logger.warning("Could not read %s: %s", critical_log, exc)

    logger.warning(
        "If you can't find the reason of the error in the log, please check the "
        "xcdistributionlogs. Its full path is available in the $%s environment "
        "variable (value: %s)",
        IDEDISTRIBUTION_LOGS_PATH,
        zip_path,
    )
    return zip_path
