#!/usr/bin/env -S uv run --script
# fmt: off
# /// script
# requires-python = ">=3.12"
# dependencies = [
#   "cyclopts>=3.24,<4.0",
#   "plumbum>=1.8",
#   "syspath-hack>=0.4.0,<0.5.0",
#   "typer>=0.12",
# ]
# ///
# fmt: on

"""Write a minimal export options plist for an existing archive."""

from __future__ import annotations

import logging
import plistlib
from pathlib import Path

from syspath_hack import prepend_to_syspath

_SCRIPT_DIR = Path(__file__).resolve().parent
prepend_to_syspath(_SCRIPT_DIR)

from xcode_archive.cli import configure_app, configure_logging, run_app
from xcode_archive.errors import InputError
from xcode_archive.export_options import ExportMethod

logger = logging.getLogger(__name__)

app = configure_app("Generate an export options plist for xcodebuild.")


def _plist_payload(export_method: str) -> dict[str, str]:
    if not export_method:
        return {}
    return {"method": ExportMethod.parse(export_method).value}


@app.default
def main(
    *,
    export_options_path: str = "",
    archive_path: str = "",
    export_method: str = "",
) -> Path:
    """Write ``{"method": export_method}`` to ``export_options_path``.

    Parameters
    ----------
    export_options_path
        Destination of the generated plist.
    archive_path
        Archive the options are meant for; required but only reported.
    export_method
        Export method to record; omitted from the plist when empty.
    """
    if not export_options_path:
        msg = "export_options_path not specified"
        raise InputError(msg)
    logger.info("(i) export_options_path: %s", export_options_path)
    if not archive_path:
        msg = "archive_path not specified"
        raise InputError(msg)
    logger.info("(i) archive_path: %s", archive_path)

    logger.info("==> Create export options")
    payload = _plist_payload(export_method)
    logger.info(" (i) export_options: %s", payload)
    content = plistlib.dumps(payload, fmt=plistlib.FMT_XML).decode("utf-8")
    logger.info(" (i) plist_content: %s", content)

    destination = Path(export_options_path)
    logger.info(" (i) saving into file: %s", destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(content, encoding="utf-8")
    return destination


if __name__ == "__main__":
    configure_logging()
    run_app(app, title="Export Options Failure")
