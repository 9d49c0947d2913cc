"""Tests for the export options generator script."""

from __future__ import annotations

import plistlib
import typing as typ
from pathlib import Path

import pytest

from xcode_archive.errors import InputError

if typ.TYPE_CHECKING:
    from collections import abc as cabc
else:  # pragma: no cover - runtime fallback for annotations
    cabc = typ.cast("object", None)


def test_writes_method(
    tmp_path: Path, load_module: cabc.Callable[[str], object]
) -> None:
    """The plist records the requested export method."""
    module = load_module("generate_export_options")
    target = tmp_path / "nested" / "export_options.plist"

    written = module.main(
        export_options_path=str(target),
        archive_path=str(tmp_path / "App.xcarchive"),
        export_method="enterprise",
    )

    assert written == target
    assert plistlib.loads(target.read_bytes()) == {"method": "enterprise"}


def test_writes_empty_dictionary_without_method(
    tmp_path: Path, load_module: cabc.Callable[[str], object]
) -> None:
    """No method yields an empty dictionary."""
    module = load_module("generate_export_options")
    target = tmp_path / "export_options.plist"

    module.main(export_options_path=str(target), archive_path="App.xcarchive")

    assert plistlib.loads(target.read_bytes()) == {}


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"archive_path": "App.xcarchive"}, "export_options_path not specified"),
        ({"export_options_path": "opts.plist"}, "archive_path not specified"),
        (
            {
                "export_options_path": "opts.plist",
                "archive_path": "App.xcarchive",
                "export_method": "store",
            },
            "Invalid export method",
        ),
    ],
)
def test_rejects_invalid_inputs(
    kwargs: dict[str, str],
    message: str,
    load_module: cabc.Callable[[str], object],
) -> None:
    """Missing paths and unknown methods are input errors."""
    module = load_module("generate_export_options")
    with pytest.raises(InputError, match=message):
        module.main(**kwargs)
