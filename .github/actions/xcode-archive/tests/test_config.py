"""Tests for input normalisation and validation."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from xcode_archive.config import (
    ArchiveConfig,
    ArchiveInputs,
    build_config,
    coerce_flag,
    describe,
    effective_export_method,
    export_format,
    project_flag,
    resolve_for_xcode,
    validate,
)
from xcode_archive.errors import InputError
from xcode_archive.export_options import ExportMethod
from xcode_archive.xcodebuild import XcodeVersion


def _inputs(**overrides: str) -> ArchiveInputs:
    values = {
        "project_path": "App.xcodeproj",
        "scheme": "App",
        "output_dir": "build",
        "artifact_name": "App",
    }
    values.update(overrides)
    return ArchiveInputs(**values)


def _valid_config(tmp_path: Path, **overrides: object) -> ArchiveConfig:
    project = tmp_path / "App.xcworkspace"
    project.mkdir(exist_ok=True)
    values: dict[str, object] = {
        "project_path": project,
        "scheme": "App",
        "output_dir": tmp_path,
        "artifact_name": "App",
    }
    values.update(overrides)
    return ArchiveConfig(**values)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("yes", True), ("YES", True), ("true", True), ("no", False), ("", False)],
)
def test_coerce_flag_accepts_yes_no_values(raw: str, *, expected: bool) -> None:
    """Recognise the yes/no spellings used by workflow inputs."""
    assert coerce_flag(raw, parameter="flag") is expected


def test_coerce_flag_names_parameter_on_error() -> None:
    """Report the offending parameter name."""
    with pytest.raises(InputError, match="is_clean_build"):
        coerce_flag("maybe", parameter="is_clean_build")


def test_build_config_normalises_inputs() -> None:
    """Convert strings into typed configuration values."""
    config = build_config(
        _inputs(
            is_clean_build="yes",
            xcodebuild_options='-sdk macosx "OTHER_FLAGS=-a -b"',
            workdir="src",
            platform="iOS",
        )
    )

    assert config.project_path == Path("App.xcodeproj")
    assert config.output_dir == Path("build")
    assert config.is_clean_build is True
    assert config.is_export_xcarchive_zip is False
    assert config.xcodebuild_options == ("-sdk", "macosx", "OTHER_FLAGS=-a -b")
    assert config.workdir == Path("src")
    assert config.platform == "ios"


@pytest.mark.parametrize(
    ("field", "message"),
    [
        ("project_path", "ProjectPath - required variable is not present"),
        ("output_dir", "OutputDir - required variable is not present"),
    ],
)
def test_build_config_requires_paths(field: str, message: str) -> None:
    """Reject empty project and output paths."""
    with pytest.raises(InputError, match=message):
        build_config(_inputs(**{field: "  "}))


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("output_tool", "xcbeautify"),
        ("export_method", "store"),
        ("platform", "tvos"),
        ("auto_match_signing", "sometimes"),
    ],
)
def test_build_config_rejects_unknown_values(field: str, value: str) -> None:
    """Name the parameter that holds an unsupported value."""
    with pytest.raises(InputError, match=field):
        build_config(_inputs(**{field: value}))


def test_build_config_rejects_unbalanced_quotes() -> None:
    """Surface shlex errors as input errors."""
    with pytest.raises(InputError, match="xcodebuild_options"):
        build_config(_inputs(xcodebuild_options='-sdk "macosx'))


def test_validate_accepts_existing_paths(tmp_path: Path) -> None:
    """Pass a configuration whose paths exist."""
    validate(_valid_config(tmp_path))


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"scheme": ""}, "Scheme - required variable is not present"),
        ({"artifact_name": ""}, "ArtifactName - required variable is not present"),
        ({"output_dir": Path("/nonexistent/out")}, "OutputDir - path does not exist"),
    ],
)
def test_validate_rejects_invalid_config(
    tmp_path: Path, overrides: dict[str, object], message: str
) -> None:
    """Report the first invalid input."""
    with pytest.raises(InputError, match=message):
        validate(_valid_config(tmp_path, **overrides))


def test_validate_rejects_missing_project(tmp_path: Path) -> None:
    """Fail when the project does not exist."""
    config = _valid_config(tmp_path, project_path=tmp_path / "Missing.xcodeproj")
    with pytest.raises(InputError, match="ProjectPath - path does not exist"):
        validate(config)


def test_validate_rejects_unknown_project_extension(tmp_path: Path) -> None:
    """Only projects and workspaces can be archived."""
    project = tmp_path / "App.swift"
    project.write_text("", encoding="utf-8")
    with pytest.raises(InputError, match="extension should be"):
        validate(_valid_config(tmp_path, project_path=project))


def test_validate_warns_about_deprecated_inputs(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Deprecated inputs are accepted with a warning."""
    config = _valid_config(
        tmp_path, export_options_path="opts.plist", is_force_code_sign=True
    )
    with caplog.at_level(logging.WARNING):
        validate(config)
    assert "export_options_path is deprecated" in caplog.text
    assert "is_force_code_sign is deprecated" in caplog.text


def test_resolve_for_xcode_drops_unsupported_inputs(tmp_path: Path) -> None:
    """Older Xcode releases ignore newer signing overrides."""
    config = _valid_config(
        tmp_path,
        custom_export_options_plist_content="<plist/>",
        force_team_id="AB12CD34EF",
        force_provisioning_profile_specifier="App Profile",
        force_provisioning_profile="uuid",
        export_options_path="opts.plist",
    )

    resolved = resolve_for_xcode(config, XcodeVersion("6.4", "6E35b", 6))

    assert resolved.custom_export_options_plist_content == ""
    assert resolved.force_team_id == ""
    assert resolved.force_provisioning_profile_specifier == ""
    assert resolved.export_options_path == ""
    assert resolved.force_provisioning_profile == "uuid"


def test_resolve_for_xcode_prefers_specifier(tmp_path: Path) -> None:
    """A profile specifier wins over a profile UUID on modern Xcode."""
    config = _valid_config(
        tmp_path,
        force_team_id="AB12CD34EF",
        force_provisioning_profile_specifier="App Profile",
        force_provisioning_profile="uuid",
    )

    resolved = resolve_for_xcode(config, XcodeVersion("15.2", "15C500b", 15))

    assert resolved.force_team_id == "AB12CD34EF"
    assert resolved.force_provisioning_profile_specifier == "App Profile"
    assert resolved.force_provisioning_profile == ""


def test_resolve_for_xcode_returns_same_config_when_unchanged(
    tmp_path: Path,
) -> None:
    """Leave a compatible configuration untouched."""
    config = _valid_config(tmp_path)
    assert resolve_for_xcode(config, XcodeVersion("15.2", "15C500b", 15)) is config


@pytest.mark.parametrize(
    ("path", "flag"),
    [("App.xcodeproj", "-project"), ("App.xcworkspace", "-workspace")],
)
def test_project_flag(path: str, flag: str) -> None:
    """Select the xcodebuild flag from the extension."""
    assert project_flag(Path(path)) == flag


@pytest.mark.parametrize(
    ("platform", "method", "expected"),
    [
        ("macos", "app-store", "pkg"),
        ("macos", "developer-id", "app"),
        ("macos", "none", "app"),
        ("ios", "ad-hoc", "ipa"),
        ("ios", "none", "app"),
    ],
)
def test_export_format(platform: str, method: str, expected: str) -> None:
    """Map platform and export method to the exported file extension."""
    assert export_format(platform, method) == expected


def test_describe_logs_inputs_by_group(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Every input is logged under the group that consumes it."""
    config = _valid_config(
        tmp_path, export_method="ad-hoc", xcodebuild_options=("-quiet", "A B")
    )
    with caplog.at_level(logging.INFO):
        describe(config)

    messages = [record.getMessage() for record in caplog.records]
    assert messages[0] == "app/pkg export configs:"
    assert "- ExportMethod: ad-hoc" in messages
    assert "- XcodebuildOptions: -quiet 'A B'" in messages
    assert f"- ProjectPath: {config.project_path}" in messages
    assert "DEPRECATED configs:" in messages
    assert not any(record.levelno >= logging.WARNING for record in caplog.records)


def test_describe_warns_when_custom_options_override_inputs(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Custom export options make ``export_method`` an ignored input."""
    content = "<plist><dict><key>method</key><string>ad-hoc</string></dict></plist>"
    config = _valid_config(tmp_path, custom_export_options_plist_content=content)
    with caplog.at_level(logging.INFO):
        describe(config)

    warnings = [
        record.getMessage()
        for record in caplog.records
        if record.levelno == logging.WARNING
    ]
    assert warnings == [
        "Ignoring the following options because "
        "custom_export_options_plist_content is provided:",
        "----------",
    ]
    assert content in caplog.text


def test_effective_export_method_follows_custom_options(tmp_path: Path) -> None:
    """The custom plist's method overrides ``export_method``."""
    content = "<plist><dict><key>method</key><string>app-store</string></dict></plist>"
    config = _valid_config(
        tmp_path,
        export_method="developer-id",
        custom_export_options_plist_content=content,
    )
    assert effective_export_method(config) is ExportMethod.APP_STORE
    assert export_format("macos", effective_export_method(config)) == "pkg"


def test_effective_export_method_defaults_to_input(tmp_path: Path) -> None:
    """Without custom options the ``export_method`` input is used."""
    config = _valid_config(tmp_path, export_method="enterprise")
    assert effective_export_method(config) is ExportMethod.ENTERPRISE
