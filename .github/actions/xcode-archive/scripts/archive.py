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

"""Command-line entry point for the Xcode archive step.

Examples
--------
Archive and export a macOS app locally::

    export GITHUB_ENV="$(mktemp)" GITHUB_OUTPUT="$(mktemp)"
    INPUT_PROJECT_PATH=App.xcodeproj INPUT_SCHEME=App \
        INPUT_OUTPUT_DIR=build INPUT_ARTIFACT_NAME=App \
        INPUT_EXPORT_METHOD=developer-id uv run archive.py
"""

from __future__ import annotations

import contextlib
from pathlib import Path

import typer
from plumbum import local
from syspath_hack import prepend_to_syspath

# Add script directory to path for xcode_archive import
_SCRIPT_DIR = Path(__file__).resolve().parent
prepend_to_syspath(_SCRIPT_DIR)

from xcode_archive import ArchiveInputs, build_config, run_archive_step
from xcode_archive.cli import configure_app, configure_logging, run_app

app = configure_app("Archive an Xcode scheme and export its app or package.")


@app.default
def main(
    *,
    project_path: str = "",
    scheme: str = "",
    configuration: str = "",
    platform: str = "macos",
    export_method: str = "developer-id",
    force_team_id: str = "",
    force_provisioning_profile_specifier: str = "",
    force_provisioning_profile: str = "",
    force_code_sign_identity: str = "",
    custom_export_options_plist_content: str = "",
    auto_match_signing: str = "no",
    output_tool: str = "xcpretty",
    workdir: str = "",
    output_dir: str = "",
    artifact_name: str = "",
    is_clean_build: str = "no",
    is_export_xcarchive_zip: str = "no",
    is_export_all_dsyms: str = "no",
    xcodebuild_options: str = "",
    export_options_path: str = "",
    is_force_code_sign: str = "no",
) -> None:
    """Archive ``scheme`` and publish the exported artifacts.

    Parameters
    ----------
    project_path
        ``.xcodeproj`` or ``.xcworkspace`` to build.
    scheme
        Scheme to archive.
    configuration
        Build configuration; the scheme's archive configuration when empty.
    platform
        ``macos`` or ``ios``.
    export_method
        ``none``, ``app-store``, ``development``, ``developer-id``,
        ``ad-hoc`` or ``enterprise``.
    force_team_id
        Overrides ``DEVELOPMENT_TEAM``.
    force_provisioning_profile_specifier
        Overrides ``PROVISIONING_PROFILE_SPECIFIER``.
    force_provisioning_profile
        Overrides ``PROVISIONING_PROFILE`` (a profile UUID).
    force_code_sign_identity
        Overrides ``CODE_SIGN_IDENTITY``.
    custom_export_options_plist_content
        Export options plist used verbatim instead of the generated one.
    auto_match_signing
        Pin a matching installed identity and profiles in the export options.
    output_tool
        ``xcpretty`` or ``xcodebuild``.
    workdir
        Directory to run in.
    output_dir
        Directory receiving the artifacts.
    artifact_name
        Base name of every artifact.
    is_clean_build
        Run the ``clean`` action before archiving.
    is_export_xcarchive_zip
        Also publish a zip of the archive.
    is_export_all_dsyms
        Include framework dSYMs in the dSYM zip.
    xcodebuild_options
        Extra ``xcodebuild`` arguments.
    export_options_path
        Deprecated and ignored.
    is_force_code_sign
        Deprecated and ignored.
    """
    inputs = ArchiveInputs(
        project_path=project_path,
        scheme=scheme,
        configuration=configuration,
        platform=platform,
        export_method=export_method,
        force_team_id=force_team_id,
        force_provisioning_profile_specifier=force_provisioning_profile_specifier,
        force_provisioning_profile=force_provisioning_profile,
        force_code_sign_identity=force_code_sign_identity,
        custom_export_options_plist_content=custom_export_options_plist_content,
        auto_match_signing=auto_match_signing,
        output_tool=output_tool,
        workdir=workdir,
        output_dir=output_dir,
        artifact_name=artifact_name,
        is_clean_build=is_clean_build,
        is_export_xcarchive_zip=is_export_xcarchive_zip,
        is_export_all_dsyms=is_export_all_dsyms,
        xcodebuild_options=xcodebuild_options,
        export_options_path=export_options_path,
        is_force_code_sign=is_force_code_sign,
    )
    config = build_config(inputs)
    cwd_context = (
        local.cwd(str(config.workdir)) if config.workdir else contextlib.nullcontext()
    )
    with cwd_context:
        result = run_archive_step(config)

    typer.echo(
        f"Published {len(result.published)} artifact(s) "
        f"for {config.artifact_name}.{result.export_format}.",
        err=True,
    )


if __name__ == "__main__":
    configure_logging()
    run_app(app, title="Xcode Archive Failure")
