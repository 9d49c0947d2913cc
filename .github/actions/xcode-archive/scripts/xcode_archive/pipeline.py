"""Archive, export and publish an Xcode scheme.

:func:`run_archive_step` runs the whole step; the helpers it calls are kept
separate so tests can drive a single phase against a fake toolchain.
"""

from __future__ import annotations

import dataclasses
import logging
import shutil
import typing as typ
from pathlib import Path

from . import codesign, xcarchive
from .config import (
    ArchiveConfig,
    describe,
    effective_export_method,
    export_format,
    project_flag,
    resolve_for_xcode,
    validate,
)
from .distribution_logs import publish_distribution_logs
from .environment import temp_dir, unset_ruby_env
from .errors import ArchiveError, ExportError, ToolchainError
from .export_options import ExportMethod, custom_export_options, new_export_options
from .output import (
    APP_PATH,
    DSYM_PATH,
    EXPORTED_FILE_PATH,
    IDEDISTRIBUTION_LOGS_PATH,
    XCARCHIVE_DIR_PATH,
    XCARCHIVE_PATH,
    XCODE_RAW_RESULT_TEXT_PATH,
    export_output_dir,
    export_output_file,
    export_output_file_content,
    zip_and_export_output,
)
from .xcodebuild import (
    ArchiveCommand,
    ExportCommand,
    run_plain,
    run_with_xcpretty,
    xcode_version,
    xcpretty_version,
)

if typ.TYPE_CHECKING:
    from .codesign import SigningGroup
    from .xcodebuild import XcodebuildCommand

__all__ = [
    "ArchiveResult",
    "ArtifactPaths",
    "create_archive",
    "determine_toolchain",
    "export_dsyms",
    "export_product",
    "plan_artifact_paths",
    "publish_archive",
    "remove_stale_outputs",
    "run_archive_step",
]

logger = logging.getLogger(__name__)

RAW_LOG_NAME = "raw-xcodebuild-output.log"
DISTRIBUTION_LOGS_NAME = "xcodebuild.xcdistributionlogs.zip"
EXPORT_OPTIONS_NAME = "export_options.plist"


@dataclasses.dataclass(slots=True, frozen=True)
class ArtifactPaths:
    """Every path the step writes, computed up front."""

    archive: Path
    archive_zip: Path
    export_options: Path
    exported_file: Path
    dsym_zip: Path
    raw_log: Path
    distribution_logs_zip: Path

    @property
    def exported_zip(self) -> Path:
        """Return the zip published for ``app`` exports."""
        return self.exported_file.with_name(f"{self.exported_file.name}.zip")

    def stale_outputs(self) -> tuple[Path, ...]:
        """Return the outputs a previous run may have left behind."""
        return (
            self.exported_file,
            self.exported_zip,
            self.dsym_zip,
            self.raw_log,
            self.archive_zip,
            self.export_options,
        )


@dataclasses.dataclass(slots=True)
class ArchiveResult:
    """Outcome of :func:`run_archive_step`."""

    archive_path: Path
    export_format: str
    published: dict[str, Path] = dataclasses.field(default_factory=dict)


def plan_artifact_paths(
    output_dir: Path, artifact_name: str, file_format: str, archive_dir: Path
) -> ArtifactPaths:
    """Return the artifact layout for ``artifact_name`` under ``output_dir``."""
    return ArtifactPaths(
        archive=archive_dir / f"{artifact_name}.xcarchive",
        archive_zip=output_dir / f"{artifact_name}.xcarchive.zip",
        export_options=output_dir / EXPORT_OPTIONS_NAME,
        exported_file=output_dir / f"{artifact_name}.{file_format}",
        dsym_zip=output_dir / f"{artifact_name}.dSYM.zip",
        raw_log=output_dir / RAW_LOG_NAME,
        distribution_logs_zip=output_dir / DISTRIBUTION_LOGS_NAME,
    )


def remove_stale_outputs(paths: ArtifactPaths) -> None:
    """Delete outputs of an earlier run so nothing stale gets published."""
    for path in paths.stale_outputs():
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
        except OSError as exc:
            msg = f"Failed to remove path ({path}), error: {exc}"
            raise ArchiveError(msg) from exc


def determine_toolchain(config: ArchiveConfig) -> ArchiveConfig:
    """Log the toolchain versions and return the effective configuration."""
    logger.info("step determined configs:")
    version = xcode_version()
    logger.info("- xcodebuild_version: %s (%s)", version.version, version.build_version)
    if config.output_tool == "xcpretty":
        logger.info("- xcpretty_version: %s", xcpretty_version())
    return resolve_for_xcode(config, version)


def _run_xcodebuild(command: XcodebuildCommand, output_tool: str) -> str:
    if output_tool == "xcpretty":
        return run_with_xcpretty(command)
    return run_plain(command, capture=isinstance(command, ExportCommand))


def _publish_raw_log(output: str, paths: ArtifactPaths, result: ArchiveResult) -> None:
    """Publish raw ``xcodebuild`` output, warning instead of failing."""
    try:
        result.published[XCODE_RAW_RESULT_TEXT_PATH] = export_output_file_content(
            output, paths.raw_log, XCODE_RAW_RESULT_TEXT_PATH
        )
    except OSError as exc:
        logger.warning(
            "Failed to export %s, error: %s", XCODE_RAW_RESULT_TEXT_PATH, exc
        )
        return
    logger.warning(
        "If you can't find the reason of the error in the log, please check the "
        "%s. Its full path is available in the $%s environment variable "
        "(value: %s)",
        RAW_LOG_NAME,
        XCODE_RAW_RESULT_TEXT_PATH,
        paths.raw_log,
    )


def create_archive(
    config: ArchiveConfig, paths: ArtifactPaths, result: ArchiveResult
) -> Path:
    """Run ``xcodebuild archive`` and return the archive path."""
    logger.info("Create archive ...")
    command = ArchiveCommand(
        project_path=config.project_path,
        is_workspace=project_flag(config.project_path) == "-workspace",
        scheme=config.scheme,
        configuration=config.configuration,
        archive_path=paths.archive,
        force_team_id=config.force_team_id,
        force_provisioning_profile_specifier=(
            config.force_provisioning_profile_specifier
        ),
        force_provisioning_profile=config.force_provisioning_profile,
        force_code_sign_identity=config.force_code_sign_identity,
        clean=config.is_clean_build,
        extra_options=config.xcodebuild_options,
    )
    for label, value in (
        ("Development Team", config.force_team_id),
        ("Provisioning Profile Specifier", config.force_provisioning_profile_specifier),
        ("Provisioning Profile", config.force_provisioning_profile),
        ("Code Signing Identity", config.force_code_sign_identity),
    ):
        if value:
            logger.info("Forcing %s: %s", label, value)

    try:
        _run_xcodebuild(command, config.output_tool)
    except ToolchainError as exc:
        if config.output_tool == "xcpretty":
            _publish_raw_log(exc.output, paths, result)
        msg = f"Archive failed, error: {exc}"
        raise ArchiveError(msg) from exc

    if not paths.archive.exists():
        msg = f"No archive generated at: {paths.archive}"
        raise ArchiveError(msg)
    return paths.archive


def publish_archive(
    config: ArchiveConfig, paths: ArtifactPaths, result: ArchiveResult
) -> None:
    """Publish the archive directory and, when requested, its zip."""
    logger.info("Exporting xcarchive ...")
    result.published[XCARCHIVE_DIR_PATH] = export_output_dir(
        paths.archive, paths.archive, XCARCHIVE_DIR_PATH
    )
    logger.info(
        "The xcarchive path is now available in the Environment Variable: "
        "%s (value: %s)",
        XCARCHIVE_DIR_PATH,
        paths.archive,
    )
    if config.is_export_xcarchive_zip:
        result.published[XCARCHIVE_PATH] = zip_and_export_output(
            paths.archive, paths.archive_zip, XCARCHIVE_PATH
        )
        logger.info(
            "The xcarchive zip path is now available in the Environment Variable: "
            "%s (value: %s)",
            XCARCHIVE_PATH,
            paths.archive_zip,
        )


def _export_unsigned_copy(paths: ArtifactPaths, result: ArchiveResult) -> None:
    logger.info("Export a copy of the application without re-signing...")
    embedded_app = xcarchive.find_embedded_app(paths.archive)
    app_path = paths.exported_file
    result.published[APP_PATH] = export_output_dir(embedded_app, app_path, APP_PATH)
    logger.info(
        "The app path is now available in the Environment Variable: %s (value: %s)",
        APP_PATH,
        app_path,
    )
    zip_path = paths.exported_zip
    result.published[EXPORTED_FILE_PATH] = zip_and_export_output(
        embedded_app, zip_path, EXPORTED_FILE_PATH
    )
    logger.info(
        "The app.zip path is now available in the Environment Variable: "
        "%s (value: %s)",
        EXPORTED_FILE_PATH,
        zip_path,
    )


def _match_signing(
    config: ArchiveConfig, archive_path: Path, method: ExportMethod
) -> SigningGroup:
    bundle_ids = xcarchive.bundle_ids(archive_path, config.platform)
    logger.info("Matching signing assets for: %s", ", ".join(bundle_ids))
    installers = (
        codesign.list_installer_identities()
        if method is ExportMethod.APP_STORE and config.platform == "macos"
        else []
    )
    return codesign.match_signing(
        bundle_ids,
        method,
        codesign.list_identities(),
        codesign.installed_profiles(config.platform),
        installer_identities=installers,
        team_id=config.force_team_id,
    )


def _write_export_options(
    config: ArchiveConfig, paths: ArtifactPaths, method: ExportMethod
) -> Path:
    if config.uses_custom_export_options:
        logger.info("custom export options content:")
        logger.info("%s", config.custom_export_options_plist_content)
        return custom_export_options(
            config.custom_export_options_plist_content, paths.export_options
        )
    signing = (
        _match_signing(config, paths.archive, method)
        if config.auto_match_signing
        else None
    )
    options = new_export_options(method, team_id=config.force_team_id, signing=signing)
    logger.info("generated export options content:")
    logger.info("%s", options.render())
    return options.write_to_file(paths.export_options)


def _export_with_options(
    config: ArchiveConfig,
    paths: ArtifactPaths,
    result: ArchiveResult,
    method: ExportMethod,
) -> None:
    logger.info("Export using exportOptions...")
    export_dir = temp_dir("export")
    command = ExportCommand(
        archive_path=paths.archive,
        export_dir=export_dir,
        export_options_plist=_write_export_options(config, paths, method),
    )

    try:
        _run_xcodebuild(command, config.output_tool)
    except ToolchainError as exc:
        if config.output_tool == "xcpretty":
            _publish_raw_log(exc.output, paths, result)
        if logs := publish_distribution_logs(exc.output, paths.distribution_logs_zip):
            result.published[IDEDISTRIBUTION_LOGS_PATH] = logs
        msg = f"Export failed, error: {exc}"
        raise ExportError(msg) from exc

    file_format = result.export_format
    exported = sorted(export_dir.glob(f"*.{file_format}"))
    if not exported:
        msg = f"No exported .{file_format} found in {export_dir}"
        raise ExportError(msg)

    if file_format == "app":
        result.published[APP_PATH] = export_output_dir(
            exported[0], paths.exported_file, APP_PATH
        )
        published = zip_and_export_output(
            exported[0], paths.exported_zip, EXPORTED_FILE_PATH
        )
    else:
        published = export_output_file(
            exported[0], paths.exported_file, EXPORTED_FILE_PATH
        )
    result.published[EXPORTED_FILE_PATH] = published
    logger.info(
        "The %s path is now available in the Environment Variable: %s (value: %s)",
        file_format,
        EXPORTED_FILE_PATH,
        published,
    )


def export_product(
    config: ArchiveConfig, paths: ArtifactPaths, result: ArchiveResult
) -> None:
    """Export the application or installer package from the archive."""
    logger.info("Exporting APP from generated Archive ...")
    unset_ruby_env()
    method = effective_export_method(config)
    if method is ExportMethod.NONE:
        _export_unsigned_copy(paths, result)
    else:
        _export_with_options(config, paths, result, method)


def export_dsyms(
    config: ArchiveConfig, paths: ArtifactPaths, result: ArchiveResult
) -> Path:
    """Zip the app dSYM (plus framework dSYMs when asked) and publish it."""
    logger.info("Exporting dSYM files ...")
    dsyms = xcarchive.find_dsyms(paths.archive)
    staging = temp_dir("dsyms") / "dSYMs"
    staging.mkdir()

    selected = [dsyms.app]
    if config.is_export_all_dsyms:
        selected.extend(dsyms.frameworks)
    for dsym in selected:
        try:
            shutil.copytree(dsym, staging / dsym.name, symlinks=True)
        except OSError as exc:
            msg = f"Failed to copy ({dsym}) -> ({staging}), error: {exc}"
            raise ExportError(msg) from exc

    result.published[DSYM_PATH] = zip_and_export_output(
        staging, paths.dsym_zip, DSYM_PATH
    )
    logger.info(
        "The dSYM dir path is now available in the Environment Variable: "
        "%s (value: %s)",
        DSYM_PATH,
        paths.dsym_zip,
    )
    return paths.dsym_zip


def run_archive_step(config: ArchiveConfig) -> ArchiveResult:
    """Archive ``config.scheme``, export it and publish every artifact.

    Raises
    ------
    ArchiveError
        Raised (or one of its subclasses) when any phase fails.
    """
    describe(config)
    validate(config)
    config = determine_toolchain(config)

    file_format = export_format(config.platform, effective_export_method(config))
    output_dir = config.output_dir.resolve()
    output_dir.mkdir(parents=True, exist_ok=True)
    config = dataclasses.replace(
        config, project_path=config.project_path.resolve(), output_dir=output_dir
    )

    paths = plan_artifact_paths(
        output_dir, config.artifact_name, file_format, temp_dir("xcarchive")
    )
    logger.info("- action: %s", project_flag(config.project_path))
    logger.info("- export_format: %s", file_format)
    for field in dataclasses.fields(paths):
        logger.info("- %s: %s", field.name, getattr(paths, field.name))
    remove_stale_outputs(paths)

    result = ArchiveResult(paths.archive, file_format)
    create_archive(config, paths, result)
    publish_archive(config, paths, result)
    export_product(config, paths, result)
    export_dsyms(config, paths, result)
    return result
