"""Input models and validation for the archive step.

Inputs arrive as strings (``INPUT_*`` variables or CLI flags). They are
collected verbatim in :class:`ArchiveInputs`, converted into an
:class:`ArchiveConfig` by :func:`build_config`, checked by :func:`validate`
and finally adjusted to the host's Xcode by :func:`resolve_for_xcode`.
"""

from __future__ import annotations

import dataclasses
import logging
import shlex
import typing as typ
from pathlib import Path

from .errors import InputError
from .export_options import ExportMethod, custom_export_method

if typ.TYPE_CHECKING:
    from .xcodebuild import XcodeVersion

__all__ = [
    "EXPORT_METHODS",
    "OUTPUT_TOOLS",
    "PLATFORMS",
    "ArchiveConfig",
    "ArchiveInputs",
    "build_config",
    "coerce_flag",
    "describe",
    "effective_export_method",
    "export_format",
    "project_flag",
    "resolve_for_xcode",
    "validate",
]

logger = logging.getLogger(__name__)

OUTPUT_TOOLS: tuple[str, ...] = ("xcpretty", "xcodebuild")
PLATFORMS: tuple[str, ...] = ("macos", "ios")
EXPORT_METHODS: tuple[str, ...] = tuple(method.value for method in ExportMethod)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def coerce_flag(value: bool | str, *, parameter: str) -> bool:  # noqa: FBT001
    """Interpret a yes/no style input, naming ``parameter`` on failure.

    Examples
    --------
    >>> coerce_flag("yes", parameter="is_clean_build")
    True
    >>> coerce_flag("", parameter="is_clean_build")
    False
    """
    if isinstance(value, bool):
        return value
    normalised = value.strip().lower()
    if normalised in _TRUTHY:
        return True
    if normalised in _FALSY:
        return False
    msg = f"Invalid value for {parameter}: {value!r}. Expected yes or no."
    raise InputError(msg)


def _require_option(value: str, options: tuple[str, ...], parameter: str) -> str:
    if value not in options:
        joined = ", ".join(options)
        msg = f"Invalid value for {parameter}: {value!r}. Expected one of: {joined}"
        raise InputError(msg)
    return value


def _require_value(value: str, label: str) -> str:
    stripped = value.strip()
    if not stripped:
        msg = f"{label} - required variable is not present"
        raise InputError(msg)
    return stripped


@dataclasses.dataclass(frozen=True, kw_only=True)
class ArchiveInputs:
    """Raw step inputs collected before normalisation."""

    project_path: str = ""
    scheme: str = ""
    configuration: str = ""
    platform: str = "macos"
    export_method: str = "developer-id"
    force_team_id: str = ""
    force_provisioning_profile_specifier: str = ""
    force_provisioning_profile: str = ""
    force_code_sign_identity: str = ""
    custom_export_options_plist_content: str = ""
    auto_match_signing: str = "no"
    output_tool: str = "xcpretty"
    workdir: str = ""
    output_dir: str = ""
    artifact_name: str = ""
    is_clean_build: str = "no"
    is_export_xcarchive_zip: str = "no"
    is_export_all_dsyms: str = "no"
    xcodebuild_options: str = ""
    export_options_path: str = ""
    is_force_code_sign: str = "no"


@dataclasses.dataclass(frozen=True, kw_only=True)
class ArchiveConfig:
    """Normalised configuration consumed by the pipeline."""

    project_path: Path
    scheme: str
    configuration: str = ""
    platform: str = "macos"
    export_method: str = ExportMethod.DEVELOPER_ID.value
    force_team_id: str = ""
    force_provisioning_profile_specifier: str = ""
    force_provisioning_profile: str = ""
    force_code_sign_identity: str = ""
    custom_export_options_plist_content: str = ""
    auto_match_signing: bool = False
    output_tool: str = "xcpretty"
    workdir: Path | None = None
    output_dir: Path
    artifact_name: str
    is_clean_build: bool = False
    is_export_xcarchive_zip: bool = False
    is_export_all_dsyms: bool = False
    xcodebuild_options: tuple[str, ...] = ()
    export_options_path: str = ""
    is_force_code_sign: bool = False

    @property
    def uses_custom_export_options(self) -> bool:
        """Return ``True`` when verbatim export options replace generated ones."""
        return bool(self.custom_export_options_plist_content.strip())


def build_config(inputs: ArchiveInputs) -> ArchiveConfig:
    """Convert raw ``inputs`` into an :class:`ArchiveConfig`.

    Flags and enumerations are checked here; path existence is left to
    :func:`validate` so relative paths can be resolved from ``workdir``.
    """
    project_path = _require_value(inputs.project_path, "ProjectPath")
    output_dir = _require_value(inputs.output_dir, "OutputDir")
    try:
        extra_options = tuple(shlex.split(inputs.xcodebuild_options))
    except ValueError as exc:
        msg = f"Invalid value for xcodebuild_options: {exc}"
        raise InputError(msg) from exc

    return ArchiveConfig(
        project_path=Path(project_path),
        scheme=inputs.scheme.strip(),
        configuration=inputs.configuration.strip(),
        platform=_require_option(
            inputs.platform.strip().lower(), PLATFORMS, "platform"
        ),
        export_method=_require_option(
            inputs.export_method.strip(), EXPORT_METHODS, "export_method"
        ),
        force_team_id=inputs.force_team_id.strip(),
        force_provisioning_profile_specifier=(
            inputs.force_provisioning_profile_specifier.strip()
        ),
        force_provisioning_profile=inputs.force_provisioning_profile.strip(),
        force_code_sign_identity=inputs.force_code_sign_identity.strip(),
        custom_export_options_plist_content=inputs.custom_export_options_plist_content,
        auto_match_signing=coerce_flag(
            inputs.auto_match_signing, parameter="auto_match_signing"
        ),
        output_tool=_require_option(
            inputs.output_tool.strip(), OUTPUT_TOOLS, "output_tool"
        ),
        workdir=Path(inputs.workdir) if inputs.workdir.strip() else None,
        output_dir=Path(output_dir),
        artifact_name=inputs.artifact_name.strip(),
        is_clean_build=coerce_flag(inputs.is_clean_build, parameter="is_clean_build"),
        is_export_xcarchive_zip=coerce_flag(
            inputs.is_export_xcarchive_zip, parameter="is_export_xcarchive_zip"
        ),
        is_export_all_dsyms=coerce_flag(
            inputs.is_export_all_dsyms, parameter="is_export_all_dsyms"
        ),
        xcodebuild_options=extra_options,
        export_options_path=inputs.export_options_path.strip(),
        is_force_code_sign=coerce_flag(
            inputs.is_force_code_sign, parameter="is_force_code_sign"
        ),
    )


def validate(config: ArchiveConfig) -> None:
    """Check paths and required values, warning about deprecated inputs.

    Raises
    ------
    InputError
        Raised for the first invalid input, prefixed with its name.
    """
    if not config.project_path.exists():
        msg = f"ProjectPath - path does not exist: {config.project_path}"
        raise InputError(msg)
    if not config.output_dir.exists():
        msg = f"OutputDir - path does not exist: {config.output_dir}"
        raise InputError(msg)
    if not config.scheme:
        msg = "Scheme - required variable is not present"
        raise InputError(msg)
    if not config.artifact_name:
        msg = "ArtifactName - required variable is not present"
        raise InputError(msg)
    project_flag(config.project_path)

    if config.export_options_path:
        logger.warning(
            "::warning title=Deprecated Input::export_options_path is deprecated"
        )
        logger.warning("Use `custom_export_options_plist_content` instead.")
    if config.is_force_code_sign:
        logger.warning(
            "::warning title=Deprecated Input::is_force_code_sign is deprecated"
        )
        logger.warning(
            "Use `force_code_sign_identity` and "
            "`force_provisioning_profile_specifier/force_provisioning_profile` instead."
        )


def describe(config: ArchiveConfig) -> None:
    """Log every input, grouped the way the step consumes them."""
    logger.info("app/pkg export configs:")
    if config.uses_custom_export_options:
        logger.warning(
            "Ignoring the following options because "
            "custom_export_options_plist_content is provided:"
        )
    logger.info("- ExportMethod: %s", config.export_method)
    if config.uses_custom_export_options:
        logger.warning("----------")
    logger.info("- ForceTeamID: %s", config.force_team_id)
    logger.info(
        "- ForceProvisioningProfileSpecifier: %s",
        config.force_provisioning_profile_specifier,
    )
    logger.info("- ForceProvisioningProfile: %s", config.force_provisioning_profile)
    logger.info("- ForceCodeSignIdentity: %s", config.force_code_sign_identity)
    logger.info("- AutoMatchSigning: %s", config.auto_match_signing)
    logger.info("- CustomExportOptionsPlistContent:")
    if config.uses_custom_export_options:
        logger.info("%s", config.custom_export_options_plist_content)

    logger.info("xcodebuild configs:")
    logger.info("- WorkDir: %s", config.workdir or "")
    logger.info("- ProjectPath: %s", config.project_path)
    logger.info("- Scheme: %s", config.scheme)
    logger.info("- Configuration: %s", config.configuration)
    logger.info("- Platform: %s", config.platform)
    logger.info("- IsCleanBuild: %s", config.is_clean_build)
    logger.info("- XcodebuildOptions: %s", shlex.join(config.xcodebuild_options))

    logger.info("step output configs:")
    logger.info("- OutputTool: %s", config.output_tool)
    logger.info("- OutputDir: %s", config.output_dir)
    logger.info("- ArtifactName: %s", config.artifact_name)
    logger.info("- IsExportXcarchiveZip: %s", config.is_export_xcarchive_zip)
    logger.info("- IsExportAllDsyms: %s", config.is_export_all_dsyms)

    logger.info("DEPRECATED configs:")
    logger.info("- IsForceCodeSign: %s", config.is_force_code_sign)
    logger.info("- ExportOptionsPath: %s", config.export_options_path)


def resolve_for_xcode(config: ArchiveConfig, version: XcodeVersion) -> ArchiveConfig:
    """Drop inputs the detected Xcode cannot honour, warning for each."""
    changes: dict[str, str] = {}
    major = version.major

    if config.export_options_path and major == 6:
        logger.warning(
            "Xcode major version: 6, export_options_path only used if "
            "Xcode major version > 6"
        )
        changes["export_options_path"] = ""

    if config.uses_custom_export_options and major < 7:
        logger.warning(
            "custom_export_options_plist_content is set, but it is only used "
            "if Xcode major version > 6"
        )
        changes["custom_export_options_plist_content"] = ""

    if config.force_provisioning_profile_specifier and major < 8:
        logger.warning(
            "force_provisioning_profile_specifier is set, but it is only used "
            "if Xcode major version > 7"
        )
        changes["force_provisioning_profile_specifier"] = ""

    if config.force_team_id and major < 8:
        logger.warning(
            "force_team_id is set, but it is only used if Xcode major version > 7"
        )
        changes["force_team_id"] = ""

    specifier = changes.get(
        "force_provisioning_profile_specifier",
        config.force_provisioning_profile_specifier,
    )
    if specifier and config.force_provisioning_profile:
        logger.warning(
            "both force_provisioning_profile_specifier and "
            "force_provisioning_profile are set, using "
            "force_provisioning_profile_specifier"
        )
        changes["force_provisioning_profile"] = ""

    return dataclasses.replace(config, **changes) if changes else config


def effective_export_method(config: ArchiveConfig) -> ExportMethod:
    """Return the method the export really uses.

    Custom export options override ``export_method``, so their own
    ``method`` decides the exported format.
    """
    if config.uses_custom_export_options:
        return custom_export_method(config.custom_export_options_plist_content)
    return ExportMethod.parse(config.export_method)


def project_flag(project_path: Path) -> str:
    """Return the ``xcodebuild`` flag selecting a project or a workspace."""
    suffix = project_path.suffix
    if suffix == ".xcodeproj":
        return "-project"
    if suffix == ".xcworkspace":
        return "-workspace"
    msg = (
        f"Invalid project file ({project_path}), extension should be "
        "(.xcodeproj/.xcworkspace)"
    )
    raise InputError(msg)


def export_format(platform: str, export_method: str) -> str:
    """Return the file extension the export produces.

    macOS exports an installer ``pkg`` for the App Store and an ``app``
    bundle otherwise; iOS exports an ``ipa`` unless no export is done.
    """
    method = ExportMethod.parse(export_method)
    if platform == "ios":
        return "app" if method is ExportMethod.NONE else "ipa"
    return "pkg" if method is ExportMethod.APP_STORE else "app"
