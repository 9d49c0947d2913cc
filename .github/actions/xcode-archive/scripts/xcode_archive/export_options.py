"""Export options property lists for ``xcodebuild -exportArchive``.

Only keys whose values differ from Xcode's own defaults are written, so the
generated plist stays as small as one written by hand.
"""

from __future__ import annotations

import abc
import dataclasses
import enum
import plistlib
import typing as typ
from xml.parsers.expat import ExpatError

from .errors import InputError

if typ.TYPE_CHECKING:
    from pathlib import Path

    from .codesign import SigningGroup

__all__ = [
    "AppStoreOptions",
    "ExportMethod",
    "ExportOptions",
    "NonAppStoreOptions",
    "custom_export_method",
    "custom_export_options",
    "new_export_options",
]

_DEFAULT_THINNING = "<none>"
_RENAMED_METHODS = {
    "app-store-connect": "app-store",
    "release-testing": "ad-hoc",
    "debugging": "development",
    "mac-application": "development",
}


class ExportMethod(enum.StrEnum):
    """Distribution methods understood by the step."""

    NONE = "none"
    APP_STORE = "app-store"
    DEVELOPMENT = "development"
    DEVELOPER_ID = "developer-id"
    AD_HOC = "ad-hoc"
    ENTERPRISE = "enterprise"

    @classmethod
    def parse(cls, value: str) -> ExportMethod:
        """Return the member for ``value`` or raise :class:`InputError`."""
        try:
            return cls(value)
        except ValueError as exc:
            options = ", ".join(member.value for member in cls)
            msg = f"Invalid export method: {value!r}. Expected one of: {options}"
            raise InputError(msg) from exc


@dataclasses.dataclass(slots=True)
class ExportOptions(abc.ABC):
    """Fields shared by every export options flavour."""

    team_id: str = ""
    provisioning_profiles: dict[str, str] = dataclasses.field(default_factory=dict)
    signing_certificate: str = ""

    @property
    @abc.abstractmethod
    def method(self) -> ExportMethod:
        """Return the distribution method written as ``method``."""

    def to_dict(self) -> dict[str, typ.Any]:
        """Return the plist mapping with default-valued keys omitted."""
        data: dict[str, typ.Any] = {"method": self.method.value}
        if self.team_id:
            data["teamID"] = self.team_id
        if self.provisioning_profiles:
            data["provisioningProfiles"] = dict(self.provisioning_profiles)
        if self.signing_certificate:
            data["signingCertificate"] = self.signing_certificate
        return data

    def render(self) -> str:
        """Return the XML property list text."""
        return plistlib.dumps(self.to_dict(), fmt=plistlib.FMT_XML).decode("utf-8")

    def write_to_file(self, path: Path) -> Path:
        """Write the property list to ``path``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            plistlib.dump(self.to_dict(), handle, fmt=plistlib.FMT_XML)
        return path


@dataclasses.dataclass(slots=True)
class AppStoreOptions(ExportOptions):
    """Options for App Store distribution."""

    upload_bitcode: bool = True
    upload_symbols: bool = True
    installer_signing_certificate: str = ""

    @property
    def method(self) -> ExportMethod:
        return ExportMethod.APP_STORE

    def to_dict(self) -> dict[str, typ.Any]:
        data = ExportOptions.to_dict(self)
        if not self.upload_bitcode:
            data["uploadBitcode"] = False
        if not self.upload_symbols:
            data["uploadSymbols"] = False
        if self.installer_signing_certificate:
            data["installerSigningCertificate"] = self.installer_signing_certificate
        return data


@dataclasses.dataclass(slots=True)
class NonAppStoreOptions(ExportOptions):
    """Options for development, ad-hoc, enterprise and Developer ID exports."""

    export_method: ExportMethod = ExportMethod.DEVELOPMENT
    compile_bitcode: bool = True
    thinning: str = _DEFAULT_THINNING

    def __post_init__(self) -> None:
        if self.export_method in (ExportMethod.NONE, ExportMethod.APP_STORE):
            msg = f"{self.export_method.value} is not a non-App Store export method"
            raise InputError(msg)

    @property
    def method(self) -> ExportMethod:
        return self.export_method

    def to_dict(self) -> dict[str, typ.Any]:
        data = ExportOptions.to_dict(self)
        if not self.compile_bitcode:
            data["compileBitcode"] = False
        if self.thinning != _DEFAULT_THINNING:
            data["thinning"] = self.thinning
        return data


def new_export_options(
    method: ExportMethod,
    *,
    team_id: str = "",
    signing: SigningGroup | None = None,
) -> ExportOptions:
    """Return the export options flavour matching ``method``.

    When ``signing`` is given its identity and per-bundle profiles are
    pinned, which keeps ``xcodebuild`` from picking a different pair.
    """
    profiles: dict[str, str] = {}
    certificate = ""
    if signing is not None:
        profiles = signing.profile_names()
        certificate = signing.identity.name
        team_id = team_id or signing.team_id

    if method is ExportMethod.APP_STORE:
        return AppStoreOptions(
            team_id=team_id,
            provisioning_profiles=profiles,
            signing_certificate=certificate,
            installer_signing_certificate=(
                signing.installer_identity.name
                if signing is not None and signing.installer_identity is not None
                else ""
            ),
        )
    return NonAppStoreOptions(
        team_id=team_id,
        provisioning_profiles=profiles,
        signing_certificate=certificate,
        export_method=method,
    )


def _parse_custom_options(content: str) -> dict[str, typ.Any]:
    try:
        parsed = plistlib.loads(content.encode("utf-8"))
    except (ExpatError, plistlib.InvalidFileException, ValueError) as exc:
        msg = f"custom_export_options_plist_content is not a valid plist: {exc}"
        raise InputError(msg) from exc
    if not isinstance(parsed, dict):
        msg = "custom_export_options_plist_content must contain a dictionary"
        raise InputError(msg)
    return parsed


def custom_export_method(content: str) -> ExportMethod:
    """Return the distribution method named by custom plist ``content``.

    Xcode 15.3 renamed three methods; the new spellings map onto the
    members they replace. A plist without ``method`` gets Xcode's default,
    ``development``.

    Examples
    --------
    >>> custom_export_method(
    ...     "<plist><dict><key>method</key><string>debugging</string></dict></plist>"
    ... )
    <ExportMethod.DEVELOPMENT: 'development'>
    """
    method = _parse_custom_options(content).get("method", "development")
    if not isinstance(method, str):
        msg = "custom_export_options_plist_content method must be a string"
        raise InputError(msg)
    return ExportMethod.parse(_RENAMED_METHODS.get(method, method))


def custom_export_options(content: str, path: Path) -> Path:
    """Write user supplied plist ``content`` to ``path`` unchanged.

    Raises
    ------
    InputError
        Raised when ``content`` is not a property list dictionary.
    """
    _parse_custom_options(content)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path
