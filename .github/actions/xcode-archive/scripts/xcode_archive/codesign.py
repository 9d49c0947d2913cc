"""Match installed code-signing identities with installed provisioning profiles.

The step never installs or edits signing assets. It reads the keychain via
``security find-identity`` and the profiles Xcode already knows about, then
picks one identity plus one profile per bundle ID for the export options.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import hashlib
import logging
import plistlib
import re
import typing as typ
from pathlib import Path
from xml.parsers.expat import ExpatError

from plumbum import local

from .commands import RunResult, run_cmd
from .errors import SigningError, ToolchainError
from .export_options import ExportMethod

if typ.TYPE_CHECKING:
    from collections import abc as cabc

__all__ = [
    "PROFILES_DIR",
    "CodeSignIdentity",
    "ProvisioningProfile",
    "SigningGroup",
    "installed_profiles",
    "list_identities",
    "list_installer_identities",
    "match_signing",
    "parse_identities",
    "parse_profile",
]

logger = logging.getLogger(__name__)

PROFILES_DIR = Path("~/Library/MobileDevice/Provisioning Profiles")

_PROFILE_SUFFIXES = {"ios": ".mobileprovision", "macos": ".provisionprofile"}
_IDENTITY_RE = re.compile(r'^\s*\d+\)\s+(?P<sha1>[0-9A-Fa-f]{40})\s+"(?P<name>.+)"')
_TEAM_RE = re.compile(r"\((?P<team>[A-Z0-9]{10})\)\s*$")


@dataclasses.dataclass(slots=True, frozen=True)
class CodeSignIdentity:
    """A signing identity from the keychain."""

    sha1: str
    name: str

    @property
    def team_id(self) -> str:
        """Return the team ID suffix of the certificate common name, if any."""
        match = _TEAM_RE.search(self.name)
        return match.group("team") if match else ""

    @property
    def is_installer(self) -> bool:
        """Return ``True`` for installer package signing identities."""
        return "Installer" in self.name


def parse_identities(output: str) -> list[CodeSignIdentity]:
    """Parse ``security find-identity -v -p codesigning`` output.

    Examples
    --------
    >>> line = '  1) ' + "A" * 40 + ' "Apple Development: Jo (AB12CD34EF)"'
    >>> parse_identities(line)[0].name
    'Apple Development: Jo (AB12CD34EF)'
    """
    identities: list[CodeSignIdentity] = []
    seen: set[str] = set()
    for line in output.splitlines():
        match = _IDENTITY_RE.match(line)
        if match is None:
            continue
        sha1 = match.group("sha1").upper()
        if sha1 in seen:
            continue
        seen.add(sha1)
        identities.append(CodeSignIdentity(sha1, match.group("name")))
    return identities


def _find_identities(*policy: str) -> list[CodeSignIdentity]:
    command = local["security"]["find-identity", "-v", *policy]
    result = typ.cast("RunResult", run_cmd(command, method="run"))
    if result.returncode != 0:
        msg = f"Failed to list code signing identities: {result.output.strip()}"
        raise ToolchainError(msg, output=result.output)
    return parse_identities(result.stdout)


def list_identities() -> list[CodeSignIdentity]:
    """Return the valid code-signing identities in the default keychains."""
    return _find_identities("-p", "codesigning")


def list_installer_identities() -> list[CodeSignIdentity]:
    """Return the valid installer package signing identities.

    Installer certificates fail the code-signing policy, so they are only
    listed under the basic policy.
    """
    return [identity for identity in _find_identities() if identity.is_installer]


@dataclasses.dataclass(slots=True, frozen=True)
class ProvisioningProfile:
    """The fields of a decoded provisioning profile the matcher needs."""

    uuid: str
    name: str
    team_id: str
    bundle_id: str
    export_method: ExportMethod
    expiration: dt.datetime
    certificate_sha1s: frozenset[str]

    @property
    def is_wildcard(self) -> bool:
        """Return ``True`` when the profile covers a bundle ID pattern."""
        return "*" in self.bundle_id

    def matches_bundle_id(self, bundle_id: str) -> bool:
        """Return ``True`` when this profile may sign ``bundle_id``."""
        if not self.is_wildcard:
            return self.bundle_id == bundle_id
        prefix = self.bundle_id.split("*", 1)[0]
        return bundle_id.startswith(prefix)

    def is_expired(self, now: dt.datetime) -> bool:
        """Return ``True`` when the profile expired before ``now``."""
        return self.expiration <= now


def _profile_method(raw: dict[str, typ.Any], platform: str) -> ExportMethod:
    entitlements = raw.get("Entitlements") or {}
    if raw.get("ProvisionedDevices"):
        if platform == "ios" and not entitlements.get("get-task-allow", False):
            return ExportMethod.AD_HOC
        return ExportMethod.DEVELOPMENT
    if raw.get("ProvisionsAllDevices"):
        if platform == "ios":
            return ExportMethod.ENTERPRISE
        return ExportMethod.DEVELOPER_ID
    return ExportMethod.APP_STORE


def _profile_bundle_id(raw: dict[str, typ.Any], team_id: str) -> str:
    entitlements = raw.get("Entitlements") or {}
    app_id = entitlements.get("application-identifier") or entitlements.get(
        "com.apple.application-identifier", ""
    )
    if team_id and app_id.startswith(f"{team_id}."):
        return app_id[len(team_id) + 1 :]
    return app_id.split(".", 1)[1] if "." in app_id else app_id


def parse_profile(data: bytes, platform: str) -> ProvisioningProfile:
    """Build a :class:`ProvisioningProfile` from decoded plist ``data``."""
    raw = plistlib.loads(data)
    if not isinstance(raw, dict):
        msg = "Provisioning profile is not a dictionary"
        raise ValueError(msg)
    team_ids = raw.get("TeamIdentifier") or []
    team_id = team_ids[0] if team_ids else ""
    expiration = raw.get("ExpirationDate")
    if not isinstance(expiration, dt.datetime):
        msg = "Provisioning profile has no ExpirationDate"
        raise ValueError(msg)
    certificates = raw.get("DeveloperCertificates") or []
    return ProvisioningProfile(
        uuid=str(raw.get("UUID", "")),
        name=str(raw.get("Name", "")),
        team_id=team_id,
        bundle_id=_profile_bundle_id(raw, team_id),
        export_method=_profile_method(raw, platform),
        expiration=expiration,
        certificate_sha1s=frozenset(
            hashlib.sha1(bytes(cert)).hexdigest().upper()  # noqa: S324
            for cert in certificates
            if isinstance(cert, (bytes, bytearray))
        ),
    )


def installed_profiles(
    platform: str, profiles_dir: Path = PROFILES_DIR
) -> list[ProvisioningProfile]:
    """Decode every installed profile for ``platform``.

    Profiles that cannot be decoded are skipped with a warning.
    """
    directory = profiles_dir.expanduser()
    suffix = _PROFILE_SUFFIXES[platform]
    profiles: list[ProvisioningProfile] = []
    for path in sorted(directory.glob(f"*{suffix}")):
        command = local["security"]["cms", "-D", "-i", str(path)]
        result = typ.cast("RunResult", run_cmd(command, method="run"))
        if result.returncode != 0:
            logger.warning("Skipping undecodable profile %s: %s", path, result.stderr)
            continue
        try:
            profiles.append(parse_profile(result.stdout.encode("utf-8"), platform))
        except (ExpatError, ValueError) as exc:
            logger.warning("Skipping invalid profile %s: %s", path, exc)
    logger.info("Found %d installed %s profile(s)", len(profiles), platform)
    return profiles


@dataclasses.dataclass(slots=True, frozen=True)
class SigningGroup:
    """One identity with the profile chosen for each bundle ID."""

    identity: CodeSignIdentity
    profiles: dict[str, ProvisioningProfile]
    installer_identity: CodeSignIdentity | None = None

    @property
    def team_id(self) -> str:
        """Return the team the chosen profiles belong to."""
        return next(iter(self.profiles.values())).team_id if self.profiles else ""

    def profile_names(self) -> dict[str, str]:
        """Return the ``provisioningProfiles`` export option mapping."""
        return {bundle_id: profile.name for bundle_id, profile in self.profiles.items()}


def _best_profile(
    bundle_id: str,
    identity: CodeSignIdentity,
    method: ExportMethod,
    profiles: cabc.Iterable[ProvisioningProfile],
    *,
    team_id: str,
    now: dt.datetime,
) -> ProvisioningProfile | None:
    candidates = [
        profile
        for profile in profiles
        if profile.export_method is method
        and not profile.is_expired(now)
        and identity.sha1 in profile.certificate_sha1s
        and profile.matches_bundle_id(bundle_id)
        and (not team_id or profile.team_id == team_id)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda item: (not item.is_wildcard, item.expiration))


def _installer_identity(
    identities: cabc.Sequence[CodeSignIdentity], team_id: str
) -> CodeSignIdentity | None:
    return next(
        (
            identity
            for identity in identities
            if identity.is_installer and identity.team_id == team_id
        ),
        None,
    )


def match_signing(
    bundle_ids: cabc.Sequence[str],
    method: ExportMethod,
    identities: cabc.Sequence[CodeSignIdentity],
    profiles: cabc.Sequence[ProvisioningProfile],
    *,
    installer_identities: cabc.Sequence[CodeSignIdentity] = (),
    team_id: str = "",
    now: dt.datetime | None = None,
) -> SigningGroup:
    """Pick an identity that, with one profile each, covers every bundle ID.

    Identities are tried in keychain order. Per bundle ID an explicit
    profile beats a wildcard one and later expiry wins ties. App Store
    exports also pick an installer identity of the same team from
    ``installer_identities``.

    Raises
    ------
    SigningError
        Raised when no single identity covers every bundle ID.
    """
    if not bundle_ids:
        msg = "No bundle identifiers to match signing assets against"
        raise SigningError(msg)
    moment = now or dt.datetime.now(dt.UTC).replace(tzinfo=None)

    for identity in identities:
        if identity.is_installer:
            continue
        chosen: dict[str, ProvisioningProfile] = {}
        for bundle_id in bundle_ids:
            profile = _best_profile(
                bundle_id, identity, method, profiles, team_id=team_id, now=moment
            )
            if profile is None:
                break
            chosen[bundle_id] = profile
        else:
            group_team = next(iter(chosen.values())).team_id
            installer = (
                _installer_identity(installer_identities, group_team)
                if method is ExportMethod.APP_STORE
                else None
            )
            logger.info("Matched signing identity: %s", identity.name)
            for bundle_id, profile in chosen.items():
                logger.info("- %s: %s (%s)", bundle_id, profile.name, profile.uuid)
            return SigningGroup(identity, chosen, installer)

    joined = ", ".join(bundle_ids)
    msg = (
        f"No installed code signing identity with {method.value} provisioning "
        f"profiles found for: {joined}"
    )
    raise SigningError(msg)
