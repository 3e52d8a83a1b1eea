"""Database version pins and the self-hosted versions each engine supports."""

from __future__ import annotations

from dataclasses import dataclass


class VersionError(ValueError):
    """Raised when a version pin is empty or not supported."""


@dataclass(frozen=True)
class VersionNumber:
    """A loosely structured ``major[.minor[.patch[.suffix]]]`` version.

    Some engines publish versions that are not SemVer (``6.x``), so each part
    is kept as text.
    """

    major: str
    minor: str | None = None
    patch: str | None = None
    suffix: str | None = None

    @classmethod
    def parse(cls, version: str) -> VersionNumber:
        if version.strip() == "":
            raise VersionError("version cannot be empty")

        parts = [part.strip() for part in version.split(".", 3)]
        major = parts[0].replace("v", "")
        minor = parts[1].replace("+", "") if len(parts) > 1 else None
        patch = parts[2] if len(parts) > 2 else None
        suffix = parts[3] if len(parts) > 3 else None
        return cls(major, minor, patch, suffix)

    def __str__(self) -> str:
        parts = [self.major, self.minor, self.patch, self.suffix]
        return ".".join(part for part in parts if part is not None)

    def to_major_version_string(self) -> str:
        return self.major

    def to_major_minor_version_string(self, default_minor: str) -> str:
        return f"{self.major}.{self.minor if self.minor is not None else default_minor}"


def generate_supported_versions(
    major: int,
    minor_min: int,
    minor_max: int,
    update_min: int | None = None,
    update_max: int | None = None,
    suffix: str = "",
) -> dict[str, str]:
    """Map every accepted version pin in a range to the full version it selects.

    ``major`` and ``major.minor`` pins select the latest update in range; a
    full ``major.minor.update`` pin selects itself.
    """
    versions: dict[str, str] = {}

    if update_min is None or update_max is None:
        latest = f"{major}.{minor_max}{suffix}"
        for minor in range(minor_min, minor_max + 1):
            version = f"{major}.{minor}"
            versions[version] = f"{version}{suffix}"
    else:
        latest = f"{major}.{minor_max}.{update_max}{suffix}"
        for minor in range(minor_min, minor_max + 1):
            versions[f"{major}.{minor}"] = f"{major}.{minor}.{update_max}{suffix}"
            for update in range(update_min, update_max + 1):
                version = f"{major}.{minor}.{update}"
                versions[version] = f"{version}{suffix}"

    versions[str(major)] = latest
    return versions


def _self_hosted_mysql() -> dict[str, str]:
    return {
        **generate_supported_versions(5, 7, 7, 16, 34),
        **generate_supported_versions(8, 0, 0, 11, 24),
    }


def _self_hosted_postgresql() -> dict[str, str]:
    return {
        **generate_supported_versions(10, 1, 16, 0, 0),
        **generate_supported_versions(11, 1, 11, 0, 0),
        **generate_supported_versions(12, 2, 8, 0, 0),
        **generate_supported_versions(13, 1, 4, 0, 0),
    }


def _self_hosted_mongodb() -> dict[str, str]:
    return {
        **generate_supported_versions(3, 6, 6, 0, 22),
        **generate_supported_versions(4, 0, 0, 0, 23),
        **generate_supported_versions(4, 2, 2, 0, 12),
        **generate_supported_versions(4, 4, 4, 0, 4),
    }


def _self_hosted_redis() -> dict[str, str]:
    return {"6": "6.0.9", "6.0": "6.0.9", "5": "5.0.10", "5.0": "5.0.10"}


SUPPORTED_VERSIONS: dict[str, dict[str, str]] = {
    "mysql": _self_hosted_mysql(),
    "postgresql": _self_hosted_postgresql(),
    "mongodb": _self_hosted_mongodb(),
    "redis": _self_hosted_redis(),
}


def get_supported_version(database_type: str, requested: str) -> str:
    """Resolve a version pin against the versions supported for an engine.

    Args:
        database_type: Engine key in :data:`SUPPORTED_VERSIONS`
        requested: Version pin, e.g. ``"8"``, ``"8.0"`` or ``"8.0.21"``

    Returns:
        Full version string to deploy

    Raises:
        VersionError: If the pin is empty, malformed or unsupported
    """
    supported = SUPPORTED_VERSIONS.get(database_type)
    if supported is None:
        raise VersionError(f"unknown database type {database_type!r}")

    version = VersionNumber.parse(requested)
    if version.patch is not None:
        key = f"{version.major}.{version.minor}.{version.patch}"
    elif version.minor is not None:
        key = f"{version.major}.{version.minor}"
    else:
        key = version.major

    try:
        return supported[key]
    except KeyError:
        raise VersionError(
            f"{database_type} {requested} version is not supported"
        ) from None
