"""
Semantic version helpers for chain snapshots and resource references.
"""

import re
from typing import List, Literal, Tuple

SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

INITIAL_VERSION = "1.0.0"

VersionBump = Literal["major", "minor", "patch"]


def is_valid_version(version) -> bool:
    """Check whether a value is a semantic version string (e.g. 1.2.3)"""
    return isinstance(version, str) and SEMVER_PATTERN.match(version) is not None


def parse_version(version: str) -> Tuple[int, int, int, str]:
    """
    Parse a version into (major, minor, patch, prerelease)

    Raises:
        ValueError: If the version is malformed
    """
    match = SEMVER_PATTERN.match(version) if isinstance(version, str) else None
    if not match:
        raise ValueError(f"Invalid version format: {version}")
    major, minor, patch, prerelease, _build = match.groups()
    return int(major), int(minor), int(patch), prerelease or ""


def increment_version(version: str, bump: VersionBump) -> str:
    """
    Bump a version

    A prerelease is released by the smallest bump that covers it, so
    ``1.2.3-rc.1`` patch-bumps to ``1.2.3`` and ``2.0.0-beta`` major-bumps
    to ``2.0.0``. Build metadata is dropped.
    """
    major, minor, patch, prerelease = parse_version(version)
    if bump == "major":
        if prerelease and minor == 0 and patch == 0:
            return f"{major}.0.0"
        return f"{major + 1}.0.0"
    if bump == "minor":
        if prerelease and patch == 0:
            return f"{major}.{minor}.0"
        return f"{major}.{minor + 1}.0"
    if bump == "patch":
        if prerelease:
            return f"{major}.{minor}.{patch}"
        return f"{major}.{minor}.{patch + 1}"
    raise ValueError(f"Unknown version bump: {bump}")


def _prerelease_key(prerelease: str) -> Tuple:
    # Numeric identifiers compare as numbers and sort below alphanumeric ones
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in prerelease.split(".")
    )


def _sort_key(version: str):
    major, minor, patch, prerelease = parse_version(version)
    if not prerelease:
        # A release sorts after its prereleases
        return (major, minor, patch, 1, ())
    return (major, minor, patch, 0, _prerelease_key(prerelease))


def compare_versions(version1: str, version2: str) -> int:
    """Return -1, 0 or 1 like a classic cmp()"""
    key1, key2 = _sort_key(version1), _sort_key(version2)
    return (key1 > key2) - (key1 < key2)


def sort_versions(versions: List[str], descending: bool = False) -> List[str]:
    """Sort valid versions, silently dropping malformed ones"""
    valid = [v for v in versions if is_valid_version(v)]
    return sorted(valid, key=_sort_key, reverse=descending)


def get_latest_version(versions: List[str]) -> str:
    ordered = sort_versions(versions, descending=True)
    if not ordered:
        raise ValueError("No valid versions provided")
    return ordered[0]
