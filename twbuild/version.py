"""
version.py

Responsibility: Derive the next plugin version string from the current one.

Pure functions only; no file access. The manifest store owns reading and
writing the result.

Rules:
- MAJOR.MINOR.PATCH is never changed here (operators edit it by hand).
- An existing pre-release label is replaced by the build mode label.
- The mode "master" means mainline and adds no label, same as no mode.
- With auto-increment, the build counter after "+" is bumped by one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

MAINLINE_MODE = "master"

_SEMVER_RE = re.compile(
    r"^\s*v?(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?\s*$"
)
_LEADING_INT_RE = re.compile(r"^\d+")


class VersionError(ValueError):
    pass


@dataclass(frozen=True)
class ParsedVersion:
    major: int
    minor: int
    patch: int
    prerelease: str | None = None
    build: str | None = None

    @property
    def build_counter(self) -> int:
        """
        Leading integer of the first build identifier ("+12.abc" -> 12).

        Missing or non-numeric build metadata counts as 0.
        """
        if not self.build:
            return 0
        m = _LEADING_INT_RE.match(self.build.split(".", 1)[0])
        return int(m.group(0)) if m else 0


def parse_version(current: str) -> ParsedVersion:
    m = _SEMVER_RE.match(current or "")
    if not m:
        raise VersionError(f"Not a semantic version: {current!r}")
    return ParsedVersion(
        major=int(m.group("major")),
        minor=int(m.group("minor")),
        patch=int(m.group("patch")),
        prerelease=m.group("prerelease"),
        build=m.group("build"),
    )


def mode_label(mode: str | None) -> str:
    if not mode or mode == MAINLINE_MODE:
        return ""
    return f"-{mode}"


def base_version(current: str, mode: str | None) -> str:
    """
    MAJOR.MINOR.PATCH plus the mode label, without build metadata.

    This is also what goes into the package descriptor.
    """
    v = parse_version(current)
    return f"{v.major}.{v.minor}.{v.patch}{mode_label(mode)}"


def derive_version(current: str, mode: str | None, auto_increment: bool) -> str:
    """
    Compute the version for the next build.

    >>> derive_version("1.2.5+3", "develop", True)
    '1.2.5-develop+4'
    >>> derive_version("1.2.5", "master", False)
    '1.2.5'
    """
    v = parse_version(current)
    build_suffix = f"+{v.build_counter + 1}" if auto_increment else ""
    return base_version(current, mode) + build_suffix
