"""
manifest.py

Responsibility: Read and write the plugin's persisted metadata.

Two files are involved:
- `plugin.info`: the plugin manifest (title, version, released, ... ).
  Unknown fields are preserved verbatim and in their original order.
- the package descriptor (`package.json`): only its `version` field is touched.

`ManifestStore` is the handle the build passes around; it is the only writer.
Run one build at a time per plugin: the read-modify-write of the version is
not locked against concurrent invocations.

Known gap: bump writes plugin.info first and the package descriptor second.
If the second write fails, the first is not rolled back; the error is raised.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Any

from twbuild.files import atomic_write_text
from twbuild.version import base_version, derive_version

logger = logging.getLogger(__name__)

_KNOWN_FIELDS = ("title", "version", "released")


class ManifestError(RuntimeError):
    pass


class ManifestNotFound(ManifestError):
    pass


class ManifestParseError(ManifestError):
    pass


class ManifestReadError(ManifestError):
    """The file exists but could not be read (permissions, not a file, ...)."""


class ManifestWriteError(ManifestError):
    pass


@dataclass(frozen=True)
class Manifest:
    """The plugin.info contents. `extra` holds every other field, in order."""

    title: str
    version: str
    released: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    field_order: tuple[str, ...] = field(default=(), compare=False, repr=False)

    @property
    def namespace(self) -> str:
        """`<author>/<pluginName>` derived from `$:/plugins/<author>/<pluginName>`."""
        prefix = "$:/plugins/"
        return self.title[len(prefix) :] if self.title.startswith(prefix) else self.title

    def with_version(self, version: str, released: str) -> Manifest:
        return Manifest(
            title=self.title,
            version=version,
            released=released,
            extra=dict(self.extra),
            field_order=self.field_order,
        )

    def to_dict(self) -> dict[str, Any]:
        values: dict[str, Any] = {"title": self.title, "version": self.version}
        if self.released is not None or "released" in self.field_order:
            values["released"] = self.released
        values.update(self.extra)

        # Keep the field order of the file we read; new fields go last.
        data: dict[str, Any] = {}
        for key in self.field_order:
            if key in values:
                data[key] = values[key]
        for key, value in values.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        title = data.get("title")
        version = data.get("version")
        if not isinstance(title, str) or not title:
            raise ManifestParseError("plugin.info must define a string `title`.")
        if not isinstance(version, str) or not version:
            raise ManifestParseError("plugin.info must define a string `version`.")
        released = data.get("released")
        return cls(
            title=title,
            version=version,
            released=None if released is None else str(released),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
            field_order=tuple(data.keys()),
        )


def release_timestamp(now: datetime | None = None) -> str:
    """RFC 1123 GMT date, e.g. 'Mon, 19 Oct 2026 12:00:00 GMT'."""
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return format_datetime(moment, usegmt=True)


def _read_json_object(path: Path, kind: str) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ManifestNotFound(f"{kind} not found: {path}") from e
    except OSError as e:
        raise ManifestReadError(f"Failed to read {kind} {path}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"Invalid JSON in {kind} {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestParseError(f"{kind} {path} must contain a JSON object.")
    return data


def _write_json(path: Path, data: dict[str, Any], kind: str) -> None:
    try:
        atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False))
    except OSError as e:
        raise ManifestWriteError(f"Failed to write {kind} {path}: {e}") from e


def load_manifest(path: str | Path) -> Manifest:
    return Manifest.from_dict(_read_json_object(Path(path), "plugin.info"))


def save_manifest(path: str | Path, manifest: Manifest) -> None:
    """Full overwrite, pretty-printed; the previous file survives a failed write."""
    _write_json(Path(path), manifest.to_dict(), "plugin.info")


def update_package_version(path: str | Path, version: str) -> bool:
    """
    Set `version` in the package descriptor, leaving every other field alone.

    Returns False (and logs a warning) when the descriptor does not exist.
    """
    p = Path(path)
    if not p.exists():
        logger.warning("Package descriptor %s not found; skipping version update", p)
        return False
    data = _read_json_object(p, "package descriptor")
    data["version"] = version
    _write_json(p, data, "package descriptor")
    return True


class ManifestStore:
    """
    Handle for plugin.info (and optionally the package descriptor).

    The manifest is read once by `load()`; `bump()` is the single mutation.
    """

    def __init__(self, info_path: str | Path, package_path: str | Path | None = None) -> None:
        self.info_path = Path(info_path)
        self.package_path = Path(package_path) if package_path is not None else None
        self._manifest: Manifest | None = None

    @property
    def manifest(self) -> Manifest:
        if self._manifest is None:
            return self.load()
        return self._manifest

    def load(self) -> Manifest:
        self._manifest = load_manifest(self.info_path)
        return self._manifest

    def save(self, manifest: Manifest) -> None:
        save_manifest(self.info_path, manifest)
        self._manifest = manifest

    def bump(self, mode: str | None, auto_increment: bool, now: datetime | None = None) -> Manifest:
        """
        Derive the next version, then persist plugin.info and the package descriptor.
        """
        current = self.manifest
        new_version = derive_version(current.version, mode, auto_increment)
        bumped = current.with_version(new_version, release_timestamp(now))
        self.save(bumped)
        logger.info("Bumped %s: %s -> %s", current.title, current.version, new_version)

        if self.package_path is not None:
            update_package_version(self.package_path, base_version(current.version, mode))
        return bumped
