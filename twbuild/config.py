"""
config.py

Responsibility: Load the build definition (`twbuild.yaml`) into a typed model.

The build definition is the per-project, rarely edited part of the setup:
author and plugin name, output directories, external commands. Per-invocation
flags (production, mode) live in `BuildContext` instead.

All relative paths are resolved against the directory holding the definition,
so the build behaves the same regardless of the working directory.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from twbuild.manifest import Manifest

DEFAULT_CONFIG_NAME = "twbuild.yaml"

_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*$")
_COMMAND_KEYS = ("compile", "minify", "validate", "docs")
_MODE_RE = re.compile(r"[0-9A-Za-z-]+")


class ConfigError(ValueError):
    pass


class ConfigMismatchError(ConfigError):
    """The configured author/plugin name does not match plugin.info."""


@dataclass(frozen=True)
class OutputPaths:
    bundle: Path
    dist: Path
    docs: Path
    maps: Path

    def all(self) -> list[Path]:
        return [self.bundle, self.dist, self.docs, self.maps]


@dataclass(frozen=True)
class HostSpec:
    """How TiddlyWiki is booted under Node to load the plugin folder."""

    node: str = "node"
    module: str = "tiddlywiki"
    argv: tuple[str, ...] = ("--verbose",)


@dataclass(frozen=True)
class BuildConfig:
    root: Path
    author: str
    plugin_name: str
    source_dir: Path
    output: OutputPaths
    package_json: Path | None = None
    auto_increment_build: bool = True
    commands: dict[str, tuple[str, ...]] = field(default_factory=dict)
    host: HostSpec = field(default_factory=HostSpec)
    bell: bool = True

    @property
    def namespace(self) -> str:
        return f"{self.author}/{self.plugin_name}"

    @property
    def plugin_title(self) -> str:
        return f"$:/plugins/{self.namespace}"

    @property
    def plugin_dir(self) -> Path:
        return self.source_dir / self.author / self.plugin_name

    @property
    def plugin_info_path(self) -> Path:
        return self.plugin_dir / "plugin.info"


@dataclass(frozen=True)
class BuildContext:
    """Per-invocation build flags. `mode` becomes a pre-release label of the version."""

    production: bool = False
    mode: str | None = None
    auto_increment_build: bool = True

    def __post_init__(self) -> None:
        if self.mode and not _MODE_RE.fullmatch(self.mode):
            raise ConfigError(
                f"Build mode must contain only letters, digits and hyphens: {self.mode!r}"
            )


def check_namespace(config: BuildConfig, manifest: Manifest) -> None:
    """
    plugin.info's title must be exactly `$:/plugins/<author>/<pluginName>`.
    """
    if manifest.title != config.plugin_title:
        raise ConfigMismatchError(
            f"Build settings do not match plugin.info: expected title {config.plugin_title!r}, "
            f"found {manifest.title!r}"
        )


def _mapping(data: dict[str, Any], key: str) -> dict[str, Any]:
    raw = data.get(key) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"`{key}` must be an object/mapping when provided.")
    return raw


def _name(data: dict[str, Any], key: str) -> str:
    value = str(data.get(key) or "").strip()
    if not value:
        raise ConfigError(f"Build definition must define `{key}`.")
    if not _NAME_RE.match(value):
        raise ConfigError(f"`{key}` must be lowercase letters/digits without spaces: {value!r}")
    return value


def _path(root: Path, value: Any) -> Path:
    p = Path(str(value))
    return p if p.is_absolute() else (root / p).resolve()


def _parse_commands(data: dict[str, Any]) -> dict[str, tuple[str, ...]]:
    raw = _mapping(data, "commands")
    commands: dict[str, tuple[str, ...]] = {}
    for key, value in raw.items():
        if key not in _COMMAND_KEYS:
            raise ConfigError(f"Unknown command `{key}` (expected one of: {', '.join(_COMMAND_KEYS)}).")
        if value is None:
            continue
        if isinstance(value, str):
            raise ConfigError(f"`commands.{key}` must be a list of arguments, not a string.")
        if not isinstance(value, list) or not value:
            raise ConfigError(f"`commands.{key}` must be a non-empty list of arguments.")
        commands[key] = tuple(str(v) for v in value)
    return commands


def _parse_host(data: dict[str, Any]) -> HostSpec:
    raw = _mapping(data, "host")
    argv_raw = raw.get("argv")
    if argv_raw is None:
        argv = HostSpec.argv
    elif isinstance(argv_raw, list):
        argv = tuple(str(v) for v in argv_raw)
    else:
        raise ConfigError("`host.argv` must be a list when provided.")
    return HostSpec(
        node=str(raw.get("node") or "node"),
        module=str(raw.get("module") or "tiddlywiki"),
        argv=argv,
    )


def parse_config(data: dict[str, Any], root: str | Path) -> BuildConfig:
    """
    Build a `BuildConfig` from an already parsed mapping.

    Recognized keys:
    - author, plugin_name: str (required)
    - auto_increment_build: bool (default true)
    - source_dir: str (default "src/plugins")
    - package_json: str | null (default "package.json")
    - output: {bundle, dist, docs, maps}
    - commands: {compile, minify, validate, docs} as argument lists
    - host: {node, module, argv}
    - bell: bool (default true)
    """
    root_path = Path(root).resolve()
    if not isinstance(data, dict):
        raise ConfigError("Build definition must be a mapping/object at the top level.")

    out_raw = _mapping(data, "output")
    output = OutputPaths(
        bundle=_path(root_path, out_raw.get("bundle") or "bundle"),
        dist=_path(root_path, out_raw.get("dist") or "dist"),
        docs=_path(root_path, out_raw.get("docs") or "docs"),
        maps=_path(root_path, out_raw.get("maps") or "maps"),
    )

    package_raw = data.get("package_json", "package.json")
    package_json = _path(root_path, package_raw) if package_raw else None

    return BuildConfig(
        root=root_path,
        author=_name(data, "author"),
        plugin_name=_name(data, "plugin_name"),
        source_dir=_path(root_path, data.get("source_dir") or "src/plugins"),
        output=output,
        package_json=package_json,
        auto_increment_build=bool(data.get("auto_increment_build", True)),
        commands=_parse_commands(data),
        host=_parse_host(data),
        bell=bool(data.get("bell", True)),
    )


def load_config(config_path: str | Path) -> BuildConfig:
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Build definition does not exist: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    return parse_config(data, path.resolve().parent)
