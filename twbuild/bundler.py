"""
bundler.py

Responsibility: Pack the compiled plugin folder into one importable JSON file.

The artifact is `<bundle_dir>/<pluginName>_<version>.json` and contains a JSON
array with the plugin record. The host expects an array (a file may carry a
collection of tiddlers), so the single record is always wrapped.

Bundling again with the same output tree and manifest rewrites the same file
with the same bytes.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from twbuild.files import atomic_write_text
from twbuild.host import PluginLoader, PluginLoadError
from twbuild.manifest import Manifest

logger = logging.getLogger(__name__)


class ArtifactWriteError(RuntimeError):
    pass


def artifact_name(plugin_name: str, version: str) -> str:
    return f"{plugin_name}_{version}.json"


def render_artifact(record: dict) -> str:
    return json.dumps([record], indent=2, ensure_ascii=False)


def ring_bell() -> None:
    if sys.stderr.isatty():
        sys.stderr.write("\a")
        sys.stderr.flush()


def bundle(
    *,
    dist_root: str | Path,
    manifest: Manifest,
    plugin_name: str,
    bundle_dir: str | Path,
    loader: PluginLoader,
    notify: bool = True,
) -> Path:
    """
    Load `<dist_root>/<namespace>` through the host loader and write the artifact.

    Raises:
    - PluginLoadError: the plugin folder is missing or rejected by the host.
    - ArtifactWriteError: the artifact could not be written (no partial file is left).
    """
    folder = Path(dist_root).resolve() / manifest.namespace
    record = loader.load(folder)
    if not isinstance(record, dict) or not record:
        raise PluginLoadError(f"Host returned an empty record for {folder}")

    out_dir = Path(bundle_dir).resolve()
    out_path = out_dir / artifact_name(plugin_name, manifest.version)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_text(out_path, render_artifact(record))
    except OSError as e:
        raise ArtifactWriteError(f"Failed to write bundle {out_path}: {e}") from e

    logger.info("Bundle written: %s", out_path)
    if notify:
        ring_bell()
    return out_path
