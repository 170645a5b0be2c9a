"""
host.py

Responsibility: The host capability "load a plugin folder -> plugin record".

`NodePluginLoader` boots the real TiddlyWiki under Node and asks it to load the
folder with `$tw.loadPluginFolder`; the tiddler model stays the host's. The
host prints a help prompt instead of booting when its argv is empty, so the
boot argv always carries at least one placeholder option.

Everything else (bundler, tasks) depends only on the `PluginLoader` protocol.
"""

from __future__ import annotations

import json
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Protocol

from twbuild.config import HostSpec

logger = logging.getLogger(__name__)

__all__ = [
    "NodePluginLoader",
    "PluginLoadError",
    "PluginLoader",
    "make_loader",
]

DEFAULT_BOOT_ARGV: tuple[str, ...] = ("--verbose",)

# argv: <module> <plugin folder> <output file> <boot args...>
_NODE_SCRIPT = """\
const fs = require("fs");
const [moduleName, folder, outFile, ...bootArgv] = process.argv.slice(2);
const tw = require(require.resolve(moduleName, { paths: [process.cwd()] }));
const $tw = tw.TiddlyWiki();
$tw.boot.argv = bootArgv;
$tw.boot.boot();
const plugin = $tw.loadPluginFolder(folder);
if (!plugin) {
  process.stderr.write("TiddlyWiki could not load plugin folder " + folder + "\\n");
  process.exit(2);
}
fs.writeFileSync(outFile, JSON.stringify(plugin));
"""


class PluginLoadError(RuntimeError):
    pass


class PluginLoader(Protocol):
    def load(self, path: Path) -> dict[str, Any]: ...


class NodePluginLoader:
    def __init__(
        self,
        *,
        node: str = "node",
        module: str = "tiddlywiki",
        argv: tuple[str, ...] | list[str] = DEFAULT_BOOT_ARGV,
        cwd: str | Path | None = None,
    ) -> None:
        self.node = node
        self.module = module
        self.argv = tuple(argv) or DEFAULT_BOOT_ARGV
        self.cwd = Path(cwd) if cwd is not None else None

    def command(self, script: Path, folder: Path, out_file: Path) -> list[str]:
        return [self.node, str(script), self.module, str(folder), str(out_file), *self.argv]

    def load(self, path: Path) -> dict[str, Any]:
        folder = Path(path).resolve()
        if not folder.is_dir():
            raise PluginLoadError(f"Plugin folder not found: {folder}")

        with tempfile.TemporaryDirectory(prefix="twbuild-") as tmpdir:
            script = Path(tmpdir) / "load-plugin.js"
            out_file = Path(tmpdir) / "plugin.json"
            script.write_text(_NODE_SCRIPT, encoding="utf-8")
            cmd = self.command(script, folder, out_file)
            logger.debug("Booting host: %s", " ".join(cmd))
            try:
                subprocess.run(
                    cmd,
                    cwd=str(self.cwd) if self.cwd else None,
                    check=True,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                )
            except FileNotFoundError as e:
                raise PluginLoadError(f"Node executable not found: {self.node}") from e
            except subprocess.CalledProcessError as e:
                raise PluginLoadError(f"Host failed to load {folder}:\n\n{e.stdout}") from e

            try:
                record = json.loads(out_file.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise PluginLoadError(f"Host produced no usable record for {folder}: {e}") from e

        if not isinstance(record, dict):
            raise PluginLoadError(f"Host returned a non-object record for {folder}")
        return record


def make_loader(spec: HostSpec, *, cwd: str | Path | None = None) -> PluginLoader:
    return NodePluginLoader(node=spec.node, module=spec.module, argv=spec.argv, cwd=cwd)
