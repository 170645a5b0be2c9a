from __future__ import annotations

import json
from pathlib import Path

import pytest

from twbuild.host import PluginLoadError

AUTHOR = "danielo515"
PLUGIN = "pouchdb"
TITLE = f"$:/plugins/{AUTHOR}/{PLUGIN}"

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"

STARTUP_JS = (
    "/*\\\n"
    f"title: {TITLE}/startup.js\n"
    "type: application/javascript\n"
    "module-type: startup\n"
    "\n"
    "Opens the database on startup\n"
    "\\*/\n"
    "(function(){\n"
    '"use strict";\n'
    'exports.name = "pouchdb-startup";\n'
    "})();\n"
)


def write_plugin(plugin_dir: Path, info: dict | None = None) -> None:
    plugin_dir.mkdir(parents=True, exist_ok=True)
    info = info or {
        "title": TITLE,
        "description": "PouchDB sync adaptor",
        "author": AUTHOR,
        "version": "1.2.5+3",
        "released": "",
        "core-version": ">=5.1.13",
        "dependents": ["$:/plugins/tiddlywiki/x", "$:/plugins/some one/y"],
    }
    (plugin_dir / "plugin.info").write_text(json.dumps(info, indent=2), encoding="utf-8")
    (plugin_dir / "readme.tid").write_text(
        f"title: {TITLE}/readme\ntags: doc\n\nHello **world**\n\nSecond paragraph",
        encoding="utf-8",
    )
    (plugin_dir / "startup.js").write_text(STARTUP_JS, encoding="utf-8")
    (plugin_dir / "styles.css").write_text("body { color: red; }\n", encoding="utf-8")
    (plugin_dir / "styles.css.meta").write_text(
        f"title: {TITLE}/styles\ntags: $:/tags/Stylesheet\ntype: text/css\n", encoding="utf-8"
    )
    (plugin_dir / "theme.scss").write_text("$c: red;\n", encoding="utf-8")
    (plugin_dir / "images").mkdir(exist_ok=True)
    (plugin_dir / "images" / "icon.png").write_bytes(PNG_BYTES)
    (plugin_dir / "images" / "icon.png.meta").write_text(f"title: {TITLE}/icon\ntype: image/png\n", encoding="utf-8")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A plugin project: twbuild.yaml, package.json and src/plugins/<author>/<plugin>."""
    (tmp_path / "twbuild.yaml").write_text(
        f"author: {AUTHOR}\nplugin_name: {PLUGIN}\nbell: false\n", encoding="utf-8"
    )
    (tmp_path / "package.json").write_text(
        json.dumps({"name": "tw-pouchdb", "version": "1.2.5", "private": True, "scripts": {"build": "twbuild"}}, indent=2),
        encoding="utf-8",
    )
    write_plugin(tmp_path / "src" / "plugins" / AUTHOR / PLUGIN)
    return tmp_path


@pytest.fixture
def plugin_dir(project: Path) -> Path:
    return project / "src" / "plugins" / AUTHOR / PLUGIN


class DirectoryLoader:
    """Stands in for TiddlyWiki under Node: one tiddler per file, titled by its path."""

    def __init__(self) -> None:
        self.paths: list[Path] = []

    def load(self, path: Path) -> dict:
        self.paths.append(path)
        if not path.is_dir():
            raise PluginLoadError(f"Plugin folder not found: {path}")
        info = json.loads((path / "plugin.info").read_text(encoding="utf-8"))
        tiddlers = {}
        for file in sorted(p for p in path.rglob("*") if p.is_file() and p.name != "plugin.info"):
            title = f"{info['title']}/{file.relative_to(path).as_posix()}"
            tiddlers[title] = {"title": title, "text": file.read_text(encoding="utf-8", errors="replace")}
        return {**info, "type": "application/json", "text": json.dumps({"tiddlers": tiddlers}, indent=4)}
