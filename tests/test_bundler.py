import json
import shutil
from pathlib import Path

import pytest

from twbuild.bundler import ArtifactWriteError, artifact_name, bundle
from twbuild.host import PluginLoadError
from twbuild.manifest import Manifest, load_manifest

from conftest import AUTHOR, PLUGIN, TITLE, DirectoryLoader


@pytest.fixture
def dist(tmp_path: Path, plugin_dir: Path) -> Path:
    root = tmp_path / "dist"
    shutil.copytree(plugin_dir, root / AUTHOR / PLUGIN)
    return root


class RecordingLoader:
    def __init__(self, record: dict) -> None:
        self.record = record
        self.paths: list[Path] = []

    def load(self, path: Path) -> dict:
        self.paths.append(path)
        return self.record


def test_artifact_name() -> None:
    assert artifact_name("pouchdb", "1.2.5-develop+4") == "pouchdb_1.2.5-develop+4.json"


def test_bundle_writes_array_wrapped_record(tmp_path: Path, dist: Path) -> None:
    manifest = load_manifest(dist / AUTHOR / PLUGIN / "plugin.info")

    out = bundle(
        dist_root=dist,
        manifest=manifest,
        plugin_name=PLUGIN,
        bundle_dir=tmp_path / "bundle",
        loader=DirectoryLoader(),
        notify=False,
    )

    assert out == (tmp_path / "bundle" / "pouchdb_1.2.5+3.json").resolve()
    data = json.loads(out.read_text(encoding="utf-8"))
    assert isinstance(data, list)
    assert len(data) == 1
    assert data[0]["title"] == TITLE
    assert data[0]["type"] == "application/json"
    assert f"{TITLE}/readme.tid" in json.loads(data[0]["text"])["tiddlers"]
    assert out.read_text(encoding="utf-8").startswith('[\n  {\n    "title"')


def test_bundle_is_idempotent(tmp_path: Path, dist: Path) -> None:
    manifest = load_manifest(dist / AUTHOR / PLUGIN / "plugin.info")
    kwargs = dict(
        dist_root=dist,
        manifest=manifest,
        plugin_name=PLUGIN,
        bundle_dir=tmp_path / "bundle",
        loader=DirectoryLoader(),
        notify=False,
    )

    first = bundle(**kwargs).read_bytes()
    second_path = bundle(**kwargs)

    assert second_path.read_bytes() == first
    assert [p.name for p in (tmp_path / "bundle").iterdir()] == [second_path.name]


def test_bundle_uses_namespace_folder_and_manifest_version(tmp_path: Path) -> None:
    loader = RecordingLoader({"title": TITLE, "text": "{}"})
    manifest = Manifest(title=TITLE, version="2.0.0+10")

    out = bundle(
        dist_root=tmp_path / "dist",
        manifest=manifest,
        plugin_name=PLUGIN,
        bundle_dir=tmp_path / "bundle",
        loader=loader,
        notify=False,
    )

    assert loader.paths == [(tmp_path / "dist").resolve() / AUTHOR / PLUGIN]
    assert out.name == "pouchdb_2.0.0+10.json"


def test_bundle_missing_namespace_folder(tmp_path: Path) -> None:
    with pytest.raises(PluginLoadError):
        bundle(
            dist_root=tmp_path / "dist",
            manifest=Manifest(title=TITLE, version="1.0.0"),
            plugin_name=PLUGIN,
            bundle_dir=tmp_path / "bundle",
            loader=DirectoryLoader(),
            notify=False,
        )
    assert not (tmp_path / "bundle").exists()


def test_bundle_write_failure_leaves_no_artifact(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(*args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr("twbuild.files.os.replace", boom)
    with pytest.raises(ArtifactWriteError, match="read-only"):
        bundle(
            dist_root=tmp_path / "dist",
            manifest=Manifest(title=TITLE, version="1.0.0"),
            plugin_name=PLUGIN,
            bundle_dir=tmp_path / "bundle",
            loader=RecordingLoader({"title": TITLE}),
            notify=False,
        )
    assert list((tmp_path / "bundle").iterdir()) == []


def test_bundle_rejects_empty_record(tmp_path: Path) -> None:
    with pytest.raises(PluginLoadError):
        bundle(
            dist_root=tmp_path,
            manifest=Manifest(title=TITLE, version="1.0.0"),
            plugin_name=PLUGIN,
            bundle_dir=tmp_path / "bundle",
            loader=RecordingLoader({}),
            notify=False,
        )
