"""
files.py

Responsibility: Deterministic file-tree operations shared by the build stages.

Rules:
- Walk source files in sorted order to ensure deterministic output.
- Copy files byte-for-byte (including permissions); no content transforms.
- Whole-file writes go to a temp file in the target directory and are renamed
  into place, so a failed write never leaves a truncated file behind.

This module intentionally does NOT know about manifests, versions, or the host.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
import stat
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


def _read_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


# Read at import time, never while stages run on worker threads.
_UMASK = _read_umask()


class FileOpError(RuntimeError):
    pass


@dataclass(frozen=True)
class CopyResult:
    copied_files: int
    skipped_files: int


def _rel_posix(path: Path, root: Path) -> str:
    return str(path.relative_to(root)).replace(os.sep, "/")


def iter_files(root: Path) -> list[Path]:
    """
    Return all files under root, in deterministic lexicographic order
    (relative path ordering).
    """
    files: list[Path] = []
    for dirpath, _dirs, filenames in os.walk(root):
        base = Path(dirpath)
        for name in filenames:
            files.append(base / name)
    files.sort(key=lambda p: _rel_posix(p, root))
    return files


def _matches(name: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(name, pat) for pat in patterns)


def copy_tree(
    *,
    source_dir: str | Path,
    destination_dir: str | Path,
    include: Iterable[str] = ("*",),
    exclude: Iterable[str] = (),
) -> CopyResult:
    """
    Copy files whose basename matches `include` and not `exclude`.

    Directory structure below source_dir is mirrored into destination_dir.
    """
    src_dir = Path(source_dir).resolve()
    dst_dir = Path(destination_dir).resolve()
    include = tuple(include)
    exclude = tuple(exclude)

    if not src_dir.is_dir():
        raise FileOpError(f"Source directory not found: {src_dir}")

    copied = 0
    skipped = 0
    for src_path in iter_files(src_dir):
        name = src_path.name
        if not _matches(name, include) or _matches(name, exclude):
            skipped += 1
            continue
        dst_path = dst_dir / src_path.relative_to(src_dir)
        try:
            dst_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src_path, dst_path)
        except OSError as e:
            raise FileOpError(f"Failed copying {src_path} -> {dst_path}: {e}") from e
        copied += 1

    logger.debug("Copied %d file(s) from %s to %s (%d skipped)", copied, src_dir, dst_dir, skipped)
    return CopyResult(copied_files=copied, skipped_files=skipped)


def atomic_write_text(path: str | Path, text: str) -> None:
    """
    Replace `path` with `text` (UTF-8, "\\n" newlines) via temp file + rename.

    An existing file keeps its permission bits; a new file gets the regular
    `0o666 & ~umask` mode rather than the private mode of the temp file.

    Raises OSError; callers translate it into their own error type.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        mode = stat.S_IMODE(target.stat().st_mode)
    except FileNotFoundError:
        mode = 0o666 & ~_UMASK
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def remove_paths(paths: Iterable[str | Path]) -> list[Path]:
    """
    Delete each path (directory trees included). Missing paths are ignored.

    Returns the paths that actually existed and were removed.
    """
    removed: list[Path] = []
    for raw in paths:
        p = Path(raw)
        if not p.exists() and not p.is_symlink():
            continue
        try:
            if p.is_dir() and not p.is_symlink():
                shutil.rmtree(p)
            else:
                p.unlink()
        except OSError as e:
            raise FileOpError(f"Failed removing {p}: {e}") from e
        removed.append(p)
    return removed
