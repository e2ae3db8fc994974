"""Local file enumeration and remote path mapping.

This module provides:
- scan_files: Recursive listing of regular files, hidden entries skipped
- remote_path_for: Destination path of a local file for upload
- backup_remote_path: Destination path of a local file for backup
"""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path

logger = logging.getLogger(__name__)


def scan_files(root: Path) -> list[Path]:
    """List every regular file below ``root``, in sorted order.

    Hidden files and hidden directories (names starting with ".") are
    skipped, as are symlinks to directories. A file root yields itself; a
    missing root yields nothing.
    """
    root = Path(root)
    if not root.exists():
        logger.warning(f"Nothing to scan: {root} does not exist")
        return []
    if root.is_file():
        return [root.resolve()]

    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        for name in sorted(filenames):
            if name.startswith("."):
                continue
            path = Path(dirpath) / name
            if path.is_file():
                files.append(path.resolve())
    logger.debug(f"Scanned {root}: {len(files)} files")
    return files


def remote_path_for(
    local_file: Path,
    local_root: Path,
    remote_root: str,
    include_prefix: bool = False,
) -> str:
    """Destination of ``local_file`` when uploading ``local_root``.

    The local root's own name is kept: uploading ``/data/photos`` to
    ``/backup`` puts ``/data/photos/a.jpg`` at ``/backup/photos/a.jpg``.
    With ``include_prefix`` the whole absolute local path is kept instead
    (``/backup/data/photos/a.jpg``).
    """
    local_file = Path(local_file).resolve()
    if include_prefix:
        relative = local_file.relative_to(local_file.anchor)
    else:
        relative = local_file.relative_to(Path(local_root).resolve().parent)
    return posixpath.join(remote_root or "/", relative.as_posix())


def backup_remote_path(local_file: Path, local_root: Path, remote_root: str) -> str:
    """Destination of ``local_file`` when backing up ``local_root``.

    Paths are taken relative to the root directory itself (or to the parent
    of a file root), so ``/data/photos/a.jpg`` backed up from
    ``/data/photos`` to ``/backup`` lands at ``/backup/a.jpg``.
    """
    local_root = Path(local_root).resolve()
    base = local_root if local_root.is_dir() else local_root.parent
    relative = Path(local_file).resolve().relative_to(base)
    return posixpath.join(remote_root or "/", relative.as_posix())
