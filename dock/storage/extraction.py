"""Recursive tree copy and wipe for the mounted device storage.

Extraction is always copy-then-wipe: the source is only wiped after the
copy returned without error, so a crash mid-copy never loses device data.
"""
from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import List, Tuple

from ..errors import DockError, ExtractionError
from ..models import CopyStats, WipeStats
from .paths import PathLike, safe_join

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 256 * 1024  # bytes
DIRECTORY_MODE = 0o755


def copy_tree(source: PathLike, destination: PathLike, buffer_size: int = COPY_BUFFER_SIZE) -> CopyStats:
    """Mirror `source` into `destination`.

    Directories are created as needed (existing ones are reused), regular
    files are truncated and rewritten, so copying twice into the same
    destination overwrites instead of duplicating.

    Symbolic links and special files are neither followed nor copied. Each
    one is logged and rejected; the rest of the tree is still copied but the
    call fails at the end, so the caller never wipes a source it could not
    fully preserve.

    Args:
        source: Root of the tree to copy (typically the mount point).
        destination: Target directory, created if missing.
        buffer_size: Bytes streamed per read/write.

    Returns:
        CopyStats with counts of files, directories and bytes copied.

    Raises:
        ExtractionError: On any read/write error (aborts immediately) or if
            any entry was rejected.
    """
    source = Path(source)
    destination = Path(destination)

    if not source.is_dir():
        raise ExtractionError(f"Copy source {source} is not a directory")

    files = 0
    directories = 0
    bytes_copied = 0
    rejected: List[Path] = []

    try:
        destination.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        # (source dir, destination dir) pairs still to visit
        pending: List[Tuple[Path, Path]] = [(source, destination)]

        while pending:
            src_dir, dst_dir = pending.pop()
            with os.scandir(src_dir) as entries:
                for entry in sorted(entries, key=lambda e: e.name):
                    src_path = Path(entry.path)
                    dst_path = safe_join(dst_dir, entry.name)

                    if entry.is_symlink():
                        logger.warning(f"Refusing to copy symbolic link {src_path}")
                        rejected.append(src_path)
                    elif entry.is_dir(follow_symlinks=False):
                        dst_path.mkdir(mode=DIRECTORY_MODE, exist_ok=True)
                        directories += 1
                        pending.append((src_path, dst_path))
                    elif entry.is_file(follow_symlinks=False):
                        bytes_copied += _copy_file(src_path, dst_path, buffer_size)
                        files += 1
                    else:
                        logger.warning(f"Refusing to copy special file {src_path}")
                        rejected.append(src_path)
    except ExtractionError:
        raise
    except (OSError, DockError) as e:
        raise ExtractionError(f"Copy {source} -> {destination} failed: {e}") from e

    if rejected:
        raise ExtractionError(
            f"Copy {source} -> {destination} rejected {len(rejected)} entries",
            rejected=rejected,
        )

    logger.info(
        f"Copied {files} files, {directories} directories ({bytes_copied} bytes) "
        f"from {source} to {destination}"
    )
    return CopyStats(files=files, directories=directories, bytes_copied=bytes_copied)


def _copy_file(src: Path, dst: Path, buffer_size: int) -> int:
    """Stream one regular file through a fixed-size buffer."""
    with src.open("rb") as fin, dst.open("wb") as fout:
        shutil.copyfileobj(fin, fout, buffer_size)
        fout.flush()
        return fout.tell()


def wipe_tree(root: PathLike) -> WipeStats:
    """Delete everything below `root`, keeping `root` itself.

    Children are visited before their directory (post-order); files and
    symbolic links are unlinked, directories removed once empty. An empty
    or already-wiped tree is a successful no-op, and the root stays in place
    so a mount point can be reused immediately.

    Raises:
        ExtractionError: If root is missing or an entry cannot be removed.
    """
    root = Path(root)
    if not root.is_dir() or root.is_symlink():
        raise ExtractionError(f"Wipe root {root} is not a directory")

    files = 0
    directories = 0
    try:
        for dirpath, dirnames, filenames in os.walk(root, topdown=False, onerror=_raise_walk_error):
            for name in filenames:
                os.unlink(os.path.join(dirpath, name))
                files += 1
            for name in dirnames:
                path = os.path.join(dirpath, name)
                # os.walk lists links to directories here without descending
                if os.path.islink(path):
                    os.unlink(path)
                    files += 1
                else:
                    os.rmdir(path)
                    directories += 1
    except OSError as e:
        raise ExtractionError(f"Wipe of {root} failed: {e}") from e

    logger.info(f"Wiped {files} files and {directories} directories under {root}")
    return WipeStats(files=files, directories=directories)


def _raise_walk_error(error: OSError) -> None:
    raise error
