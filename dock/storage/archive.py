"""Moving processed data into archive namespaces."""
from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..errors import DockError
from .paths import PathLike, safe_join

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
DIRECTORY_MODE = 0o755


def timestamp_name(now: Optional[datetime] = None) -> str:
    """Sortable wall-clock name, e.g. '20260117_142305'."""
    if now is None:
        now = datetime.now()
    return now.strftime(TIMESTAMP_FORMAT)


def unique_target(directory: PathLike, stem: str, suffix: str = "") -> Path:
    """First non-existing `<directory>/<stem>[_N]<suffix>` path."""
    candidate = safe_join(directory, f"{stem}{suffix}")
    counter = 1
    while candidate.exists():
        candidate = safe_join(directory, f"{stem}_{counter}{suffix}")
        counter += 1
    return candidate


def archive_session(session_dir: PathLike, archive_dir: PathLike) -> Optional[Path]:
    """Move a processed session directory into the archive as a unit.

    The move is a single rename, so the session is either fully archived or
    left untouched. Failures are logged, never raised, and never retried:
    the data simply stays where it is.

    Args:
        session_dir: Directory to archive.
        archive_dir: Archive directory (created if missing).

    Returns:
        The archived path, or None if the session was left in place.
    """
    session_dir = Path(session_dir)
    try:
        Path(archive_dir).mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        target = safe_join(archive_dir, session_dir.name)
        if target.exists():
            logger.error(f"Archive target {target} already exists; leaving {session_dir} in place")
            return None
        os.rename(session_dir, target)
    except (OSError, DockError) as e:
        logger.error(f"Could not archive {session_dir}: {e}")
        return None

    logger.info(f"Archived session {session_dir.name} to {target}")
    return target
