"""Session: one pipeline run for one physical plug event."""
from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from ..errors import SessionCollisionError
from ..storage.archive import timestamp_name
from ..storage.paths import PathLike, safe_join

logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o755


class SessionStage(Enum):
    """Progress marker of a session, in pipeline order."""
    CREATED = 0
    MOUNTED = 1
    EXTRACTED = 2
    DECODED = 3
    ARCHIVED = 4
    ABORTED = 5

    @property
    def terminal(self) -> bool:
        return self in (SessionStage.ARCHIVED, SessionStage.ABORTED)


class Session:
    """Identity, destination directory and stage of one pipeline run.

    The id is the wall-clock second the session was created
    ('YYYYMMDD_HHMMSS'), so session directories sort in creation order.
    The stage only ever moves forward; a terminal session accepts no
    further transitions.
    """

    def __init__(self, base_dir: PathLike, now: Optional[datetime] = None):
        self.id = timestamp_name(now)
        self.directory = safe_join(base_dir, self.id)
        self._stage = SessionStage.CREATED
        self.reason: Optional[str] = None

    @property
    def stage(self) -> SessionStage:
        return self._stage

    def create_directory(self) -> Path:
        """Create the destination directory.

        Raises:
            SessionCollisionError: If it already exists (two plugs within
                the same second, or a leftover session).
        """
        self.directory.parent.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        try:
            self.directory.mkdir(mode=DIRECTORY_MODE)
        except FileExistsError:
            raise SessionCollisionError(f"Session directory {self.directory} already exists") from None
        return self.directory

    def advance(self, stage: SessionStage) -> None:
        """Move forward to `stage`.

        Raises:
            ValueError: If the move goes backwards or leaves a terminal stage.
        """
        if self._stage.terminal:
            raise ValueError(f"Session {self.id} is already {self._stage.name.lower()}")
        if stage is SessionStage.ABORTED or stage.value > self._stage.value:
            self._stage = stage
            return
        raise ValueError(f"Session {self.id} cannot go from {self._stage.name} to {stage.name}")

    def abort(self, reason: str) -> None:
        """Mark the session aborted; its directory is left for inspection."""
        if self._stage.terminal:
            return
        self.reason = reason
        self._stage = SessionStage.ABORTED
        logger.error(f"Session {self.id} aborted: {reason}")

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, stage={self._stage.name})"
