"""Storage layer: path guard, mount handling, tree copy/wipe and archiving."""

from .paths import check_path_length, safe_join
from .extraction import copy_tree, wipe_tree
from .archive import archive_session, timestamp_name, unique_target
from .mount import MountManager

__all__ = [
    "check_path_length",
    "safe_join",
    "copy_tree",
    "wipe_tree",
    "archive_session",
    "timestamp_name",
    "unique_target",
    "MountManager",
]
