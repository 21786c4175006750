"""Path joining that refuses to produce paths the OS cannot represent."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Union

from ..errors import PathTooLongError

PATH_MAX = 4096  # bytes, including the terminating NUL on Linux
NAME_MAX = 255   # bytes per path component

PathLike = Union[str, Path]


def check_path_length(path: PathLike) -> Path:
    """Validate a path against PATH_MAX / NAME_MAX.

    Raises:
        PathTooLongError: If the encoded path or any component is too long.
    """
    path = Path(path)
    encoded = os.fsencode(str(path))
    if len(encoded) >= PATH_MAX:
        raise PathTooLongError(f"Path exceeds {PATH_MAX - 1} bytes: {str(path)[:64]}...")
    for part in path.parts:
        if len(os.fsencode(part)) > NAME_MAX:
            raise PathTooLongError(f"Path component exceeds {NAME_MAX} bytes: {part[:64]}...")
    return path


def safe_join(base: PathLike, *parts: PathLike) -> Path:
    """Join path components, failing closed instead of truncating.

    Unlike Path.joinpath, an absolute component is rejected rather than
    silently replacing the base, and the result is checked against the OS
    length limits before any filesystem call is made with it.

    Args:
        base: Directory to join onto.
        *parts: Relative components.

    Returns:
        The joined path.

    Raises:
        PathTooLongError: If the result would exceed PATH_MAX/NAME_MAX.
        ValueError: If a component is absolute.
    """
    result = Path(base)
    for part in parts:
        part = Path(part)
        if part.is_absolute():
            raise ValueError(f"Refusing to join absolute component {part} onto {base}")
        result = result / part
    return check_path_length(result)
