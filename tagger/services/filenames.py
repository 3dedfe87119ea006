"""Collision-free stored names for uploads."""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Callable, Iterator

logger = logging.getLogger("tagger.upload")

FALLBACK_NAME = "image"
MAX_CANDIDATES = 10000

_SEPARATORS = re.compile(r"[\\/]")


def sanitize_filename(name: str | None) -> str:
    """Keep only the last path component, trimmed. Never returns an empty name."""
    last = _SEPARATORS.split(name or "")[-1].strip()
    if last in ("", ".", ".."):
        return FALLBACK_NAME
    return last


def split_name(name: str) -> tuple[str, str]:
    """Split into (stem, extension). `a.tar.gz` -> (`a.tar`, `.gz`), `.env` -> (`.env`, ``)."""
    return os.path.splitext(name)


def candidate_names(stem: str, ext: str) -> Iterator[str]:
    """`stem.ext`, then `stem (1).ext`, `stem (2).ext`, ..."""
    yield f"{stem}{ext}"
    for n in range(1, MAX_CANDIDATES):
        yield f"{stem} ({n}){ext}"


def _is_regular_file(path: Path) -> bool:
    return path.is_file()


def resolve_stored_name(
    desired: str | None,
    directory: Path,
    is_file: Callable[[Path], bool] = _is_regular_file,
) -> str:
    """First candidate name that is not taken by a regular file in `directory`.

    Directories and other non-file entries do not count as collisions. Does not
    touch the filesystem beyond the existence checks, so it doubles as a preview
    of the name an upload would get.
    """
    directory = Path(directory)
    stem, ext = split_name(sanitize_filename(desired))
    for candidate in candidate_names(stem, ext):
        if not is_file(directory / candidate):
            return candidate
    raise FileExistsError(f"No free name for {stem}{ext} in {directory}")


def reserve_stored_path(desired: str | None, directory: Path) -> Path:
    """Claim the first free stored name with an exclusive create.

    Returns the path of a new empty file. A name already taken (by an earlier
    or concurrent upload, or by a directory) moves on to the next candidate.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    stem, ext = split_name(sanitize_filename(desired))
    for candidate in candidate_names(stem, ext):
        path = directory / candidate
        try:
            with open(path, "xb"):
                pass
        except (FileExistsError, IsADirectoryError):
            logger.debug("Stored name %s taken, trying next", candidate)
            continue
        return path
    raise FileExistsError(f"No free name for {stem}{ext} in {directory}")
