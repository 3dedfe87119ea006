"""Filesystem housekeeping that must never fail a request or startup."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger("tagger.db")


def migrate_legacy_database(old_path: Path, new_path: Path) -> bool:
    """Move the auth database from its old location if only the old one exists.

    Returns True if a file was moved. Errors are logged and swallowed.
    """
    old_path, new_path = Path(old_path), Path(new_path)
    try:
        new_path.parent.mkdir(parents=True, exist_ok=True)
        if old_path.exists() and not new_path.exists():
            shutil.move(str(old_path), str(new_path))
            logger.info("Moved auth database from %s to %s", old_path, new_path)
            return True
    except OSError as e:
        logger.warning("Auth DB migration warning: %s", e)
    return False


def remove_quietly(path: Path) -> None:
    """Best-effort delete of a temp file."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove temp file %s: %s", path, e)
