"""Writes capture time and GPS tags into an image, repairing or falling back when the EXIF block is broken.

Order of strategies:

    prefer_alternate -> XMP write, no fallback
    repair           -> clear EXIF + MakerNotes (advisory), then EXIF write
    EXIF write fails -> if repair was requested or the error looks like
                        container corruption: clear (once per run) and
                        retry the EXIF write
    still failing    -> XMP write as the last resort

At most one clear, two EXIF writes and one XMP write happen per call.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from tagger.errors import FailureKind, MetadataWriteFailure, TagEngineError, ValidationError
from tagger.services.tag_engine import TagEngine, WriteOptions

logger = logging.getLogger("tagger.metadata")

PRIMARY = "primary"
ALTERNATE = "alternate"

CLEAR_GROUPS = ("EXIF:all", "MakerNotes:all")

_LOCAL_DATETIME = re.compile(r"^(\d{4})-(\d{2})-(\d{2})[T ](\d{2}):(\d{2})(?::(\d{2}))?$")


def to_exif_datetime(value: str) -> str:
    """`2024-05-01T10:30` -> `2024:05:01 10:30:00`. Anything unrecognised is returned as is."""
    m = _LOCAL_DATETIME.match(value.strip()) if value else None
    if not m:
        return value
    year, month, day, hour, minute, second = m.groups()
    return f"{year}:{month}:{day} {hour}:{minute}:{second or '00'}"


def hemisphere_ref(value: float, axis: str) -> str:
    """N/S for latitude, E/W for longitude. Zero counts as north/east."""
    if axis == "latitude":
        return "N" if value >= 0 else "S"
    if axis == "longitude":
        return "E" if value >= 0 else "W"
    raise ValueError(f"unknown axis: {axis}")


def _parse_coordinate(value: Any, name: str, limit: float) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number") from None
    if not -limit <= number <= limit:
        raise ValidationError(f"{name} must be between -{limit:g} and {limit:g}")
    return number


@dataclass(frozen=True)
class TagRequest:
    """Values a user asked to commit, plus the two strategy switches."""

    date_taken: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    repair: bool = False
    prefer_alternate: bool = False

    @classmethod
    def from_form(
        cls,
        date_taken: Optional[str],
        latitude: Any,
        longitude: Any,
        repair: bool = False,
        prefer_alternate: bool = False,
    ) -> "TagRequest":
        return cls(
            date_taken=(date_taken or "").strip() or None,
            latitude=_parse_coordinate(latitude, "latitude", 90),
            longitude=_parse_coordinate(longitude, "longitude", 180),
            repair=repair,
            prefer_alternate=prefer_alternate,
        )

    def primary_tags(self) -> dict[str, Any]:
        tags: dict[str, Any] = {}
        if self.date_taken:
            tags["EXIF:DateTimeOriginal"] = to_exif_datetime(self.date_taken)
        if self.latitude is not None:
            tags["EXIF:GPSLatitude"] = abs(self.latitude)
            tags["EXIF:GPSLatitudeRef"] = hemisphere_ref(self.latitude, "latitude")
        if self.longitude is not None:
            tags["EXIF:GPSLongitude"] = abs(self.longitude)
            tags["EXIF:GPSLongitudeRef"] = hemisphere_ref(self.longitude, "longitude")
        return tags

    def alternate_tags(self) -> dict[str, Any]:
        # XMP coordinates are signed, there is no separate ref field
        tags: dict[str, Any] = {}
        if self.date_taken:
            tags["XMP-exif:DateTimeOriginal"] = to_exif_datetime(self.date_taken)
        if self.latitude is not None:
            tags["XMP-exif:GPSLatitude"] = self.latitude
        if self.longitude is not None:
            tags["XMP-exif:GPSLongitude"] = self.longitude
        return tags


@dataclass
class WriteOutcome:
    tag_space: str
    steps: list[str] = field(default_factory=list)


class MetadataWriter:
    def __init__(self, engine: TagEngine):
        self.engine = engine

    async def write(self, path: Path, request: TagRequest) -> WriteOutcome:
        """Commit `request` to the file at `path`. Raises MetadataWriteFailure when every strategy failed."""
        path = Path(path)
        steps: list[str] = []

        if request.prefer_alternate:
            await self._write_alternate(path, request, steps)
            return WriteOutcome(ALTERNATE, steps)

        cleared = False
        if request.repair:
            await self._clear(path, steps)
            cleared = True

        try:
            await self._write_primary(path, request, steps)
            return WriteOutcome(PRIMARY, steps)
        except TagEngineError as e:
            logger.warning("EXIF write failed for %s (%s): %s", path.name, e.kind.value, e.message)
            should_repair = request.repair or e.kind in (
                FailureKind.OFFSET_CORRUPTION,
                FailureKind.PROPRIETARY_FIELD_CORRUPTION,
            )

        if should_repair:
            if not cleared:
                await self._clear(path, steps)
            try:
                await self._write_primary(path, request, steps)
                return WriteOutcome(PRIMARY, steps)
            except TagEngineError as e:
                logger.warning("EXIF write after repair failed for %s: %s", path.name, e.message)

        logger.info("Falling back to XMP for %s", path.name)
        await self._write_alternate(path, request, steps)
        return WriteOutcome(ALTERNATE, steps)

    async def _clear(self, path: Path, steps: list[str]) -> None:
        """Drop the EXIF block and the vendor MakerNotes that breaks rewrites of some camera files.

        Failure is logged, not raised: a missing or degenerate EXIF block is the usual reason to clear.
        """
        steps.append("clear")
        try:
            await self.engine.write(path, {}, WriteOptions(clear=CLEAR_GROUPS))
        except TagEngineError as e:
            logger.warning("Clearing EXIF on %s failed, writing anyway: %s", path.name, e.message)

    async def _write_primary(self, path: Path, request: TagRequest, steps: list[str]) -> None:
        steps.append("primary")
        await self.engine.write(path, request.primary_tags(), WriteOptions())

    async def _write_alternate(self, path: Path, request: TagRequest, steps: list[str]) -> None:
        steps.append("alternate")
        try:
            await self.engine.write(path, request.alternate_tags(), WriteOptions())
        except TagEngineError as e:
            logger.error("XMP write failed for %s: %s", path.name, e.message)
            raise MetadataWriteFailure(f"Failed to update metadata: {e.message}") from e
