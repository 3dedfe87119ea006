"""Tag engine capability and the exiftool adapter.

The orchestrator only sees `TagEngine.read` / `TagEngine.write` and the
`FailureKind` attached to a `TagEngineError`. All knowledge of exiftool's
message wording lives in `classify_failure`.
"""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol

from tagger.errors import FailureKind, TagEngineError

logger = logging.getLogger("tagger.metadata")

# "Bad IFD0 offset", "Bad offset for ExifIFD", "Bad ExifIFD directory offset" ...
_OFFSET_PATTERNS = (
    re.compile(r"\bbad\b.*\boffset\b", re.I),
    re.compile(r"\boffset\b.*\b(ifd\d?|exififd|exif)\b", re.I),
)
_PROPRIETARY_PATTERN = re.compile(r"makernote", re.I)


def classify_failure(message: str) -> FailureKind:
    """Map engine error text to a FailureKind. Vendor-field errors win over offset errors."""
    text = message or ""
    if _PROPRIETARY_PATTERN.search(text):
        return FailureKind.PROPRIETARY_FIELD_CORRUPTION
    if any(p.search(text) for p in _OFFSET_PATTERNS):
        return FailureKind.OFFSET_CORRUPTION
    return FailureKind.GENERIC


@dataclass(frozen=True)
class WriteOptions:
    ignore_minor_errors: bool = True  # permissive mode: minor container problems are not fatal
    clear: tuple[str, ...] = field(default_factory=tuple)  # tag groups to delete, e.g. "EXIF:all"


class TagEngine(Protocol):
    async def read(self, path: Path) -> dict[str, Any]: ...

    async def write(self, path: Path, tags: Mapping[str, Any], options: WriteOptions = WriteOptions()) -> None: ...


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return repr(value)
    return str(value)


def build_write_args(tags: Mapping[str, Any], options: WriteOptions) -> list[str]:
    """exiftool arguments for one write, without the executable and the file."""
    args = ["-overwrite_original"]
    if options.ignore_minor_errors:
        args.append("-m")
    args.extend(f"-{name}=" for name in options.clear)
    args.extend(f"-{name}={_format_value(value)}" for name, value in tags.items())
    return args


class ExifToolEngine:
    """Runs the exiftool binary once per call."""

    def __init__(self, executable: str = "exiftool"):
        self.executable = executable

    async def _run(self, args: list[str]) -> tuple[int, str, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TagEngineError(f"Could not start {self.executable}: {e}") from e
        try:
            stdout, stderr = await proc.communicate()
        except BaseException:
            # cancelled mid-run: the child must not keep writing to the file
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
            await proc.wait()
            raise
        return (
            proc.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def read(self, path: Path) -> dict[str, Any]:
        code, out, err = await self._run(["-j", "-G", str(path)])
        if code != 0:
            message = err.strip() or out.strip() or f"exiftool exited with {code}"
            raise TagEngineError(message, classify_failure(message))
        try:
            data = json.loads(out)
        except json.JSONDecodeError as e:
            raise TagEngineError(f"Unreadable exiftool output: {e}") from e
        return data[0] if data else {}

    async def write(self, path: Path, tags: Mapping[str, Any], options: WriteOptions = WriteOptions()) -> None:
        code, out, err = await self._run(build_write_args(tags, options) + [str(path)])
        if code != 0:
            message = err.strip() or out.strip() or f"exiftool exited with {code}"
            raise TagEngineError(message, classify_failure(message))
        if err.strip():
            logger.info("exiftool warnings for %s: %s", path.name, err.strip())
