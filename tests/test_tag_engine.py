"""Tests for the exiftool adapter and failure classification."""
import asyncio
import os
import stat
import sys

import pytest

from tagger.errors import FailureKind, TagEngineError
from tagger.services.tag_engine import ExifToolEngine, WriteOptions, build_write_args, classify_failure

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as exiftool")


@pytest.mark.parametrize(
    "message,kind",
    [
        ("Error: Bad IFD0 offset - a.jpg", FailureKind.OFFSET_CORRUPTION),
        ("Error: Bad offset for ExifIFD - a.jpg", FailureKind.OFFSET_CORRUPTION),
        ("Warning: Invalid offset in IFD1", FailureKind.OFFSET_CORRUPTION),
        ("Error: [minor] Bad MakerNotes directory - a.jpg", FailureKind.PROPRIETARY_FIELD_CORRUPTION),
        ("Error: Bad MakerNotes offset - a.jpg", FailureKind.PROPRIETARY_FIELD_CORRUPTION),
        ("Error: File not found - a.jpg", FailureKind.GENERIC),
        ("", FailureKind.GENERIC),
    ],
)
def test_classify_failure(message, kind):
    assert classify_failure(message) == kind


def test_build_write_args():
    args = build_write_args(
        {"EXIF:GPSLatitude": 12.5, "EXIF:GPSLatitudeRef": "S"},
        WriteOptions(clear=("MakerNotes:all",)),
    )
    assert args == [
        "-overwrite_original",
        "-m",
        "-MakerNotes:all=",
        "-EXIF:GPSLatitude=12.5",
        "-EXIF:GPSLatitudeRef=S",
    ]


def test_build_write_args_strict_mode():
    assert build_write_args({}, WriteOptions(ignore_minor_errors=False)) == ["-overwrite_original"]


def _fake_exiftool(tmp_path, body):
    script = tmp_path / "exiftool"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return str(script)


@pytest.mark.asyncio
async def test_missing_executable(tmp_path):
    engine = ExifToolEngine(str(tmp_path / "no-such-exiftool"))
    with pytest.raises(TagEngineError):
        await engine.read(tmp_path / "a.jpg")


@posix_only
@pytest.mark.asyncio
async def test_read_parses_json(tmp_path):
    engine = ExifToolEngine(_fake_exiftool(tmp_path, 'echo \'[{"SourceFile": "a.jpg", "EXIF:Make": "Canon"}]\'\n'))
    assert await engine.read(tmp_path / "a.jpg") == {"SourceFile": "a.jpg", "EXIF:Make": "Canon"}


@posix_only
@pytest.mark.asyncio
async def test_write_failure_is_classified(tmp_path):
    engine = ExifToolEngine(_fake_exiftool(tmp_path, 'echo "Error: Bad IFD0 offset - $3" >&2\nexit 1\n'))
    with pytest.raises(TagEngineError) as exc:
        await engine.write(tmp_path / "a.jpg", {"EXIF:GPSLatitude": 1.0})
    assert exc.value.kind == FailureKind.OFFSET_CORRUPTION
    assert "Bad IFD0 offset" in exc.value.message


@posix_only
@pytest.mark.asyncio
async def test_write_passes_arguments(tmp_path):
    log = tmp_path / "args.txt"
    engine = ExifToolEngine(_fake_exiftool(tmp_path, f'printf "%s\\n" "$@" > \"{log}\"\n'))
    target = tmp_path / "a.jpg"
    await engine.write(target, {"XMP-exif:GPSLongitude": -45.0})
    assert log.read_text().splitlines() == [
        "-overwrite_original",
        "-m",
        "-XMP-exif:GPSLongitude=-45.0",
        os.fspath(target),
    ]


@posix_only
@pytest.mark.asyncio
async def test_cancelled_write_kills_exiftool(tmp_path):
    pid_file = tmp_path / "pid"
    engine = ExifToolEngine(_fake_exiftool(tmp_path, f'echo $$ > "{pid_file}"\nsleep 30\n'))
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(engine.write(tmp_path / "a.jpg", {"EXIF:GPSLatitude": 1.0}), timeout=1.0)
    pid = int(pid_file.read_text())
    # killed and reaped, so not even a zombie remains
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
