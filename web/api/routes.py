"""Upload API routes: commit metadata, preview metadata, predict stored names."""
from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path

import aiofiles
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel

from tagger.errors import TagEngineError
from tagger.services.credential_store import Principal
from tagger.services.filenames import reserve_stored_path, resolve_stored_name, split_name, sanitize_filename
from tagger.services.metadata_writer import MetadataWriter, TagRequest
from tagger.services.migration import remove_quietly
from tagger.services.tag_engine import TagEngine
from web.auth import require_user

logger = logging.getLogger("tagger.upload")

router = APIRouter(tags=["upload"])

CHUNK_SIZE = 1024 * 1024


class UploadResponse(BaseModel):
    message: str
    stored_name: str
    tag_space: str
    steps: list[str]


class StoredNameResponse(BaseModel):
    desired_name: str
    stored_name: str


def get_writer(request: Request) -> MetadataWriter:
    return request.app.state.writer


def get_tag_engine(request: Request) -> TagEngine:
    return request.app.state.tag_engine


async def _save_upload(upload: UploadFile, path: Path) -> None:
    async with aiofiles.open(path, "wb") as f:
        while chunk := await upload.read(CHUNK_SIZE):
            await f.write(chunk)


@router.post("/upload", response_model=UploadResponse)
async def upload_image(
    request: Request,
    image: UploadFile = File(...),
    dateTaken: str = Form(""),
    latitude: str = Form(""),
    longitude: str = Form(""),
    repair: bool = Form(False),
    preferXmp: bool = Form(False),
    user: Principal = Depends(require_user),
    writer: MetadataWriter = Depends(get_writer),
):
    """Store the image under a collision-free name and write capture time / GPS tags into it."""
    tags = TagRequest.from_form(dateTaken, latitude, longitude, repair=repair, prefer_alternate=preferXmp)
    path = await asyncio.to_thread(reserve_stored_path, image.filename, request.app.state.output_dir)
    try:
        await _save_upload(image, path)
    except BaseException:
        remove_quietly(path)
        raise
    logger.info("%s uploaded %r as %s", user.username, image.filename, path.name)
    outcome = await writer.write(path, tags)
    return UploadResponse(
        message="Metadata updated successfully.",
        stored_name=path.name,
        tag_space=outcome.tag_space,
        steps=outcome.steps,
    )


@router.post("/metadata")
async def preview_metadata(
    request: Request,
    image: UploadFile = File(...),
    user: Principal = Depends(require_user),
    engine: TagEngine = Depends(get_tag_engine),
):
    """Read the embedded tags of an uploaded image without keeping it."""
    temp_dir: Path = request.app.state.temp_dir
    temp_dir.mkdir(parents=True, exist_ok=True)
    _, ext = split_name(sanitize_filename(image.filename))
    path = temp_dir / f"{uuid.uuid4().hex}{ext}"
    try:
        await _save_upload(image, path)
        return await engine.read(path)
    except TagEngineError as e:
        logger.error("Error reading metadata: %s", e.message)
        raise HTTPException(500, "Metadata read failed")
    finally:
        remove_quietly(path)


@router.get("/api/stored-name", response_model=StoredNameResponse)
async def predict_stored_name(
    request: Request,
    name: str = "",
    user: Principal = Depends(require_user),
):
    """Name an upload of `name` would be stored under right now. Nothing is written."""
    stored = await asyncio.to_thread(resolve_stored_name, name, request.app.state.output_dir)
    return StoredNameResponse(desired_name=name, stored_name=stored)
