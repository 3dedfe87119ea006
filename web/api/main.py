"""FastAPI app: auth, upload and preview routes plus the static UI."""
from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

import config
from tagger.errors import (
    AuthenticationFailure,
    DuplicateIdentityError,
    MetadataWriteFailure,
    NotFoundError,
    RateLimitedError,
    TaggerError,
    ValidationError,
)
from tagger.models import Database
from tagger.services.credential_store import CredentialStore
from tagger.services.metadata_writer import MetadataWriter
from tagger.services.migration import migrate_legacy_database
from tagger.services.sessions import SessionStore
from tagger.services.tag_engine import ExifToolEngine, TagEngine
from tagger.services.throttle import LoginThrottle
from web.api.auth_routes import router as auth_router
from web.api.routes import router as upload_router

logger = logging.getLogger("tagger")

_public_dir = Path(__file__).resolve().parent.parent / "public"


async def init_services(
    app: FastAPI,
    database_url: str = config.DATABASE_URL,
    output_dir: Path = config.OUTPUT_DIR,
    temp_dir: Path = config.TEMP_DIR,
    tag_engine: Optional[TagEngine] = None,
) -> None:
    """Build the stores and the writer and hang them on app.state."""
    db = Database(database_url)
    await db.init()
    engine = tag_engine or ExifToolEngine(config.EXIFTOOL_PATH)
    app.state.db = db
    app.state.credentials = CredentialStore(db)
    app.state.sessions = SessionStore(
        db,
        config.SESSION_SECRET,
        algorithm=config.SESSION_ALGORITHM,
        expire_hours=config.SESSION_EXPIRE_HOURS,
    )
    app.state.throttle = LoginThrottle(
        config.LOGIN_WINDOW_SECONDS,
        config.LOGIN_MAX_ATTEMPTS,
        skip_successful=config.LOGIN_SKIP_SUCCESSFUL,
    )
    app.state.tag_engine = engine
    app.state.writer = MetadataWriter(engine)
    app.state.output_dir = Path(output_dir)
    app.state.temp_dir = Path(temp_dir)
    app.state.output_dir.mkdir(parents=True, exist_ok=True)
    app.state.temp_dir.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    migrate_legacy_database(config.LEGACY_DATABASE_PATH, config.DATABASE_PATH)
    await init_services(app)
    await app.state.sessions.purge_expired()
    yield
    await app.state.db.dispose()


_STATUS_BY_ERROR = {
    ValidationError: 400,
    AuthenticationFailure: 401,
    NotFoundError: 404,
    DuplicateIdentityError: 409,
    RateLimitedError: 429,
}


async def _tagger_error_handler(request: Request, exc: TaggerError) -> JSONResponse:
    if isinstance(exc, MetadataWriteFailure):
        logger.error("Error writing metadata: %s", exc)
        return JSONResponse({"detail": "Failed to update metadata."}, status_code=500)
    status_code = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 400)
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}
    return JSONResponse({"detail": str(exc)}, status_code=status_code, headers=headers)


def create_app() -> FastAPI:
    app = FastAPI(title="Geotag Upload API", lifespan=lifespan)
    app.add_exception_handler(TaggerError, _tagger_error_handler)
    app.include_router(auth_router)
    app.include_router(upload_router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    if _public_dir.exists():
        app.mount("/", StaticFiles(directory=str(_public_dir), html=True), name="public")
    return app


app = create_app()
