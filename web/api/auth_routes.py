"""Auth API routes: login, logout, current user."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

import config
from tagger.errors import AuthenticationFailure
from tagger.services.credential_store import CredentialStore, Principal
from tagger.services.sessions import SessionStore
from tagger.services.throttle import LoginThrottle
from web.auth import (
    client_address,
    get_credential_store,
    get_current_user,
    get_session_store,
    get_throttle,
    require_user,
)

logger = logging.getLogger("tagger.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class UserResponse(BaseModel):
    id: int
    username: str
    role: str

    @classmethod
    def from_principal(cls, principal: Principal) -> "UserResponse":
        return cls(id=principal.id, username=principal.username, role=principal.role)


@router.post("/login", response_model=UserResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    store: CredentialStore = Depends(get_credential_store),
    sessions: SessionStore = Depends(get_session_store),
    throttle: LoginThrottle = Depends(get_throttle),
):
    """Authenticate and start a session. Throttled per username (or client address)."""
    key = throttle.key_for(body.username, client_address(request))
    throttle.hit(key)
    result = await store.verify(body.username, body.password)
    if result.ok:
        throttle.record_success(key)
    else:
        logger.info("Failed login for %r", body.username)
        raise AuthenticationFailure()
    token = await sessions.create(result.principal)
    response.set_cookie(
        config.SESSION_COOKIE_NAME,
        token,
        max_age=config.SESSION_EXPIRE_HOURS * 3600,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
    )
    return UserResponse.from_principal(result.principal)


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    sessions: SessionStore = Depends(get_session_store),
):
    """End the current session, if any."""
    await sessions.destroy(request.cookies.get(config.SESSION_COOKIE_NAME))
    response.delete_cookie(config.SESSION_COOKIE_NAME)
    return {"ok": True}


@router.get("/me", response_model=UserResponse)
async def get_me(user: Principal = Depends(require_user)):
    """Get current authenticated user."""
    return UserResponse.from_principal(user)


@router.get("/me/optional")
async def get_me_optional(user: Optional[Principal] = Depends(get_current_user)):
    """Get current user if logged in, else null. For frontend auth check."""
    if not user:
        return None
    return UserResponse.from_principal(user)
