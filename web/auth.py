"""Authentication for the web API: session cookie lookup and request dependencies."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request, status

import config
from tagger.services.credential_store import CredentialStore, Principal
from tagger.services.sessions import SessionStore
from tagger.services.throttle import LoginThrottle


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credentials


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_throttle(request: Request) -> LoginThrottle:
    return request.app.state.throttle


def client_address(request: Request) -> str:
    """Caller address. With TRUST_PROXY, the first X-Forwarded-For hop wins."""
    if config.TRUST_PROXY:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else ""


async def get_current_user(
    request: Request,
    sessions: SessionStore = Depends(get_session_store),
) -> Optional[Principal]:
    """Return the session principal, or None if not logged in."""
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if not token:
        return None
    return await sessions.get(token)


async def require_user(
    user: Optional[Principal] = Depends(get_current_user),
) -> Principal:
    """Require authenticated user. Raises 401 if not logged in."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user
