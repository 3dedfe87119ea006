"""Server-side sessions: a row per login, referenced from a signed cookie."""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from sqlalchemy import delete

from tagger.models import Database, LoginSession
from tagger.services.credential_store import Principal

logger = logging.getLogger("tagger.auth")


def _utcnow() -> datetime:
    # SQLite stores naive datetimes; keep everything naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SessionStore:
    def __init__(self, db: Database, secret: str, algorithm: str = "HS256", expire_hours: int = 8):
        self.db = db
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = timedelta(hours=expire_hours)

    async def create(self, principal: Principal) -> str:
        """Persist a session for `principal` and return the signed cookie value."""
        now = _utcnow()
        sid = secrets.token_urlsafe(32)
        async with self.db.session() as session:
            session.add(
                LoginSession(
                    id=sid,
                    user_id=principal.id,
                    username=principal.username,
                    role=principal.role,
                    created_at=now,
                    expires_at=now + self.ttl,
                )
            )
            await session.commit()
        expire = datetime.now(timezone.utc) + self.ttl
        return jwt.encode({"sid": sid, "exp": expire}, self.secret, algorithm=self.algorithm)

    def _session_id(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError:
            return None
        sid = payload.get("sid")
        return sid if isinstance(sid, str) else None

    async def get(self, token: Optional[str]) -> Optional[Principal]:
        """Principal for a cookie value, or None if unsigned, unknown or expired."""
        sid = self._session_id(token)
        if sid is None:
            return None
        async with self.db.session() as session:
            row = await session.get(LoginSession, sid)
            if row is None:
                return None
            if row.expires_at <= _utcnow():
                await session.delete(row)
                await session.commit()
                return None
            return Principal(id=row.user_id, username=row.username, role=row.role)

    async def destroy(self, token: Optional[str]) -> None:
        sid = self._session_id(token)
        if sid is None:
            return
        async with self.db.session() as session:
            await session.execute(delete(LoginSession).where(LoginSession.id == sid))
            await session.commit()

    async def purge_expired(self) -> int:
        async with self.db.session() as session:
            result = await session.execute(delete(LoginSession).where(LoginSession.expires_at <= _utcnow()))
            await session.commit()
        if result.rowcount:
            logger.info("Purged %d expired sessions", result.rowcount)
        return result.rowcount
