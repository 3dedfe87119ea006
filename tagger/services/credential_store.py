"""Credential store: provisioning, verification and password changes."""
from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import func

import config
from tagger.errors import DuplicateIdentityError, NotFoundError, ValidationError
from tagger.models import Database, User

logger = logging.getLogger("tagger.auth")

BCRYPT_MAX_BYTES = 72

_hasher = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)


def _bcrypt_input(password: str) -> str:
    # bcrypt ignores everything past 72 bytes; long passwords go in as their SHA-256 hex digest
    raw = password.encode("utf-8")
    return hashlib.sha256(raw).hexdigest() if len(raw) > BCRYPT_MAX_BYTES else password


def _hash(password: str) -> str:
    return _hasher.hash(_bcrypt_input(password))


def _matches(password: str, password_hash: str) -> bool:
    return _hasher.verify(_bcrypt_input(password), password_hash)


@dataclass(frozen=True)
class Principal:
    """What a session knows about the logged-in user."""

    id: int
    username: str
    role: str


@dataclass(frozen=True)
class UserRecord:
    id: int
    username: str
    role: str
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @classmethod
    def from_model(cls, user: User) -> "UserRecord":
        return cls(
            id=user.id,
            username=user.username,
            role=user.role,
            created_at=user.created_at,
            last_login=user.last_login,
        )


@dataclass(frozen=True)
class VerifyResult:
    ok: bool
    principal: Optional[Principal] = None


class CredentialStore:
    """Users table access. Hashing runs in a worker thread so requests can suspend on it."""

    def __init__(self, db: Database):
        self.db = db

    async def create_user(self, username: str, password: str, role: str = "user") -> UserRecord:
        if not username or not password:
            raise ValidationError("username and password required")
        password_hash = await asyncio.to_thread(_hash, password)
        async with self.db.session() as session:
            user = User(username=username, password_hash=password_hash, role=role or "user")
            session.add(user)
            try:
                await session.commit()
            except IntegrityError:
                # UNIQUE(username) is the only constraint an insert can trip
                await session.rollback()
                raise DuplicateIdentityError(username) from None
            await session.refresh(user)
            logger.info("Created user %s with role %s", user.username, user.role)
            return UserRecord.from_model(user)

    async def get_user(self, username: str) -> Optional[UserRecord]:
        async with self.db.session() as session:
            user = await self._find(session, username)
            return UserRecord.from_model(user) if user else None

    async def verify(self, username: str, password: str) -> VerifyResult:
        """Check a password. Unknown users and wrong passwords look the same to the caller."""
        async with self.db.session() as session:
            user = await self._find(session, username)
            if user is None:
                # same bcrypt cost as a real comparison
                await asyncio.to_thread(_hasher.dummy_verify)
                return VerifyResult(ok=False)
            if not await asyncio.to_thread(_matches, password or "", user.password_hash):
                return VerifyResult(ok=False)
            await session.execute(
                update(User)
                .where(User.id == user.id)
                .values(last_login=func.now())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return VerifyResult(ok=True, principal=Principal(id=user.id, username=user.username, role=user.role))

    async def update_password(self, username: str, new_password: str) -> bool:
        if not username or not new_password:
            raise ValidationError("username and newPassword required")
        password_hash = await asyncio.to_thread(_hash, new_password)
        async with self.db.session() as session:
            result = await session.execute(
                update(User)
                .where(User.username == username)
                .values(password_hash=password_hash)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            if result.rowcount == 0:
                raise NotFoundError("user not found")
        logger.info("Password updated for %s", username)
        return True

    @staticmethod
    async def _find(session, username: str) -> Optional[User]:
        if not username:
            return None
        result = await session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()
