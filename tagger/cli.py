"""Provisioning commands: create a user, change a password."""
from __future__ import annotations

import asyncio
import getpass
import logging
import sys
from dataclasses import asdict
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

import config
from tagger.errors import TaggerError
from tagger.models import Database
from tagger.services.credential_store import CredentialStore
from tagger.services.migration import migrate_legacy_database


async def _open_store(database_url: str) -> tuple[Database, CredentialStore]:
    db = Database(database_url)
    await db.init()
    return db, CredentialStore(db)


async def _create_user(database_url: str, username: str, password: str, role: str) -> dict:
    db, store = await _open_store(database_url)
    try:
        record = await store.create_user(username, password, role)
    finally:
        await db.dispose()
    return {k: v for k, v in asdict(record).items() if k in ("id", "username", "role")}


async def _update_password(database_url: str, username: str, password: str) -> None:
    db, store = await _open_store(database_url)
    try:
        await store.update_password(username, password)
    finally:
        await db.dispose()


def _prepare_database() -> None:
    migrate_legacy_database(config.LEGACY_DATABASE_PATH, config.DATABASE_PATH)


def create_user_main(argv: Optional[Sequence[str]] = None, database_url: Optional[str] = None) -> int:
    """Usage: create_user [username] [password] [role]. Missing username/password are prompted for."""
    args = list(sys.argv[1:] if argv is None else argv)
    username = args[0] if len(args) > 0 and args[0] else input("Username: ")
    password = args[1] if len(args) > 1 and args[1] else getpass.getpass("Password: ")
    role = args[2] if len(args) > 2 and args[2] else "admin"
    if database_url is None:
        _prepare_database()
    try:
        user = asyncio.run(
            _create_user(database_url or config.DATABASE_URL, username.strip(), password.strip(), role.strip())
        )
    except (TaggerError, SQLAlchemyError) as e:
        print(f"Failed to create user: {e}", file=sys.stderr)
        return 1
    print("User created:", user)
    return 0


def update_password_main(argv: Optional[Sequence[str]] = None, database_url: Optional[str] = None) -> int:
    """Usage: update_password <username> <newPassword>."""
    args = list(sys.argv[1:] if argv is None else argv)
    username = args[0] if len(args) > 0 else ""
    password = args[1] if len(args) > 1 else ""
    if not username or not password:
        print("Usage: update_password <username> <newPassword>", file=sys.stderr)
        return 1
    if database_url is None:
        _prepare_database()
    try:
        asyncio.run(_update_password(database_url or config.DATABASE_URL, username, password))
    except (TaggerError, SQLAlchemyError) as e:
        print(f"Failed to update password: {e}", file=sys.stderr)
        return 1
    print("Password updated for", username)
    return 0


def create_user_command() -> None:
    logging.basicConfig(level=logging.WARNING)
    sys.exit(create_user_main())


def update_password_command() -> None:
    logging.basicConfig(level=logging.WARNING)
    sys.exit(update_password_main())
