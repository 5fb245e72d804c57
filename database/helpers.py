"""
User store — keyed upsert / soft-delete of users identified by
(auth_provider, external_user_id).

Every helper takes the caller's ``AsyncSession`` and only flushes; the
session owner (``get_db_session``) commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import User
from provider.errors import InvalidRequest

logger = logging.getLogger(__name__)

AUTH_PROVIDER_TOSS = "TOSS"

_PROFILE_FIELDS = ("name", "phone", "birthday", "ci", "gender", "nationality", "email")


def _require_identity(auth_provider: str, external_user_id: str) -> None:
    if not auth_provider or not external_user_id:
        raise InvalidRequest("authProvider and externalUserId are required")


async def _find_user(
    session: AsyncSession,
    auth_provider: str,
    external_user_id: str,
    *,
    include_deleted: bool = False,
) -> Optional[User]:
    stmt = select(User).where(
        User.auth_provider == auth_provider,
        User.external_user_id == external_user_id,
    )
    if not include_deleted:
        stmt = stmt.where(User.deleted_at.is_(None))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_user(
    session: AsyncSession, auth_provider: str, external_user_id: str
) -> Optional[User]:
    """Return the active (not soft-deleted) user, or ``None``."""
    if not auth_provider or not external_user_id:
        return None
    return await _find_user(session, auth_provider, external_user_id)


async def _insert_user(
    session: AsyncSession, auth_provider: str, external_user_id: str, now: datetime
) -> User:
    """
    Insert a new user inside a savepoint.

    When a concurrent first login committed the same identity in the
    meantime, the unique constraint fires; the savepoint is rolled back and
    the row that won is returned instead.
    """
    user = User(auth_provider=auth_provider, external_user_id=external_user_id, created_at=now)
    try:
        async with session.begin_nested():
            session.add(user)
            await session.flush()
    except IntegrityError:
        existing = await _find_user(session, auth_provider, external_user_id, include_deleted=True)
        if existing is None:
            raise
        logger.info("Concurrent first login for %s user %s", auth_provider, external_user_id)
        return existing
    logger.info("Created %s user %s", auth_provider, external_user_id)
    return user


async def upsert_user(
    session: AsyncSession,
    auth_provider: str,
    external_user_id: str,
    *,
    agreed_terms: Optional[List[str]] = None,
    **profile: Optional[str],
) -> User:
    """
    Create or update the user and stamp ``last_login_at``.

    A previously soft-deleted user logging in again is re-activated.
    Unknown keyword fields raise ``InvalidRequest``.
    """
    _require_identity(auth_provider, external_user_id)
    unknown = set(profile) - set(_PROFILE_FIELDS)
    if unknown:
        raise InvalidRequest(f"Unknown profile fields: {sorted(unknown)}")

    now = datetime.now(timezone.utc)
    user = await _find_user(session, auth_provider, external_user_id, include_deleted=True)

    if user is None:
        user = await _insert_user(session, auth_provider, external_user_id, now)
    if user.deleted_at is not None:
        logger.info("Re-activating %s user %s", auth_provider, external_user_id)
        user.deleted_at = None

    for field in _PROFILE_FIELDS:
        setattr(user, field, profile.get(field))
    user.agreed_terms = list(agreed_terms or [])
    user.last_login_at = now
    user.updated_at = now

    await session.flush()
    return user


async def soft_delete_user(
    session: AsyncSession, auth_provider: str, external_user_id: str
) -> bool:
    """Mark the active user deleted. Returns False if there was none."""
    _require_identity(auth_provider, external_user_id)

    user = await _find_user(session, auth_provider, external_user_id)
    if user is None:
        return False

    user.deleted_at = datetime.now(timezone.utc)
    await session.flush()
    logger.info("Soft-deleted %s user %s", auth_provider, external_user_id)
    return True


async def clear_agreed_terms(
    session: AsyncSession, auth_provider: str, external_user_id: str
) -> bool:
    """Empty the user's agreed terms (terms withdrawal). Returns False if no user."""
    _require_identity(auth_provider, external_user_id)

    user = await _find_user(session, auth_provider, external_user_id)
    if user is None:
        return False

    user.agreed_terms = []
    user.updated_at = datetime.now(timezone.utc)
    await session.flush()
    logger.info("Cleared agreed terms for %s user %s", auth_provider, external_user_id)
    return True


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": str(user.id),
        "authProvider": user.auth_provider,
        "externalUserId": user.external_user_id,
        "name": user.name,
        "phone": user.phone,
        "birthday": user.birthday,
        "ci": user.ci,
        "gender": user.gender,
        "nationality": user.nationality,
        "email": user.email,
        "nickname": user.nickname,
        "agreedTerms": user.agreed_terms or [],
        "marketingConsent": bool(user.marketing_consent),
        "notificationEnabled": True if user.notification_enabled is None else user.notification_enabled,
        "lastLoginAt": _iso(user.last_login_at),
        "deletedAt": _iso(user.deleted_at),
        "createdAt": _iso(user.created_at),
        "updatedAt": _iso(user.updated_at),
    }
