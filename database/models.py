"""
SQLAlchemy ORM models for the user store.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("auth_provider", "external_user_id", name="uq_users_provider_external_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    auth_provider = Column(String(32), nullable=False)        # 'TOSS', ...
    external_user_id = Column(String(64), nullable=False)     # Provider userKey as text

    # Decrypted profile
    name = Column(Text)
    phone = Column(String(32))
    birthday = Column(String(8))        # yyyyMMdd
    ci = Column(Text)
    gender = Column(String(16))         # MALE | FEMALE
    nationality = Column(String(16))    # LOCAL | FOREIGNER
    email = Column(String(255))

    nickname = Column(String(64))
    agreed_terms = Column(JSON, default=list)
    marketing_consent = Column(Boolean, nullable=False, default=False)
    notification_enabled = Column(Boolean, nullable=False, default=True)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
