"""
FastAPI dependencies (shared across routes).
"""

from __future__ import annotations

import hmac
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from database.session import get_db_session
from provider.dispatcher import BatchDispatcher
from provider.errors import Unauthorized
from provider.gateway import ProviderGateway
from provider.schemas import ProviderUserProfile

_basic_scheme = HTTPBasic(auto_error=False)


async def db_session(session: AsyncSession = Depends(get_db_session)) -> AsyncGenerator[AsyncSession, None]:
    """Re-export so routes import from a single place."""
    yield session


def get_gateway(request: Request) -> ProviderGateway:
    """The process-wide gateway created at startup."""
    return request.app.state.gateway


def get_dispatcher(gateway: ProviderGateway = Depends(get_gateway)) -> BatchDispatcher:
    return BatchDispatcher(gateway, settings=gateway.settings)


async def get_access_token(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """Extract the Provider access token from ``Authorization: Bearer …``."""
    if not authorization or not authorization.startswith("Bearer ") or not authorization[7:].strip():
        raise Unauthorized("Authorization header with a Bearer token is required")
    return authorization[7:].strip()


async def get_provider_profile(
    access_token: str = Depends(get_access_token),
    gateway: ProviderGateway = Depends(get_gateway),
) -> ProviderUserProfile:
    """Validate the bearer token against the Provider and return the (encrypted) profile."""
    return await gateway.fetch_profile(access_token)


async def verify_callback_auth(
    credentials: Optional[HTTPBasicCredentials] = Depends(_basic_scheme),
) -> None:
    """
    HTTP Basic auth for the unlink callback.

    Disabled (every request passes) unless both
    ``TOSS_CALLBACK_BASIC_AUTH_USERNAME`` and ``…_PASSWORD`` are set.
    """
    username = config.toss_callback_basic_auth_username
    password = config.toss_callback_basic_auth_password
    if not username or not password:
        return

    challenge = {"WWW-Authenticate": 'Basic realm="Secure Area"'}
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Basic authentication is required",
            headers=challenge,
        )

    valid_user = hmac.compare_digest(credentials.username.encode(), username.encode())
    valid_password = hmac.compare_digest(credentials.password.encode(), password.encode())
    if not (valid_user and valid_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers=challenge,
        )
