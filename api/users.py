"""
Service user routes — sync the Provider profile into the user store.

Route prefix: /api/users
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import db_session, get_gateway, get_provider_profile
from api.responses import success_response
from database.helpers import AUTH_PROVIDER_TOSS, soft_delete_user, upsert_user, user_to_dict
from provider.decryption import decrypt_profile
from provider.gateway import ProviderGateway
from provider.schemas import ProviderUserProfile

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


async def _sync_user(
    session: AsyncSession, profile: ProviderUserProfile, gateway: ProviderGateway
) -> Dict[str, Any]:
    decrypted = decrypt_profile(profile, settings=gateway.settings)
    user = await upsert_user(
        session,
        AUTH_PROVIDER_TOSS,
        str(profile.user_key),
        agreed_terms=profile.agreed_terms,
        **decrypted.model_dump(),
    )
    return user_to_dict(user)


@router.get("/me")
async def get_current_user(
    profile: ProviderUserProfile = Depends(get_provider_profile),
    gateway: ProviderGateway = Depends(get_gateway),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Return the stored user, creating or refreshing it from the Provider profile."""
    return success_response(await _sync_user(session, profile, gateway))


@router.post("/me")
async def update_current_user(
    profile: ProviderUserProfile = Depends(get_provider_profile),
    gateway: ProviderGateway = Depends(get_gateway),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    return success_response(await _sync_user(session, profile, gateway), "User updated")


@router.delete("/me")
async def delete_current_user(
    profile: ProviderUserProfile = Depends(get_provider_profile),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    deleted = await soft_delete_user(session, AUTH_PROVIDER_TOSS, str(profile.user_key))
    if not deleted:
        logger.info("Delete requested for unknown user %s", profile.user_key)
    return success_response({"userKey": profile.user_key, "deleted": deleted}, "Account deleted")
