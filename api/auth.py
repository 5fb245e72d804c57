"""
Provider OAuth routes — token issuance / refresh, unlink, unlink callback.

Route prefix: /api/toss/auth
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import db_session, get_access_token, get_gateway, verify_callback_auth
from api.responses import success_response
from database.helpers import AUTH_PROVIDER_TOSS, clear_agreed_terms, soft_delete_user
from provider.errors import InvalidRequest
from provider.gateway import ProviderGateway, require_user_key
from provider.schemas import Referrer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["toss-auth"])

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class GenerateTokenRequest(BaseModel):
    authorization_code: Optional[str] = None
    referrer: Optional[str] = None

    model_config = _CAMEL


class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = None

    model_config = _CAMEL


class RemoveByUserKeyRequest(BaseModel):
    user_key: Optional[Any] = None

    model_config = _CAMEL


class CallbackRequest(BaseModel):
    user_key: Optional[Any] = None
    referrer: Optional[str] = None

    model_config = _CAMEL


@router.post("/generate-token")
async def generate_token(
    req: GenerateTokenRequest,
    gateway: ProviderGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    """Exchange the authorization code from the mini-app login for tokens."""
    tokens = await gateway.generate_token(req.authorization_code, req.referrer)
    return success_response(tokens.model_dump(by_alias=True), "Token issued")


@router.post("/refresh-token")
async def refresh_token(
    req: RefreshTokenRequest,
    gateway: ProviderGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    tokens = await gateway.refresh_token(req.refresh_token)
    return success_response(tokens.model_dump(by_alias=True), "Token refreshed")


@router.post("/remove-by-access-token")
async def remove_by_access_token(
    access_token: str = Depends(get_access_token),
    gateway: ProviderGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    await gateway.unlink_by_access_token(access_token)
    return success_response(None, "Account unlinked")


@router.post("/remove-by-user-key")
async def remove_by_user_key(
    req: RemoveByUserKeyRequest,
    access_token: str = Depends(get_access_token),
    gateway: ProviderGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    user_key = require_user_key(req.user_key)
    confirmation = await gateway.unlink_by_user_key(user_key, access_token)
    data = confirmation.model_dump(by_alias=True) if confirmation else {"userKey": user_key}
    return success_response(data, "Account unlinked")


@router.post("/callback", dependencies=[Depends(verify_callback_auth)])
async def unlink_callback(
    req: CallbackRequest,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """
    Called by the Provider when a user unlinks, withdraws consent or leaves.

    WITHDRAWAL_TERMS clears the stored agreed terms, WITHDRAWAL_TOSS
    soft-deletes the user, UNLINK and anything else are only logged
    (the user may log in again).  Store failures are logged and the
    callback still answers success so the Provider does not retry.
    """
    if req.user_key is None or not req.referrer:
        raise InvalidRequest("userKey and referrer are required")

    user_key = require_user_key(req.user_key)
    referrer = req.referrer
    external_user_id = str(user_key)
    logger.info("[Callback] userKey=%s referrer=%s", user_key, referrer)

    try:
        if referrer == Referrer.WITHDRAWAL_TERMS.value:
            await clear_agreed_terms(session, AUTH_PROVIDER_TOSS, external_user_id)
        elif referrer == Referrer.WITHDRAWAL_TOSS.value:
            await soft_delete_user(session, AUTH_PROVIDER_TOSS, external_user_id)
        elif referrer == Referrer.UNLINK.value:
            logger.info("[Callback] userKey=%s unlinked (no soft delete)", user_key)
        else:
            logger.info("[Callback] userKey=%s unhandled referrer %s", user_key, referrer)
    except Exception as exc:
        logger.error("[Callback] Store update failed for userKey=%s (%s): %s", user_key, referrer, exc)
        await session.rollback()

    return success_response({"userKey": user_key, "referrer": referrer}, "Callback processed")
