"""
Provider profile routes — raw and decrypted profile lookups.

Route prefix: /api/toss/user
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from api.dependencies import get_gateway, get_provider_profile
from api.responses import success_response
from provider.decryption import decrypt_profile
from provider.errors import InvalidRequest
from provider.gateway import ProviderGateway
from provider.schemas import ENCRYPTED_PROFILE_FIELDS, ProviderUserProfile

router = APIRouter(tags=["toss-user"])


class DecryptRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    birthday: Optional[str] = None
    ci: Optional[str] = None
    gender: Optional[str] = None
    nationality: Optional[str] = None
    email: Optional[str] = None
    decryption_key: Optional[str] = None  # overrides TOSS_DECRYPTION_KEY
    aad: Optional[str] = None             # overrides TOSS_AAD

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


@router.get("/me")
async def get_profile(
    profile: ProviderUserProfile = Depends(get_provider_profile),
) -> Dict[str, Any]:
    """Profile exactly as the Provider returns it (PII still encrypted)."""
    return success_response(profile.model_dump(by_alias=True))


@router.get("/me/decrypted")
async def get_decrypted_profile(
    profile: ProviderUserProfile = Depends(get_provider_profile),
    gateway: ProviderGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    decrypted = decrypt_profile(profile, settings=gateway.settings)
    return success_response(
        {
            "userKey": profile.user_key,
            "scope": profile.scope,
            "agreedTerms": profile.agreed_terms,
            **decrypted.model_dump(by_alias=True),
        }
    )


@router.post("/decrypt")
async def decrypt_fields(
    req: DecryptRequest,
    gateway: ProviderGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    """Decrypt caller-supplied encrypted fields; at least one is required."""
    fields = {name: getattr(req, name) for name in ENCRYPTED_PROFILE_FIELDS}
    if not any(fields.values()):
        raise InvalidRequest("At least one field to decrypt is required")

    decrypted = decrypt_profile(fields, req.decryption_key, req.aad, settings=gateway.settings)
    return success_response(decrypted.model_dump(by_alias=True))
