"""
Pydantic schemas for the Provider wire contract and gateway results.

Field names are snake_case in Python and camelCase on the wire; every
model accepts either on input and dumps camelCase with ``by_alias=True``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from provider.errors import ErrorKind

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}

# Profile fields that arrive AES-256-GCM encrypted.
ENCRYPTED_PROFILE_FIELDS = ("name", "phone", "birthday", "ci", "gender", "nationality", "email")

SUCCESS_RESULT = "SUCCESS"
FAIL_RESULT = "FAIL"


class Referrer(str, Enum):
    UNLINK = "UNLINK"
    WITHDRAWAL_TERMS = "WITHDRAWAL_TERMS"
    WITHDRAWAL_TOSS = "WITHDRAWAL_TOSS"
    DEFAULT = "DEFAULT"
    SANDBOX = "sandbox"


# ═══════════════════════════════════════════════════════════════════════════════
# Response envelope
# ═══════════════════════════════════════════════════════════════════════════════


class ProviderErrorBody(BaseModel):
    """Error object embedded in a Provider response; every field is optional."""

    error: Optional[str] = None
    error_code: Optional[str] = None  # sent as a string or a number
    error_type: Optional[Any] = None
    reason: Optional[str] = None
    title: Optional[str] = None
    data: Optional[Any] = None

    model_config = {**_CAMEL, "extra": "allow", "coerce_numbers_to_str": True}


class ProviderEnvelope(BaseModel):
    result_type: Optional[str] = None
    success: Optional[Any] = None
    error: Optional[ProviderErrorBody] = None

    model_config = {**_CAMEL, "extra": "ignore"}

    @field_validator("error", mode="before")
    @classmethod
    def _wrap_bare_error(cls, value: Any) -> Any:
        # OAuth-style bodies carry the error code as a bare string.
        if isinstance(value, str):
            return {"error": value}
        return value

    @property
    def failed(self) -> bool:
        """Explicit failure only; a payload without ``resultType`` is not one."""
        return self.result_type == FAIL_RESULT or self.error is not None

    @property
    def succeeded(self) -> bool:
        return self.result_type == SUCCESS_RESULT and self.error is None


# ═══════════════════════════════════════════════════════════════════════════════
# Tokens & profile
# ═══════════════════════════════════════════════════════════════════════════════


class TokenPair(BaseModel):
    token_type: str = "Bearer"
    access_token: str
    refresh_token: str
    expires_in: int
    scope: str = ""

    model_config = _CAMEL


class ProviderUserProfile(BaseModel):
    """Profile as returned by the Provider — PII fields are still ciphertext."""

    user_key: int
    scope: str = ""
    agreed_terms: List[str] = Field(default_factory=list)
    name: Optional[str] = None
    phone: Optional[str] = None
    birthday: Optional[str] = None
    ci: Optional[str] = None
    di: Optional[str] = None
    gender: Optional[str] = None
    nationality: Optional[str] = None
    email: Optional[str] = None

    model_config = {**_CAMEL, "extra": "ignore"}

    def encrypted_fields(self) -> Dict[str, Optional[str]]:
        return {field: getattr(self, field) for field in ENCRYPTED_PROFILE_FIELDS}


class DecryptedProfile(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    birthday: Optional[str] = None  # yyyyMMdd
    ci: Optional[str] = None
    gender: Optional[str] = None  # MALE | FEMALE
    nationality: Optional[str] = None  # LOCAL | FOREIGNER
    email: Optional[str] = None

    model_config = _CAMEL


class UnlinkConfirmation(BaseModel):
    user_key: Optional[int] = None

    model_config = {**_CAMEL, "extra": "ignore"}


# ═══════════════════════════════════════════════════════════════════════════════
# Messaging
# ═══════════════════════════════════════════════════════════════════════════════


class MessageContent(BaseModel):
    content_id: str
    reach_fail_reason: Optional[str] = None

    model_config = _CAMEL


class MessageChannels(BaseModel):
    """Per-channel content lists, used for both ``detail`` and ``fail``."""

    sent_push: Optional[List[MessageContent]] = None
    sent_inbox: Optional[List[MessageContent]] = None
    sent_sms: Optional[List[MessageContent]] = None
    sent_alimtalk: Optional[List[MessageContent]] = None
    sent_friendtalk: Optional[List[MessageContent]] = None

    model_config = _CAMEL


class MessageResult(BaseModel):
    msg_count: int
    sent_push_count: int = 0
    sent_inbox_count: int = 0
    sent_sms_count: int = 0
    sent_alimtalk_count: int = 0
    sent_friendtalk_count: int = 0
    detail: Optional[MessageChannels] = None
    fail: Optional[MessageChannels] = None

    model_config = {**_CAMEL, "extra": "ignore"}

    @property
    def per_channel_sent_counts(self) -> Dict[str, int]:
        return {
            "push": self.sent_push_count,
            "inbox": self.sent_inbox_count,
            "sms": self.sent_sms_count,
            "alimtalk": self.sent_alimtalk_count,
            "friendtalk": self.sent_friendtalk_count,
        }


class DispatchError(BaseModel):
    message: str
    code: Optional[str] = None
    kind: Optional[str] = None


class DispatchResult(BaseModel):
    """Outcome of one recipient in a batch send."""

    user_key: int
    success: bool
    result: Optional[MessageResult] = None
    error: Optional[DispatchError] = None

    model_config = _CAMEL


class DispatchSummary(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0


class BatchReport(BaseModel):
    results: List[DispatchResult] = Field(default_factory=list)
    summary: DispatchSummary = Field(default_factory=DispatchSummary)

    @classmethod
    def from_results(cls, results: List[DispatchResult]) -> "BatchReport":
        """Build the report; the summary is counted from the entries themselves."""
        skipped = sum(
            1 for r in results if r.error is not None and r.error.kind == ErrorKind.SKIPPED.value
        )
        succeeded = sum(1 for r in results if r.success)
        return cls(
            results=results,
            summary=DispatchSummary(
                total=len(results),
                success=succeeded,
                failed=len(results) - succeeded,
                skipped=skipped,
            ),
        )
