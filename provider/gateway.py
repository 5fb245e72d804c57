"""
ProviderGateway — typed async client for the Provider partner API.

One method per Provider capability.  Every call:

  • validates its inputs locally and raises ``InvalidRequest`` before any I/O
  • goes out over the shared (mTLS when configured) ``httpx.AsyncClient``
    with the configured per-call timeout
  • turns "no response" into ``ProviderUnavailable``
  • turns Provider business errors into the closed set in ``provider.errors``
    through one ordered rule table (``_ERROR_RULES``)
  • raises ``InvalidProviderResponse`` when a success envelope lacks its payload

The gateway never stores tokens; callers own their lifecycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple, Type

import httpx
from pydantic import BaseModel, ValidationError

from config.settings import Settings, config
from provider.errors import (
    InvalidGrant,
    InvalidProviderResponse,
    InvalidRequest,
    ProviderError,
    ProviderRejected,
    ProviderUnavailable,
    Unauthorized,
)
from provider.mtls import build_plain_client, build_secure_client
from provider.schemas import (
    MessageResult,
    ProviderEnvelope,
    ProviderErrorBody,
    ProviderUserProfile,
    TokenPair,
    UnlinkConfirmation,
)

logger = logging.getLogger(__name__)

# Provider endpoints
_GENERATE_TOKEN_PATH = "/api-partner/v1/apps-in-toss/user/oauth2/generate-token"
_REFRESH_TOKEN_PATH = "/api-partner/v1/apps-in-toss/user/oauth2/refresh-token"
_LOGIN_ME_PATH = "/api-partner/v1/apps-in-toss/user/oauth2/login-me"
_REMOVE_BY_ACCESS_TOKEN_PATH = "/api-partner/v1/apps-in-toss/user/oauth2/access/remove-by-access-token"
_REMOVE_BY_USER_KEY_PATH = "/api-partner/v1/apps-in-toss/user/oauth2/access/remove-by-user-key"
_SEND_MESSAGE_PATH = "/api-partner/v1/apps-in-toss/messenger/send-message"

USER_KEY_HEADER = "x-toss-user-key"


class Operation(str, Enum):
    GENERATE_TOKEN = "generate_token"
    REFRESH_TOKEN = "refresh_token"
    FETCH_PROFILE = "fetch_profile"
    UNLINK_BY_ACCESS_TOKEN = "unlink_by_access_token"
    UNLINK_BY_USER_KEY = "unlink_by_user_key"
    SEND_MESSAGE = "send_message"


_FAILURE_MESSAGES: Dict[Operation, str] = {
    Operation.GENERATE_TOKEN: "Token issuance failed",
    Operation.REFRESH_TOKEN: "Token refresh failed",
    Operation.FETCH_PROFILE: "Fetching user profile failed",
    Operation.UNLINK_BY_ACCESS_TOKEN: "Unlinking account failed",
    Operation.UNLINK_BY_USER_KEY: "Unlinking account failed",
    Operation.SEND_MESSAGE: "Sending message failed",
}


# ── Error translation ───────────────────────────────────────────────────

_GRANT_OPERATIONS: FrozenSet[Operation] = frozenset({Operation.GENERATE_TOKEN})
_BEARER_OPERATIONS: FrozenSet[Operation] = frozenset(
    {Operation.FETCH_PROFILE, Operation.UNLINK_BY_ACCESS_TOKEN, Operation.UNLINK_BY_USER_KEY}
)
# Message sends report HTTP_TIMEOUT, EXECUTION_FAIL, ... as resultType; anything
# but SUCCESS is a failure there. Other operations fail only on FAIL or an error.
_STRICT_RESULT_OPERATIONS: FrozenSet[Operation] = frozenset({Operation.SEND_MESSAGE})


@dataclass(frozen=True)
class _ErrorRule:
    operations: FrozenSet[Operation]
    matches: Callable[[int, ProviderErrorBody], bool]
    error: Type[ProviderError]


def _is_invalid_grant(status: int, body: ProviderErrorBody) -> bool:
    return body.error == "invalid_grant"


def _is_http_unauthorized(status: int, body: ProviderErrorBody) -> bool:
    return status == 401


# First match wins; anything unmatched is ProviderRejected.
_ERROR_RULES: Tuple[_ErrorRule, ...] = (
    _ErrorRule(_GRANT_OPERATIONS, _is_invalid_grant, InvalidGrant),
    _ErrorRule(frozenset({Operation.FETCH_PROFILE}), _is_invalid_grant, Unauthorized),
    _ErrorRule(_BEARER_OPERATIONS, _is_http_unauthorized, Unauthorized),
)


def translate_error(operation: Operation, status: int, body: ProviderErrorBody) -> ProviderError:
    """Map a Provider error (HTTP status + error body) to a domain error."""
    for rule in _ERROR_RULES:
        if operation in rule.operations and rule.matches(status, body):
            return rule.error()
    return ProviderRejected(body.reason or body.title or _FAILURE_MESSAGES[operation])


# ── Input validation ────────────────────────────────────────────────────


def _require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"{name} is required")
    return value


def require_user_key(value: Any) -> int:
    if value is None or isinstance(value, bool):
        raise InvalidRequest("userKey is required")
    try:
        user_key = int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"userKey must be an integer, got {value!r}")
    if user_key <= 0:
        raise InvalidRequest("userKey must be a positive integer")
    return user_key


def _bearer(access_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


class ProviderGateway:
    """Async client for the Provider API. Share one instance per process."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Parameters
        ----------
        settings : immutable configuration; defaults to the process config.
        client   : pre-built client (tests pass one with ``httpx.MockTransport``).
                   When omitted the mTLS client is built, falling back to a
                   plain verifying client when no certificate is available.
        """
        self._settings = settings or config
        if client is None:
            secure = build_secure_client(self._settings)
            self.mtls_enabled = secure is not None
            client = secure or build_plain_client(self._settings)
        else:
            self.mtls_enabled = False
        self._client = client

    @property
    def settings(self) -> Settings:
        return self._settings

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ProviderGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ── transport ───────────────────────────────────────────────────────

    async def _request(
        self,
        operation: Operation,
        method: str,
        path: str,
        *,
        json: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        allow_empty: bool = False,
    ) -> Optional[ProviderEnvelope]:
        """
        Perform one call and return the success envelope.

        Returns ``None`` only when ``allow_empty`` and the 2xx body is empty.
        """
        logger.debug("[Provider] %s %s (%s)", method, path, operation.value)
        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                headers=headers,
                timeout=self._settings.toss_request_timeout,
            )
        except httpx.TimeoutException as exc:
            logger.error("[Provider] %s timed out: %s", operation.value, exc)
            raise ProviderUnavailable("Provider API did not respond in time") from exc
        except httpx.TransportError as exc:
            logger.error("[Provider] %s transport error: %s", operation.value, exc)
            raise ProviderUnavailable() from exc

        try:
            payload = response.json() if response.content else None
        except ValueError:
            payload = None

        if response.is_error:
            error = translate_error(operation, response.status_code, self._error_body(response, payload))
            logger.warning(
                "[Provider] %s failed with HTTP %d → %s",
                operation.value, response.status_code, error.kind.value,
            )
            raise error

        if allow_empty and not payload:
            return None
        if not isinstance(payload, dict):
            raise InvalidProviderResponse(
                f"{_FAILURE_MESSAGES[operation]}: response body is not a JSON object"
            )

        envelope = self._parse_envelope(payload)
        if operation in _STRICT_RESULT_OPERATIONS:
            failed = not envelope.succeeded
        else:
            failed = envelope.failed
        if failed:
            error = translate_error(
                operation, response.status_code, envelope.error or ProviderErrorBody()
            )
            logger.warning(
                "[Provider] %s returned resultType=%s → %s",
                operation.value, envelope.result_type, error.kind.value,
            )
            raise error
        return envelope

    @staticmethod
    def _error_body(response: httpx.Response, payload: Any) -> ProviderErrorBody:
        """Error object of a non-2xx response; status-only when it cannot be read."""
        fallback = ProviderErrorBody(reason=f"Provider API returned HTTP {response.status_code}")
        if not isinstance(payload, dict):
            return fallback
        try:
            envelope = ProviderEnvelope.model_validate(payload)
        except ValidationError as exc:
            logger.warning(
                "[Provider] Unreadable error body on HTTP %d (%d errors)",
                response.status_code, exc.error_count(),
            )
            return fallback
        return envelope.error or fallback

    @staticmethod
    def _parse_envelope(payload: Dict[str, Any]) -> ProviderEnvelope:
        try:
            return ProviderEnvelope.model_validate(payload)
        except ValidationError as exc:
            raise InvalidProviderResponse(f"Unexpected Provider response shape: {exc}") from exc

    @staticmethod
    def _success_payload(
        envelope: ProviderEnvelope, operation: Operation, model: Type[BaseModel]
    ) -> Any:
        if not isinstance(envelope.success, dict):
            raise InvalidProviderResponse(f"{_FAILURE_MESSAGES[operation]}: response has no payload")
        try:
            return model.model_validate(envelope.success)
        except ValidationError as exc:
            raise InvalidProviderResponse(
                f"{_FAILURE_MESSAGES[operation]}: malformed payload ({exc.error_count()} errors)"
            ) from exc

    # ── OAuth ───────────────────────────────────────────────────────────

    async def generate_token(self, authorization_code: str, referrer: str) -> TokenPair:
        """Exchange an authorization code for an access/refresh token pair."""
        _require_text(authorization_code, "authorizationCode")
        _require_text(referrer, "referrer")

        envelope = await self._request(
            Operation.GENERATE_TOKEN,
            "POST",
            _GENERATE_TOKEN_PATH,
            json={"authorizationCode": authorization_code, "referrer": referrer},
        )
        return self._success_payload(envelope, Operation.GENERATE_TOKEN, TokenPair)

    async def refresh_token(self, refresh_token: str) -> TokenPair:
        _require_text(refresh_token, "refreshToken")

        envelope = await self._request(
            Operation.REFRESH_TOKEN,
            "POST",
            _REFRESH_TOKEN_PATH,
            json={"refreshToken": refresh_token},
        )
        return self._success_payload(envelope, Operation.REFRESH_TOKEN, TokenPair)

    async def fetch_profile(self, access_token: str) -> ProviderUserProfile:
        """Fetch the user's profile. PII fields are returned still encrypted."""
        _require_text(access_token, "accessToken")

        envelope = await self._request(
            Operation.FETCH_PROFILE,
            "GET",
            _LOGIN_ME_PATH,
            headers=_bearer(access_token),
        )
        return self._success_payload(envelope, Operation.FETCH_PROFILE, ProviderUserProfile)

    async def unlink_by_access_token(self, access_token: str) -> None:
        """
        Disconnect the account bound to ``access_token``.

        Any 2xx without a failure envelope counts as success, including an
        empty body.
        """
        _require_text(access_token, "accessToken")

        await self._request(
            Operation.UNLINK_BY_ACCESS_TOKEN,
            "POST",
            _REMOVE_BY_ACCESS_TOKEN_PATH,
            json={},
            headers=_bearer(access_token),
            allow_empty=True,
        )

    async def unlink_by_user_key(
        self, user_key: int, access_token: str
    ) -> Optional[UnlinkConfirmation]:
        user_key = require_user_key(user_key)
        _require_text(access_token, "accessToken")

        envelope = await self._request(
            Operation.UNLINK_BY_USER_KEY,
            "POST",
            _REMOVE_BY_USER_KEY_PATH,
            json={"userKey": user_key},
            headers=_bearer(access_token),
        )
        if not isinstance(envelope.success, dict):
            return None
        return UnlinkConfirmation.model_validate(envelope.success)

    # ── Messaging ───────────────────────────────────────────────────────

    async def send_message(
        self,
        user_key: int,
        template_set_code: str,
        context: Mapping[str, Any],
    ) -> MessageResult:
        """Send one templated message to a single user."""
        user_key = require_user_key(user_key)
        _require_text(template_set_code, "templateSetCode")
        if not isinstance(context, Mapping):
            raise InvalidRequest("context is required and must be an object")

        envelope = await self._request(
            Operation.SEND_MESSAGE,
            "POST",
            _SEND_MESSAGE_PATH,
            json={"templateSetCode": template_set_code, "context": dict(context)},
            headers={USER_KEY_HEADER: str(user_key)},
        )
        return self._success_payload(envelope, Operation.SEND_MESSAGE, MessageResult)
