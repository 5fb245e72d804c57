"""
Profile field decryption — recover plaintext PII from Provider ciphertext.

Each encrypted field is a base64 string laid out as::

    IV (12 bytes) || ciphertext || GCM tag (16 bytes)

and is decrypted with AES-256-GCM from the ``cryptography`` library,
binding the configured AAD.  The key (``TOSS_DECRYPTION_KEY``) and AAD
(``TOSS_AAD``) come from ``Settings`` and may be overridden per call.

All functions here are pure: no caching, no module state, safe to call
from any number of concurrent tasks.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from config.settings import Settings, config
from provider.errors import DecryptionFailed, MalformedCiphertext, MissingKeyConfiguration
from provider.schemas import ENCRYPTED_PROFILE_FIELDS, DecryptedProfile, ProviderUserProfile

logger = logging.getLogger(__name__)

IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.strip(), validate=True)


def _load_key(base64_key: Optional[str], settings: Settings) -> bytes:
    key = base64_key or settings.toss_decryption_key
    if not key:
        raise MissingKeyConfiguration()
    try:
        raw = _b64decode(key)
    except (binascii.Error, ValueError) as exc:
        raise MissingKeyConfiguration("Decryption key is not valid base64") from exc
    if len(raw) != KEY_LENGTH:
        raise MissingKeyConfiguration(
            f"Decryption key must be {KEY_LENGTH} bytes for AES-256-GCM, got {len(raw)}"
        )
    return raw


def decrypt_field(
    ciphertext_b64: Optional[str],
    base64_key: Optional[str] = None,
    aad: Optional[str] = None,
    *,
    settings: Optional[Settings] = None,
) -> Optional[str]:
    """
    Decrypt a single base64 AES-256-GCM field.

    Parameters
    ----------
    ciphertext_b64 : str or None
        ``IV || ciphertext || tag``, base64-encoded.  ``None`` or ``""``
        means "no value" and returns ``None``.
    base64_key : str, optional
        Overrides ``settings.toss_decryption_key``.
    aad : str, optional
        Overrides ``settings.toss_aad``; ``None`` or ``""`` use the setting.

    Raises
    ------
    MissingKeyConfiguration
        No usable key (checked before the ciphertext is touched).
    MalformedCiphertext
        Not base64, or shorter than IV + tag.
    DecryptionFailed
        Tag verification failed: tampered data, wrong key or wrong AAD.
    """
    if not ciphertext_b64:
        return None

    settings = settings or config
    key = _load_key(base64_key, settings)
    additional_data = aad or settings.toss_aad

    try:
        decoded = _b64decode(ciphertext_b64)
    except (binascii.Error, ValueError) as exc:
        raise MalformedCiphertext("Encrypted value is not valid base64") from exc

    if len(decoded) < IV_LENGTH + TAG_LENGTH:
        raise MalformedCiphertext()

    nonce = decoded[:IV_LENGTH]
    # AESGCM expects the tag appended to the ciphertext, which is the wire layout.
    ciphertext_and_tag = decoded[IV_LENGTH:]

    try:
        plaintext = AESGCM(key).decrypt(
            nonce, ciphertext_and_tag, additional_data.encode("utf-8")
        )
    except InvalidTag as exc:
        raise DecryptionFailed() from exc

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionFailed("Decrypted value is not valid UTF-8") from exc


def decrypt_profile(
    profile: ProviderUserProfile | Mapping[str, Optional[str]],
    base64_key: Optional[str] = None,
    aad: Optional[str] = None,
    *,
    settings: Optional[Settings] = None,
) -> DecryptedProfile:
    """
    Decrypt the seven PII fields of a profile independently.

    Accepts a ``ProviderUserProfile`` or any mapping with the field names.
    Fields that are absent stay ``None``; a profile with no encrypted
    fields at all is legal and yields an all-``None`` result.
    """
    if isinstance(profile, ProviderUserProfile):
        fields = profile.encrypted_fields()
    else:
        fields = {name: profile.get(name) for name in ENCRYPTED_PROFILE_FIELDS}

    decrypted = {
        name: decrypt_field(value, base64_key, aad, settings=settings)
        for name, value in fields.items()
    }
    logger.debug(
        "Decrypted profile fields: %s",
        [name for name, value in decrypted.items() if value is not None],
    )
    return DecryptedProfile(**decrypted)
