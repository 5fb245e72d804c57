"""
mTLS client factory — builds the HTTPS client used for every Provider call.

Certificate material is resolved in this order:

1. ``TOSS_MTLS_CERT_BASE64`` + ``TOSS_MTLS_KEY_BASE64`` — base64-encoded
   PEM, for deployments where mounting files is awkward.
2. ``TOSS_MTLS_CERT_PATH`` + ``TOSS_MTLS_KEY_PATH`` — PEM files on disk,
   for local development.
3. Nothing — ``build_secure_client`` returns ``None``.

Decode, read or load failures are logged and also yield ``None``: the
process keeps running without a client certificate instead of failing at
startup.  Calls then go out over plain (still server-verified) TLS and
the Provider will refuse the ones that require mTLS.

Server certificate verification is never disabled.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import ssl
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import httpx

from config.settings import Settings, config

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class CertificateMaterial:
    cert_pem: bytes
    key_pem: bytes
    source: str  # "inline" | "file"


def _decode_inline(value: str) -> bytes:
    # `base64 cert.pem` wraps at 76 columns; line breaks are not part of the data.
    return base64.b64decode("".join(value.split()), validate=True)


def resolve_certificate_material(settings: Settings) -> Optional[CertificateMaterial]:
    """Return the client certificate + key, or ``None`` when unavailable."""
    if settings.has_inline_certificate():
        try:
            cert_pem = _decode_inline(settings.toss_mtls_cert_base64)
            key_pem = _decode_inline(settings.toss_mtls_key_base64)
        except (binascii.Error, ValueError) as exc:
            logger.error("[mTLS] Failed to base64-decode inline certificate: %s", exc)
            return None
        logger.info("[mTLS] Loaded client certificate from environment")
        return CertificateMaterial(cert_pem=cert_pem, key_pem=key_pem, source="inline")

    cert_path = Path(settings.toss_mtls_cert_path).resolve()
    key_path = Path(settings.toss_mtls_key_path).resolve()

    if not cert_path.is_file():
        logger.warning(
            "[mTLS] Certificate file not found: %s — Provider calls requiring mTLS will fail. "
            "Set TOSS_MTLS_CERT_BASE64 when deploying.",
            cert_path,
        )
        return None
    if not key_path.is_file():
        logger.warning(
            "[mTLS] Key file not found: %s — Provider calls requiring mTLS will fail. "
            "Set TOSS_MTLS_KEY_BASE64 when deploying.",
            key_path,
        )
        return None

    try:
        cert_pem = cert_path.read_bytes()
        key_pem = key_path.read_bytes()
    except OSError as exc:
        logger.error("[mTLS] Failed to read certificate files: %s", exc)
        return None

    logger.info("[mTLS] Loaded client certificate from %s", cert_path)
    return CertificateMaterial(cert_pem=cert_pem, key_pem=key_pem, source="file")


def create_ssl_context(material: CertificateMaterial) -> ssl.SSLContext:
    """
    Build a verifying TLS context that presents the client certificate.

    ``ssl`` only loads certificate chains from files, so the PEM bytes are
    written to a private temporary directory that is removed right after
    loading.
    """
    context = ssl.create_default_context()
    context.check_hostname = True
    context.verify_mode = ssl.CERT_REQUIRED

    with tempfile.TemporaryDirectory(prefix="toss-mtls-") as tmp:
        cert_file = os.path.join(tmp, "client.crt")
        key_file = os.path.join(tmp, "client.key")
        with open(cert_file, "wb") as fh:
            fh.write(material.cert_pem)
        with open(os.open(key_file, os.O_WRONLY | os.O_CREAT, 0o600), "wb") as fh:
            fh.write(material.key_pem)
        context.load_cert_chain(certfile=cert_file, keyfile=key_file)

    return context


def _client_kwargs(settings: Settings) -> Dict[str, object]:
    return {
        "base_url": settings.toss_api_base_url,
        "timeout": httpx.Timeout(settings.toss_request_timeout),
        "headers": dict(_DEFAULT_HEADERS),
    }


def build_secure_client(settings: Optional[Settings] = None) -> Optional[httpx.AsyncClient]:
    """
    Build the mTLS ``httpx.AsyncClient`` or return ``None``.

    The client is meant to be built once per process and shared; httpx
    pools connections and is safe for concurrent requests.
    """
    settings = settings or config
    material = resolve_certificate_material(settings)
    if material is None:
        return None

    try:
        context = create_ssl_context(material)
    except (ssl.SSLError, OSError, ValueError) as exc:
        logger.error("[mTLS] Failed to load client certificate (%s): %s", material.source, exc)
        return None

    logger.info("[mTLS] Client certificate configured")
    return httpx.AsyncClient(verify=context, **_client_kwargs(settings))


def build_plain_client(settings: Optional[Settings] = None) -> httpx.AsyncClient:
    """Fallback client without a client certificate; still verifies the server."""
    settings = settings or config
    return httpx.AsyncClient(verify=True, **_client_kwargs(settings))
