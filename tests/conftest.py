"""
Shared fixtures: isolated settings, field encryption and test certificates.
"""

import base64
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.x509.oid import NameOID

from config.settings import Settings

TEST_AAD = "TOSS"
BASE_URL = "https://provider.test"


def _random_key() -> str:
    return base64.b64encode(os.urandom(32)).decode()


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    """Build an isolated ``Settings``; no certificate unless overridden."""

    def _make(**overrides) -> Settings:
        values = dict(
            toss_api_base_url=BASE_URL,
            toss_decryption_key=_random_key(),
            toss_aad=TEST_AAD,
            toss_mtls_cert_base64="",
            toss_mtls_key_base64="",
            toss_mtls_cert_path=str(tmp_path / "missing.crt"),
            toss_mtls_key_path=str(tmp_path / "missing.key"),
            toss_request_timeout=2.0,
            toss_batch_chunk_size=10,
            toss_callback_basic_auth_username="",
            toss_callback_basic_auth_password="",
        )
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def random_key() -> Callable[[], str]:
    return _random_key


@pytest.fixture
def encrypt(settings) -> Callable[..., str]:
    """Encrypt like the Provider does: base64(IV || ciphertext || tag)."""

    def _encrypt(plaintext: str, base64_key: Optional[str] = None, aad: Optional[str] = None) -> str:
        key = base64.b64decode(base64_key or settings.toss_decryption_key)
        nonce = os.urandom(12)
        sealed = AESGCM(key).encrypt(
            nonce, plaintext.encode("utf-8"), (aad if aad is not None else settings.toss_aad).encode("utf-8")
        )
        return base64.b64encode(nonce + sealed).decode()

    return _encrypt


@pytest.fixture
def client_certificate() -> Tuple[bytes, bytes]:
    """Self-signed client certificate and PKCS#8 key, both PEM."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "toss-gateway-test")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert_pem, key_pem
