"""
Tests for profile field decryption (AES-256-GCM).
"""

import base64
import os

import pytest

from provider.decryption import decrypt_field, decrypt_profile
from provider.errors import DecryptionFailed, MalformedCiphertext, MissingKeyConfiguration
from provider.schemas import DecryptedProfile, ProviderUserProfile


class TestDecryptField:
    def test_roundtrip_with_configured_key(self, settings, encrypt):
        for plaintext in ("Jane Doe", "01012345678", "19900101", "홍길동"):
            assert decrypt_field(encrypt(plaintext), settings=settings) == plaintext

    @pytest.mark.parametrize("empty", [None, ""])
    def test_absent_value_returns_none(self, settings, empty):
        assert decrypt_field(empty, settings=settings) is None

    def test_absent_value_needs_no_key(self, make_settings):
        no_key = make_settings(toss_decryption_key="")
        assert decrypt_field(None, settings=no_key) is None

    def test_wrong_aad_fails(self, settings, encrypt):
        blob = encrypt("Jane Doe", aad="A1")
        with pytest.raises(DecryptionFailed):
            decrypt_field(blob, aad="A2", settings=settings)

    def test_wrong_key_fails(self, settings, encrypt, random_key):
        blob = encrypt("Jane Doe")
        with pytest.raises(DecryptionFailed):
            decrypt_field(blob, random_key(), settings=settings)

    def test_per_call_key_and_aad_override_settings(self, settings, encrypt, random_key):
        other_key = random_key()
        blob = encrypt("override", base64_key=other_key, aad="custom-aad")
        assert decrypt_field(blob, other_key, "custom-aad", settings=settings) == "override"

    def test_empty_aad_override_uses_configured_aad(self, settings, encrypt):
        assert decrypt_field(encrypt("Jane Doe"), aad="", settings=settings) == "Jane Doe"

    def test_tampered_tag_fails(self, settings, encrypt):
        raw = bytearray(base64.b64decode(encrypt("Jane Doe")))
        raw[-1] ^= 0x01
        with pytest.raises(DecryptionFailed):
            decrypt_field(base64.b64encode(bytes(raw)).decode(), settings=settings)

    def test_tampered_ciphertext_fails(self, settings, encrypt):
        raw = bytearray(base64.b64decode(encrypt("Jane Doe")))
        raw[12] ^= 0x01
        with pytest.raises(DecryptionFailed):
            decrypt_field(base64.b64encode(bytes(raw)).decode(), settings=settings)

    @pytest.mark.parametrize("length", [0, 1, 12, 27])
    def test_short_blob_is_malformed(self, settings, length):
        blob = base64.b64encode(os.urandom(length)).decode() if length else "AA=="
        with pytest.raises(MalformedCiphertext):
            decrypt_field(blob, settings=settings)

    def test_minimum_length_blob_is_not_malformed(self, settings):
        # 28 bytes = IV + tag with empty ciphertext: passes the length check, fails the tag.
        blob = base64.b64encode(os.urandom(28)).decode()
        with pytest.raises(DecryptionFailed):
            decrypt_field(blob, settings=settings)

    def test_invalid_base64_is_malformed(self, settings):
        with pytest.raises(MalformedCiphertext):
            decrypt_field("not base64 !!", settings=settings)

    def test_missing_key_checked_before_decoding(self, make_settings):
        no_key = make_settings(toss_decryption_key="")
        with pytest.raises(MissingKeyConfiguration):
            decrypt_field("garbage that is not even base64", settings=no_key)

    def test_key_of_wrong_length_is_rejected(self, settings, encrypt):
        short_key = base64.b64encode(os.urandom(16)).decode()
        with pytest.raises(MissingKeyConfiguration):
            decrypt_field(encrypt("x"), short_key, settings=settings)


class TestDecryptProfile:
    def test_decrypts_each_field_independently(self, settings, encrypt):
        profile = ProviderUserProfile(
            user_key=42,
            scope="user_name user_phone",
            agreed_terms=["terms_1"],
            name=encrypt("Jane Doe"),
            phone=encrypt("01012345678"),
            gender=encrypt("FEMALE"),
        )
        result = decrypt_profile(profile, settings=settings)
        assert result == DecryptedProfile(name="Jane Doe", phone="01012345678", gender="FEMALE")
        assert result.email is None

    def test_all_fields_absent_is_legal(self, settings):
        assert decrypt_profile({}, settings=settings) == DecryptedProfile()

    def test_accepts_mapping_input(self, settings, encrypt):
        result = decrypt_profile({"email": encrypt("jane@example.com"), "ci": None}, settings=settings)
        assert result.email == "jane@example.com"
        assert result.ci is None

    def test_one_bad_field_fails_whole_profile(self, settings, encrypt):
        with pytest.raises(DecryptionFailed):
            decrypt_profile(
                {"name": encrypt("Jane"), "phone": encrypt("010", aad="other")},
                settings=settings,
            )
