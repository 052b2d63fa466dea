"""
Sensitive field codec: key loading, token shape, and that tokens never carry the digits.
"""
import base64
import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from services.sensitive_fields import (
    SensitiveFieldCodec,
    load_key,
    normalize_ip_pin,
    normalize_ssn,
)
from utils.errors import ConfigurationError

KEY = b"\x01" * 32
RAW_KEY = base64.b64encode(KEY).decode("ascii")


class TestLoadKey:
    def test_valid_key(self):
        assert load_key(RAW_KEY) == KEY

    def test_missing_key_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            load_key("")

    def test_wrong_length_is_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc:
            load_key(base64.b64encode(b"short").decode("ascii"))
        assert "32 bytes" in exc.value.message

    def test_not_base64_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            load_key("not base64 !!")


class TestProtect:
    def test_token_has_nonce_tag_ciphertext(self):
        token = SensitiveFieldCodec(KEY).protect("123456789")
        nonce, tag, ciphertext = (base64.b64decode(part) for part in token.split("."))
        assert len(nonce) == 12
        assert len(tag) == 16
        assert len(ciphertext) == 9

    def test_token_decrypts_with_the_key(self):
        token = SensitiveFieldCodec(KEY).protect("000000")
        nonce, tag, ciphertext = (base64.b64decode(part) for part in token.split("."))
        assert AESGCM(KEY).decrypt(nonce, ciphertext + tag, None) == b"000000"

    def test_fresh_nonce_per_call(self):
        codec = SensitiveFieldCodec(KEY)
        first, second = codec.protect("123456789"), codec.protect("123456789")
        assert first != second
        assert first.split(".")[0] != second.split(".")[0]

    def test_token_never_contains_plaintext(self):
        codec = SensitiveFieldCodec(KEY)
        for ssn in ("123456789", "987654321", "111223333"):
            assert ssn not in codec.protect(ssn)

    def test_empty_plaintext_is_not_encrypted(self):
        codec = SensitiveFieldCodec(KEY)
        assert codec.protect_optional("") is None

    def test_no_reveal_operation(self):
        codec = SensitiveFieldCodec(KEY)
        assert not hasattr(codec, "reveal")
        assert not hasattr(codec, "decrypt")

    def test_short_key_rejected(self):
        with pytest.raises(ConfigurationError):
            SensitiveFieldCodec(b"x" * 16)


class TestNormalize:
    def test_ssn_strips_separators(self):
        assert normalize_ssn("123-45-6789") == "123456789"

    def test_ssn_truncates(self):
        assert normalize_ssn("1234567890") == "123456789"

    def test_ip_pin(self):
        assert normalize_ip_pin(" 12 34 56 ") == "123456"

    def test_non_string_is_empty(self):
        assert normalize_ssn(None) == ""
        assert normalize_ip_pin(123456) == ""
