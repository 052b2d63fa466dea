"""
Sensitive Field Codec - at-rest protection for SSN and IRS IP PIN values.

AES-256-GCM with a fixed key supplied out-of-band (SSN_ENCRYPTION_KEY, base64).
Token format: base64(nonce) "." base64(tag) "." base64(ciphertext)

There is intentionally no decrypt path in this module: tokens are stored and
forwarded, never turned back into digits for an HTTP response.
"""
import base64
import binascii
import logging
import os
import re
from typing import Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

KEY_ENV_VAR = "SSN_ENCRYPTION_KEY"
KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16
TOKEN_DELIMITER = "."

SSN_DIGITS = 9
IP_PIN_DIGITS = 6

_NON_DIGITS = re.compile(r"\D")


def normalize_ssn(value) -> str:
    """Strip separators; keep at most 9 digits. Non-strings normalize to ''."""
    if not isinstance(value, str):
        return ""
    return _NON_DIGITS.sub("", value)[:SSN_DIGITS]


def normalize_ip_pin(value) -> str:
    if not isinstance(value, str):
        return ""
    return _NON_DIGITS.sub("", value)[:IP_PIN_DIGITS]


def load_key(raw: Optional[str] = None) -> bytes:
    """Decode and check the encryption key. Raises ConfigurationError."""
    if raw is None:
        raw = os.environ.get(KEY_ENV_VAR, "")
    raw = (raw or "").strip()
    if not raw:
        raise ConfigurationError(f"{KEY_ENV_VAR} is not set.")
    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise ConfigurationError(f"{KEY_ENV_VAR} is not valid base64.")
    if len(key) != KEY_BYTES:
        raise ConfigurationError(f"{KEY_ENV_VAR} must be {KEY_BYTES} bytes (base64 encoded).")
    return key


class SensitiveFieldCodec:
    """Encrypts the two sensitive plaintext shapes: 9-digit SSN, 6-digit IP PIN."""

    def __init__(self, key: bytes):
        if len(key) != KEY_BYTES:
            raise ConfigurationError(f"Encryption key must be {KEY_BYTES} bytes.")
        self._aesgcm = AESGCM(key)

    def protect(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_BYTES)
        # AESGCM appends the 16-byte tag to the ciphertext
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return TOKEN_DELIMITER.join(
            base64.b64encode(part).decode("ascii") for part in (nonce, tag, ciphertext)
        )

    def protect_optional(self, plaintext: str) -> Optional[str]:
        """Empty plaintext never reaches the cipher; the stored token stays null."""
        if not plaintext:
            return None
        return self.protect(plaintext)


_codec: Optional[SensitiveFieldCodec] = None


def init_codec(raw_key: Optional[str] = None) -> SensitiveFieldCodec:
    """Build the process-wide codec. Called once at startup."""
    global _codec
    _codec = SensitiveFieldCodec(load_key(raw_key))
    logger.info("Sensitive field codec initialised")
    return _codec


def get_codec() -> SensitiveFieldCodec:
    if _codec is None:
        return init_codec()
    return _codec


def codec_ready() -> bool:
    return _codec is not None
