"""Field encryption for winner payout details.

Values are sealed with AES-256-GCM and stored as
``v1:<iv hex>:<ciphertext hex>:<tag hex>``. Rows written before encryption was
introduced carry no ``v1:`` tag and are returned unchanged. A tagged value
that does not decrypt is an error, never returned raw.
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from selliox.errors import PayoutDecryptionError
from selliox.logging_config import get_logger
from selliox.settings import settings

logger = get_logger(__name__)

FORMAT_TAG = "v1"
IV_BYTES = 12
TAG_BYTES = 16


def _cipher(key_hex: str | None = None) -> AESGCM:
    key = bytes.fromhex(key_hex or settings.payout_encryption_key)
    if len(key) != 32:
        raise ValueError("Payout encryption key must be 32 bytes (64 hex chars)")
    return AESGCM(key)


def is_encrypted(value: str | None) -> bool:
    return bool(value) and value.startswith(f"{FORMAT_TAG}:")


def encrypt_field(plaintext: str, key_hex: str | None = None) -> str:
    """Encrypt a string for storage.

    Args:
        plaintext: Value to protect
        key_hex: Optional key override (defaults to settings)

    Returns:
        Tagged ``v1:iv:ciphertext:tag`` string
    """
    iv = os.urandom(IV_BYTES)
    sealed = _cipher(key_hex).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return f"{FORMAT_TAG}:{iv.hex()}:{ciphertext.hex()}:{tag.hex()}"


def decrypt_field(stored: str | None, key_hex: str | None = None) -> str | None:
    """Decrypt a stored value.

    Args:
        stored: Value as persisted
        key_hex: Optional key override (defaults to settings)

    Returns:
        Plaintext (legacy untagged values are returned as-is)

    Raises:
        PayoutDecryptionError: If a tagged value is malformed or fails authentication
    """
    if not stored or not is_encrypted(stored):
        return stored

    try:
        _, iv_hex, ciphertext_hex, tag_hex = stored.split(":")
        iv = bytes.fromhex(iv_hex)
        sealed = bytes.fromhex(ciphertext_hex) + bytes.fromhex(tag_hex)
        return _cipher(key_hex).decrypt(iv, sealed, None).decode("utf-8")
    except (ValueError, InvalidTag) as e:
        logger.error("payout_decryption_failed", error=type(e).__name__)
        raise PayoutDecryptionError("Stored payout details could not be decrypted") from e
