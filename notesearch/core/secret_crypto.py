"""
Encryption of sensitive instance settings (provider API keys) at rest.

Values are stored as ``enc:v1:`` followed by base64 of nonce + AES-GCM
ciphertext, keyed by the SHA-256 digest of the instance secret. Values without
the prefix are legacy plaintext and are returned unchanged.
"""
import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

SENSITIVE_VALUE_PREFIX = "enc:v1:"
_NONCE_SIZE = 12


def _get_cipher(secret: str) -> AESGCM:
    secret = (secret or "").strip()
    if not secret:
        raise ValueError("secret is required")
    key = hashlib.sha256(secret.encode("utf-8")).digest()
    return AESGCM(key)


def encrypt_sensitive_value(secret: str, plain_text: str) -> str:
    if not plain_text:
        return ""
    cipher = _get_cipher(secret)
    nonce = os.urandom(_NONCE_SIZE)
    cipher_text = cipher.encrypt(nonce, plain_text.encode("utf-8"), None)
    return SENSITIVE_VALUE_PREFIX + base64.b64encode(nonce + cipher_text).decode("ascii")


def decrypt_sensitive_value(secret: str, encrypted_text: str) -> str:
    """
    Raises:
        ValueError: If the payload is corrupt or was encrypted with another secret
    """
    if not encrypted_text:
        return ""
    if not encrypted_text.startswith(SENSITIVE_VALUE_PREFIX):
        return encrypted_text

    encoded = encrypted_text[len(SENSITIVE_VALUE_PREFIX):]
    try:
        payload = base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeError) as exc:
        raise ValueError(f"failed to decode encrypted payload: {exc}") from exc

    cipher = _get_cipher(secret)
    if len(payload) <= _NONCE_SIZE:
        raise ValueError("encrypted payload is too short")

    try:
        plain = cipher.decrypt(payload[:_NONCE_SIZE], payload[_NONCE_SIZE:], None)
    except InvalidTag as exc:
        raise ValueError("failed to decrypt payload") from exc
    return plain.decode("utf-8")
