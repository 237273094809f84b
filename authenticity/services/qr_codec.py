"""QR payload codec.

Payloads are printed as OpenSSL "Salted__" AES-256-CBC blobs (base64), the
format produced by passphrase-based AES in the product registration app:
key and IV are derived from the passphrase and an 8-byte salt with
EVP_BytesToKey (MD5, one iteration).
"""

import base64
import binascii
import hashlib
import json
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from pydantic import ValidationError

from authenticity.schemas.verification import QRPayload

logger = logging.getLogger(__name__)

_SALT_HEADER = b"Salted__"
_KEY_SIZE = 32
_IV_SIZE = 16


def _evp_bytes_to_key(secret: bytes, salt: bytes) -> tuple[bytes, bytes]:
    derived = b""
    block = b""
    while len(derived) < _KEY_SIZE + _IV_SIZE:
        block = hashlib.md5(block + secret + salt).digest()
        derived += block
    return derived[:_KEY_SIZE], derived[_KEY_SIZE:_KEY_SIZE + _IV_SIZE]


def encrypt_qr_payload(payload: QRPayload, secret: str, salt: bytes | None = None) -> str:
    """Encrypt a payload into the printable QR string."""
    salt = salt if salt is not None else os.urandom(8)
    key, iv = _evp_bytes_to_key(secret.encode("utf-8"), salt)

    plaintext = json.dumps(payload.model_dump(by_alias=True), separators=(",", ":")).encode("utf-8")
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(_SALT_HEADER + salt + ciphertext).decode("ascii")


def decrypt_qr_payload(encrypted: str, secret: str) -> QRPayload | None:
    """Decrypt a printed QR string. Returns None if it cannot be decoded."""
    try:
        raw = base64.b64decode(encrypted.strip(), validate=True)
    except (binascii.Error, ValueError):
        logger.warning("QR payload is not valid base64")
        return None

    if not raw.startswith(_SALT_HEADER) or len(raw) < 32 or (len(raw) - 16) % 16:
        logger.warning("QR payload has unexpected layout (%d bytes)", len(raw))
        return None

    salt = raw[8:16]
    key, iv = _evp_bytes_to_key(secret.encode("utf-8"), salt)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(raw[16:]) + decryptor.finalize()

    try:
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return QRPayload.model_validate(json.loads(plaintext.decode("utf-8")))
    except (ValueError, UnicodeDecodeError, ValidationError) as e:
        # wrong secret or corrupted payload
        logger.warning("Failed to decrypt QR payload: %s", type(e).__name__)
        return None


def qr_fingerprint(encrypted: str) -> str:
    """Stable fingerprint of a printed QR payload."""
    return hashlib.sha256(encrypted.strip().encode("utf-8")).hexdigest()
