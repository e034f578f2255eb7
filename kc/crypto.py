"""
Store Crypto Core -- Password-based key derivation, encryption/decryption
and token serialization.

Every value written to the event log is encrypted on its own:

    PBKDF2-HMAC-SHA256(password, salt, ITERATIONS) -> AEAD key
    AES-GCM (or ChaCha20-Poly1305) with a random 96-bit nonce

and packed into a self-describing token:

    base64(json({"salt": b64, "iv": b64, "data": b64(ciphertext + tag)}))

Security Note:
    Never log plaintext, passwords or tokens.
    Salt and nonce are fresh on every call; the same plaintext and password
    never produce the same token.
    ITERATIONS is the brute-force throttle of the store. Do not lower it and
    do not move derivation off the calling thread.
"""
import os
import base64
import logging
from typing import Optional, Union

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .config import get_cipher_backend
from .exceptions import CryptoError

logger = logging.getLogger("kc.crypto")

SALT_SIZE = 16
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256
ITERATIONS = 200_000

_TOKEN_FIELDS = ("salt", "iv", "data")


def cipher_for(backend: str) -> type:
    """Return the AEAD cipher class for a backend name (aesgcm, chacha20)."""
    if backend.lower() == "chacha20":
        return ChaCha20Poly1305
    return AESGCM


# Default resolved once at module load to prevent encrypt/decrypt mismatch
# if the env var changes mid-process.
CIPHER_CLS = cipher_for(get_cipher_backend())


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    password: Union[str, bytes],
    salt: bytes,
    iterations: int = ITERATIONS,
    length: int = KEY_LENGTH,
) -> bytes:
    """Derive an encryption key from a password using PBKDF2-HMAC-SHA256.

    Args:
        password: Master password.
        salt: Random salt stored alongside the ciphertext.
        iterations: PBKDF2 work factor.
        length: Size of the derived key in bytes.

    Returns:
        Derived key bytes.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(_to_bytes(password))


# ---------------------------------------------------------------------------
# Token serialization
# ---------------------------------------------------------------------------

def pack_token(salt: bytes, iv: bytes, data: bytes) -> str:
    """Encode salt, nonce and ciphertext as one opaque ASCII token."""
    payload = {
        "salt": base64.b64encode(salt).decode("ascii"),
        "iv": base64.b64encode(iv).decode("ascii"),
        "data": base64.b64encode(data).decode("ascii"),
    }
    return base64.b64encode(orjson.dumps(payload)).decode("ascii")


def unpack_token(token: str) -> tuple[bytes, bytes, bytes]:
    """Decode a token produced by :func:`pack_token`.

    Returns:
        Tuple of (salt, iv, data).

    Raises:
        CryptoError: If the token is not structurally valid.
    """
    try:
        raw = base64.b64decode(_to_bytes(token), validate=True)
        payload = orjson.loads(raw)
        if not isinstance(payload, dict):
            raise TypeError("token payload is not an object")
        salt, iv, data = (
            base64.b64decode(payload[name], validate=True)
            for name in _TOKEN_FIELDS
        )
    except (KeyError, TypeError, ValueError) as err:
        # binascii.Error and orjson.JSONDecodeError are ValueErrors
        raise CryptoError(f"Corrupt token: {err}") from err
    if len(salt) != SALT_SIZE:
        raise CryptoError(
            f"Corrupt token: salt is {len(salt)} bytes (expected {SALT_SIZE})"
        )
    if len(iv) != NONCE_SIZE:
        raise CryptoError(
            f"Corrupt token: iv is {len(iv)} bytes (expected {NONCE_SIZE})"
        )
    if len(data) < TAG_SIZE:
        raise CryptoError(
            f"Corrupt token: ciphertext too short: {len(data)} bytes "
            f"(minimum {TAG_SIZE})"
        )
    return salt, iv, data


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

def encrypt(
    plaintext: Union[str, bytes],
    password: Union[str, bytes],
    cipher_cls: Optional[type] = None,
) -> str:
    """Encrypt a value under the master password.

    Args:
        plaintext: Data to encrypt (str is UTF-8 encoded).
        password: Master password.
        cipher_cls: AEAD class; defaults to CIPHER_CLS.

    Returns:
        Encrypted token string.
    """
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    key = derive_key(password, salt)
    ct = (cipher_cls or CIPHER_CLS)(key).encrypt(nonce, _to_bytes(plaintext), None)
    return pack_token(salt, nonce, ct)


def decrypt(
    token: str,
    password: Union[str, bytes],
    cipher_cls: Optional[type] = None,
) -> bytes:
    """Decrypt a token produced by :func:`encrypt`.

    Args:
        token: Encrypted token string.
        password: Master password.
        cipher_cls: AEAD class the token was written with; defaults to
            CIPHER_CLS.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        CryptoError: If the password is wrong, or the token is tampered
            with or corrupt.
    """
    salt, nonce, ct = unpack_token(token)
    key = derive_key(password, salt)
    try:
        return (cipher_cls or CIPHER_CLS)(key).decrypt(nonce, ct, None)
    except InvalidTag as err:
        raise CryptoError(
            "Decryption failed: wrong master password or tampered data"
        ) from err
