"""Per-value AES-256-GCM encryption of snapshot values.

Every value is encrypted independently with a fresh random IV, so each
``EncryptedRecord`` carries its own ``iv`` and ``auth_tag``.  Binary
fields travel hex-encoded.

The key is the SHA-256 digest of the project name.  Anyone who knows
the project name can derive it; a production deployment needs a key
derived from a user-held secret instead.
"""

from __future__ import annotations

import hashlib
import logging
import os
from collections.abc import Iterable, Mapping

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from env_sync.errors import DecryptionError
from env_sync.sync.models import EncryptedRecord

logger = logging.getLogger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16

SECRET_PATTERNS: tuple[str, ...] = (
    "secret",
    "password",
    "token",
    "key",
    "api_key",
    "access_key",
    "private_key",
    "auth",
    "credential",
    "apikey",
)


def derive_key(secret: str) -> bytes:
    """Derive a 256-bit key from *secret* with a single SHA-256 pass."""
    return hashlib.sha256(secret.encode("utf-8")).digest()


def classify_as_secret(key: str, value: str) -> bool:
    """Return ``True`` if *key* or *value* contains a secret-looking keyword.

    Advisory only: it feeds reporting and never changes how a value is
    encrypted.
    """
    lower_key = key.lower()
    lower_value = value.lower()
    return any(p in lower_key or p in lower_value for p in SECRET_PATTERNS)


class CryptoCodec:
    """Encrypts and decrypts individual string values.

    Args:
        secret: Input secret for ``derive_key`` (the project name).
    """

    def __init__(self, secret: str) -> None:
        self._aes = AESGCM(derive_key(secret))

    def encrypt(self, plain: str) -> tuple[str, str, str]:
        """Encrypt *plain* and return ``(ciphertext, iv, auth_tag)`` as hex."""
        iv = os.urandom(IV_LENGTH)
        sealed = self._aes.encrypt(iv, plain.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ciphertext.hex(), iv.hex(), tag.hex()

    def decrypt(self, ciphertext: str, iv: str, auth_tag: str) -> str:
        """Authenticate and decrypt one value.

        Raises:
            DecryptionError: If any field is malformed or the tag does
                not authenticate.
        """
        try:
            ct_bytes = bytes.fromhex(ciphertext)
            iv_bytes = bytes.fromhex(iv)
            tag_bytes = bytes.fromhex(auth_tag)
        except ValueError as exc:
            raise DecryptionError(f"Malformed hex field: {exc}") from exc

        if len(tag_bytes) != TAG_LENGTH:
            raise DecryptionError(
                f"Auth tag must be {TAG_LENGTH} bytes, got {len(tag_bytes)}"
            )
        if len(iv_bytes) != IV_LENGTH:
            raise DecryptionError(f"IV must be {IV_LENGTH} bytes, got {len(iv_bytes)}")

        try:
            plain = self._aes.decrypt(iv_bytes, ct_bytes + tag_bytes, None)
        except InvalidTag as exc:
            raise DecryptionError("Authentication failed") from exc
        except ValueError as exc:
            raise DecryptionError(f"Rejected by cipher: {exc}") from exc

        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Decrypted value is not valid UTF-8") from exc

    # ------------------------------------------------------------------
    # Snapshot helpers
    # ------------------------------------------------------------------

    def encrypt_snapshot(self, snapshot: Mapping[str, str]) -> list[EncryptedRecord]:
        """Encrypt every value of *snapshot* into one record per key."""
        records: list[EncryptedRecord] = []
        for key, value in snapshot.items():
            ciphertext, iv, auth_tag = self.encrypt(value)
            records.append(
                EncryptedRecord(
                    key=key,
                    ciphertext=ciphertext,
                    iv=iv,
                    auth_tag=auth_tag,
                    is_secret=classify_as_secret(key, value),
                )
            )
        return records

    def decrypt_snapshot(self, records: Iterable[EncryptedRecord]) -> dict[str, str]:
        """Decrypt all records into a plain snapshot.

        Raises:
            DecryptionError: On the first record that fails, naming its key.
        """
        snapshot: dict[str, str] = {}
        for record in records:
            try:
                snapshot[record.key] = self.decrypt(
                    record.ciphertext, record.iv, record.auth_tag
                )
            except DecryptionError as exc:
                logger.debug("Decryption of %s failed: %s", record.key, exc)
                raise DecryptionError(
                    f"Failed to decrypt variable {record.key}: {exc}", key=record.key
                ) from exc
        return snapshot
