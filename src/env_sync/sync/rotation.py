"""Secret generation and backups for key rotation."""

from __future__ import annotations

import base64
import logging
import re
import secrets
import string
import uuid
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field

from env_sync.envfile import PlainSnapshot, serialize_env
from env_sync.errors import FileIOError, SyncPhase

logger = logging.getLogger(__name__)

DEFAULT_SECRET_LENGTH = 32
DEFAULT_JWT_SECRET_LENGTH = 64
ROTATION_BACKUP_DIR = Path(".env-sync") / "rotations"

_ALPHANUMERIC = string.ascii_letters + string.digits

SECRET_KEY_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"secret",
        r"key",
        r"token",
        r"password",
        r"auth",
        r"credential",
        r"private",
        r"api[_-]?key",
        r"access[_-]?token",
        r"refresh[_-]?token",
        r"jwt[_-]?secret",
        r"session[_-]?secret",
    )
)


class SecretType(StrEnum):
    UUID = "uuid"
    HEX = "hex"
    BASE64 = "base64"
    ALPHANUMERIC = "alphanumeric"
    JWT = "jwt"


class RotationResult(BaseModel):
    """Outcome of rotating keys across environments."""

    keys: list[str]
    backups: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed


def is_likely_secret(key: str) -> bool:
    """Return ``True`` if the variable *name* looks like it holds a secret."""
    return any(p.search(key) for p in SECRET_KEY_PATTERNS)


def generate_secret(secret_type: SecretType = SecretType.HEX, length: int | None = None) -> str:
    """Generate a random secret of the given type.

    Args:
        secret_type: Output alphabet and shape.  ``uuid`` ignores *length*.
        length: Number of characters.  Defaults to 32 (64 for ``jwt``).

    Raises:
        ValueError: If *length* is not positive.
    """
    if length is not None and length <= 0:
        raise ValueError("Secret length must be positive")

    if secret_type == SecretType.UUID:
        return str(uuid.uuid4())
    if secret_type == SecretType.JWT:
        length = length or DEFAULT_JWT_SECRET_LENGTH
    length = length or DEFAULT_SECRET_LENGTH

    if secret_type == SecretType.BASE64:
        return base64.b64encode(secrets.token_bytes(length)).decode("ascii")[:length]
    if secret_type == SecretType.ALPHANUMERIC:
        return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))
    return secrets.token_hex((length + 1) // 2)[:length]


def write_backups(backup_dir: Path, values: PlainSnapshot) -> list[Path]:
    """Save each old value as ``<KEY>_<timestamp>.backup`` under *backup_dir*.

    Raises:
        FileIOError: If a backup cannot be written.
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    written: list[Path] = []
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        for key, value in values.items():
            path = backup_dir / f"{key}_{timestamp}.backup"
            path.write_text(serialize_env({key: value}), encoding="utf-8")
            written.append(path)
            logger.info("Old value of %s saved to %s", key, path)
    except OSError as exc:
        raise FileIOError(
            f"Could not write backup to {backup_dir}: {exc}",
            path=str(backup_dir),
            phase=SyncPhase.WRITE,
        ) from exc
    return written
