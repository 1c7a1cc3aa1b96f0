"""Pydantic models exchanged with the remote store and returned to callers."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from env_sync.errors import SyncPhase
from env_sync.sync.differ import ChangeSet


class SyncDirection(StrEnum):
    """Which way a sync session moves data."""

    BIDIRECTIONAL = "bidirectional"
    PUSH_ONLY = "push_only"
    PULL_ONLY = "pull_only"


class EncryptedRecord(BaseModel):
    """One encrypted variable as stored remotely.

    ``iv`` and ``auth_tag`` belong to this record only and are never
    reused.  ``is_secret`` is advisory metadata for reporting.
    """

    model_config = ConfigDict(populate_by_name=True)

    key: str
    ciphertext: str = Field(alias="encryptedValue")
    iv: str
    auth_tag: str = Field(alias="authTag")
    is_secret: bool = Field(default=False, alias="isSecret")


# An EncryptedSnapshot is the full, ordered record list for one
# (project, environment) pair.
EncryptedSnapshot = list[EncryptedRecord]


class PushResponse(BaseModel):
    """Result of a full-replace push."""

    success: bool
    message: str = ""


class PullResponse(BaseModel):
    """Result of a pull.  ``data is None`` means there is nothing to pull."""

    success: bool
    message: str = ""
    data: list[EncryptedRecord] | None = None


class SyncResult(BaseModel):
    """Outcome of a single push or pull performed by the orchestrator."""

    success: bool
    message: str
    environment: str
    phase: SyncPhase
    changes: ChangeSet = Field(default_factory=ChangeSet)
    variable_count: int = 0
    secret_count: int = 0
