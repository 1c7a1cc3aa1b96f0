"""Sync engine package for local file <-> encrypted remote synchronization."""

from env_sync.sync.crypto import CryptoCodec, classify_as_secret, derive_key
from env_sync.sync.detector import Baseline, DetectorState, LocalChange, LocalChangeDetector
from env_sync.sync.differ import ChangeSet, ModifiedValue, SnapshotDiffer
from env_sync.sync.engine import (
    EnvDiff,
    SessionMode,
    SessionState,
    SyncOrchestrator,
    SyncSession,
)
from env_sync.sync.models import (
    EncryptedRecord,
    PullResponse,
    PushResponse,
    SyncDirection,
    SyncResult,
)
from env_sync.sync.poller import PollOutcome, RemotePoller
from env_sync.sync.rotation import RotationResult, SecretType, generate_secret, is_likely_secret

__all__ = [
    "Baseline",
    "ChangeSet",
    "CryptoCodec",
    "DetectorState",
    "EncryptedRecord",
    "EnvDiff",
    "LocalChange",
    "LocalChangeDetector",
    "ModifiedValue",
    "PollOutcome",
    "PullResponse",
    "PushResponse",
    "RemotePoller",
    "RotationResult",
    "SecretType",
    "SessionMode",
    "SessionState",
    "SnapshotDiffer",
    "SyncDirection",
    "SyncOrchestrator",
    "SyncResult",
    "SyncSession",
    "classify_as_secret",
    "derive_key",
    "generate_secret",
    "is_likely_secret",
]
