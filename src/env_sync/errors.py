"""Exception taxonomy for the sync engine.

Components raise the narrow error types; the orchestrator decides
whether an error is fatal (one-shot mode) or logged and skipped
(watch mode).
"""

from __future__ import annotations

from enum import StrEnum


class SyncPhase(StrEnum):
    """Step of a push or pull in which an error occurred."""

    READ = "read"
    ENCRYPT = "encrypt"
    PUSH = "push"
    PULL = "pull"
    DECRYPT = "decrypt"
    WRITE = "write"


class EnvSyncError(Exception):
    """Base class for all env-sync errors."""


class DecryptionError(EnvSyncError):
    """A record failed authentication or could not be decoded."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class TransportError(EnvSyncError):
    """The remote store could not be reached or rejected the request."""


class FileIOError(EnvSyncError):
    """The local key-value file could not be read or written."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        phase: SyncPhase = SyncPhase.READ,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.phase = phase


class SyncError(EnvSyncError):
    """Fatal failure of a one-shot sync, tagged with phase and environment.

    The original exception is available as ``__cause__``.
    """

    def __init__(self, phase: SyncPhase, environment: str, detail: str) -> None:
        self.phase = phase
        self.environment = environment
        self.detail = detail
        super().__init__(
            f"{phase.value} failed for environment '{environment}': {detail}"
        )
