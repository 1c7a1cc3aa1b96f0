"""Contract for the remote encrypted store."""

from __future__ import annotations

from typing import Protocol

from env_sync.sync.models import EncryptedRecord, PullResponse, PushResponse


class RemoteStore(Protocol):
    """Holds one ``EncryptedSnapshot`` per (project, environment) pair.

    ``push_snapshot`` replaces the whole remote set; there is no
    per-key patching and no versioning.
    """

    async def push_snapshot(
        self, project: str, environment: str, records: list[EncryptedRecord]
    ) -> PushResponse: ...

    async def pull_snapshot(self, project: str, environment: str) -> PullResponse: ...
