"""Interval polling of the remote store.

Each tick pulls the encrypted snapshot, decrypts it, and compares it
with what is currently in the local file (read fresh, not the
detector's baseline).  When they differ the remote snapshot is written
over the file and the detector is told to adopt it as its baseline, so
the write is not mistaken for a local edit.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from env_sync.envfile import PlainSnapshot, read_env_file, write_env_file
from env_sync.errors import EnvSyncError
from env_sync.sync.crypto import CryptoCodec
from env_sync.sync.detector import LocalChangeDetector
from env_sync.sync.differ import ChangeSet, SnapshotDiffer

if TYPE_CHECKING:
    from env_sync.remote.base import RemoteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollOutcome:
    """Result of one pull-and-compare.

    ``remote is None`` means the store had nothing to pull.
    """

    remote: PlainSnapshot | None = None
    changes: ChangeSet = field(default_factory=ChangeSet)

    @property
    def merged(self) -> bool:
        return self.remote is not None and not self.changes.is_empty


class RemotePoller:
    """Pulls (project, environment) on a fixed interval and merges into the file.

    Args:
        store: Remote store to pull from.
        codec: Codec used to decrypt pulled records.
        project: Project name.
        environment: Environment name.
        env_file: Local file to compare against and overwrite.
        interval: Seconds between ticks.
        detector: Detector whose baseline is resynced after a write.
        lock: In-flight-operation guard shared with pushes.
    """

    def __init__(
        self,
        store: RemoteStore,
        codec: CryptoCodec,
        project: str,
        environment: str,
        env_file: str | Path,
        *,
        interval: float = 60.0,
        detector: LocalChangeDetector | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("Poll interval must be positive")
        self._store = store
        self._codec = codec
        self._project = project
        self._environment = environment
        self._env_file = Path(env_file)
        self._interval = interval
        self._detector = detector
        self._lock = lock or asyncio.Lock()
        self.ticks = 0

    async def run(self, stop: asyncio.Event) -> None:
        """Tick every ``interval`` seconds until *stop* is set.

        A failing tick is logged and skipped; only *stop* or task
        cancellation ends the loop.
        """
        logger.debug("Started polling every %s seconds", self._interval)
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except TimeoutError:
                pass
            else:
                break

            self.ticks += 1
            try:
                await self.poll_once()
            except EnvSyncError as exc:
                logger.warning("Remote check failed for %s: %s", self._environment, exc)
            except Exception:
                logger.exception("Unexpected error while polling %s", self._environment)
        logger.debug("Polling stopped")

    async def poll_once(self) -> PollOutcome:
        """Run a single pull-and-compare, writing the file if it differs.

        Returns:
            A ``PollOutcome``; ``changes`` is the diff from the local file
            to the remote snapshot and ``merged`` tells whether the file
            was overwritten.

        Raises:
            TransportError: If the pull fails.
            DecryptionError: If a remote record does not authenticate.
            FileIOError: If the local file cannot be read or the merge
                cannot be written.  The baseline is left untouched.
        """
        async with self._lock:
            response = await self._store.pull_snapshot(self._project, self._environment)
            if not response.success or response.data is None:
                logger.debug("No remote data for %s", self._environment)
                return PollOutcome()

            remote = self._codec.decrypt_snapshot(response.data)
            local = read_env_file(self._env_file)
            changes = SnapshotDiffer.diff(local, remote)
            if changes.is_empty:
                return PollOutcome(remote=remote, changes=changes)

            logger.info(
                "Remote change detected for %s: added=%s modified=%s removed=%s",
                self._environment,
                sorted(changes.added),
                sorted(changes.modified),
                sorted(changes.removed),
            )
            write_env_file(self._env_file, remote)
            if self._detector is not None:
                self._detector.resync(remote)
            logger.info("Pulled %d variables into %s", len(remote), self._env_file)
            return PollOutcome(remote=remote, changes=changes)
