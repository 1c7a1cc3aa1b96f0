"""Sync orchestrator for one-shot and watch-mode sessions.

Coordinates the local change detector, the remote poller, the codec and
the remote store.  Every push, pull and diff runs under a single
per-orchestrator ``asyncio.Lock``, so at most one remote operation is
in flight and a pull never writes the file while a push is reading it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from env_sync.envfile import PlainSnapshot, read_env_file, write_env_file
from env_sync.errors import (
    DecryptionError,
    EnvSyncError,
    FileIOError,
    SyncError,
    SyncPhase,
    TransportError,
)
from env_sync.sync.crypto import CryptoCodec
from env_sync.sync.detector import DEFAULT_DEBOUNCE_SECONDS, LocalChange, LocalChangeDetector
from env_sync.sync.differ import ChangeSet, ModifiedValue, SnapshotDiffer
from env_sync.sync.models import SyncDirection, SyncResult
from env_sync.sync.poller import RemotePoller
from env_sync.sync.rotation import RotationResult, SecretType, generate_secret, write_backups

if TYPE_CHECKING:
    from env_sync.remote.base import RemoteStore

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Session / result models
# ------------------------------------------------------------------


class SessionState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    TERMINATED = "terminated"


class SessionMode(StrEnum):
    ONE_SHOT = "one_shot"
    WATCH = "watch"


@dataclass
class SyncSession:
    """Parameters and cancellation token for one sync run."""

    environment: str
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    poll_interval: float = 60.0
    _cancel: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel

    def cancel(self) -> None:
        """Request shutdown.  Safe to call more than once."""
        self._cancel.set()


class EnvDiff(BaseModel):
    """Comparison of the local file (base) with a remote environment."""

    environment: str
    remote_present: bool
    changes: ChangeSet = Field(default_factory=ChangeSet)
    modified: list[ModifiedValue] = Field(default_factory=list)
    local_count: int = 0
    remote_count: int = 0

    @property
    def in_sync(self) -> bool:
        return self.changes.is_empty


# ------------------------------------------------------------------
# Orchestrator
# ------------------------------------------------------------------


class SyncOrchestrator:
    """Drives push, pull and watch sessions for one project and local file.

    Args:
        store: Remote store used for push and pull.
        project: Project name; also the codec's key-derivation input.
        env_file: Path of the local key-value file.
        debounce: Detector debounce delay in seconds (watch mode).
        observe: Whether the detector starts a file-system observer.
    """

    def __init__(
        self,
        store: RemoteStore,
        project: str,
        env_file: str | Path,
        *,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        observe: bool = True,
    ) -> None:
        self._store = store
        self._project = project
        self._env_file = Path(env_file)
        self._codec = CryptoCodec(project)
        self._debounce = debounce
        self._observe = observe
        self._lock = asyncio.Lock()
        self._state = SessionState.IDLE
        self._mode: SessionMode | None = None
        self.detector: LocalChangeDetector | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def mode(self) -> SessionMode | None:
        return self._mode

    @property
    def codec(self) -> CryptoCodec:
        return self._codec

    # ------------------------------------------------------------------
    # Push: local file -> remote
    # ------------------------------------------------------------------

    async def push(
        self,
        environment: str,
        snapshot: PlainSnapshot | None = None,
        reason: str = "Push",
    ) -> SyncResult:
        """Encrypt and push a snapshot, replacing the remote environment.

        Args:
            environment: Target environment.
            snapshot: Snapshot to push.  Defaults to the current file content.
            reason: Short label included in the result message.

        Raises:
            SyncError: Tagged with the failed phase (read, encrypt, push).
        """
        async with self._lock:
            if snapshot is None:
                snapshot = self._read_local(environment)
            return await self._push_locked(environment, snapshot, reason)

    async def _push_locked(
        self, environment: str, snapshot: PlainSnapshot, reason: str
    ) -> SyncResult:
        try:
            records = self._codec.encrypt_snapshot(snapshot)
        except (UnicodeEncodeError, ValueError) as exc:
            raise SyncError(SyncPhase.ENCRYPT, environment, str(exc)) from exc

        try:
            response = await self._store.push_snapshot(self._project, environment, records)
        except TransportError as exc:
            raise SyncError(SyncPhase.PUSH, environment, str(exc)) from exc
        if not response.success:
            raise SyncError(
                SyncPhase.PUSH, environment, response.message or "remote rejected push"
            )

        secret_count = sum(1 for r in records if r.is_secret)
        logger.info(
            "Pushed %d variables (%d secret) to %s (%s)",
            len(records), secret_count, environment, reason,
        )
        return SyncResult(
            success=True,
            message=f"Synced {len(records)} variables ({reason})",
            environment=environment,
            phase=SyncPhase.PUSH,
            variable_count=len(records),
            secret_count=secret_count,
        )

    # ------------------------------------------------------------------
    # Pull: remote -> local file
    # ------------------------------------------------------------------

    async def pull(self, environment: str) -> SyncResult:
        """Pull the remote environment and overwrite the file if it differs.

        Raises:
            SyncError: Tagged with the failed phase (pull, decrypt, read, write).
        """
        poller = self._make_poller(environment)
        try:
            outcome = await poller.poll_once()
        except EnvSyncError as exc:
            raise self._wrap(exc, SyncPhase.PULL, environment) from exc

        if outcome.remote is None:
            message = "No remote changes found"
        elif not outcome.merged:
            message = "No changes detected"
        else:
            message = f"Pulled {len(outcome.remote)} variables"
        return SyncResult(
            success=True,
            message=message,
            environment=environment,
            phase=SyncPhase.PULL,
            changes=outcome.changes,
            variable_count=len(outcome.remote or {}),
        )

    # ------------------------------------------------------------------
    # Diff
    # ------------------------------------------------------------------

    async def diff(self, environment: str) -> EnvDiff:
        """Compare the local file with the remote environment without writing.

        Keys only in the remote are reported as ``added``, keys only in
        the local file as ``removed``.

        Raises:
            SyncError: Tagged with the failed phase (read, pull, decrypt).
        """
        async with self._lock:
            local = self._read_local(environment)
            try:
                response = await self._store.pull_snapshot(self._project, environment)
                if not response.success or response.data is None:
                    return EnvDiff(
                        environment=environment,
                        remote_present=False,
                        changes=SnapshotDiffer.diff(local, {}),
                        local_count=len(local),
                    )
                remote = self._codec.decrypt_snapshot(response.data)
            except EnvSyncError as exc:
                raise self._wrap(exc, SyncPhase.PULL, environment) from exc

        return EnvDiff(
            environment=environment,
            remote_present=True,
            changes=SnapshotDiffer.diff(local, remote),
            modified=SnapshotDiffer.modified_values(local, remote),
            local_count=len(local),
            remote_count=len(remote),
        )

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    async def rotate(
        self,
        keys: list[str],
        environments: list[str],
        *,
        secret_type: SecretType = SecretType.HEX,
        length: int | None = None,
        backup_dir: Path | None = None,
    ) -> RotationResult:
        """Replace *keys* with freshly generated secrets locally and remotely.

        Old local values are backed up, the local file is rewritten once,
        and then each environment is pulled, patched with the new values
        and pushed back as a full snapshot, so its other variables are
        kept.  A failing environment is recorded in the result and the
        remaining environments are still updated.

        Raises:
            ValueError: If *keys* or *environments* is empty or *length*
                is not positive.
            SyncError: If the local file cannot be read, backed up or
                rewritten (nothing remote has been touched yet).
        """
        if not keys:
            raise ValueError("No keys to rotate")
        if not environments:
            raise ValueError("No environments to update")

        rotated = {key: generate_secret(secret_type, length) for key in keys}
        async with self._lock:
            local = self._read_local(environments[0])
            old_values = {k: local[k] for k in keys if local.get(k)}
            updated = {**local, **rotated}
            try:
                backups = write_backups(backup_dir, old_values) if backup_dir else []
                write_env_file(self._env_file, updated)
            except FileIOError as exc:
                raise SyncError(SyncPhase.WRITE, environments[0], str(exc)) from exc
            if self.detector is not None:
                self.detector.resync(updated)
            logger.info("Rotated %s in %s", ", ".join(keys), self._env_file)

            result = RotationResult(keys=list(keys), backups=[str(p) for p in backups])
            for environment in environments:
                try:
                    await self._rotate_remote(environment, rotated)
                except SyncError as exc:
                    logger.error("Rotation failed for %s: %s", environment, exc)
                    result.failed[environment] = str(exc)
                else:
                    result.updated.append(environment)
        return result

    async def _rotate_remote(self, environment: str, rotated: PlainSnapshot) -> None:
        try:
            response = await self._store.pull_snapshot(self._project, environment)
            remote = None
            if response.success and response.data is not None:
                remote = self._codec.decrypt_snapshot(response.data)
        except EnvSyncError as exc:
            raise self._wrap(exc, SyncPhase.PULL, environment) from exc
        if remote is None:
            raise SyncError(
                SyncPhase.PULL, environment, "remote environment has no variables; push it first"
            )
        await self._push_locked(environment, {**remote, **rotated}, reason="Rotation")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def run_once(self, session: SyncSession) -> list[SyncResult]:
        """Run a one-shot sync: push then pull, or a single direction.

        The first failure propagates and halts the session.

        Raises:
            SyncError: Naming the failed phase and environment.
        """
        self._begin(SessionMode.ONE_SHOT)
        results: list[SyncResult] = []
        try:
            if session.direction != SyncDirection.PULL_ONLY:
                reason = (
                    "One-time sync"
                    if session.direction == SyncDirection.BIDIRECTIONAL
                    else "Push-only sync"
                )
                results.append(await self.push(session.environment, reason=reason))
            if session.direction != SyncDirection.PUSH_ONLY:
                results.append(await self.pull(session.environment))
        finally:
            self._state = SessionState.TERMINATED
        return results

    async def watch(self, session: SyncSession) -> None:
        """Run a watch session until ``session.cancel()`` is called.

        Starts the detector and, unless push-only, the poller.  Push and
        poll failures are logged and the session keeps running.  On
        cancellation the detector is stopped and both background tasks
        are cancelled and awaited before returning.
        """
        self._begin(SessionMode.WATCH)
        detector = LocalChangeDetector(
            self._env_file, debounce=self._debounce, observe=self._observe
        )
        self.detector = detector
        tasks: list[asyncio.Task[None]] = []

        logger.info("Sync mode active - watching for changes...")
        logger.info("  Local:  %s", self._env_file)
        logger.info("  Remote: %s environment", session.environment)

        try:
            detector.start()
            tasks.append(
                asyncio.create_task(
                    self._push_worker(session, detector), name="env-sync-push"
                )
            )
            if session.direction != SyncDirection.PUSH_ONLY:
                poller = self._make_poller(
                    session.environment,
                    interval=session.poll_interval,
                    detector=detector,
                )
                tasks.append(
                    asyncio.create_task(
                        poller.run(session.cancel_event), name="env-sync-poll"
                    )
                )

            cancel_wait = asyncio.create_task(session.cancel_event.wait())
            try:
                done, _ = await asyncio.wait(
                    [cancel_wait, *tasks], return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                cancel_wait.cancel()
            for task in done:
                if task is not cancel_wait and task.exception() is not None:
                    raise task.exception()  # type: ignore[misc]
        finally:
            logger.info("Stopping sync mode...")
            detector.stop()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self.detector = None
            self._state = SessionState.TERMINATED

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _push_worker(
        self, session: SyncSession, detector: LocalChangeDetector
    ) -> None:
        """Consume detector messages in order and push each net change."""
        while True:
            event = await detector.events.get()
            latest, coalesced = self._drain(detector.events, event)
            if latest is None:
                continue
            if session.direction == SyncDirection.PULL_ONLY:
                continue

            changes = latest.changes or ChangeSet()
            logger.info("Local change detected at %s", latest.timestamp.astimezone().strftime("%X"))
            if changes.added:
                logger.info("  Added: %s", ", ".join(sorted(changes.added)))
            if changes.modified:
                logger.info("  Modified: %s", ", ".join(sorted(changes.modified)))
            if changes.removed:
                logger.info("  Removed: %s", ", ".join(sorted(changes.removed)))
            if coalesced:
                logger.debug("Coalesced %d queued change(s) into one push", coalesced)

            try:
                await self.push(
                    session.environment,
                    snapshot=latest.snapshot,
                    reason="Local changes detected",
                )
            except SyncError as exc:
                logger.error("Push failed, will retry on next change: %s", exc)

    @staticmethod
    def _drain(
        queue: asyncio.Queue[LocalChange], first: LocalChange
    ) -> tuple[LocalChange | None, int]:
        """Collapse *first* and everything already queued into the newest change.

        Returns the newest non-error message (or ``None``) and how many
        earlier change messages it superseded.
        """
        pending = [first]
        while not queue.empty():
            pending.append(queue.get_nowait())

        latest: LocalChange | None = None
        superseded = 0
        for item in pending:
            if item.error is not None:
                logger.error("Watcher error: %s", item.error)
                continue
            if latest is not None:
                superseded += 1
            latest = item
        return latest, superseded

    def _begin(self, mode: SessionMode) -> None:
        if self._state != SessionState.IDLE:
            raise RuntimeError(f"Orchestrator session already {self._state.value}")
        self._state = SessionState.RUNNING
        self._mode = mode

    def _make_poller(
        self,
        environment: str,
        *,
        interval: float = 60.0,
        detector: LocalChangeDetector | None = None,
    ) -> RemotePoller:
        return RemotePoller(
            self._store,
            self._codec,
            self._project,
            environment,
            self._env_file,
            interval=interval,
            detector=detector if detector is not None else self.detector,
            lock=self._lock,
        )

    def _read_local(self, environment: str) -> PlainSnapshot:
        if not self._env_file.exists():
            raise SyncError(
                SyncPhase.READ, environment, f"Local file not found: {self._env_file}"
            )
        try:
            return read_env_file(self._env_file)
        except FileIOError as exc:
            raise SyncError(SyncPhase.READ, environment, str(exc)) from exc

    @staticmethod
    def _wrap(exc: EnvSyncError, default: SyncPhase, environment: str) -> SyncError:
        if isinstance(exc, DecryptionError):
            return SyncError(SyncPhase.DECRYPT, environment, str(exc))
        if isinstance(exc, FileIOError):
            return SyncError(exc.phase, environment, str(exc))
        return SyncError(default, environment, str(exc))
