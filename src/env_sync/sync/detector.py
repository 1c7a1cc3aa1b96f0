"""Debounced change detection for the local key-value file.

The detector keeps a private ``Baseline`` of the last snapshot it has
seen.  File-system notifications (delivered by a ``watchdog`` observer
thread and bridged onto the asyncio loop) restart a single debounce
timer; when the timer fires the file is re-read, diffed against the
baseline, and a ``LocalChange`` is put on the outgoing queue if
anything differs.

All state transitions run on the event loop thread, so the baseline is
never touched concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from env_sync.envfile import PlainSnapshot, compute_content_hash, parse_env, serialize_env
from env_sync.errors import FileIOError
from env_sync.sync.differ import ChangeSet, SnapshotDiffer

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0


class DetectorState(StrEnum):
    IDLE = "idle"
    WATCHING = "watching"
    DEBOUNCING = "debouncing"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Baseline:
    """Last snapshot observed (or written) for the watched file."""

    snapshot: PlainSnapshot
    content_hash: str

    @classmethod
    def from_content(cls, content: str) -> Baseline:
        return cls(snapshot=parse_env(content), content_hash=compute_content_hash(content))

    @classmethod
    def from_snapshot(cls, snapshot: PlainSnapshot) -> Baseline:
        return cls(
            snapshot=dict(snapshot),
            content_hash=compute_content_hash(serialize_env(snapshot)),
        )


@dataclass(frozen=True)
class LocalChange:
    """Message put on the detector queue.

    Exactly one of ``changes`` or ``error`` is set.
    """

    changes: ChangeSet | None = None
    snapshot: PlainSnapshot = field(default_factory=dict)
    error: Exception | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class _EnvFileHandler(FileSystemEventHandler):
    """Forwards events for one file from the observer thread to the loop."""

    def __init__(self, target: str, loop: asyncio.AbstractEventLoop, callback) -> None:
        self._target = target
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(p and os.path.abspath(os.fsdecode(p)) == self._target for p in paths):
            self._loop.call_soon_threadsafe(self._callback)


class LocalChangeDetector:
    """Watches one file and emits debounced ``LocalChange`` messages.

    Args:
        path: The file to watch.
        events: Queue that receives ``LocalChange`` messages.  A new
            queue is created when omitted.
        debounce: Quiet period in seconds before a burst of
            notifications is processed.
        observe: When ``False`` no file-system observer is started and
            notifications must be delivered through ``notify()``.
    """

    def __init__(
        self,
        path: str | Path,
        events: asyncio.Queue[LocalChange] | None = None,
        *,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        observe: bool = True,
    ) -> None:
        self._path = Path(path)
        self.events: asyncio.Queue[LocalChange] = events if events is not None else asyncio.Queue()
        self._debounce = debounce
        self._observe = observe
        self._state = DetectorState.IDLE
        self._baseline = Baseline.from_snapshot({})
        self._timer: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer: Observer | None = None

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def baseline(self) -> Baseline:
        return self._baseline

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Record the initial baseline and begin monitoring.

        Must be called from a coroutine running on the event loop that
        will consume ``events``.
        """
        if self._state in (DetectorState.WATCHING, DetectorState.DEBOUNCING):
            self.stop()

        self._loop = asyncio.get_running_loop()
        logger.debug("Starting file watcher for: %s", self._path)

        try:
            content = self._path.read_text(encoding="utf-8")
        except OSError:
            logger.warning("Could not read initial file content: %s", self._path)
            content = ""
        self._baseline = Baseline.from_content(content)

        if self._observe:
            target = os.path.abspath(self._path)
            handler = _EnvFileHandler(target, self._loop, self.notify)
            observer = Observer()
            observer.schedule(handler, os.path.dirname(target), recursive=False)
            observer.daemon = True
            observer.start()
            self._observer = observer

        self._state = DetectorState.WATCHING

    def stop(self) -> None:
        """Cancel any pending timer and release the observer.  Idempotent."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.debug("File watcher stopped")

        if self._state != DetectorState.IDLE:
            self._state = DetectorState.STOPPED

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notify(self) -> None:
        """Handle one raw change notification by restarting the debounce timer."""
        if self._state not in (DetectorState.WATCHING, DetectorState.DEBOUNCING):
            return
        if self._loop is None:
            raise RuntimeError("Detector has no event loop; call start() first")

        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self._debounce, self._on_timer)
        self._state = DetectorState.DEBOUNCING

    def _on_timer(self) -> None:
        self._timer = None
        if self._state != DetectorState.DEBOUNCING:
            return
        self._state = DetectorState.WATCHING
        self.check()

    def check(self) -> ChangeSet | None:
        """Re-read the file and emit a change against the baseline.

        Returns the emitted ``ChangeSet`` or ``None`` when nothing
        changed or the read failed.  A read failure (including a deleted
        file) is put on the queue as an error message; the detector
        keeps watching.
        """
        try:
            content = self._read()
        except FileIOError as exc:
            logger.error("Error processing file change: %s", exc)
            self.events.put_nowait(LocalChange(error=exc))
            return None

        current = Baseline.from_content(content)
        if current.content_hash == self._baseline.content_hash:
            return None

        changes = SnapshotDiffer.diff(self._baseline.snapshot, current.snapshot)
        if changes.is_empty:
            # Comment or formatting edits only.
            self._baseline = current
            return None

        logger.debug("Environment variables changed: %s", changes.summary())
        self._baseline = current
        self.events.put_nowait(LocalChange(changes=changes, snapshot=dict(current.snapshot)))
        return changes

    def resync(self, snapshot: PlainSnapshot) -> None:
        """Adopt *snapshot* as the baseline after a program-initiated write.

        A notification caused by that write then diffs to nothing and
        emits no event.
        """
        self._baseline = Baseline.from_snapshot(snapshot)
        logger.debug("Baseline resynced (%d variables)", len(snapshot))

    def _read(self) -> str:
        try:
            return self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FileIOError(f"Could not read {self._path}: {exc}", path=str(self._path)) from exc
