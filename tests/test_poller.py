"""Tests for remote polling and merging into the local file."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from env_sync.envfile import read_env_file
from env_sync.errors import DecryptionError, FileIOError, SyncPhase, TransportError
from env_sync.sync.crypto import CryptoCodec
from env_sync.sync.detector import LocalChangeDetector
from env_sync.sync.differ import ChangeSet
from env_sync.sync.poller import RemotePoller

from conftest import PROJECT, FakeRemoteStore


def _poller(store, env_file, **kwargs) -> RemotePoller:
    return RemotePoller(store, CryptoCodec(PROJECT), PROJECT, "development", env_file, **kwargs)


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_remote_addition_is_merged(self, store: FakeRemoteStore, env_file: Path):
        store.seed("development", {"A": "1", "B": "2"})

        outcome = await _poller(store, env_file).poll_once()

        assert outcome.merged
        assert outcome.changes == ChangeSet(added={"B"})
        assert read_env_file(env_file) == {"A": "1", "B": "2"}

    @pytest.mark.asyncio
    async def test_identical_remote_leaves_file_alone(self, store: FakeRemoteStore, env_file: Path):
        env_file.write_text("# keep me\nA=1\n", encoding="utf-8")
        store.seed("development", {"A": "1"})

        outcome = await _poller(store, env_file).poll_once()

        assert not outcome.merged
        assert outcome.remote == {"A": "1"}
        assert env_file.read_text(encoding="utf-8") == "# keep me\nA=1\n"

    @pytest.mark.asyncio
    async def test_absent_remote(self, store: FakeRemoteStore, env_file: Path):
        outcome = await _poller(store, env_file).poll_once()
        assert outcome.remote is None
        assert not outcome.merged
        assert read_env_file(env_file) == {"A": "1"}

    @pytest.mark.asyncio
    async def test_remote_removal_and_modification_are_merged(
        self, store: FakeRemoteStore, env_file: Path
    ):
        env_file.write_text("A=1\nB=2\n", encoding="utf-8")
        store.seed("development", {"A": "10"})

        outcome = await _poller(store, env_file).poll_once()

        assert outcome.changes == ChangeSet(modified={"A"}, removed={"B"})
        assert read_env_file(env_file) == {"A": "10"}

    @pytest.mark.asyncio
    async def test_merge_resyncs_detector_baseline(self, store: FakeRemoteStore, env_file: Path):
        detector = LocalChangeDetector(env_file, debounce=0.1, observe=False)
        detector.start()
        store.seed("development", {"A": "1", "B": "2"})

        await _poller(store, env_file, detector=detector).poll_once()
        assert detector.baseline.snapshot == {"A": "1", "B": "2"}

        detector.notify()
        await asyncio.sleep(0.3)
        assert detector.events.empty()
        detector.stop()

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, store: FakeRemoteStore, env_file: Path):
        store.fail_pulls = 1
        with pytest.raises(TransportError):
            await _poller(store, env_file).poll_once()

    @pytest.mark.asyncio
    async def test_corrupt_record_raises_and_file_untouched(
        self, store: FakeRemoteStore, env_file: Path
    ):
        store.seed("development", {"A": "2"})
        record = store.snapshots[(PROJECT, "development")][0]
        tampered = ("1" if record.auth_tag[0] == "0" else "0") + record.auth_tag[1:]
        store.snapshots[(PROJECT, "development")] = [
            record.model_copy(update={"auth_tag": tampered})
        ]

        with pytest.raises(DecryptionError):
            await _poller(store, env_file).poll_once()
        assert read_env_file(env_file) == {"A": "1"}

    @pytest.mark.asyncio
    async def test_write_failure_raises_and_keeps_baseline(
        self, store: FakeRemoteStore, env_file: Path, monkeypatch
    ):
        def failing_write(path, snapshot):
            raise FileIOError("disk full", path=str(path), phase=SyncPhase.WRITE)

        monkeypatch.setattr("env_sync.sync.poller.write_env_file", failing_write)
        detector = LocalChangeDetector(env_file, debounce=0.1, observe=False)
        detector.start()
        store.seed("development", {"A": "1", "B": "2"})

        with pytest.raises(FileIOError) as exc_info:
            await _poller(store, env_file, detector=detector).poll_once()
        assert exc_info.value.phase == SyncPhase.WRITE
        assert detector.baseline.snapshot == {"A": "1"}
        detector.stop()


class TestRun:
    @pytest.mark.asyncio
    async def test_ticks_until_stopped(self, store: FakeRemoteStore, env_file: Path, eventually):
        poller = _poller(store, env_file, interval=0.05)
        stop = asyncio.Event()
        task = asyncio.create_task(poller.run(stop))

        await eventually(lambda: poller.ticks >= 3)
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        assert task.done()

    @pytest.mark.asyncio
    async def test_failed_tick_does_not_stop_polling(
        self, store: FakeRemoteStore, env_file: Path, eventually
    ):
        store.fail_pulls = 2
        store.seed("development", {"A": "1", "B": "2"})
        poller = _poller(store, env_file, interval=0.05)
        stop = asyncio.Event()
        task = asyncio.create_task(poller.run(stop))

        await eventually(lambda: read_env_file(env_file) == {"A": "1", "B": "2"})
        assert store.pull_calls >= 3
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    @pytest.mark.asyncio
    async def test_stop_before_first_tick(self, store: FakeRemoteStore, env_file: Path):
        poller = _poller(store, env_file, interval=60)
        stop = asyncio.Event()
        task = asyncio.create_task(poller.run(stop))
        await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        assert store.pull_calls == 0

    def test_interval_must_be_positive(self, store: FakeRemoteStore, env_file: Path):
        with pytest.raises(ValueError):
            _poller(store, env_file, interval=0)

    @pytest.mark.asyncio
    async def test_unexpected_tick_error_does_not_stop_polling(
        self, store: FakeRemoteStore, env_file: Path, eventually, monkeypatch
    ):
        store.seed("development", {"A": "1", "B": "2"})
        pull = store.pull_snapshot
        failures = []

        async def flaky_pull(project, environment):
            if not failures:
                failures.append(1)
                raise TypeError("'int' object is not iterable")
            return await pull(project, environment)

        monkeypatch.setattr(store, "pull_snapshot", flaky_pull)
        poller = _poller(store, env_file, interval=0.05)
        stop = asyncio.Event()
        task = asyncio.create_task(poller.run(stop))

        await eventually(lambda: read_env_file(env_file) == {"A": "1", "B": "2"})
        assert failures == [1]
        assert poller.ticks >= 2
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, store: FakeRemoteStore, env_file: Path):
        store.delay = 5
        poller = _poller(store, env_file, interval=0.01)
        task = asyncio.create_task(poller.run(asyncio.Event()))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
