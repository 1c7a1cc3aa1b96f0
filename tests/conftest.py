"""Shared test fixtures for env-sync."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from env_sync.errors import TransportError
from env_sync.sync.crypto import CryptoCodec
from env_sync.sync.models import EncryptedRecord, PullResponse, PushResponse

PROJECT = "acme-api"


class FakeRemoteStore:
    """In-memory ``RemoteStore`` with failure injection and concurrency tracking."""

    def __init__(self, delay: float = 0.0) -> None:
        self.snapshots: dict[tuple[str, str], list[EncryptedRecord]] = {}
        self.delay = delay
        self.push_calls = 0
        self.pull_calls = 0
        self.fail_pushes = 0
        self.fail_pulls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def __aenter__(self) -> FakeRemoteStore:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def _enter(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        if self.delay:
            await asyncio.sleep(self.delay)

    async def push_snapshot(
        self, project: str, environment: str, records: list[EncryptedRecord]
    ) -> PushResponse:
        self.push_calls += 1
        try:
            await self._enter()
            if self.fail_pushes:
                self.fail_pushes -= 1
                raise TransportError("network down")
            self.snapshots[(project, environment)] = list(records)
            return PushResponse(success=True, message=f"Pushed {len(records)} variables")
        finally:
            self.in_flight -= 1

    async def pull_snapshot(self, project: str, environment: str) -> PullResponse:
        self.pull_calls += 1
        try:
            await self._enter()
            if self.fail_pulls:
                self.fail_pulls -= 1
                raise TransportError("network down")
            records = self.snapshots.get((project, environment))
            if records is None:
                return PullResponse(success=True, message="No remote variables")
            return PullResponse(success=True, data=list(records))
        finally:
            self.in_flight -= 1

    def seed(self, environment: str, snapshot: dict[str, str], project: str = PROJECT) -> None:
        """Store *snapshot* encrypted with the project's codec."""
        self.snapshots[(project, environment)] = CryptoCodec(project).encrypt_snapshot(snapshot)

    def plain(self, environment: str, project: str = PROJECT) -> dict[str, str] | None:
        records = self.snapshots.get((project, environment))
        if records is None:
            return None
        return CryptoCodec(project).decrypt_snapshot(records)


@pytest.fixture
def store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def env_file(tmp_path: Path) -> Path:
    """A local .env file containing ``A=1``."""
    path = tmp_path / ".env"
    path.write_text("A=1\n", encoding="utf-8")
    return path


@pytest.fixture
def eventually() -> Callable:
    """Poll an async condition until it holds or a timeout expires."""

    async def _eventually(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _eventually
