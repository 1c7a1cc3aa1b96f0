"""Tests for the httpx-backed remote store using ``httpx.MockTransport``."""

from __future__ import annotations

import json

import httpx
import pytest

from env_sync.errors import TransportError
from env_sync.remote import HttpRemoteStore, build_http_client
from env_sync.sync.crypto import CryptoCodec


def _store(handler) -> HttpRemoteStore:
    client = build_http_client(
        api_url="https://api.example.test/",
        token="t0ken",
        transport=httpx.MockTransport(handler),
    )
    return HttpRemoteStore(client)


class TestBuildClient:
    def test_requires_token(self, monkeypatch):
        monkeypatch.setattr("env_sync.remote.auth.settings.token", "")
        with pytest.raises(ValueError, match="token"):
            build_http_client(api_url="https://api.example.test")

    def test_requires_url(self, monkeypatch):
        monkeypatch.setattr("env_sync.remote.auth.settings.api_url", "")
        with pytest.raises(ValueError, match="URL"):
            build_http_client(token="t0ken")


class TestPush:
    @pytest.mark.asyncio
    async def test_push_sends_full_set_with_wire_names(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.raw_path.decode()
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "message": "stored"})

        records = CryptoCodec("acme api").encrypt_snapshot({"SECRET_KEY": "abc"})
        async with _store(handler) as store:
            response = await store.push_snapshot("acme api", "dev/eu", records)

        assert response.success
        assert response.message == "stored"
        assert seen["method"] == "PUT"
        assert seen["path"] == "/projects/acme%20api/environments/dev%2Feu/variables"
        assert seen["auth"] == "Bearer t0ken"
        [wire] = seen["body"]["variables"]
        assert set(wire) == {"key", "encryptedValue", "iv", "authTag", "isSecret"}
        assert wire["isSecret"] is True

    @pytest.mark.asyncio
    async def test_push_reports_rejection(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "message": "read-only role"})

        async with _store(handler) as store:
            response = await store.push_snapshot("acme", "dev", [])
        assert not response.success
        assert response.message == "read-only role"

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        async with _store(handler) as store:
            with pytest.raises(TransportError, match="503"):
                await store.push_snapshot("acme", "dev", [])

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _store(handler) as store:
            with pytest.raises(TransportError, match="connection refused"):
                await store.push_snapshot("acme", "dev", [])


class TestPull:
    @pytest.mark.asyncio
    async def test_pull_parses_records(self):
        codec = CryptoCodec("acme")
        records = codec.encrypt_snapshot({"A": "1", "B": "2"})
        payload = {"variables": [r.model_dump(by_alias=True) for r in records]}

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            return httpx.Response(200, json=payload)

        async with _store(handler) as store:
            response = await store.pull_snapshot("acme", "dev")

        assert response.success
        assert codec.decrypt_snapshot(response.data) == {"A": "1", "B": "2"}

    @pytest.mark.asyncio
    async def test_not_found_is_absent(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "no such environment"})

        async with _store(handler) as store:
            response = await store.pull_snapshot("acme", "dev")
        assert response.success
        assert response.data is None

    @pytest.mark.asyncio
    async def test_empty_variables_is_present_but_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"variables": []})

        async with _store(handler) as store:
            response = await store.pull_snapshot("acme", "dev")
        assert response.data == []

    @pytest.mark.asyncio
    async def test_malformed_payload_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"variables": [{"key": "A"}]})

        async with _store(handler) as store:
            with pytest.raises(TransportError, match="Malformed"):
                await store.pull_snapshot("acme", "dev")

    @pytest.mark.asyncio
    async def test_non_json_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        async with _store(handler) as store:
            with pytest.raises(TransportError):
                await store.pull_snapshot("acme", "dev")

    @pytest.mark.asyncio
    async def test_non_list_variables_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"variables": 5})

        async with _store(handler) as store:
            with pytest.raises(TransportError, match="not a list"):
                await store.pull_snapshot("acme", "dev")
