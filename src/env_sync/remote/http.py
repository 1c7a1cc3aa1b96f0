"""HTTP implementation of ``RemoteStore`` on top of ``httpx``.

Endpoints (relative to ``ENV_SYNC_API_URL``)::

    PUT /projects/{project}/environments/{environment}/variables
    GET /projects/{project}/environments/{environment}/variables

Both carry ``{"variables": [EncryptedRecord, ...]}`` using the wire
field names ``encryptedValue``, ``authTag`` and ``isSecret``.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from env_sync.errors import TransportError
from env_sync.remote.auth import build_http_client
from env_sync.sync.models import EncryptedRecord, PullResponse, PushResponse

logger = logging.getLogger(__name__)


class HttpRemoteStore:
    """Remote store client speaking JSON over HTTP.

    Transport failures and non-2xx responses raise ``TransportError``.
    Nothing is retried here; the next scheduled tick or local change is
    the retry.

    Args:
        client: Optional preconfigured ``httpx.AsyncClient``.  When
            omitted one is built from settings and closed by ``aclose``.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = client is None
        self._client = client or build_http_client()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpRemoteStore:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # RemoteStore
    # ------------------------------------------------------------------

    async def push_snapshot(
        self, project: str, environment: str, records: list[EncryptedRecord]
    ) -> PushResponse:
        """Replace all remote records for (project, environment)."""
        body = {"variables": [r.model_dump(by_alias=True) for r in records]}
        response = await self._request("PUT", self._path(project, environment), json=body)
        data = self._json(response)
        return PushResponse(
            success=bool(data.get("success", True)),
            message=str(data.get("message", f"Pushed {len(records)} variables")),
        )

    async def pull_snapshot(self, project: str, environment: str) -> PullResponse:
        """Fetch the remote records; a 404 means there is nothing to pull."""
        response = await self._request(
            "GET", self._path(project, environment), allow_not_found=True
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return PullResponse(success=True, message="No remote variables", data=None)

        data = self._json(response)
        variables = data.get("variables")
        if variables is None:
            return PullResponse(success=True, message=str(data.get("message", "")), data=None)
        if not isinstance(variables, list):
            raise TransportError("Malformed pull response: 'variables' is not a list")
        try:
            records = [EncryptedRecord.model_validate(v) for v in variables]
        except ValidationError as exc:
            raise TransportError(f"Malformed variables in pull response: {exc}") from exc
        return PullResponse(success=True, message=str(data.get("message", "")), data=records)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _path(project: str, environment: str) -> str:
        return (
            f"/projects/{quote(project, safe='')}"
            f"/environments/{quote(environment, safe='')}/variables"
        )

    async def _request(
        self, method: str, path: str, *, allow_not_found: bool = False, **kwargs: Any
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if allow_not_found and response.status_code == httpx.codes.NOT_FOUND:
            return response
        if response.is_error:
            raise TransportError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}"
            )
        logger.debug("%s %s -> %d", method, path, response.status_code)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError("Failed to parse JSON from remote store") from exc
        if not isinstance(data, dict):
            raise TransportError("Malformed response from remote store")
        return data
