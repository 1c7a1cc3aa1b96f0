"""Builds the configured ``httpx.AsyncClient`` used by the remote store."""

from __future__ import annotations

import httpx

from env_sync.config import settings


def build_http_client(
    *,
    api_url: str | None = None,
    token: str | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build an ``httpx.AsyncClient`` authenticated with a bearer token.

    Parameters default to the values in ``settings``.  ``transport`` is
    accepted so tests can substitute ``httpx.MockTransport``.

    Raises:
        ValueError: If the API URL or token are empty after resolving defaults.
    """
    resolved_url = api_url or settings.api_url
    resolved_token = token or settings.token
    resolved_timeout = timeout if timeout is not None else settings.timeout

    if not resolved_url:
        raise ValueError(
            "API URL is required. Set ENV_SYNC_API_URL env var or pass api_url explicitly."
        )
    if not resolved_token:
        raise ValueError(
            "API token is required. Set ENV_SYNC_TOKEN env var or pass token explicitly."
        )

    return httpx.AsyncClient(
        base_url=resolved_url.rstrip("/"),
        headers={
            "Authorization": f"Bearer {resolved_token}",
            "Accept": "application/json",
        },
        timeout=resolved_timeout,
        transport=transport,
    )
