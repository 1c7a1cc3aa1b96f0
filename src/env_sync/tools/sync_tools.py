"""MCP tools for pushing, pulling and comparing environments."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.server.fastmcp import FastMCP

from env_sync.errors import SyncError
from env_sync.sync.engine import SyncOrchestrator, SyncSession
from env_sync.sync.models import SyncDirection


def _error(exc: SyncError) -> dict[str, Any]:
    return {
        "success": False,
        "message": str(exc),
        "phase": exc.phase.value,
        "environment": exc.environment,
    }


def register_sync_tools(
    mcp: FastMCP,
    orchestrator_factory: Callable[[], SyncOrchestrator],
    default_environment: str,
) -> None:
    """Register push, pull, diff and one-shot sync tools with the MCP server.

    A fresh orchestrator is built per call so each tool invocation is
    its own session.
    """

    @mcp.tool()
    async def push_env(environment: str | None = None) -> dict[str, Any]:
        """Encrypt the local .env file and replace the remote environment with it.

        Args:
            environment: Target environment. Defaults to the project's default.
        """
        env = environment or default_environment
        try:
            result = await orchestrator_factory().push(env, reason="MCP push")
        except SyncError as exc:
            return _error(exc)
        return result.model_dump(mode="json")

    @mcp.tool()
    async def pull_env(environment: str | None = None) -> dict[str, Any]:
        """Pull and decrypt a remote environment into the local .env file.

        Args:
            environment: Source environment. Defaults to the project's default.
        """
        env = environment or default_environment
        try:
            result = await orchestrator_factory().pull(env)
        except SyncError as exc:
            return _error(exc)
        return result.model_dump(mode="json")

    @mcp.tool()
    async def diff_env(environment: str | None = None) -> dict[str, Any]:
        """Compare the local .env file with a remote environment.

        Keys only in the remote are listed as added, keys only in the
        local file as removed.  Modified keys include both values.

        Args:
            environment: Environment to compare against.
        """
        env = environment or default_environment
        try:
            result = await orchestrator_factory().diff(env)
        except SyncError as exc:
            return _error(exc)
        payload = result.model_dump(mode="json")
        payload["in_sync"] = result.in_sync
        return payload

    @mcp.tool()
    async def sync_env(
        environment: str | None = None,
        direction: str = SyncDirection.BIDIRECTIONAL.value,
    ) -> dict[str, Any]:
        """Run a one-shot sync: push then pull, or a single direction.

        Args:
            environment: Environment to sync with.
            direction: One of bidirectional, push_only, pull_only.
        """
        try:
            sync_direction = SyncDirection(direction)
        except ValueError:
            return {"success": False, "message": f"Unknown direction: {direction}"}

        session = SyncSession(
            environment=environment or default_environment,
            direction=sync_direction,
        )
        try:
            results = await orchestrator_factory().run_once(session)
        except SyncError as exc:
            return _error(exc)
        return {
            "success": True,
            "results": [r.model_dump(mode="json") for r in results],
        }
