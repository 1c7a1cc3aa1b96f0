"""MCP server exposing env-sync operations as tools.

Run with:
    env-sync-mcp
    # or
    python -m env_sync.server
"""

from __future__ import annotations

from pathlib import Path

from mcp.server.fastmcp import FastMCP

from env_sync.config import find_project_root, load_project_config, settings
from env_sync.remote import HttpRemoteStore
from env_sync.sync.engine import SyncOrchestrator
from env_sync.tools.sync_tools import register_sync_tools

mcp = FastMCP(
    "env-sync",
    instructions=(
        "env-sync MCP server for keeping a local .env file in sync with "
        "an encrypted remote copy. Use these tools to push, pull, diff "
        "and sync environments."
    ),
)


def _initialize() -> None:
    """Initialize all components and register tools."""
    settings.validate()

    project_root = find_project_root(Path.cwd())
    if project_root is None:
        raise RuntimeError("No .env-sync.json found. Run: env-sync init <project>")
    project = load_project_config(project_root)
    env_file = project_root / settings.env_file
    store = HttpRemoteStore()

    def orchestrator_factory() -> SyncOrchestrator:
        return SyncOrchestrator(
            store, project.project_name, env_file, debounce=settings.debounce
        )

    register_sync_tools(mcp, orchestrator_factory, project.default_environment)


def main() -> None:
    """Entry point for the MCP server."""
    _initialize()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
