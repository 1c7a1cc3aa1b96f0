"""CLI entrypoint for env-sync.

Provides one-shot push/pull/diff/rotate commands and a ``sync`` command that
can stay running in watch mode until interrupted.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import click

from env_sync.config import (
    PROJECT_CONFIG_FILENAME,
    ProjectConfig,
    find_project_root,
    load_project_config,
    save_project_config,
    settings,
)
from env_sync.envfile import read_env_file
from env_sync.errors import EnvSyncError
from env_sync.remote import HttpRemoteStore
from env_sync.sync.engine import EnvDiff, SyncOrchestrator, SyncSession
from env_sync.sync.models import SyncDirection
from env_sync.sync.rotation import ROTATION_BACKUP_DIR, SecretType, is_likely_secret

T = TypeVar("T")


@dataclass(frozen=True)
class _Project:
    root: Path
    config: ProjectConfig

    def env_path(self, env_file: str | None) -> Path:
        path = Path(env_file or settings.env_file)
        return path if path.is_absolute() else self.root / path

    def environment(self, env: str | None) -> str:
        return env or self.config.default_environment


def _load_project() -> _Project:
    project_root = find_project_root(Path.cwd())
    if project_root is None:
        click.echo(
            f"Error: no {PROJECT_CONFIG_FILENAME} found. Run: env-sync init <project>",
            err=True,
        )
        sys.exit(1)
    return _Project(project_root, load_project_config(project_root))


def _run(
    project: _Project,
    operation: Callable[[SyncOrchestrator], Awaitable[T]],
    env_file: str | None,
) -> T:
    """Build an orchestrator around an HTTP store and run *operation* on it.

    ``EnvSyncError`` and configuration errors become a message on
    stderr and exit code 1.
    """
    path = project.env_path(env_file)

    async def main() -> T:
        async with HttpRemoteStore() as store:
            orchestrator = SyncOrchestrator(
                store, project.config.project_name, path, debounce=settings.debounce
            )
            return await operation(orchestrator)

    try:
        return asyncio.run(main())
    except (EnvSyncError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """env-sync CLI: keep a local .env file in sync with an encrypted remote copy."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("project_name")
@click.option("--default-env", default="development", help="Default environment.")
def init(project_name: str, default_env: str) -> None:
    """Create .env-sync.json in the current directory."""
    root = Path.cwd()
    if (root / PROJECT_CONFIG_FILENAME).exists():
        click.echo(f"Error: {PROJECT_CONFIG_FILENAME} already exists.", err=True)
        sys.exit(1)
    config = ProjectConfig(project_name=project_name, default_environment=default_env)
    if default_env not in config.environments:
        config.environments.append(default_env)
    path = save_project_config(root, config)
    click.echo(f"Initialized {path}")


@cli.command()
@click.option("-e", "--env", "env", default=None, help="Environment to push to.")
@click.option("-f", "--file", "env_file", default=None, help="Local file (default: .env).")
def push(env: str | None, env_file: str | None) -> None:
    """Encrypt the local file and replace the remote environment with it."""
    project = _load_project()
    environment = project.environment(env)
    result = _run(project, lambda o: o.push(environment, reason="Push"), env_file)
    click.echo(f"OK: {result.message}")
    click.echo(f"  Environment: {environment}")
    click.echo(f"  Secrets detected: {result.secret_count}")


@cli.command()
@click.option("-e", "--env", "env", default=None, help="Environment to pull from.")
@click.option("-f", "--file", "env_file", default=None, help="Local file (default: .env).")
def pull(env: str | None, env_file: str | None) -> None:
    """Download, decrypt and write the remote environment to the local file."""
    project = _load_project()
    environment = project.environment(env)
    result = _run(project, lambda o: o.pull(environment), env_file)
    click.echo(f"OK: {result.message}")
    _echo_changes(result.changes.added, result.changes.modified, result.changes.removed)


@cli.command()
@click.option("-e", "--env", "env", default=None, help="Environment to compare against.")
@click.option("-f", "--file", "env_file", default=None, help="Local file (default: .env).")
def diff(env: str | None, env_file: str | None) -> None:
    """Compare the local file with a remote environment."""
    project = _load_project()
    environment = project.environment(env)
    result: EnvDiff = _run(project, lambda o: o.diff(environment), env_file)

    if not result.remote_present:
        click.echo(f"Remote environment '{environment}' has no variables.")
    if result.in_sync:
        click.echo("Environments are in sync!")
        return

    if result.changes.added:
        click.echo(f"Added in remote ({len(result.changes.added)}):")
        for key in sorted(result.changes.added):
            click.echo(f"  {key}")
    if result.changes.removed:
        click.echo(f"Missing from remote ({len(result.changes.removed)}):")
        for key in sorted(result.changes.removed):
            click.echo(f"  {key}")
    if result.modified:
        click.echo(f"Modified ({len(result.modified)}):")
        for item in result.modified:
            click.echo(f"  {item.key}:")
            click.echo(f"    Local:  {item.old_value}")
            click.echo(f"    Remote: {item.new_value}")
    click.echo(f"\nTo sync local with remote, run: env-sync pull -e {environment}")


@cli.command()
@click.option("-w", "--watch", is_flag=True, help="Keep running and sync continuously.")
@click.option("--push-only", is_flag=True, help="Only sync local -> remote.")
@click.option("--pull-only", is_flag=True, help="Only sync remote -> local.")
@click.option(
    "-i", "--interval", type=float, default=None,
    help="Poll interval in seconds (default: 60).",
)
@click.option("-e", "--env", "env", default=None, help="Environment to sync with.")
@click.option("-f", "--file", "env_file", default=None, help="Local file (default: .env).")
def sync(
    watch: bool,
    push_only: bool,
    pull_only: bool,
    interval: float | None,
    env: str | None,
    env_file: str | None,
) -> None:
    """Sync once, or continuously with --watch, until interrupted."""
    if push_only and pull_only:
        click.echo("Error: --push-only and --pull-only are mutually exclusive.", err=True)
        sys.exit(1)
    if interval is not None and interval <= 0:
        click.echo("Error: --interval must be positive.", err=True)
        sys.exit(1)

    direction = SyncDirection.BIDIRECTIONAL
    if push_only:
        direction = SyncDirection.PUSH_ONLY
    elif pull_only:
        direction = SyncDirection.PULL_ONLY

    project = _load_project()
    session = SyncSession(
        environment=project.environment(env),
        direction=direction,
        poll_interval=interval or settings.poll_interval,
    )

    if not watch:
        results = _run(project, lambda o: o.run_once(session), env_file)
        for result in results:
            click.echo(f"OK: {result.message}")
        return

    async def watch_session(orchestrator: SyncOrchestrator) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, session.cancel)
        click.echo("Press Ctrl+C to stop")
        await orchestrator.watch(session)

    _run(project, watch_session, env_file)
    click.echo("Sync stopped.")


@cli.command()
@click.argument("key", required=False)
@click.option("--all-secrets", is_flag=True, help="Rotate every secret-looking key.")
@click.option(
    "-e", "--environments", default=None,
    help="Comma-separated environments to update (default: project default).",
)
@click.option("-l", "--length", type=int, default=None, help="Secret length.")
@click.option(
    "-t", "--type", "secret_type",
    type=click.Choice([t.value for t in SecretType]),
    default=SecretType.HEX.value,
    help="Secret type.",
)
@click.option("-f", "--force", is_flag=True, help="Skip the confirmation prompt.")
@click.option("--file", "env_file", default=None, help="Local file (default: .env).")
def rotate(
    key: str | None,
    all_secrets: bool,
    environments: str | None,
    length: int | None,
    secret_type: str,
    force: bool,
    env_file: str | None,
) -> None:
    """Replace secrets with generated values locally and in each environment."""
    project = _load_project()
    path = project.env_path(env_file)
    if not path.exists():
        click.echo(f"Error: local file not found: {path}", err=True)
        sys.exit(1)

    if all_secrets:
        try:
            local = read_env_file(path)
        except EnvSyncError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)
        keys = [k for k in local if is_likely_secret(k)]
        if not keys:
            click.echo("No secrets detected in the local file.")
            return
    elif key:
        keys = [key]
    else:
        click.echo("Error: specify a key to rotate or use --all-secrets.", err=True)
        sys.exit(1)

    requested = (
        [e.strip() for e in environments.split(",") if e.strip()]
        if environments
        else [project.config.default_environment]
    )
    targets = [e for e in requested if e in project.config.environments]
    for unknown in sorted(set(requested) - set(targets)):
        click.echo(f"Skipping unknown environment: {unknown}", err=True)
    if not targets:
        click.echo("Error: no valid environments specified.", err=True)
        sys.exit(1)

    if not force:
        click.echo(f"Rotating: {', '.join(keys)}")
        click.echo("This will update:")
        click.echo(f"  Local file {path}")
        for environment in targets:
            click.echo(f"  {environment} environment")
        click.echo("Warning: running applications keep the old values until redeployed.")
        if not click.confirm("Proceed?", default=False):
            click.echo("Rotation cancelled.")
            return

    result = _run(
        project,
        lambda o: o.rotate(
            keys,
            targets,
            secret_type=SecretType(secret_type),
            length=length,
            backup_dir=project.root / ROTATION_BACKUP_DIR,
        ),
        env_file,
    )
    for backup in result.backups:
        click.echo(f"Old value saved to: {backup}")
    for environment in result.updated:
        click.echo(f"OK: {environment} updated")
    for environment, error in result.failed.items():
        click.echo(f"FAILED: {environment}: {error}", err=True)
    if not result.success:
        sys.exit(1)
    click.echo("Rotation complete. Redeploy applications to use the new secrets.")


def _echo_changes(added: set[str], modified: set[str], removed: set[str]) -> None:
    if added:
        click.echo(f"  Added: {', '.join(sorted(added))}")
    if modified:
        click.echo(f"  Modified: {', '.join(sorted(modified))}")
    if removed:
        click.echo(f"  Removed: {', '.join(sorted(removed))}")


if __name__ == "__main__":
    cli()
