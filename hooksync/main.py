"""
GitHub Hook Sync — CLI Entry Point

Usage:
    python -m hooksync.main sync --project-id acme [--repository-id main]
    python -m hooksync.main sync --payload push.json
    python -m hooksync.main repos
    python -m hooksync.main rewrite-url https://github.com/acme/acme.git
    python -m hooksync.main serve --port 5055
    python -m hooksync.main metrics --url http://127.0.0.1:5055
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import json
import logging
from typing import Any, Dict, Optional

import click

from .config.settings import HookSettings
from .errors import ConfigurationError, InvalidStateError, NotFoundError, RegistryError
from .logging_config import setup_logging
from .sync.urls import redact_url, rewrite


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Settings file (default: $HOOKSYNC_CONFIG or config/hooksync.yaml)")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_level: Optional[str]) -> None:
    """GitHub Hook Sync — keep git mirrors current from push notifications."""
    setup_logging(level=log_level)
    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = HookSettings.load(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.option("--project-id", default=None, help="Project identifier (default: payload repository.name)")
@click.option("--repository-id", default=None, help="Only update this repository of the project")
@click.option("--payload", "payload_file", type=click.File("r"), default=None,
              help="Push notification JSON (use - for stdin)")
@click.option("--json", "as_json", is_flag=True, help="Print outcomes as JSON")
@click.pass_context
def sync(
    ctx: click.Context,
    project_id: Optional[str],
    repository_id: Optional[str],
    payload_file,
    as_json: bool,
) -> None:
    """Update the mirrors of a project, as a webhook delivery would."""
    from .sync.updater import UpdateOrchestrator

    settings: HookSettings = ctx.obj["settings"]

    payload: Dict[str, Any] = {}
    if payload_file is not None:
        try:
            payload = json.load(payload_file)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--payload")

    params: Dict[str, Any] = {}
    if project_id is not None:
        params["project_id"] = project_id
    if repository_id is not None:
        params["repository_id"] = repository_id

    orchestrator = UpdateOrchestrator.from_settings(
        settings, logger=logging.getLogger("hooksync.sync")
    )

    try:
        outcomes = orchestrator.run(payload, params)
    except (NotFoundError, InvalidStateError) as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        ctx.exit(2)
    except RegistryError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps([o.to_dict() for o in outcomes], indent=2))
    else:
        for outcome in outcomes:
            if outcome.success:
                click.secho(f"  ✓ {outcome.repository} ({outcome.elapsed_ms}ms)", fg="green")
            else:
                click.secho(
                    f"  ✗ {outcome.repository} ({outcome.elapsed_ms}ms) — {outcome.reason}",
                    fg="red",
                )

    if not all(o.success for o in outcomes):
        ctx.exit(1)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def repos(ctx: click.Context, as_json: bool) -> None:
    """List registry projects and their repositories."""
    from .persistence.registry_file import JsonFileRegistry

    settings: HookSettings = ctx.obj["settings"]
    try:
        projects = JsonFileRegistry(settings.registry_path).list_projects()
    except RegistryError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps([p.model_dump() for p in projects], indent=2))
        return

    if not projects:
        click.echo(f"No projects in {settings.registry_path}")
        return

    for project in projects:
        click.echo(f"📦 {project.identifier}")
        for repo in project.repositories:
            marker = "" if repo.is_git else f" [{repo.scm}, skipped]"
            click.echo(f"    {repo.identifier}: {redact_url(repo.url)}{marker}")
            if repo.root_url:
                click.echo(f"        root: {repo.root_url}")


@cli.command("rewrite-url")
@click.argument("url")
@click.pass_context
def rewrite_url(ctx: click.Context, url: str) -> None:
    """Show where a remote would be cloned from and mirrored to."""
    settings: HookSettings = ctx.obj["settings"]
    location = rewrite(url, settings.credentials, settings.base_dir)

    click.echo(f"Clone URL:  {redact_url(location.clone_url)}")
    click.echo(f"Local path: {location.local_path}")
    click.echo(f"Relocated:  {'yes' if location.relocated else 'no'}")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", type=int, default=5055, help="Port")
@click.option("--debug", is_flag=True, help="Enable Flask debug mode")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int, debug: bool) -> None:
    """Run the webhook endpoint."""
    from .server.app import run_server

    run_server(host=host, port=port, settings=ctx.obj["settings"], debug=debug)


@cli.command("metrics")
@click.option("--url", default="http://127.0.0.1:5055", show_default=True,
              help="Base URL of the running hook server")
@click.option("--format", "output_format", type=click.Choice(["prometheus", "json"]), default="prometheus")
@click.option("--timeout", type=float, default=10, show_default=True, help="Request timeout (seconds)")
def metrics_cmd(url: str, output_format: str, timeout: float) -> None:
    """Fetch the metrics of a running hook server."""
    import httpx

    params = {"format": "json"} if output_format == "json" else {}
    try:
        response = httpx.get(f"{url.rstrip('/')}/metrics", params=params, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise click.ClickException(f"{url} answered {e.response.status_code}")
    except httpx.RequestError as e:
        raise click.ClickException(f"Cannot reach hook server at {url}: {e}")

    if output_format == "json":
        click.echo(json.dumps(response.json(), indent=2))
    else:
        click.echo(response.text, nl=False)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
