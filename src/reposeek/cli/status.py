"""reposeek status command - poll a provisioning request."""

import json

import click
import httpx

from reposeek.cli.utils import load_cli_config


@click.command()
@click.argument("request_id")
@click.option("--url", "base_url", default=None, help="Server URL (default: from config)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status_command(ctx: click.Context, request_id: str, base_url: str | None, as_json: bool) -> None:
    """Show the status of project creation REQUEST_ID on a running server."""
    if base_url is None:
        server = load_cli_config(ctx).server
        base_url = f"http://{server.host}:{server.port}"

    try:
        response = httpx.get(
            f"{base_url.rstrip('/')}/api/project-creations/{request_id}",
            timeout=5.0,
        )
        data = response.json()
    except (httpx.RequestError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Server unavailable at {base_url} ({e})") from e

    if response.status_code == 404:
        raise click.ClickException(f"Unknown request: {request_id}")
    if response.status_code >= 400:
        raise click.ClickException(data.get("message", f"HTTP {response.status_code}"))

    if as_json:
        click.echo(json.dumps(data))
        return

    click.echo(f"Request: {data['id']}")
    click.echo(f"Status: {data['status']}")
    if data.get("fileCount") is not None:
        click.echo(f"Files: {data['fileCount']}")
    project = data.get("project")
    if project:
        click.echo(f"Project: {project['name']} ({project['id']})")
    indexing = data.get("indexingStatus") or {}
    click.echo(
        f"Indexed files: {indexing.get('embeddingsCount', 0)}"
        f"{' (complete)' if indexing.get('isFullyIndexed') else ''}"
    )
    if data.get("error"):
        click.echo(f"Error: {data['error']}")
