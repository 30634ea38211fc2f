"""
Command-line client for the composition launcher.

Talks to a running kitty-controller over HTTP.
"""

import json
import os
import sys

import click

from . import client
from .client import DEFAULT_SERVER_URL


def get_server_url(cli_arg: str | None = None) -> str:
    """
    Get the launcher URL.

    Priority: --server option, then KITTY_SERVER_URL, then the default.
    """
    if cli_arg:
        return cli_arg
    return os.environ.get("KITTY_SERVER_URL", DEFAULT_SERVER_URL)


def fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2))


@click.group()
@click.option("--server", "server", default=None, help="Launcher URL (or KITTY_SERVER_URL)")
@click.pass_context
def cli(ctx: click.Context, server: str | None):
    """Container Kitty - start and stop docker compose compositions."""
    ctx.ensure_object(dict)
    ctx.obj["server_url"] = get_server_url(server)


@cli.command("status")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, json_output: bool):
    """Show the running/stopped summary and the active session."""
    try:
        result = client.get_status(ctx.obj["server_url"])
    except RuntimeError as e:
        fail(e)

    if json_output:
        echo_json(result)
        return

    summary = result["summary"]
    session = result["session"]
    click.echo(summary["label"])
    click.echo(f"  Session:  {session['state']}")
    click.echo(f"  Project:  {session['active_project_id'] or '-'}")
    click.echo(f"  Running:  {', '.join(result['running_projects']) or '-'}")
    click.echo(f"  Docker:   {result['engine_path'] or 'Not found'}")
    if not result["start_stop_enabled"]:
        click.echo("  Start/stop is disabled (no working directory)")
    for container in summary["not_running"]:
        click.echo(f"  ! {container['name']} ({container['status']})")


@cli.command("containers")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def containers(ctx: click.Context, json_output: bool):
    """List live containers."""
    try:
        result = client.list_containers(ctx.obj["server_url"])
    except RuntimeError as e:
        fail(e)

    if json_output:
        echo_json(result)
        return

    rows = result["containers"]
    if not rows:
        click.echo("No containers running.")
        return

    click.echo(f"\n{'NAME':<30} {'IMAGE':<30} {'PROJECT':<20} {'STATUS':<25}")
    click.echo("-" * 108)
    for row in rows:
        marker = "*" if row["name"] == result["selected"] else " "
        click.echo(
            f"{marker}{row['name']:<29} {row['image']:<30} "
            f"{row['project'] or '-':<20} {row['status']:<25}"
        )
    click.echo()


@cli.command("compositions")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def compositions(ctx: click.Context, json_output: bool):
    """List selectable composition/version pairs."""
    try:
        result = client.list_compositions(ctx.obj["server_url"])
    except RuntimeError as e:
        fail(e)

    if json_output:
        echo_json(result)
        return

    pairs = result["pairs"]
    if not pairs:
        click.echo("No compositions available. Try 'kitty refresh'.")
        return

    click.echo(f"\n{'COMPOSITION':<20} {'VERSION':<15} {'COMMENT':<40}")
    click.echo("-" * 77)
    for pair in pairs:
        click.echo(
            f"{pair['composition']:<20} {pair['version']:<15} "
            f"{pair['composition_comment']:<40}"
        )
    click.echo()


@cli.command("refresh")
@click.option("--wait", is_flag=True, help="Wait for the refresh to finish")
@click.pass_context
def refresh(ctx: click.Context, wait: bool):
    """Re-read the compositions manifest."""
    try:
        client.refresh(ctx.obj["server_url"], wait=wait)
    except RuntimeError as e:
        fail(e)
    click.echo("Refreshed compositions and versions." if wait else "Refresh queued.")


@cli.command("start")
@click.argument("composition")
@click.argument("version")
@click.option("--wait", is_flag=True, help="Wait until the composition is up")
@click.pass_context
def start(ctx: click.Context, composition: str, version: str, wait: bool):
    """Start COMPOSITION at VERSION."""
    try:
        result = client.start(composition, version, ctx.obj["server_url"], wait=wait)
    except RuntimeError as e:
        fail(e)

    if wait:
        click.echo(f"✓ Started {composition} / {version} as {result['result']}")
    else:
        click.echo(f"Start of {composition} / {version} queued.")


@cli.command("stop")
@click.argument("project_id", required=False)
@click.option("--wait", is_flag=True, help="Wait until the project is down")
@click.pass_context
def stop(ctx: click.Context, project_id: str | None, wait: bool):
    """Stop PROJECT_ID, or the active composition."""
    try:
        result = client.stop(project_id, ctx.obj["server_url"], wait=wait)
    except RuntimeError as e:
        fail(e)

    if not wait:
        click.echo("Stop queued.")
    elif result["result"]:
        click.echo(f"✓ Took down {project_id or 'the active composition'}")
    else:
        click.echo("No composition is currently running; nothing to stop.")


@cli.command("stop-all")
@click.option("--wait", is_flag=True, help="Wait until every project is down")
@click.pass_context
def stop_all(ctx: click.Context, wait: bool):
    """Stop every running composition, however it was started."""
    try:
        result = client.stop_all(ctx.obj["server_url"], wait=wait)
    except RuntimeError as e:
        fail(e)

    if not wait:
        click.echo("Stop of all projects queued.")
        return
    outcome = result["result"]
    if not outcome:
        click.echo("No running projects to stop.")
    for project, code in outcome.items():
        mark = "✓" if code == 0 else "✗"
        click.echo(f"{mark} {project} ({code})")


@cli.command("notifications")
@click.option("--since", type=int, default=0, help="Only notifications after this id")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def notifications(ctx: click.Context, since: int, json_output: bool):
    """Show errors reported by the launcher."""
    try:
        items = client.list_notifications(since, ctx.obj["server_url"])
    except RuntimeError as e:
        fail(e)

    if json_output:
        echo_json(items)
        return
    if not items:
        click.echo("No notifications.")
        return
    for item in items:
        click.echo(f"[{item['id']}] {item['created_at']} {item['message']}")


def main():
    """Main entry point for the kitty CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
