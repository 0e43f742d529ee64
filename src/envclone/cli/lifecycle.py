"""
CLI: ``envclone init | up | down | status``: environment lifecycle commands.

Usage::

    envclone init                 # scaffold .devcontainer/devcontainer.json
    envclone up                   # (re)create the environment
    envclone status               # list the environment's containers
    envclone status --json
    envclone down                 # remove every container of the project
"""

from __future__ import annotations

import typer

from envclone.cli.utils import console, get_context, handle_errors, print_status
from envclone.config import load_devcontainer, write_template
from envclone.core.errors import DescriptorNotFoundError
from envclone.core.logging import bind_context


def init(ctx: typer.Context) -> None:
    """Create a default .devcontainer/devcontainer.json."""
    cli = get_context(ctx)
    with handle_errors():
        path = write_template(cli.project_dir)
    console.print(f"Created {path}", highlight=False)
    console.print("Edit the file to configure your dev environment, then run: [bold]envclone up[/bold]")


def up(ctx: typer.Context) -> None:
    """Start the dev environment, replacing any previous one."""
    cli = get_context(ctx)
    with handle_errors():
        config = load_devcontainer(cli.project_dir)
        manager = cli.manager(config)
        bind_context(project=manager.identity.key)

        cli.platform.ensure_ready(cli.runner)
        with cli.lock():
            descriptor = manager.up()
            # nothing was created
            if not cli.settings.dry_run:
                cli.store.save(descriptor)

    console.print("[bold green]Environment is up![/bold green]")
    console.print(f"  Dev container: {manager.identity.dev_container}", highlight=False)
    console.print(f"  Services:      {len(descriptor.service_ids)}", highlight=False)
    console.print("\nRun 'envclone shell' to open a shell.")
    console.print("Run 'envclone ssh-config' to get the SSH config for your editor.")


def down(ctx: typer.Context) -> None:
    """Stop and remove the dev environment."""
    cli = get_context(ctx)
    with handle_errors():
        descriptor = cli.store.load(cli.project_dir)
        bind_context(project=descriptor.identity.key)
        with cli.lock():
            removed = cli.manager().down(descriptor)
            if not cli.settings.dry_run:
                cli.store.remove(cli.project_dir)
    console.print(f"Environment stopped ({removed} containers removed).")


def status(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show the containers of the dev environment."""
    cli = get_context(ctx)
    with handle_errors():
        try:
            descriptor = cli.store.load(cli.project_dir)
        except DescriptorNotFoundError:
            if json_out:
                typer.echo("[]")
            else:
                console.print("No environment running.")
            return
        infos = cli.manager().status(descriptor)
    print_status(infos, as_json=json_out)
