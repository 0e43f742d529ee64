"""
CLI: ``envclone shell | exec | ssh-config | code``: getting into the dev container.
"""

from __future__ import annotations

import os
import shutil
import sys

import typer

from envclone.cli.utils import console, get_context, handle_errors
from envclone.config import load_devcontainer
from envclone.core.errors import CommandError, ConfigError, EnvcloneError, NotRunningError
from envclone.core.logging import get_logger
from envclone.ssh.config import host_alias, render_host_entry, write_ssh_config
from envclone.ssh.server import SSHBootstrap, find_public_key

logger = get_logger(__name__)

VSCODE_CANDIDATES = (
    "/Applications/Visual Studio Code.app/Contents/Resources/app/bin/code",
    "/usr/share/code/bin/code",
    "/snap/bin/code",
)


def find_vscode() -> str | None:
    """The ``code`` CLI: PATH first, then the usual install locations."""
    found = shutil.which("code")
    if found:
        return found
    for candidate in VSCODE_CANDIDATES:
        if os.path.exists(candidate):
            return candidate
    return None


def shell(ctx: typer.Context) -> None:
    """Open a login shell in the dev container."""
    cli = get_context(ctx)
    with handle_errors():
        descriptor = cli.store.load(cli.project_dir)
        try:
            cli.manager().shell(descriptor)
        except CommandError as exc:
            # the shell's own exit status
            raise typer.Exit(code=exc.returncode) from exc


def exec_(
    ctx: typer.Context,
    command: list[str] = typer.Argument(..., help="Command and arguments to run."),
) -> None:
    """Run a command in the dev container."""
    cli = get_context(ctx)
    with handle_errors():
        descriptor = cli.store.load(cli.project_dir)
        try:
            cli.manager().exec(descriptor, command, tty=sys.stdin.isatty())
        except CommandError as exc:
            raise typer.Exit(code=exc.returncode) from exc


def ssh_config(ctx: typer.Context) -> None:
    """Print the SSH host entry for the dev environment."""
    cli = get_context(ctx)
    with handle_errors():
        descriptor = cli.store.load(cli.project_dir)
    typer.echo(render_host_entry(descriptor.identity.key, descriptor.ssh_port, descriptor.remote_user))


def code(ctx: typer.Context) -> None:
    """Open VS Code connected to the dev container over SSH."""
    cli = get_context(ctx)
    with handle_errors():
        descriptor = cli.store.load(cli.project_dir)
        manager = cli.manager()
        if not manager.is_running(descriptor):
            raise NotRunningError(descriptor.dev_container)

        key = descriptor.identity.key
        console.print("Setting up SSH in dev container...")
        bootstrap = SSHBootstrap(cli.platform, cli.runner)
        bootstrap.setup_sshd(descriptor.dev_container, descriptor.ssh_port)
        bootstrap.inject_authorized_key(descriptor.dev_container, descriptor.remote_user, find_public_key())

        write_ssh_config(key, descriptor.ssh_port, descriptor.remote_user)
        console.print(f"Updated ~/.ssh/config with host {host_alias(key)}", highlight=False)

        workspace_mount = cli.settings.default_workspace_mount
        try:
            config = load_devcontainer(cli.project_dir)
            workspace_mount = config.workspace_mount or workspace_mount
        except ConfigError as exc:
            logger.debug("code.config_unreadable", project_dir=str(cli.project_dir), error=exc.message)

        folder_uri = f"vscode-remote://ssh-remote+{host_alias(key)}{workspace_mount}"
        console.print(f"Opening VS Code: {folder_uri}", highlight=False)

        code_path = find_vscode()
        if code_path is None:
            raise EnvcloneError(
                "VS Code 'code' command not found",
                hint="Install it via: VS Code > Command Palette > 'Shell Command: Install code command in PATH'",
            )
        cli.runner.start([code_path, "--folder-uri", folder_uri])
