"""
Root Typer application for the envclone CLI.

Global options are parsed once in the callback into a
:class:`~envclone.cli.utils.CliContext` stored on ``ctx.obj``; every
command reads it back with ``get_context(ctx)``.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.markup import escape
from typer import Typer

from envclone.cli import attach, lifecycle
from envclone.cli.utils import CliContext, err_console, print_error
from envclone.core.errors import EnvcloneError
from envclone.core.logging import configure_logging
from envclone.core.settings import get_settings

app = Typer(
    name="envclone",
    help="envclone: containerized dev environments with sidecar services.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_VERBOSITY = {0: None, 1: "INFO", 2: "DEBUG"}


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("envclone")
        except PackageNotFoundError:
            from envclone import __version__ as v
        typer.echo(f"envclone {v}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    project_dir: Path | None = typer.Option(
        None,
        "--project-dir",
        help="Project directory (defaults to the current directory).",
        file_okay=False,
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Log more (-v info, -vv debug)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print engine commands instead of running them."),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """envclone: dev containers plus sidecar services in one network namespace."""
    try:
        settings = get_settings()
    except ValueError as exc:
        err_console.print(f"[bold red]Error:[/bold red] invalid ENVCLONE_* settings: {escape(str(exc))}")
        raise typer.Exit(code=1) from exc

    if dry_run:
        settings = settings.model_copy(update={"dry_run": True})
    level = _VERBOSITY.get(min(verbose, 2)) or settings.log_level
    configure_logging(level=level, json_format=settings.json_logs)

    ctx.obj = CliContext(
        project_dir=(project_dir or Path.cwd()).absolute(),
        settings=settings,
    )


# ── Command registration ─────────────────────────────────────────────────

app.command("init")(lifecycle.init)
app.command("up")(lifecycle.up)
app.command("down")(lifecycle.down)
app.command("status")(lifecycle.status)
app.command("shell")(attach.shell)
app.command(
    "exec",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)(attach.exec_)
app.command("ssh-config")(attach.ssh_config)
app.command("code")(attach.code)


def main() -> None:
    """Console-script entry point."""
    try:
        app()
    except EnvcloneError as exc:
        print_error(exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
