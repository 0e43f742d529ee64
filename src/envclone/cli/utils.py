"""
CLI utility helpers: shared invocation context, error rendering, tables.
"""

from __future__ import annotations

import contextlib
import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from envclone.core.errors import EnvcloneError, error_chain
from envclone.core.logging import get_logger
from envclone.core.settings import EnvcloneSettings
from envclone.engine.manager import EnvironmentManager
from envclone.engine.models import ContainerInfo
from envclone.engine.platform import Platform, detect_platform
from envclone.engine.runner import ProcessRunner
from envclone.store import DescriptorStore, ProjectLock

console = Console()
err_console = Console(stderr=True)

logger = get_logger(__name__)


# ── Invocation context ───────────────────────────────────────────────────


@dataclass
class CliContext:
    """Everything a command needs, built from the global options."""

    project_dir: Path
    settings: EnvcloneSettings
    _platform: Platform | None = field(default=None, repr=False)
    _runner: ProcessRunner | None = field(default=None, repr=False)

    @property
    def runner(self) -> ProcessRunner:
        if self._runner is None:
            self._runner = ProcessRunner(
                dry_run=self.settings.dry_run,
                timeout=self.settings.command_timeout,
            )
        return self._runner

    @property
    def platform(self) -> Platform:
        if self._platform is None:
            self._platform = detect_platform(self.settings)
            logger.debug("platform.detected", platform=self._platform.name)
        return self._platform

    @property
    def store(self) -> DescriptorStore:
        return DescriptorStore(self.settings.state_dir)

    def manager(self, config=None) -> EnvironmentManager:
        return EnvironmentManager(
            self.platform,
            self.runner,
            self.project_dir,
            config,
            anchor_image=self.settings.anchor_image,
            default_remote_user=self.settings.default_remote_user,
            default_workspace_mount=self.settings.default_workspace_mount,
        )

    def lock(self) -> contextlib.AbstractContextManager:
        """Per-project lock when enabled in settings, else a no-op."""
        if self.settings.lock_environments:
            return ProjectLock(self.settings.state_dir, self.project_dir)
        return contextlib.nullcontext()


def get_context(ctx: typer.Context) -> CliContext:
    obj = ctx.find_root().obj
    if not isinstance(obj, CliContext):
        raise typer.BadParameter("envclone context not initialised")
    return obj


# ── Error rendering ──────────────────────────────────────────────────────


def print_error(error: BaseException) -> None:
    """Print the error chain, outermost first, then the hint if any."""
    chain = error_chain(error)
    err_console.print(f"[bold red]Error:[/bold red] {escape(chain[0])}", highlight=False)
    for message in chain[1:]:
        err_console.print(f"  [dim]caused by:[/dim] {escape(message)}", highlight=False)
    hint = getattr(error, "hint", None)
    if hint:
        err_console.print(f"[yellow]{escape(hint)}[/yellow]", highlight=False)


@contextlib.contextmanager
def handle_errors() -> Iterator[None]:
    """Turn an :class:`EnvcloneError` into a printed chain and exit code 1."""
    try:
        yield
    except EnvcloneError as exc:
        logger.debug("command.failed", **exc.to_dict())
        print_error(exc)
        raise typer.Exit(code=1) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def print_status(infos: list[ContainerInfo], *, as_json: bool = False) -> None:
    if as_json:
        payload = [{"name": i.name, "role": i.role.value, "status": i.status} for i in infos]
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table(show_lines=False, pad_edge=False)
    table.add_column("NAME", overflow="fold")
    table.add_column("ROLE")
    table.add_column("STATUS")
    for info in infos:
        table.add_row(info.name, info.role.value, info.status)
    console.print(table)


__all__ = [
    "CliContext",
    "console",
    "err_console",
    "get_context",
    "handle_errors",
    "print_error",
    "print_status",
]
