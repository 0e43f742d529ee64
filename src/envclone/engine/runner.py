"""Process runner: the only place envclone starts external processes.

Modes:

- ``run(argv)`` captures output and returns trimmed stdout.
- ``run_interactive(argv)`` inherits the caller's terminal (shell, exec)
  and returns nothing.
- ``start(argv)`` launches a detached process (the editor) and returns.

A non-zero exit in either mode raises :class:`CommandError` carrying the
full command line and captured stderr. In dry-run mode commands are logged
and never executed; ``run`` then returns an empty string.
"""

from __future__ import annotations

import shlex
import subprocess

from envclone.core.errors import CommandError
from envclone.core.logging import get_logger

logger = get_logger(__name__)

EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


class ProcessRunner:
    """Execute external commands.

    Parameters
    ----------
    dry_run
        Log commands instead of executing them.
    timeout
        Seconds before a captured command is killed. Interactive commands
        are never timed out.
    """

    def __init__(self, dry_run: bool = False, timeout: float | None = None) -> None:
        self.dry_run = dry_run
        self.timeout = timeout

    def run(self, argv: list[str]) -> str:
        """Run ``argv`` and return its stripped standard output."""
        logger.debug("exec", argv=shlex.join(argv))
        if self.dry_run:
            logger.info("exec.dry_run", argv=shlex.join(argv))
            return ""
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise CommandError(argv, EXIT_NOT_FOUND, f"executable not found: {argv[0]}", cause=exc) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(argv, EXIT_TIMEOUT, f"timed out after {self.timeout}s", cause=exc) from exc

        if result.returncode != 0:
            raise CommandError(argv, result.returncode, result.stderr or "")
        return result.stdout.strip()

    def run_interactive(self, argv: list[str]) -> None:
        """Run ``argv`` attached to the caller's stdin, stdout and stderr."""
        logger.debug("exec.interactive", argv=shlex.join(argv))
        if self.dry_run:
            logger.info("exec.dry_run", argv=shlex.join(argv))
            return
        try:
            result = subprocess.run(argv)
        except FileNotFoundError as exc:
            raise CommandError(argv, EXIT_NOT_FOUND, f"executable not found: {argv[0]}", cause=exc) from exc

        if result.returncode != 0:
            raise CommandError(argv, result.returncode)

    def start(self, argv: list[str]) -> None:
        """Launch ``argv`` in its own session and return without waiting."""
        logger.debug("exec.detached", argv=shlex.join(argv))
        if self.dry_run:
            logger.info("exec.dry_run", argv=shlex.join(argv))
            return
        try:
            subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            raise CommandError(argv, EXIT_NOT_FOUND, str(exc), cause=exc) from exc


__all__ = ["EXIT_NOT_FOUND", "EXIT_TIMEOUT", "ProcessRunner"]
