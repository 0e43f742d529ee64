"""Host-side SSH client configuration for envclone environments.

Each environment gets one ``Host envclone-<key>`` entry in ``~/.ssh/config``,
wrapped in marker comments so it can be rewritten in place::

    # --- envclone: api-7c1e9f0a ---
    Host envclone-api-7c1e9f0a
      HostName localhost
      Port 2222
      User root
      StrictHostKeyChecking no
      UserKnownHostsFile /dev/null
    # --- /envclone: api-7c1e9f0a ---
"""

from __future__ import annotations

import os
from pathlib import Path

from envclone.core.errors import EnvcloneError
from envclone.core.logging import get_logger

logger = get_logger(__name__)


def host_alias(key: str) -> str:
    return f"envclone-{key}"


def _markers(key: str) -> tuple[str, str]:
    return f"# --- envclone: {key} ---", f"# --- /envclone: {key} ---"


def render_host_entry(key: str, port: int, user: str) -> str:
    """The ``Host`` stanza alone, as printed by ``envclone ssh-config``."""
    return "\n".join([
        f"Host {host_alias(key)}",
        "  HostName localhost",
        f"  Port {port}",
        f"  User {user}",
        "  StrictHostKeyChecking no",
        "  UserKnownHostsFile /dev/null",
    ])


def generate_config_block(key: str, port: int, user: str) -> str:
    """Host stanza wrapped in start/end markers."""
    start, end = _markers(key)
    return f"{start}\n{render_host_entry(key, port, user)}\n{end}"


def merge_config(content: str, key: str, port: int, user: str) -> str:
    """Replace the project's block in ``content``, or append one."""
    block = generate_config_block(key, port, user)
    start, end = _markers(key)
    start_idx = content.find(start)
    end_idx = content.find(end, start_idx) if start_idx >= 0 else -1

    if start_idx >= 0 and end_idx >= 0:
        return content[:start_idx] + block + content[end_idx + len(end):]

    if content and not content.endswith("\n"):
        content += "\n"
    if content:
        content += "\n"
    return content + block + "\n"


def write_ssh_config(
    key: str,
    port: int,
    user: str,
    config_path: str | os.PathLike[str] | None = None,
) -> Path:
    """Write or update the project's block in the SSH client config.

    Defaults to ``~/.ssh/config``. The directory is created with mode 0700
    and the file is written with mode 0600.
    """
    path = Path(config_path) if config_path else Path.home() / ".ssh" / "config"
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        existing = path.read_text(encoding="utf-8") if path.exists() else ""
        path.write_text(merge_config(existing, key, port, user), encoding="utf-8")
        os.chmod(path, 0o600)
    except OSError as exc:
        raise EnvcloneError(f"writing SSH config {path}: {exc}", cause=exc) from exc

    logger.info("ssh.config.written", path=str(path), host=host_alias(key))
    return path


__all__ = [
    "generate_config_block",
    "host_alias",
    "merge_config",
    "render_host_entry",
    "write_ssh_config",
]
