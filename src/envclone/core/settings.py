"""Process-wide settings for envclone.

``EnvcloneSettings`` collects the knobs that are not part of a project's
``devcontainer.json``: where descriptors live, which engine binary to call,
the Lima VM name, the published SSH port and logging. Every field can be
overridden with an ``ENVCLONE_``-prefixed environment variable or a
``.env`` file in the working directory.

Examples:
    >>> from envclone.core.settings import EnvcloneSettings
    >>> EnvcloneSettings(ssh_port=2200).ssh_port
    2200

Tags:
    settings, configuration, pydantic, environment, envclone
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvcloneSettings(BaseSettings):
    """Settings shared by the CLI and the engine.

    Fields
    ──────
    state_dir               : Directory holding one descriptor file per project
    ssh_port                : Port the anchor publishes and sshd listens on
    engine                  : Engine CLI binary (``nerdctl``)
    vm_name                 : Lima VM hosting the engine on macOS
    anchor_image            : Image of the namespace anchor container
    default_remote_user     : Remote user when devcontainer.json declares none
    default_workspace_mount : In-container workspace path when none is declared
    log_level               : Structlog log level
    json_logs               : Emit JSON log lines instead of console output
    dry_run                 : Log engine commands without executing them
    lock_environments       : Hold a per-project advisory lock during up/down
    command_timeout         : Seconds before a captured command is killed
    """

    model_config = SettingsConfigDict(
        env_prefix="ENVCLONE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    state_dir: Path = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "envclone",
        description="Directory holding environment descriptors",
    )

    # ── Engine ───────────────────────────────────────────────────
    engine: str = "nerdctl"
    vm_name: str = "envclone"
    anchor_image: str = "registry.k8s.io/pause:3.10"
    ssh_port: int = Field(default=2222, ge=1, le=65535)
    command_timeout: float | None = None

    # ── Defaults applied to devcontainer.json ────────────────────
    default_remote_user: str = "root"
    default_workspace_mount: str = "/workspace"

    # ── Behaviour ────────────────────────────────────────────────
    dry_run: bool = False
    lock_environments: bool = False

    # ── Observability ────────────────────────────────────────────
    log_level: str = "WARNING"
    json_logs: bool = False


_settings_cache: EnvcloneSettings | None = None


def get_settings(*, _force_reload: bool = False) -> EnvcloneSettings:
    """Load and cache :class:`EnvcloneSettings` for this process."""
    global _settings_cache
    if _settings_cache is None or _force_reload:
        _settings_cache = EnvcloneSettings()
    return _settings_cache


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, or after changing the environment)."""
    global _settings_cache
    _settings_cache = None


__all__ = ["EnvcloneSettings", "get_settings", "clear_settings_cache"]
