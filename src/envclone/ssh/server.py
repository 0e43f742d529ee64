"""sshd inside the dev container, and the user's key in authorized_keys.

Used by ``envclone code``. Every step is an ``exec`` into the running dev
container through the platform, so it works the same on Linux and inside
the Lima VM.
"""

from __future__ import annotations

import os
import shlex
from pathlib import Path

from envclone.core.errors import CommandError, EngineError, PreconditionError
from envclone.core.logging import get_logger
from envclone.engine.platform import Platform
from envclone.engine.runner import ProcessRunner

logger = get_logger(__name__)

INSTALL_SSHD = (
    "apt-get update && apt-get install -y openssh-server"
    " || dnf install -y openssh-server"
    " || apk add openssh"
)
SSHD_CONFIG_PATH = "/etc/ssh/sshd_config.d/envclone.conf"
PUBLIC_KEY_NAMES = ("id_ed25519.pub", "id_rsa.pub", "id_ecdsa.pub")


def sshd_config(port: int) -> str:
    return (
        f"Port {port}\n"
        "PermitRootLogin yes\n"
        "PasswordAuthentication no\n"
        "PubkeyAuthentication yes\n"
    )


def ssh_dir_for(user: str) -> str:
    if not user or user == "root":
        return "/root/.ssh"
    return f"/home/{user}/.ssh"


def find_public_key(home: str | os.PathLike[str] | None = None) -> str:
    """Return the first public key found in ``~/.ssh``.

    Raises:
        PreconditionError: None of the usual key files exist.
    """
    ssh_dir = Path(home or Path.home()) / ".ssh"
    for name in PUBLIC_KEY_NAMES:
        candidate = ssh_dir / name
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8").strip()
    raise PreconditionError(
        f"no SSH public key found in {ssh_dir} (tried {', '.join(PUBLIC_KEY_NAMES)})",
        hint="Generate one with: ssh-keygen -t ed25519",
    )


class SSHBootstrap:
    """Prepare a dev container for SSH access."""

    def __init__(self, platform: Platform, runner: ProcessRunner) -> None:
        self.platform = platform
        self.runner = runner

    def _exec(self, container: str, *command: str) -> str:
        return self.runner.run(self.platform.engine_command("exec", container, *command))

    def _step(self, message: str, container: str, *command: str) -> None:
        try:
            self._exec(container, *command)
        except CommandError as exc:
            raise EngineError(message, cause=exc).with_context(container=container) from exc

    def setup_sshd(self, container: str, port: int) -> None:
        """Install, configure and start sshd listening on ``port``.

        Safe to repeat: an sshd that is already running is left alone.
        """
        self._step("installing openssh-server", container, "sh", "-c", INSTALL_SSHD)
        self._step("creating /run/sshd", container, "mkdir", "-p", "/run/sshd")

        write_config = (
            f"mkdir -p {shlex.quote(os.path.dirname(SSHD_CONFIG_PATH))}"
            f" && printf '%s' {shlex.quote(sshd_config(port))} > {shlex.quote(SSHD_CONFIG_PATH)}"
        )
        self._step("configuring sshd", container, "sh", "-c", write_config)
        self._step("generating host keys", container, "ssh-keygen", "-A")

        try:
            self._exec(container, "sh", "-c", "pgrep -x sshd > /dev/null 2>&1")
            logger.debug("sshd.already_running", container=container)
            return
        except CommandError:
            pass

        try:
            self.runner.run(self.platform.engine_command("exec", "-d", container, "/usr/sbin/sshd", "-D"))
        except CommandError as exc:
            raise EngineError("starting sshd", cause=exc).with_context(container=container) from exc
        logger.info("sshd.started", container=container, port=port)

    def inject_authorized_key(self, container: str, user: str, public_key: str) -> bool:
        """Append ``public_key`` to the user's authorized_keys.

        Returns False when the key was already present.
        """
        ssh_dir = ssh_dir_for(user)
        keys_path = f"{ssh_dir}/authorized_keys"
        quoted_dir = shlex.quote(ssh_dir)
        quoted_keys = shlex.quote(keys_path)
        quoted_key = shlex.quote(public_key)

        self._step(
            "creating .ssh directory",
            container,
            "sh", "-c", f"mkdir -p {quoted_dir} && chmod 700 {quoted_dir}",
        )

        try:
            self._exec(container, "sh", "-c", f"grep -qxF {quoted_key} {quoted_keys} 2>/dev/null")
            logger.debug("ssh.key.present", container=container, user=user)
            return False
        except CommandError:
            pass

        self._step(
            "injecting authorized key",
            container,
            "sh", "-c", f"echo {quoted_key} >> {quoted_keys} && chmod 600 {quoted_keys}",
        )
        if user and user != "root":
            # user may not exist in the image
            try:
                self._exec(container, "sh", "-c", f"chown -R {shlex.quote(user)} {quoted_dir}")
            except CommandError as exc:
                logger.debug("ssh.chown.failed", container=container, user=user, error=exc.message)
        logger.info("ssh.key.injected", container=container, user=user)
        return True


__all__ = [
    "INSTALL_SSHD",
    "PUBLIC_KEY_NAMES",
    "SSHBootstrap",
    "find_public_key",
    "sshd_config",
    "ssh_dir_for",
]
