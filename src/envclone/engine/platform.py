"""Platform capability: where the container engine lives on this host.

Two variants, chosen once per process by :func:`detect_platform`:

- :class:`DirectPlatform` (Linux): ``nerdctl`` runs on the host against
  rootless containerd. Engine commands pass through unchanged.
- :class:`VMPlatform` (macOS): ``nerdctl`` runs inside a Lima VM. Engine
  commands are wrapped in ``limactl shell <vm> --``, and readiness means
  creating and starting the VM on demand.

Nothing outside this module looks at the host OS.

Architecture:
    ::

        EnvironmentManager ──► Platform.engine_command("ps", "-a")
                                   │
                 ┌─────────────────┴──────────────────┐
                 ▼                                    ▼
          DirectPlatform                        VMPlatform
          ["nerdctl", "ps", "-a"]               ["limactl", "shell", "envclone",
                                                 "--", "nerdctl", "ps", "-a"]

Tags:
    platform, capability, lima, nerdctl, containerd, envclone
"""

from __future__ import annotations

import platform as _host
import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable

from envclone.core.errors import CommandError, RuntimeNotReadyError, UnsupportedPlatformError
from envclone.core.logging import get_logger
from envclone.core.settings import EnvcloneSettings
from envclone.engine.runner import ProcessRunner

logger = get_logger(__name__)

DEFAULT_SSH_PORT = 2222

LIMA_CREATE_ARGS = [
    "--vm-type=vz",
    "--mount-type=virtiofs",
    "--mount-writable",
    "--containerd=user",
    "template://default",
]


class Platform(ABC):
    """Host-specific translation layer in front of the container engine.

    Implementations carry configuration only; they hold no mutable state
    and every host interaction goes through the runner passed in.
    """

    name: str = "unknown"

    def __init__(self, engine: str = "nerdctl", ssh_port: int = DEFAULT_SSH_PORT) -> None:
        self.engine = engine
        self._ssh_port = ssh_port

    @abstractmethod
    def engine_command(self, *args: str) -> list[str]:
        """Turn an engine subcommand into a complete argv."""

    @abstractmethod
    def ensure_ready(self, runner: ProcessRunner) -> None:
        """Make sure the engine is reachable, repairing it where possible.

        Raises:
            RuntimeNotReadyError: The engine cannot be reached and cannot be
                brought up automatically. The hint says what to do.
        """

    def mount_args(self, host_path: str, container_path: str) -> list[str]:
        """Bind-mount argument for a host path."""
        return ["-v", f"{host_path}:{container_path}"]

    @property
    def ssh_port(self) -> int:
        """Port the anchor publishes on the host for sshd."""
        return self._ssh_port

    def close(self) -> None:
        """Release platform-held resources (none for the shipped variants)."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(engine={self.engine!r}, ssh_port={self._ssh_port})"


class DirectPlatform(Platform):
    """Engine invoked directly on the host (Linux, rootless containerd)."""

    name = "linux"

    def engine_command(self, *args: str) -> list[str]:
        return [self.engine, *args]

    def ensure_ready(self, runner: ProcessRunner) -> None:
        argv = ["systemctl", "--user", "is-active", "containerd"]
        try:
            out = runner.run(argv)
        except CommandError as exc:
            raise RuntimeNotReadyError(
                "rootless containerd is not running",
                hint=_CONTAINERD_HINT,
                cause=exc,
            ) from exc
        # dry-run prints nothing; only a real answer other than "active" fails
        if out and out != "active":
            raise RuntimeNotReadyError("rootless containerd is not running", hint=_CONTAINERD_HINT)
        logger.debug("runtime.ready", platform=self.name)


_CONTAINERD_HINT = (
    "Start it with: systemctl --user start containerd\n"
    "Or set it up with: containerd-rootless-setuptool.sh install"
)


class VMPlatform(Platform):
    """Engine running inside a named Lima VM (macOS)."""

    name = "darwin"

    def __init__(
        self,
        vm_name: str = "envclone",
        engine: str = "nerdctl",
        ssh_port: int = DEFAULT_SSH_PORT,
    ) -> None:
        super().__init__(engine=engine, ssh_port=ssh_port)
        self.vm_name = vm_name

    def engine_command(self, *args: str) -> list[str]:
        return ["limactl", "shell", self.vm_name, "--", self.engine, *args]

    def vm_status(self, runner: ProcessRunner) -> str | None:
        """Status of the VM (``Running``, ``Stopped``...) or None if absent.

        Matches the VM name exactly; a VM called ``envclone-old`` does not
        count as ``envclone``.
        """
        try:
            out = runner.run(["limactl", "list", "--format", "{{.Name}}:{{.Status}}"])
        except CommandError as exc:
            raise RuntimeNotReadyError(
                "failed to list Lima VMs",
                hint="Check the Lima installation with: limactl list",
                cause=exc,
            ) from exc

        for line in out.splitlines():
            name, sep, status = line.strip().partition(":")
            if sep and name == self.vm_name:
                return status
        return None

    def ensure_ready(self, runner: ProcessRunner) -> None:
        status = self.vm_status(runner)
        if status == "Running":
            logger.debug("runtime.ready", platform=self.name, vm=self.vm_name)
            return

        if status is None:
            logger.info("vm.creating", vm=self.vm_name)
            self._limactl(runner, ["limactl", "create", f"--name={self.vm_name}", *LIMA_CREATE_ARGS],
                          "failed to create Lima VM")

        logger.info("vm.starting", vm=self.vm_name, previous_status=status)
        self._limactl(runner, ["limactl", "start", self.vm_name], "failed to start Lima VM")

    def _limactl(self, runner: ProcessRunner, argv: list[str], message: str) -> None:
        try:
            runner.run(argv)
        except CommandError as exc:
            raise RuntimeNotReadyError(
                f"{message} {self.vm_name}",
                hint=f"Inspect the VM with: limactl list && limactl start {self.vm_name}",
                cause=exc,
            ) from exc


def detect_platform(
    settings: EnvcloneSettings,
    system: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> Platform:
    """Pick the platform variant for this host.

    Args:
        settings: Engine binary, VM name and SSH port come from here.
        system: Host OS name as reported by :func:`platform.system`
            (detected when omitted).
        which: PATH lookup, injectable for tests.

    Raises:
        UnsupportedPlatformError: Unknown OS, or its engine tooling is not
            on PATH.
    """
    system = (system or _host.system()).lower()

    if system == "linux":
        if which(settings.engine) is None:
            raise UnsupportedPlatformError(
                f"{settings.engine} not found in PATH",
                hint="Install: https://github.com/containerd/nerdctl#install",
            )
        return DirectPlatform(engine=settings.engine, ssh_port=settings.ssh_port)

    if system == "darwin":
        if which("limactl") is None:
            raise UnsupportedPlatformError("lima not found in PATH", hint="Install: brew install lima")
        return VMPlatform(vm_name=settings.vm_name, engine=settings.engine, ssh_port=settings.ssh_port)

    raise UnsupportedPlatformError(f"unsupported platform: {system}")


__all__ = [
    "DEFAULT_SSH_PORT",
    "DirectPlatform",
    "Platform",
    "VMPlatform",
    "detect_platform",
]
