"""Namespace anchor: one pause container per project.

The anchor owns the network namespace that the dev and service containers
join with ``--network container:<anchor>``, and it is the only container
that publishes a host port (the SSH port). Because the port belongs to the
anchor, sshd can run in whichever container the user likes and still be
reachable on ``localhost:<port>``.
"""

from __future__ import annotations

from envclone.core.logging import get_logger
from envclone.engine.models import ContainerRole, ProjectIdentity, slugify
from envclone.engine.platform import Platform
from envclone.engine.policy import LifecycleStep, step_scope
from envclone.engine.runner import ProcessRunner

logger = get_logger(__name__)

DEFAULT_ANCHOR_IMAGE = "registry.k8s.io/pause:3.10"


class NamespaceProvisioner:
    """Create and remove a project's namespace anchor.

    ``create`` is not idempotent: a second call for the same project fails
    on the name clash. Callers remove stale containers first.
    """

    def __init__(
        self,
        platform: Platform,
        runner: ProcessRunner,
        image: str = DEFAULT_ANCHOR_IMAGE,
    ) -> None:
        self.platform = platform
        self.runner = runner
        self.image = image

    def create(self, identity: ProjectIdentity, ssh_port: int) -> str:
        """Start the anchor and return its container ID."""
        argv = self.platform.engine_command(
            "run", "-d",
            "--name", identity.anchor_container,
            "--hostname", slugify(identity.name),
            "-p", f"{ssh_port}:{ssh_port}",
            *identity.labels(ContainerRole.NETNS),
            self.image,
        )
        with step_scope(LifecycleStep.CREATE_ANCHOR, project=identity.key):
            anchor_id = self.runner.run(argv)
        logger.info("anchor.created", project=identity.key, container=identity.anchor_container, port=ssh_port)
        return anchor_id

    def remove(self, identity: ProjectIdentity) -> None:
        """Force-remove the anchor. A missing anchor counts as removed."""
        argv = self.platform.engine_command("rm", "-f", identity.anchor_container)
        with step_scope(LifecycleStep.REMOVE_ANCHOR, project=identity.key):
            self.runner.run(argv)

    def attachment(self, identity: ProjectIdentity) -> list[str]:
        """``--network`` arguments that join the anchor's namespace."""
        return ["--network", f"container:{identity.anchor_container}"]


__all__ = ["DEFAULT_ANCHOR_IMAGE", "NamespaceProvisioner"]
