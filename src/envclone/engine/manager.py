"""Environment lifecycle: up, down, status, attach.

An environment is one namespace anchor, zero or more service containers
and one dev container, all labelled with the project's identity key and
all sharing the anchor's network namespace.

Lifecycle:
    ::

        Absent ──up()──► Provisioning ──► Running ──down()──► Absent

        up():
          1. remove every container labelled with the project key
          2. build the image            (if "build" is declared)
          3. create the anchor          (publishes the SSH port)
          4. create each service        (declaration order, first failure aborts)
          5. create the dev container   (sleep infinity, workspace mounted)
          6. postCreateCommand          (failure is a warning)
          7. postStartCommand           (failure is a warning)
          8. return the descriptor      (the caller persists it)

    A failed ``up`` leaves whatever it managed to create, labelled; the
    next ``up`` removes it in step 1.

Concurrency:
    Everything runs sequentially in one process. Two ``up`` invocations
    for the same project are not coordinated here: the "remove stale,
    then create" sequence is not atomic, so concurrent runs can race on
    container names and labels and the last descriptor written wins.
    ``envclone.store.ProjectLock`` closes that gap when the CLI is told
    to use it (``ENVCLONE_LOCK_ENVIRONMENTS=true``); it is off by default.

Failure policy per step lives in :mod:`envclone.engine.policy`.

Tags:
    orchestration, lifecycle, containers, namespace, envclone
"""

from __future__ import annotations

import os
import shlex

from envclone.config import CONFIG_DIR, BuildConfig, DevContainerConfig, ServiceConfig
from envclone.core.errors import (
    EngineError,
    EnvcloneError,
    NotRunningError,
    ServiceCreateError,
)
from envclone.core.logging import get_logger
from envclone.engine.models import (
    ROLE_LABEL,
    ContainerInfo,
    ContainerRole,
    EnvironmentDescriptor,
    ProjectIdentity,
)
from envclone.engine.namespace import DEFAULT_ANCHOR_IMAGE, NamespaceProvisioner
from envclone.engine.platform import Platform
from envclone.engine.policy import LifecycleStep, step_scope
from envclone.engine.runner import ProcessRunner

logger = get_logger(__name__)

DEFAULT_REMOTE_USER = "root"
DEFAULT_WORKSPACE_MOUNT = "/workspace"
SHELL_COMMAND = ["/bin/bash", "-l"]
STATUS_FORMAT = "{{.Names}}\t{{.Labels}}\t{{.Status}}"


def parse_labels(raw: str) -> dict[str, str]:
    """Parse the engine's ``k=v,k2=v2`` label rendering."""
    labels = {}
    for item in raw.split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            labels[key] = value
    return labels


class EnvironmentManager:
    """Drive the lifecycle of one project's environment.

    Parameters
    ----------
    platform
        Where the engine runs; every engine argv comes from it.
    runner
        Executes the argv.
    project_dir
        Absolute or relative project directory.
    config
        Parsed devcontainer.json. Only ``up`` needs it; the other
        operations work from the descriptor alone.

    Example::

        mgr = EnvironmentManager(platform, runner, "/home/me/src/api", config)
        descriptor = mgr.up()
        store.save(descriptor)
    """

    def __init__(
        self,
        platform: Platform,
        runner: ProcessRunner,
        project_dir: str | os.PathLike[str],
        config: DevContainerConfig | None = None,
        *,
        anchor_image: str = DEFAULT_ANCHOR_IMAGE,
        default_remote_user: str = DEFAULT_REMOTE_USER,
        default_workspace_mount: str = DEFAULT_WORKSPACE_MOUNT,
    ) -> None:
        self.platform = platform
        self.runner = runner
        self.project_dir = os.path.abspath(project_dir)
        self.config = config
        self.default_remote_user = default_remote_user
        self.default_workspace_mount = default_workspace_mount
        self.namespace = NamespaceProvisioner(platform, runner, image=anchor_image)

        self.identity = ProjectIdentity.for_project(self.project_dir, config.name if config else None)

    # ------------------------------------------------------------------
    # Up
    # ------------------------------------------------------------------

    def up(self) -> EnvironmentDescriptor:
        """Create the environment from scratch and return its descriptor.

        Raises:
            EngineError: Build, anchor, dev container creation failed.
            ServiceCreateError: A service container could not be created.
        """
        if self.config is None:
            raise EnvcloneError("up requires a devcontainer configuration")
        config = self.config
        identity = self.identity
        logger.info("up.started", project=identity.key, services=len(config.services))

        removed = self.remove_stale(identity)
        if removed:
            logger.info("up.stale_removed", project=identity.key, count=removed)

        if config.features:
            logger.warning("up.features.ignored", features=sorted(config.features))

        image = config.image or ""
        if config.build is not None:
            image = self._build_image(identity, config.build)

        anchor_id = self.namespace.create(identity, self.platform.ssh_port)

        service_ids = []
        for service in config.services:
            service_ids.append(self._create_service(identity, service))

        dev_id = self._create_dev_container(identity, config, image)

        self._post_command(identity, LifecycleStep.POST_CREATE, config.post_create_command)
        self._post_command(identity, LifecycleStep.POST_START, config.post_start_command)

        descriptor = EnvironmentDescriptor(
            project_name=identity.name,
            project_dir=self.project_dir,
            dev_container_id=dev_id,
            net_anchor_id=anchor_id,
            service_ids=service_ids,
            ssh_port=self.platform.ssh_port,
            remote_user=config.remote_user or self.default_remote_user,
        )
        logger.info("up.completed", project=identity.key, dev_container=identity.dev_container)
        return descriptor

    def remove_stale(self, identity: ProjectIdentity) -> int:
        """Remove every container labelled with ``identity``. Best effort.

        Returns the number of containers that were found for removal.
        """
        ids = self._list_ids(identity, LifecycleStep.REMOVE_STALE)
        if not ids:
            return 0
        with step_scope(LifecycleStep.REMOVE_STALE, project=identity.key):
            self.runner.run(self.platform.engine_command("rm", "-f", *ids))
        return len(ids)

    def resolve_build(self, build: BuildConfig) -> tuple[str, str]:
        """Absolute ``(dockerfile, context)`` for the build section.

        Relative paths resolve against ``<project>/.devcontainer``; the
        context defaults to the Dockerfile's directory.
        """
        config_dir = os.path.join(self.project_dir, CONFIG_DIR)
        dockerfile = build.dockerfile
        if not os.path.isabs(dockerfile):
            dockerfile = os.path.join(config_dir, dockerfile)

        context = os.path.dirname(dockerfile)
        if build.context:
            context = build.context
            if not os.path.isabs(context):
                context = os.path.join(config_dir, context)
        return os.path.normpath(dockerfile), os.path.normpath(context)

    def _build_image(self, identity: ProjectIdentity, build: BuildConfig) -> str:
        dockerfile, context = self.resolve_build(build)
        tag = identity.image_tag
        logger.info("up.build.started", image=tag, dockerfile=dockerfile)
        with step_scope(LifecycleStep.BUILD, project=identity.key):
            self.runner.run(self.platform.engine_command("build", "-t", tag, "-f", dockerfile, context))
        return tag

    def _create_service(self, identity: ProjectIdentity, service: ServiceConfig) -> str:
        argv = [
            "run", "-d",
            "--name", identity.service_container(service.name),
            *identity.labels(ContainerRole.SERVICE),
            *self.namespace.attachment(identity),
        ]
        for assignment in service.env:
            argv.extend(["-e", assignment])
        for volume in service.volumes:
            argv.extend(["-v", volume])
        argv.append(service.image)

        try:
            with step_scope(LifecycleStep.CREATE_SERVICE, project=identity.key, service=service.name):
                container_id = self.runner.run(self.platform.engine_command(*argv))
        except EngineError as exc:
            raise ServiceCreateError(service.name, exc) from exc

        logger.info("up.service.created", service=service.name, container_id=container_id)
        return container_id

    def workspace(self, config: DevContainerConfig) -> tuple[str, str]:
        """``(host path, container path)`` of the workspace bind mount."""
        host_path = self.project_dir
        if config.workspace_folder:
            host_path = os.path.join(self.project_dir, config.workspace_folder)
        container_path = config.workspace_mount or self.default_workspace_mount
        return os.path.normpath(host_path), container_path

    def _create_dev_container(self, identity: ProjectIdentity, config: DevContainerConfig, image: str) -> str:
        host_path, container_path = self.workspace(config)
        argv = [
            "run", "-d",
            "--name", identity.dev_container,
            *identity.labels(ContainerRole.DEV),
            *self.namespace.attachment(identity),
            *self.platform.mount_args(host_path, container_path),
        ]
        for mount in config.mounts:
            argv.extend(["--mount", mount])
        argv.extend(["-w", container_path, "--init"])
        argv.extend(config.run_args)
        argv.extend([image, "sleep", "infinity"])

        with step_scope(LifecycleStep.CREATE_DEV, project=identity.key):
            dev_id = self.runner.run(self.platform.engine_command(*argv))
        logger.info("up.dev.created", container=identity.dev_container, image=image, workspace=container_path)
        return dev_id

    def _post_command(self, identity: ProjectIdentity, step: LifecycleStep, command: str | list[str] | None) -> None:
        if not command:
            return
        if isinstance(command, str):
            command = ["sh", "-c", command]
        argv = self.platform.engine_command("exec", identity.dev_container, *command)
        with step_scope(step, project=identity.key, command=shlex.join(command)):
            self.runner.run(argv)

    # ------------------------------------------------------------------
    # Down / status / is_running
    # ------------------------------------------------------------------

    def _list_ids(self, identity: ProjectIdentity, step: LifecycleStep) -> list[str]:
        argv = self.platform.engine_command(
            "ps", "-a", "--filter", identity.label_filter, "--format", "{{.ID}}"
        )
        out = ""
        with step_scope(step, project=identity.key):
            out = self.runner.run(argv)
        return out.split()

    def down(self, descriptor: EnvironmentDescriptor) -> int:
        """Force-remove every container of the environment in one batch.

        Returns the number of containers removed (zero is fine).

        Raises:
            EngineError: Listing or removing failed.
        """
        identity = descriptor.identity
        try:
            ids = self._list_ids(identity, LifecycleStep.LIST_CONTAINERS)
        except EngineError as exc:
            raise EngineError("listing containers", cause=exc) from exc

        if ids:
            try:
                with step_scope(LifecycleStep.REMOVE_CONTAINERS, project=identity.key):
                    self.runner.run(self.platform.engine_command("rm", "-f", *ids))
            except EngineError as exc:
                raise EngineError("removing containers", cause=exc) from exc

        logger.info("down.completed", project=identity.key, removed=len(ids))
        return len(ids)

    def status(self, descriptor: EnvironmentDescriptor) -> list[ContainerInfo]:
        """Live name/role/status of every labelled container.

        The role comes from the role label only, never from the name.
        """
        identity = descriptor.identity
        argv = self.platform.engine_command(
            "ps", "-a", "--filter", identity.label_filter, "--format", STATUS_FORMAT
        )
        with step_scope(LifecycleStep.LIST_CONTAINERS, project=identity.key):
            out = self.runner.run(argv)

        infos = []
        for line in out.splitlines():
            parts = line.split("\t", 2)
            if len(parts) < 3:
                continue
            name, labels, state = parts
            role = ContainerRole.from_label(parse_labels(labels).get(ROLE_LABEL))
            infos.append(ContainerInfo(name=name, role=role, status=state))
        return infos

    def is_running(self, descriptor: EnvironmentDescriptor) -> bool:
        """True when the dev container exists and is running. Never raises."""
        argv = self.platform.engine_command(
            "inspect", "--format", "{{.State.Running}}", descriptor.dev_container
        )
        try:
            return self.runner.run(argv).strip() == "true"
        except EnvcloneError as exc:
            logger.debug("is_running.inspect_failed", container=descriptor.dev_container, error=exc.message)
            return False

    # ------------------------------------------------------------------
    # Attach
    # ------------------------------------------------------------------

    def _require_running(self, descriptor: EnvironmentDescriptor) -> None:
        if not self.is_running(descriptor):
            raise NotRunningError(descriptor.dev_container)

    def shell(self, descriptor: EnvironmentDescriptor) -> None:
        """Interactive login shell in the dev container."""
        self._require_running(descriptor)
        self.runner.run_interactive(
            self.platform.engine_command("exec", "-it", descriptor.dev_container, *SHELL_COMMAND)
        )

    def exec(self, descriptor: EnvironmentDescriptor, command: list[str], tty: bool = False) -> None:
        """Run ``command`` in the dev container with the caller's terminal.

        Raises:
            NotRunningError: The dev container is absent or stopped.
            CommandError: The command exited non-zero; ``returncode`` holds
                its exit status.
        """
        if not command:
            raise EnvcloneError("exec requires a command")
        self._require_running(descriptor)
        flags = ["-it"] if tty else ["-i"]
        self.runner.run_interactive(
            self.platform.engine_command("exec", *flags, descriptor.dev_container, *command)
        )


__all__ = ["EnvironmentManager", "parse_labels"]
