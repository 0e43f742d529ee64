"""Unit tests for envclone.engine.manager.EnvironmentManager.

Every test runs against the in-memory FakeEngine; no container engine is
required. Tests cover the up sequence, failure policies, down, status,
is_running and interactive attach.
"""

from __future__ import annotations

import os

import pytest

from envclone.config import DevContainerConfig
from envclone.core.errors import (
    CommandError,
    EngineError,
    EnvcloneError,
    NotRunningError,
    ServiceCreateError,
)
from envclone.engine.manager import EnvironmentManager, parse_labels
from envclone.engine.models import PROJECT_LABEL, ROLE_LABEL, ContainerRole
from envclone.engine.platform import DirectPlatform, VMPlatform
from tests._support.fake_engine import FakeEngine


def _config(**fields) -> DevContainerConfig:
    fields.setdefault("image", "debian:12")
    return DevContainerConfig.model_validate(fields)


def _manager(engine, project_dir, **fields) -> EnvironmentManager:
    return EnvironmentManager(DirectPlatform(), engine, project_dir, _config(**fields))


# ===========================================================================
# Up
# ===========================================================================


class TestUp:
    """Tests for the up sequence."""

    def test_creates_anchor_services_dev_in_order(self, manager, engine):
        manager.up()
        runs = [call[call.index("--name") + 1] for call in engine.calls if call[1] == "run"]
        ident = manager.identity
        assert runs == [ident.anchor_container, ident.service_container("db"), ident.dev_container]

    def test_descriptor(self, manager, engine, project_dir):
        descriptor = manager.up()
        ident = manager.identity
        assert descriptor.project_name == "api"
        assert descriptor.project_dir == os.path.abspath(project_dir)
        assert descriptor.dev_container_id == engine.by_name(ident.dev_container).id
        assert descriptor.net_anchor_id == engine.by_name(ident.anchor_container).id
        assert descriptor.service_ids == [engine.by_name(ident.service_container("db")).id]
        assert descriptor.ssh_port == 2222
        assert descriptor.remote_user == "root"

    def test_remote_user_declared(self, engine, project_dir):
        descriptor = _manager(engine, project_dir, remoteUser="vscode").up()
        assert descriptor.remote_user == "vscode"

    def test_remote_user_default_configurable(self, engine, project_dir):
        mgr = EnvironmentManager(DirectPlatform(), engine, project_dir, _config(), default_remote_user="dev")
        assert mgr.up().remote_user == "dev"

    def test_ssh_port_from_platform(self, engine, project_dir):
        mgr = EnvironmentManager(DirectPlatform(ssh_port=2400), engine, project_dir, _config())
        descriptor = mgr.up()
        anchor = engine.by_name(mgr.identity.anchor_container)
        assert anchor.options["-p"] == ["2400:2400"]
        assert descriptor.ssh_port == 2400

    def test_every_container_joins_anchor_namespace(self, manager, engine):
        manager.up()
        anchor = manager.identity.anchor_container
        for container in engine.containers.values():
            if container.labels[ROLE_LABEL] == "netns":
                assert "--network" not in container.options
                assert "-p" in container.options
            else:
                assert container.options["--network"] == [f"container:{anchor}"]
                assert "-p" not in container.options

    def test_service_env_and_volumes(self, engine, project_dir):
        mgr = _manager(
            engine,
            project_dir,
            services=[{
                "name": "db",
                "image": "postgres:16",
                "env": ["POSTGRES_PASSWORD=dev", "POSTGRES_DB=app"],
                "volumes": ["pgdata:/var/lib/postgresql/data"],
                "ports": ["5432:5432"],
            }],
        )
        mgr.up()
        db = engine.by_name(mgr.identity.service_container("db"))
        assert db.image == "postgres:16"
        assert db.options["-e"] == ["POSTGRES_PASSWORD=dev", "POSTGRES_DB=app"]
        assert db.options["-v"] == ["pgdata:/var/lib/postgresql/data"]
        assert db.labels[ROLE_LABEL] == "service"
        assert "-p" not in db.options

    def test_dev_container_defaults(self, manager, engine, project_dir):
        manager.up()
        dev = engine.by_name(manager.identity.dev_container)
        assert dev.image == "debian:12"
        assert dev.command == ["sleep", "infinity"]
        assert dev.options["-v"] == [f"{os.path.abspath(project_dir)}:/workspace"]
        assert dev.options["-w"] == ["/workspace"]
        assert "--init" in dev.options
        assert dev.labels == {PROJECT_LABEL: manager.identity.key, ROLE_LABEL: "dev"}

    def test_dev_container_workspace_and_extras(self, engine, project_dir, tmp_path):
        shared = tmp_path / "shared"
        mgr = _manager(
            engine,
            project_dir,
            workspaceFolder=str(shared),
            workspaceMount="/src",
            mounts=["type=volume,source=cache,target=/root/.cache"],
            runArgs=["--cap-add=SYS_PTRACE", "--privileged"],
        )
        mgr.up()
        dev = engine.by_name(mgr.identity.dev_container)
        assert dev.options["-v"] == [f"{shared}:/src"]
        assert dev.options["-w"] == ["/src"]
        assert dev.options["--mount"] == ["type=volume,source=cache,target=/root/.cache"]
        assert "--cap-add=SYS_PTRACE" in dev.options
        assert "--privileged" in dev.options

        run_call = next(c for c in engine.calls if c[1] == "run" and mgr.identity.dev_container in c)
        image_at = run_call.index("debian:12")
        assert run_call[image_at - 2:image_at] == ["--cap-add=SYS_PTRACE", "--privileged"]

    def test_relative_workspace_folder_resolves_against_project(self, engine, project_dir):
        mgr = _manager(engine, project_dir, workspaceFolder="src")
        mgr.up()
        dev = engine.by_name(mgr.identity.dev_container)
        assert dev.options["-v"] == [f"{os.path.join(os.path.abspath(project_dir), 'src')}:/workspace"]

    def test_zero_services(self, engine, project_dir):
        descriptor = _manager(engine, project_dir).up()
        assert descriptor.service_ids == []
        assert len(engine.containers) == 2

    def test_via_vm_platform(self, project_dir):
        engine = FakeEngine(prefix=("limactl", "shell", "envclone", "--", "nerdctl"))
        mgr = EnvironmentManager(VMPlatform(), engine, project_dir, _config())
        mgr.up()
        assert len(engine.containers) == 2
        assert all(call[:5] == ["limactl", "shell", "envclone", "--", "nerdctl"] for call in engine.calls)

    def test_up_twice_converges(self, manager, engine):
        manager.up()
        manager.up()
        key = manager.identity.key
        roles = sorted(c.labels[ROLE_LABEL] for c in engine.labelled(PROJECT_LABEL, key))
        assert roles == ["dev", "netns", "service"]

    def test_renamed_project_replaces_previous_environment(self, engine, project_dir):
        first = _manager(engine, project_dir, name="api").up()
        second_mgr = _manager(engine, project_dir, name="api-renamed")
        second = second_mgr.up()

        assert len(engine.containers) == 2
        assert first.identity.key == second.identity.key == second_mgr.identity.key
        assert second.project_name == "api-renamed"
        assert second.identity.dev_container == second_mgr.identity.dev_container

    def test_requires_config(self, engine, project_dir):
        with pytest.raises(EnvcloneError, match="requires a devcontainer configuration"):
            EnvironmentManager(DirectPlatform(), engine, project_dir).up()


class TestBuild:
    """Tests for image builds during up."""

    def test_relative_dockerfile_resolves_to_devcontainer_dir(self, engine, project_dir):
        mgr = _manager(engine, project_dir, image=None, build={"dockerfile": "Dockerfile.dev"})
        mgr.up()
        config_dir = os.path.join(os.path.abspath(project_dir), ".devcontainer")
        assert engine.builds == [[
            "-t", mgr.identity.image_tag,
            "-f", os.path.join(config_dir, "Dockerfile.dev"),
            config_dir,
        ]]
        assert engine.by_name(mgr.identity.dev_container).image == mgr.identity.image_tag

    def test_tag_unique_per_project(self, engine, tmp_path):
        a = _manager(engine, tmp_path / "one" / "api", build={"dockerfile": "Dockerfile"})
        b = _manager(engine, tmp_path / "two" / "api", build={"dockerfile": "Dockerfile"})
        assert a.identity.image_tag != b.identity.image_tag

    def test_relative_context(self, engine, project_dir):
        mgr = _manager(engine, project_dir, build={"dockerfile": "Dockerfile", "context": ".."})
        dockerfile, context = mgr.resolve_build(mgr.config.build)
        assert dockerfile == os.path.join(os.path.abspath(project_dir), ".devcontainer", "Dockerfile")
        assert context == os.path.abspath(project_dir)

    def test_absolute_paths_untouched(self, engine, project_dir):
        mgr = _manager(engine, project_dir, build={"dockerfile": "/opt/df/Dockerfile", "context": "/opt/ctx"})
        assert mgr.resolve_build(mgr.config.build) == ("/opt/df/Dockerfile", "/opt/ctx")

    def test_build_failure_is_fatal(self, engine, project_dir):
        engine.fail_when(lambda args: args[0] == "build", stderr="no space left on device")
        mgr = _manager(engine, project_dir, build={"dockerfile": "Dockerfile"})
        with pytest.raises(CommandError, match="no space left"):
            mgr.up()
        assert engine.containers == {}


class TestUpFailures:
    """Tests for failure policies during up."""

    def test_service_failure_aborts_and_names_service(self, engine, project_dir):
        engine.fail_when(lambda args: args[0] == "run" and "redis:7" in args, stderr="pull access denied")
        mgr = _manager(
            engine,
            project_dir,
            services=[
                {"name": "db", "image": "postgres:16"},
                {"name": "cache", "image": "redis:7"},
                {"name": "queue", "image": "rabbitmq:3"},
            ],
        )
        with pytest.raises(ServiceCreateError) as exc_info:
            mgr.up()

        assert exc_info.value.service == "cache"
        assert "pull access denied" in str(exc_info.value.__cause__)
        # no rollback of siblings, nothing after the failure
        names = {c.name for c in engine.containers.values()}
        assert names == {mgr.identity.anchor_container, mgr.identity.service_container("db")}

    def test_failed_up_is_recoverable(self, engine, project_dir):
        engine.fail_when(lambda args: args[0] == "run" and "debian:12" in args)
        mgr = _manager(engine, project_dir, services=[{"name": "db", "image": "postgres:16"}])
        with pytest.raises(CommandError):
            mgr.up()
        assert len(engine.containers) == 2

        engine.clear_failures()
        mgr.up()
        assert len(engine.labelled(PROJECT_LABEL, mgr.identity.key)) == 3

    def test_anchor_failure_is_fatal(self, engine, project_dir):
        engine.fail_when(lambda args: args[0] == "run" and "registry.k8s.io/pause:3.10" in args)
        with pytest.raises(CommandError):
            _manager(engine, project_dir).up()

    def test_post_create_failure_is_warning(self, engine, project_dir):
        engine.fail_when(lambda args: args[0] == "exec", returncode=2, stderr="make: *** [deps] Error 1")
        descriptor = _manager(engine, project_dir, postCreateCommand="make deps", postStartCommand="true").up()
        assert descriptor.dev_container_id

    def test_stale_removal_failure_is_ignored(self, engine, project_dir):
        engine.fail_when(lambda args: args[0] == "ps")
        _manager(engine, project_dir).up()
        assert len(engine.containers) == 2


class TestPostCommands:
    """Tests for postCreateCommand / postStartCommand."""

    def test_string_runs_through_shell(self, engine, project_dir):
        mgr = _manager(engine, project_dir, postCreateCommand="make deps && make db")
        mgr.up()
        assert engine.execs == [[mgr.identity.dev_container, "sh", "-c", "make deps && make db"]]

    def test_list_is_execd_directly(self, engine, project_dir):
        mgr = _manager(engine, project_dir, postStartCommand=["pip", "install", "-e", "."])
        mgr.up()
        assert engine.execs == [[mgr.identity.dev_container, "pip", "install", "-e", "."]]

    def test_create_before_start(self, engine, project_dir):
        mgr = _manager(engine, project_dir, postCreateCommand="echo create", postStartCommand="echo start")
        mgr.up()
        assert [e[-1] for e in engine.execs] == ["echo create", "echo start"]

    def test_empty_command_skipped(self, engine, project_dir):
        _manager(engine, project_dir, postCreateCommand="").up()
        assert engine.execs == []


# ===========================================================================
# Down / status / is_running
# ===========================================================================


class TestDown:
    """Tests for down."""

    def test_removes_everything_in_one_batch(self, manager, engine):
        descriptor = manager.up()
        assert manager.down(descriptor) == 3
        assert engine.containers == {}
        rm_calls = [c for c in engine.calls if c[1] == "rm"]
        assert len(rm_calls) == 1
        assert len(rm_calls[0]) == 3 + 3  # nerdctl rm -f + 3 ids

    def test_includes_unknown_roles(self, manager, engine):
        descriptor = manager.up()
        engine.add_container("leftover", {PROJECT_LABEL: manager.identity.key, ROLE_LABEL: "mystery"})
        assert manager.down(descriptor) == 4
        assert engine.containers == {}

    def test_empty_is_fine(self, manager, engine):
        descriptor = manager.up()
        engine.containers.clear()
        assert manager.down(descriptor) == 0

    def test_listing_failure_is_fatal(self, manager, engine):
        descriptor = manager.up()
        engine.fail_when(lambda args: args[0] == "ps")
        with pytest.raises(EngineError, match="listing containers"):
            manager.down(descriptor)

    def test_removal_failure_is_fatal(self, manager, engine):
        descriptor = manager.up()
        engine.fail_when(lambda args: args[0] == "rm", stderr="device busy")
        with pytest.raises(EngineError, match="removing containers") as exc_info:
            manager.down(descriptor)
        assert "device busy" in str(exc_info.value.__cause__)


class TestStatus:
    """Tests for status."""

    def test_scenario_db_service(self, manager):
        descriptor = manager.up()
        infos = manager.status(descriptor)
        assert len(infos) == 3
        assert sorted(i.role.value for i in infos) == ["dev", "netns", "service"]
        assert all(i.status for i in infos)

    def test_role_from_label_not_name(self, manager, engine):
        descriptor = manager.up()
        key = manager.identity.key
        engine.add_container(f"envclone-{key}-dev-lookalike", {PROJECT_LABEL: key, ROLE_LABEL: "service"})
        engine.add_container("weird-name", {PROJECT_LABEL: key, ROLE_LABEL: "bogus"})
        roles = {i.name: i.role for i in manager.status(descriptor)}
        assert roles[f"envclone-{key}-dev-lookalike"] is ContainerRole.SERVICE
        assert roles["weird-name"] is ContainerRole.UNKNOWN

    def test_empty(self, manager, engine):
        descriptor = manager.up()
        engine.containers.clear()
        assert manager.status(descriptor) == []

    def test_listing_failure_is_fatal(self, manager, engine):
        descriptor = manager.up()
        engine.fail_when(lambda args: args[0] == "ps")
        with pytest.raises(CommandError):
            manager.status(descriptor)

    def test_stopped_container_status(self, manager, engine):
        descriptor = manager.up()
        engine.by_name(manager.identity.dev_container).running = False
        dev = next(i for i in manager.status(descriptor) if i.role is ContainerRole.DEV)
        assert dev.status.startswith("Exited")


class TestParseLabels:
    def test_parses_pairs(self):
        assert parse_labels("envclone.project=api-1,envclone.role=dev") == {
            "envclone.project": "api-1",
            "envclone.role": "dev",
        }

    def test_ignores_garbage(self):
        assert parse_labels("") == {}
        assert parse_labels("novalue,a=b") == {"a": "b"}


class TestIsRunning:
    """is_running always answers with a boolean."""

    def test_running(self, manager):
        descriptor = manager.up()
        assert manager.is_running(descriptor) is True

    def test_stopped(self, manager, engine):
        descriptor = manager.up()
        engine.by_name(manager.identity.dev_container).running = False
        assert manager.is_running(descriptor) is False

    def test_absent(self, manager, engine):
        descriptor = manager.up()
        engine.containers.clear()
        assert manager.is_running(descriptor) is False

    def test_engine_failure(self, manager, engine):
        descriptor = manager.up()
        engine.fail_when(lambda args: True, returncode=127, stderr="nerdctl: not found")
        assert manager.is_running(descriptor) is False


# ===========================================================================
# Attach
# ===========================================================================


class TestAttach:
    """Tests for shell and exec."""

    def test_shell(self, manager, engine):
        descriptor = manager.up()
        manager.shell(descriptor)
        assert engine.interactive == [["nerdctl", "exec", "-it", manager.identity.dev_container, "/bin/bash", "-l"]]

    def test_exec_without_tty(self, manager, engine):
        descriptor = manager.up()
        manager.exec(descriptor, ["ls", "-la"])
        assert engine.interactive == [["nerdctl", "exec", "-i", manager.identity.dev_container, "ls", "-la"]]

    def test_exec_with_tty(self, manager, engine):
        descriptor = manager.up()
        manager.exec(descriptor, ["htop"], tty=True)
        assert engine.interactive[0][2] == "-it"

    def test_exec_exit_status(self, manager, engine):
        descriptor = manager.up()
        engine.interactive_returncode = 42
        with pytest.raises(CommandError) as exc_info:
            manager.exec(descriptor, ["false"])
        assert exc_info.value.returncode == 42

    def test_requires_running_dev_container(self, manager, engine):
        descriptor = manager.up()
        engine.by_name(manager.identity.dev_container).running = False
        with pytest.raises(NotRunningError):
            manager.shell(descriptor)
        with pytest.raises(NotRunningError):
            manager.exec(descriptor, ["ls"])
        assert engine.interactive == []
        # never started implicitly
        assert engine.by_name(manager.identity.dev_container).running is False

    def test_exec_requires_command(self, manager):
        descriptor = manager.up()
        with pytest.raises(EnvcloneError):
            manager.exec(descriptor, [])
