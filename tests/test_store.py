"""
Tests for envclone.store.

Tests cover:
- Save / load / remove round trip keyed by project directory
- Missing and corrupt descriptor files
- Last-writer-wins overwrite
- ProjectLock acquisition and release
"""

import json
import os
import stat
import threading

import pytest

from envclone.core.errors import DescriptorCorruptError, DescriptorNotFoundError
from envclone.core.hashing import path_fingerprint
from envclone.engine.models import EnvironmentDescriptor
from envclone.store import DescriptorStore, ProjectLock


def _descriptor(project_dir, **overrides) -> EnvironmentDescriptor:
    fields = dict(
        project_name="api",
        project_dir=os.path.abspath(project_dir),
        dev_container_id="d" * 64,
        net_anchor_id="a" * 64,
        service_ids=["s" * 64],
        ssh_port=2222,
        remote_user="root",
    )
    fields.update(overrides)
    return EnvironmentDescriptor(**fields)


class TestSaveLoad:
    """Tests for save and load."""

    def test_round_trip(self, store, project_dir):
        descriptor = _descriptor(project_dir)
        store.save(descriptor)
        assert store.load(project_dir) == descriptor

    def test_round_trip_zero_services(self, store, project_dir):
        descriptor = _descriptor(project_dir, service_ids=[])
        store.save(descriptor)
        assert store.load(project_dir).service_ids == []

    def test_file_named_by_fingerprint(self, store, state_dir, project_dir):
        path = store.save(_descriptor(project_dir))
        assert path == state_dir / f"{path_fingerprint(project_dir)}.json"
        assert len(path.stem) == 12
        assert stat.S_IMODE(path.stat().st_mode) == 0o644

    def test_file_uses_camel_case_keys(self, store, project_dir):
        path = store.save(_descriptor(project_dir))
        data = json.loads(path.read_text())
        assert data["devContainerID"] == "d" * 64
        assert data["netAnchorID"] == "a" * 64

    def test_no_temp_files_left(self, store, state_dir, project_dir):
        store.save(_descriptor(project_dir))
        assert [p.name for p in state_dir.iterdir()] == [f"{path_fingerprint(project_dir)}.json"]

    def test_overwrite_last_writer_wins(self, store, project_dir):
        store.save(_descriptor(project_dir, dev_container_id="first"))
        store.save(_descriptor(project_dir, dev_container_id="second"))
        assert store.load(project_dir).dev_container_id == "second"

    def test_relative_and_absolute_dir_share_key(self, store, tmp_path, project_dir):
        store.save(_descriptor(project_dir))
        assert store.exists(os.path.relpath(project_dir, tmp_path))

    def test_projects_do_not_collide(self, store, tmp_path):
        a = tmp_path / "work" / "api"
        b = tmp_path / "personal" / "api"
        store.save(_descriptor(a, dev_container_id="a"))
        store.save(_descriptor(b, dev_container_id="b"))
        assert store.load(a).dev_container_id == "a"
        assert store.load(b).dev_container_id == "b"

    def test_creates_state_dir(self, tmp_path, project_dir):
        store = DescriptorStore(tmp_path / "deep" / "state")
        store.save(_descriptor(project_dir))
        assert store.exists(project_dir)


class TestLoadFailures:
    """Tests for load failures."""

    def test_missing(self, store, project_dir):
        with pytest.raises(DescriptorNotFoundError) as exc_info:
            store.load(project_dir)
        assert exc_info.value.project_dir == os.path.abspath(project_dir)
        assert exc_info.value.hint == "run 'envclone up' first"

    def test_not_json(self, store, state_dir, project_dir):
        state_dir.mkdir(parents=True)
        store.path_for(project_dir).write_text("{not json")
        with pytest.raises(DescriptorCorruptError):
            store.load(project_dir)

    def test_invalid_utf8(self, store, state_dir, project_dir):
        state_dir.mkdir(parents=True)
        store.path_for(project_dir).write_bytes(b'{"projectName": "\xff\xfe"}')
        with pytest.raises(DescriptorCorruptError, match="malformed state file"):
            store.load(project_dir)

    def test_missing_field(self, store, state_dir, project_dir):
        state_dir.mkdir(parents=True)
        store.path_for(project_dir).write_text(json.dumps({"projectName": "api"}))
        with pytest.raises(DescriptorCorruptError, match="malformed state file"):
            store.load(project_dir)


class TestRemove:
    """Tests for remove."""

    def test_load_after_remove_fails(self, store, project_dir):
        store.save(_descriptor(project_dir))
        store.remove(project_dir)
        assert not store.exists(project_dir)
        with pytest.raises(DescriptorNotFoundError):
            store.load(project_dir)

    def test_remove_missing(self, store, project_dir):
        with pytest.raises(DescriptorNotFoundError):
            store.remove(project_dir)


class TestProjectLock:
    """Tests for the advisory project lock."""

    def test_lock_file_next_to_descriptors(self, state_dir, project_dir):
        with ProjectLock(state_dir, project_dir) as lock:
            assert lock.path == state_dir / f"{path_fingerprint(project_dir)}.lock"
            assert lock.path.exists()

    def test_reentry_after_release(self, state_dir, project_dir):
        lock = ProjectLock(state_dir, project_dir)
        with lock:
            pass
        with lock:
            pass

    def test_serializes_holders(self, state_dir, project_dir):
        order = []
        holding = threading.Event()
        release = threading.Event()

        def first():
            with ProjectLock(state_dir, project_dir):
                order.append("first-acquired")
                holding.set()
                release.wait(5)
                order.append("first-released")

        thread = threading.Thread(target=first)
        thread.start()
        holding.wait(5)

        def second():
            with ProjectLock(state_dir, project_dir):
                order.append("second-acquired")

        waiter = threading.Thread(target=second)
        waiter.start()
        waiter.join(0.2)
        assert waiter.is_alive()

        release.set()
        thread.join(5)
        waiter.join(5)
        assert order == ["first-acquired", "first-released", "second-acquired"]

    def test_different_projects_do_not_block(self, state_dir, tmp_path):
        with ProjectLock(state_dir, tmp_path / "a"):
            with ProjectLock(state_dir, tmp_path / "b"):
                pass
