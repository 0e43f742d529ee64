"""
Shared pytest fixtures for envclone tests.

This module provides:
- An isolated state directory and project directory per test
- A fake in-memory container engine (no nerdctl, no Lima)
- Environment isolation for ``ENVCLONE_*`` settings

Usage:
    Fixtures are auto-discovered by pytest::

        def test_up(manager, engine):
            manager.up()
            assert engine.containers
"""

from __future__ import annotations

from pathlib import Path

import pytest

from envclone.config import DevContainerConfig
from envclone.core.logging import clear_context, configure_logging
from envclone.core.settings import clear_settings_cache
from envclone.engine.manager import EnvironmentManager
from envclone.engine.platform import DirectPlatform
from envclone.store import DescriptorStore
from tests._support import write_devcontainer
from tests._support.fake_engine import FakeEngine


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if test_path.parts[0] == "cli":
            item.add_marker(pytest.mark.cli)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Strip ENVCLONE_* variables and point the state dir at tmp."""
    import os

    for key in list(os.environ):
        if key.startswith("ENVCLONE_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("ENVCLONE_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    configure_logging(level="WARNING", json_format=False)
    yield
    clear_context()
    clear_settings_cache()


# =============================================================================
# Project fixtures
# =============================================================================


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture
def store(state_dir: Path) -> DescriptorStore:
    return DescriptorStore(state_dir)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "projects" / "api"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def devcontainer(project_dir: Path) -> dict:
    """A config with one ``db`` service, written to the project."""
    data = {
        "name": "api",
        "image": "debian:12",
        "services": [{"name": "db", "image": "postgres:16", "env": ["POSTGRES_PASSWORD=dev"]}],
    }
    write_devcontainer(project_dir, data)
    return data


@pytest.fixture
def config(devcontainer: dict) -> DevContainerConfig:
    return DevContainerConfig.model_validate(devcontainer)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def platform() -> DirectPlatform:
    return DirectPlatform()


@pytest.fixture
def manager(platform: DirectPlatform, engine: FakeEngine, project_dir: Path, config: DevContainerConfig) -> EnvironmentManager:
    return EnvironmentManager(platform, engine, project_dir, config)
