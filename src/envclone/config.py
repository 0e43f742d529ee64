"""Project configuration: ``.devcontainer/devcontainer.json``.

Reads the subset of the devcontainer format envclone understands into
:class:`DevContainerConfig`, plus the envclone extension ``services``
(sidecar containers sharing the dev container's network namespace).
Unknown keys are ignored so a file written for another tool still loads.

Example file::

    {
      "name": "api",
      "build": {"dockerfile": "Dockerfile.dev"},
      "workspaceMount": "/src",
      "postCreateCommand": "make deps",
      "services": [
        {"name": "db", "image": "postgres:16", "env": ["POSTGRES_PASSWORD=dev"]}
      ]
    }

Tags:
    config, devcontainer, pydantic, validation, envclone
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from envclone.core.errors import ConfigError
from envclone.core.naming import slugify

CONFIG_DIR = ".devcontainer"
CONFIG_FILE = "devcontainer.json"

DEFAULT_TEMPLATE: dict[str, Any] = {
    "name": "",
    "image": "mcr.microsoft.com/devcontainers/base:debian",
    "workspaceMount": "/workspace",
    "remoteUser": "root",
    "postCreateCommand": "",
    "forwardPorts": [],
    "services": [],
}


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class BuildConfig(_Model):
    """``build`` section: image built from a Dockerfile instead of pulled."""

    dockerfile: str
    context: str | None = None


class ServiceConfig(_Model):
    """A sidecar container.

    ``env`` accepts either ``["KEY=value"]`` or ``{"KEY": "value"}``;
    ``ports`` is informational, since only the namespace anchor publishes
    ports.
    """

    name: str
    image: str
    ports: list[str] = Field(default_factory=list)
    env: list[str] = Field(default_factory=list)
    volumes: list[str] = Field(default_factory=list)

    @field_validator("name", "image")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("env", mode="before")
    @classmethod
    def _env_mapping(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [f"{key}={val}" for key, val in value.items()]
        return value

    @field_validator("ports", mode="before")
    @classmethod
    def _ports_as_strings(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(port) for port in value]
        return value


class DevContainerConfig(_Model):
    """Parsed ``devcontainer.json``."""

    name: str = ""
    image: str | None = None
    build: BuildConfig | None = None
    workspace_folder: str | None = None
    workspace_mount: str | None = None
    forward_ports: list[int | str] = Field(default_factory=list)
    post_create_command: str | list[str] | None = None
    post_start_command: str | list[str] | None = None
    remote_user: str | None = None
    mounts: list[str] = Field(default_factory=list)
    features: dict[str, Any] = Field(default_factory=dict)
    run_args: list[str] = Field(default_factory=list)
    services: list[ServiceConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check(self) -> DevContainerConfig:
        if not self.image and self.build is None:
            raise ValueError('either "image" or "build.dockerfile" is required')
        if self.build is not None and not self.build.dockerfile.strip():
            raise ValueError('"build.dockerfile" cannot be empty')
        seen: set[str] = set()
        for service in self.services:
            # service container names are slugged, so "DB" and "db" collide
            key = slugify(service.name)
            if key in seen:
                raise ValueError(f"duplicate service name {service.name!r}")
            seen.add(key)
        return self


def config_path(project_dir: str | Path) -> Path:
    return Path(project_dir) / CONFIG_DIR / CONFIG_FILE


def load_devcontainer(project_dir: str | Path) -> DevContainerConfig:
    """Load and validate the project's devcontainer.json.

    ``name`` defaults to the project directory's basename.

    Raises:
        ConfigError: The file is missing, unreadable, not JSON, or fails
            validation.
    """
    project_dir = Path(project_dir).absolute()
    path = config_path(project_dir)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"reading {path}: {exc.strerror or exc}",
            hint="run 'envclone init' to create one",
            cause=exc,
        ) from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"reading {path}: not valid UTF-8", cause=exc) from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"parsing {path}: {exc}", cause=exc) from exc
    if not isinstance(data, dict):
        raise ConfigError(f"parsing {path}: top level must be an object")

    try:
        config = DevContainerConfig.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'devcontainer.json'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"{path}: {problems}", cause=exc) from exc

    if not config.name:
        config.name = project_dir.name
    return config


def write_template(project_dir: str | Path) -> Path:
    """Create ``.devcontainer/devcontainer.json`` from the default template.

    Raises:
        ConfigError: The file already exists.
    """
    path = config_path(project_dir)
    if path.exists():
        raise ConfigError(f"{path} already exists")
    template = dict(DEFAULT_TEMPLATE, name=Path(project_dir).absolute().name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(template, indent=2) + "\n", encoding="utf-8")
    return path


__all__ = [
    "BuildConfig",
    "ConfigError",
    "DevContainerConfig",
    "ServiceConfig",
    "config_path",
    "load_devcontainer",
    "write_template",
]
