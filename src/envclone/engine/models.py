"""Data models for the orchestration engine.

Key Concepts:
    ProjectIdentity: The opaque per-project key. Built once from the
        absolute project directory alone; every container name, label and
        image tag is derived from it, so creation-time and query-time
        labels can never disagree.
    ContainerRole: ``dev`` / ``service`` / ``netns`` (the anchor), plus
        ``unknown`` for anything carrying an unrecognised role label.
    ContainerInfo: One row of ``status`` output, read live from the engine.
    EnvironmentDescriptor: The durable record of a running environment.
        Serialised with camelCase keys; it is the only state that survives
        between invocations.

Labeling:
    ::

        envclone.project=<identity key>    every container of the project
        envclone.role=dev|service|netns    what the container is for

Tags:
    models, identity, labels, descriptor, pydantic, envclone
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from envclone.core.hashing import path_fingerprint
from envclone.core.naming import slugify

LABEL_PREFIX = "envclone"
PROJECT_LABEL = f"{LABEL_PREFIX}.project"
ROLE_LABEL = f"{LABEL_PREFIX}.role"


class ContainerRole(str, Enum):
    """Role of a container inside an environment, read from its role label."""

    DEV = "dev"
    SERVICE = "service"
    NETNS = "netns"
    UNKNOWN = "unknown"

    @classmethod
    def from_label(cls, value: str | None) -> ContainerRole:
        if value in (cls.DEV.value, cls.SERVICE.value, cls.NETNS.value):
            return cls(value)
        return cls.UNKNOWN


@dataclass(frozen=True)
class ProjectIdentity:
    """Per-project identity key and everything derived from it.

    ``key`` depends on the project directory alone: a readable slug of the
    directory basename plus the first eight characters of the directory
    fingerprint. Two checkouts that share a basename still get disjoint
    containers and labels, and editing the devcontainer ``name`` never
    changes the labels. ``name`` is the display name only.

    Example::

        ident = ProjectIdentity.for_project("/home/me/src/api", "My API")
        ident.key                    # 'api-7c1e9f0a'
        ident.dev_container          # 'envclone-api-7c1e9f0a-dev'
        ident.label_filter           # 'label=envclone.project=api-7c1e9f0a'
    """

    name: str
    project_dir: str
    fingerprint: str

    @classmethod
    def for_project(cls, project_dir: str | os.PathLike[str], name: str | None = None) -> ProjectIdentity:
        absolute = os.path.abspath(Path(project_dir))
        return cls(
            name=name or Path(absolute).name,
            project_dir=absolute,
            fingerprint=path_fingerprint(absolute),
        )

    @property
    def key(self) -> str:
        return f"{slugify(Path(self.project_dir).name)}-{self.fingerprint[:8]}"

    # -- labels -------------------------------------------------------------

    @property
    def project_label(self) -> str:
        return f"{PROJECT_LABEL}={self.key}"

    @property
    def label_filter(self) -> str:
        return f"label={self.project_label}"

    def labels(self, role: ContainerRole) -> list[str]:
        """``--label`` arguments for a container of the given role."""
        return ["--label", self.project_label, "--label", f"{ROLE_LABEL}={role.value}"]

    # -- names --------------------------------------------------------------

    def container_name(self, suffix: str) -> str:
        return f"envclone-{self.key}-{suffix}"

    @property
    def dev_container(self) -> str:
        return self.container_name("dev")

    @property
    def anchor_container(self) -> str:
        return self.container_name("netns")

    def service_container(self, service: str) -> str:
        return self.container_name(slugify(service))

    @property
    def image_tag(self) -> str:
        return f"envclone-{self.key}:latest"


@dataclass
class ContainerInfo:
    """Live information about one project container."""

    name: str
    role: ContainerRole
    status: str


class EnvironmentDescriptor(BaseModel):
    """Durable record of a running environment.

    Written once at the end of a successful ``up`` and deleted by ``down``.
    ``netAnchorID`` is the anchor container; ``serviceIDs`` keeps service
    declaration order.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    project_name: str = Field(alias="projectName")
    project_dir: str = Field(alias="projectDir")
    dev_container_id: str = Field(alias="devContainerID")
    net_anchor_id: str = Field(
        alias="netAnchorID",
        validation_alias=AliasChoices("netAnchorID", "netNSID", "net_anchor_id"),
    )
    service_ids: list[str] = Field(default_factory=list, alias="serviceIDs")
    ssh_port: int = Field(alias="sshPort")
    remote_user: str = Field(alias="remoteUser")

    @field_validator("service_ids", mode="before")
    @classmethod
    def _null_services(cls, value: object) -> object:
        return [] if value is None else value

    @property
    def identity(self) -> ProjectIdentity:
        return ProjectIdentity.for_project(self.project_dir, self.project_name)

    @property
    def dev_container(self) -> str:
        """Name of the dev container, the target of inspect and exec."""
        return self.identity.dev_container

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


__all__ = [
    "LABEL_PREFIX",
    "PROJECT_LABEL",
    "ROLE_LABEL",
    "ContainerInfo",
    "ContainerRole",
    "EnvironmentDescriptor",
    "ProjectIdentity",
    "slugify",
]
