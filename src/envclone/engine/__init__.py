"""Orchestration engine: runner, platform, namespace anchor, lifecycle manager."""

from envclone.engine.manager import EnvironmentManager
from envclone.engine.models import (
    ContainerInfo,
    ContainerRole,
    EnvironmentDescriptor,
    ProjectIdentity,
)
from envclone.engine.namespace import NamespaceProvisioner
from envclone.engine.platform import DirectPlatform, Platform, VMPlatform, detect_platform
from envclone.engine.policy import STEP_POLICIES, LifecycleStep
from envclone.engine.runner import ProcessRunner

__all__ = [
    "ContainerInfo",
    "ContainerRole",
    "DirectPlatform",
    "EnvironmentDescriptor",
    "EnvironmentManager",
    "LifecycleStep",
    "NamespaceProvisioner",
    "Platform",
    "ProcessRunner",
    "ProjectIdentity",
    "STEP_POLICIES",
    "VMPlatform",
    "detect_platform",
]
