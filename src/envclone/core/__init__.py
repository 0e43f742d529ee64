"""Core primitives shared by every envclone module: errors, logging, hashing, settings."""

from envclone.core.errors import (
    CommandError,
    ConfigError,
    DescriptorCorruptError,
    DescriptorNotFoundError,
    EngineError,
    EnvcloneError,
    ErrorCategory,
    ErrorPolicy,
    NotRunningError,
    PreconditionError,
    RuntimeNotReadyError,
    ServiceCreateError,
    StoreError,
    UnsupportedPlatformError,
    policy_scope,
)
from envclone.core.hashing import compute_hash, path_fingerprint
from envclone.core.logging import configure_logging, get_logger
from envclone.core.settings import EnvcloneSettings, get_settings

__all__ = [
    "CommandError",
    "ConfigError",
    "DescriptorCorruptError",
    "DescriptorNotFoundError",
    "EngineError",
    "EnvcloneError",
    "EnvcloneSettings",
    "ErrorCategory",
    "ErrorPolicy",
    "NotRunningError",
    "PreconditionError",
    "RuntimeNotReadyError",
    "ServiceCreateError",
    "StoreError",
    "UnsupportedPlatformError",
    "compute_hash",
    "configure_logging",
    "get_logger",
    "get_settings",
    "path_fingerprint",
    "policy_scope",
]
