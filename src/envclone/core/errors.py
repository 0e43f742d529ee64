"""
Structured error types for envclone.

Every failure that can reach the user is an ``EnvcloneError``. Besides the
message, each error carries:

- **Category:** what kind of failure it is (engine, precondition, config...)
- **Policy:** what the lifecycle should do with it (fatal, best-effort, warning)
- **Hint:** a remediation line printed by the CLI under the error chain
- **Context:** structured metadata for logging (step, container, service)
- **Cause:** the chained underlying exception

Manifesto:
    - **Typed hierarchy:** precondition, engine, config and store errors
      are distinct classes, so callers catch what they mean
    - **Explicit policy:** fatal / best-effort / warning is a tag on the
      error or on the lifecycle step, never decided ad hoc at a call site
    - **No retries:** nothing here retries; the next invocation does

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        EnvcloneError                          │
        │        (category, policy, hint, context, cause)               │
        ├──────────────────────────────────────────────────────────────┤
        │  PreconditionError     EngineError          ConfigError       │
        │  (PRECONDITION)        (ENGINE)             (CONFIG)          │
        │       │                    │                                  │
        │  DescriptorNotFound    CommandError         StoreError        │
        │  NotRunningError       ServiceCreateError   (STORE)           │
        │                        RuntimeNotReady          │             │
        │                        UnsupportedPlatform  DescriptorCorrupt │
        └──────────────────────────────────────────────────────────────┘

        policy_scope(policy, step)  ── the only place a policy is applied:
            FATAL        → re-raise
            BEST_EFFORT  → log at debug, swallow
            WARNING      → log at warning, swallow

Examples:
    >>> err = CommandError(["nerdctl", "rm", "-f", "abc"], 1, "no such container")
    >>> err.returncode
    1
    >>> "nerdctl rm -f abc" in str(err)
    True

    >>> with policy_scope(ErrorPolicy.BEST_EFFORT, "remove_stale") as scope:
    ...     raise CommandError(["nerdctl", "ps"], 1, "boom")
    >>> scope.failed
    True

Tags:
    error-handling, exception-hierarchy, policy, envclone
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from enum import Enum
from types import TracebackType
from typing import Any

from envclone.core.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    PRECONDITION = "PRECONDITION"  # No descriptor, dev container not running
    ENGINE = "ENGINE"  # Non-zero exit from the container engine
    PLATFORM = "PLATFORM"  # Host runtime missing or unsupported
    CONFIG = "CONFIG"  # devcontainer.json missing or invalid
    STORE = "STORE"  # Descriptor file unreadable or malformed
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


class ErrorPolicy(str, Enum):
    """What a lifecycle step does when it fails.

    Attributes:
        FATAL: Abort the current operation and surface the error.
        BEST_EFFORT: Swallow the error; the next attempt retries naturally.
        WARNING: Log a warning and continue; the step is a convenience.
    """

    FATAL = "fatal"
    BEST_EFFORT = "best_effort"
    WARNING = "warning"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging."""

    step: str | None = None
    project: str | None = None
    container: str | None = None
    service: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["step", "project", "container", "service"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class EnvcloneError(Exception):
    """
    Base exception for all envclone errors.

    Subclasses set ``default_category`` and ``default_policy``; both can be
    overridden per instance. ``hint`` is a one-line remediation the CLI
    prints after the error chain.

    Examples:
        >>> err = EnvcloneError("Something went wrong")
        >>> err.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> err.policy
        <ErrorPolicy.FATAL: 'fatal'>

        >>> err = EnvcloneError("Fetch failed").with_context(step="build")
        >>> err.context.step
        'build'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_policy: ErrorPolicy = ErrorPolicy.FATAL
    default_hint: str | None = None

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        policy: ErrorPolicy | None = None,
        hint: str | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.policy = policy or self.default_policy
        self.hint = hint or self.default_hint
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> EnvcloneError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "policy": self.policy.value,
        }
        if self.hint:
            result["hint"] = self.hint
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# PRECONDITION ERRORS
# =============================================================================


class PreconditionError(EnvcloneError):
    """An operation was invoked in a state that cannot satisfy it."""

    default_category = ErrorCategory.PRECONDITION


class DescriptorNotFoundError(PreconditionError):
    """No environment descriptor exists for the project."""

    default_hint = "run 'envclone up' first"

    def __init__(self, project_dir: str, message: str | None = None, **kwargs: Any):
        self.project_dir = project_dir
        super().__init__(message or f"no environment found for {project_dir}", **kwargs)


class NotRunningError(PreconditionError):
    """The dev container does not exist or is stopped."""

    default_hint = "run 'envclone up' first"

    def __init__(self, container: str, **kwargs: Any):
        self.container = container
        super().__init__(f"dev container {container} is not running", **kwargs)
        self.context.container = container


# =============================================================================
# ENGINE ERRORS
# =============================================================================


class EngineError(EnvcloneError):
    """The container engine (or a host tool) failed."""

    default_category = ErrorCategory.ENGINE


class CommandError(EngineError):
    """An external command exited non-zero.

    The message always contains the full command line and the captured
    standard error, so the CLI's error chain is self-explanatory.
    """

    def __init__(
        self,
        argv: list[str],
        returncode: int,
        stderr: str = "",
        **kwargs: Any,
    ):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"{shlex.join(self.argv)}: exit status {returncode}"
        if self.stderr:
            message = f"{message}\n{self.stderr}"
        super().__init__(message, **kwargs)

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)


class ServiceCreateError(EngineError):
    """A sidecar service container could not be created."""

    def __init__(self, service: str, cause: BaseException, **kwargs: Any):
        self.service = service
        super().__init__(f"creating service {service}", cause=cause, **kwargs)
        self.context.service = service


class RuntimeNotReadyError(EngineError):
    """The engine is not reachable and could not be repaired."""

    default_category = ErrorCategory.PLATFORM


class UnsupportedPlatformError(EngineError):
    """The host OS has no platform variant, or its tooling is missing."""

    default_category = ErrorCategory.PLATFORM


# =============================================================================
# CONFIG / STORE ERRORS
# =============================================================================


class ConfigError(EnvcloneError):
    """devcontainer.json is missing or invalid."""

    default_category = ErrorCategory.CONFIG


class StoreError(EnvcloneError):
    """Descriptor store read/write failure."""

    default_category = ErrorCategory.STORE


class DescriptorCorruptError(StoreError):
    """A stored descriptor exists but cannot be parsed."""

    default_hint = "run 'envclone down' or delete the state file and run 'envclone up'"


# =============================================================================
# POLICY APPLICATION
# =============================================================================


class policy_scope:
    """Apply an :class:`ErrorPolicy` to a block of lifecycle work.

    Only :class:`EngineError` is subject to the policy; anything else
    (programming errors, ``KeyboardInterrupt``) always propagates.

    Usage::

        with policy_scope(ErrorPolicy.WARNING, "post_create") as scope:
            runner.run(argv)
        if scope.failed:
            ...
    """

    def __init__(self, policy: ErrorPolicy, step: str, **log_fields: Any):
        self.policy = policy
        self.step = step
        self.log_fields = log_fields
        self.error: EngineError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __enter__(self) -> policy_scope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None or not isinstance(exc, EngineError):
            return False

        self.error = exc
        exc.with_context(step=self.step)

        if self.policy is ErrorPolicy.FATAL:
            return False
        if self.policy is ErrorPolicy.WARNING:
            logger.warning(f"{self.step}.failed", error=exc.message, **self.log_fields)
        else:
            logger.debug(f"{self.step}.ignored", error=exc.message, **self.log_fields)
        return True


def error_chain(error: BaseException) -> list[str]:
    """Flatten an exception and its ``__cause__`` chain into messages."""
    messages = []
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        messages.append(getattr(current, "message", None) or str(current) or type(current).__name__)
        current = current.__cause__
    return messages


__all__ = [
    "ErrorCategory",
    "ErrorPolicy",
    "ErrorContext",
    "EnvcloneError",
    "PreconditionError",
    "DescriptorNotFoundError",
    "NotRunningError",
    "EngineError",
    "CommandError",
    "ServiceCreateError",
    "RuntimeNotReadyError",
    "UnsupportedPlatformError",
    "ConfigError",
    "StoreError",
    "DescriptorCorruptError",
    "policy_scope",
    "error_chain",
]
