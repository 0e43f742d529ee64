"""Failure policy per lifecycle step.

The orchestration code never decides on its own whether a failure is
fatal. Each step looks itself up here and runs inside
:class:`~envclone.core.errors.policy_scope`, so what is ignored, what is
warned about and what aborts the operation is visible in one table.

    ========================  ===========
    step                      policy
    ========================  ===========
    remove_stale              best_effort
    build                     fatal
    create_anchor             fatal
    create_service            fatal
    create_dev                fatal
    post_create               warning
    post_start                warning
    remove_anchor             best_effort
    list_containers           fatal
    remove_containers         fatal
    ========================  ===========
"""

from __future__ import annotations

from enum import Enum

from envclone.core.errors import ErrorPolicy, policy_scope


class LifecycleStep(str, Enum):
    REMOVE_STALE = "remove_stale"
    BUILD = "build"
    CREATE_ANCHOR = "create_anchor"
    CREATE_SERVICE = "create_service"
    CREATE_DEV = "create_dev"
    POST_CREATE = "post_create"
    POST_START = "post_start"
    REMOVE_ANCHOR = "remove_anchor"
    LIST_CONTAINERS = "list_containers"
    REMOVE_CONTAINERS = "remove_containers"


STEP_POLICIES: dict[LifecycleStep, ErrorPolicy] = {
    LifecycleStep.REMOVE_STALE: ErrorPolicy.BEST_EFFORT,
    LifecycleStep.BUILD: ErrorPolicy.FATAL,
    LifecycleStep.CREATE_ANCHOR: ErrorPolicy.FATAL,
    LifecycleStep.CREATE_SERVICE: ErrorPolicy.FATAL,
    LifecycleStep.CREATE_DEV: ErrorPolicy.FATAL,
    LifecycleStep.POST_CREATE: ErrorPolicy.WARNING,
    LifecycleStep.POST_START: ErrorPolicy.WARNING,
    LifecycleStep.REMOVE_ANCHOR: ErrorPolicy.BEST_EFFORT,
    LifecycleStep.LIST_CONTAINERS: ErrorPolicy.FATAL,
    LifecycleStep.REMOVE_CONTAINERS: ErrorPolicy.FATAL,
}


def policy_for(step: LifecycleStep) -> ErrorPolicy:
    return STEP_POLICIES[step]


def step_scope(step: LifecycleStep, **log_fields) -> policy_scope:
    """``policy_scope`` configured from the table above."""
    return policy_scope(STEP_POLICIES[step], step.value, **log_fields)


__all__ = ["LifecycleStep", "STEP_POLICIES", "policy_for", "step_scope"]
