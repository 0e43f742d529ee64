"""Engine-safe names derived from user-supplied project and service names."""

from __future__ import annotations

import re

_NAME_INVALID = re.compile(r"[^a-z0-9_.-]+")


def slugify(name: str) -> str:
    """Reduce a project or service name to characters the engine accepts."""
    slug = _NAME_INVALID.sub("-", name.lower()).strip("-._")
    return slug or "project"


__all__ = ["slugify"]
