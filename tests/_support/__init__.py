"""
Test support utilities for envclone tests.

Helpers that don't fit as pytest fixtures but are shared across test files.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def write_devcontainer(project_dir: Path, data: dict[str, Any]) -> Path:
    """Write ``.devcontainer/devcontainer.json`` under ``project_dir``."""
    config_dir = project_dir / ".devcontainer"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "devcontainer.json"
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path
