"""
Deterministic hashing for envclone identities.

Project directories are keyed by a truncated SHA-256 of their absolute path.
The key is stable across invocations, collision-resistant, and safe to use
as a file name or a container-label value regardless of how long the path is
or which characters it contains.

Examples:
    >>> compute_hash("/home/me/src/api", length=12) == compute_hash("/home/me/src/api", length=12)
    True
    >>> len(path_fingerprint("/home/me/src/api"))
    12

Tags:
    hashing, fingerprint, identity, envclone
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Any

FINGERPRINT_LENGTH = 12


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute a deterministic hex hash from values.

    Values are stringified and joined with ``|`` before hashing, so the
    hash is order-dependent: ``compute_hash("a", "b") != compute_hash("b", "a")``.

    Args:
        *values: Values to hash (converted with ``str()``)
        length: Number of hex characters to return (max 64)

    Returns:
        Lowercase hex digest truncated to ``length``
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:length]


def path_fingerprint(path: str | os.PathLike[str]) -> str:
    """Fingerprint an absolute path.

    Relative paths are made absolute against the current directory first,
    so callers may pass either form. Symlinks are not resolved: two paths
    naming the same directory through different links get different keys.
    """
    absolute = os.path.abspath(Path(path))
    return compute_hash(absolute, length=FINGERPRINT_LENGTH)


__all__ = ["FINGERPRINT_LENGTH", "compute_hash", "path_fingerprint"]
