"""Descriptor store: one JSON file per project under the state directory.

Files are named by the fingerprint of the absolute project directory::

    ~/.local/share/envclone/3b5d5c3712955042.json   (12 hex characters)

The descriptor file is the only thing that carries an environment from one
``envclone`` invocation to the next.

Save semantics are last-writer-wins. The write goes to a temporary file in
the same directory and is renamed into place, so a reader sees either the
old record or the new one, never half of one. There is no versioning.

:class:`ProjectLock` is an optional advisory lock (``flock``) next to the
descriptor. The CLI holds it around ``up`` and ``down`` only when
``ENVCLONE_LOCK_ENVIRONMENTS`` is set.

Tags:
    state, persistence, descriptor, json, lock, envclone
"""

from __future__ import annotations

import fcntl
import os
import tempfile
from pathlib import Path
from types import TracebackType

from pydantic import ValidationError

from envclone.core.errors import DescriptorCorruptError, DescriptorNotFoundError, StoreError
from envclone.core.hashing import path_fingerprint
from envclone.core.logging import get_logger
from envclone.engine.models import EnvironmentDescriptor

logger = get_logger(__name__)


class DescriptorStore:
    """Persist, load and delete environment descriptors.

    Example::

        store = DescriptorStore(settings.state_dir)
        store.save(descriptor)
        descriptor = store.load("/home/me/src/api")
        store.remove("/home/me/src/api")
    """

    def __init__(self, state_dir: str | os.PathLike[str]) -> None:
        self.state_dir = Path(state_dir).expanduser()

    def key(self, project_dir: str | os.PathLike[str]) -> str:
        return path_fingerprint(project_dir)

    def path_for(self, project_dir: str | os.PathLike[str]) -> Path:
        return self.state_dir / f"{self.key(project_dir)}.json"

    def exists(self, project_dir: str | os.PathLike[str]) -> bool:
        return self.path_for(project_dir).is_file()

    def save(self, descriptor: EnvironmentDescriptor) -> Path:
        """Write the descriptor, replacing any previous one for the project."""
        path = self.path_for(descriptor.project_dir)
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.state_dir, prefix=".", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(descriptor.to_json())
                    handle.write("\n")
                os.chmod(tmp_name, 0o644)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreError(f"saving state to {path}: {exc}", cause=exc) from exc

        logger.debug("store.saved", path=str(path), project=descriptor.project_name)
        return path

    def load(self, project_dir: str | os.PathLike[str]) -> EnvironmentDescriptor:
        """Read the project's descriptor.

        Raises:
            DescriptorNotFoundError: No descriptor for this directory.
            DescriptorCorruptError: The file exists but is not a valid record.
        """
        path = self.path_for(project_dir)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as exc:
            raise DescriptorNotFoundError(os.path.abspath(project_dir), cause=exc) from exc
        except OSError as exc:
            raise StoreError(f"reading {path}: {exc}", cause=exc) from exc

        try:
            return EnvironmentDescriptor.model_validate_json(raw)
        except (ValidationError, UnicodeDecodeError) as exc:
            raise DescriptorCorruptError(f"malformed state file {path}", cause=exc) from exc

    def remove(self, project_dir: str | os.PathLike[str]) -> None:
        """Delete the project's descriptor.

        Raises:
            DescriptorNotFoundError: There was nothing to delete.
        """
        path = self.path_for(project_dir)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise DescriptorNotFoundError(os.path.abspath(project_dir), cause=exc) from exc
        except OSError as exc:
            raise StoreError(f"removing state {path}: {exc}", cause=exc) from exc
        logger.debug("store.removed", path=str(path))


class ProjectLock:
    """Exclusive advisory lock for one project, held by a context manager.

    Blocks until the lock is free. The lock file lives next to the
    descriptor and is left behind on release.
    """

    def __init__(self, state_dir: str | os.PathLike[str], project_dir: str | os.PathLike[str]) -> None:
        self.path = Path(state_dir).expanduser() / f"{path_fingerprint(project_dir)}.lock"
        self._handle = None

    def __enter__(self) -> ProjectLock:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a+", encoding="utf-8")
        except OSError as exc:
            raise StoreError(f"opening lock {self.path}: {exc}", cause=exc) from exc
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_EX)
        except OSError as exc:
            self._handle.close()
            self._handle = None
            raise StoreError(f"acquiring lock {self.path}: {exc}", cause=exc) from exc
        logger.debug("lock.acquired", path=str(self.path))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None
        logger.debug("lock.released", path=str(self.path))


__all__ = ["DescriptorStore", "ProjectLock"]
