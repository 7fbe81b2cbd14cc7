"""Registry persistence.

The registry file is JSON written with indentation so it can be diffed and
hand-edited. Writes are atomic (temp file in the same directory, then
os.replace) and every read-modify-write goes through `update()`, which holds
the store's writer lock for the whole cycle.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

from branchstack.core.errors import PersistenceFailed
from branchstack.core.registry import Registry
from branchstack.core.registry_schema import (
    registry_from_dict,
    registry_to_dict,
    upgrade_registry_data,
)
from branchstack.core.time.abc import Time

logger = logging.getLogger(__name__)


class RegistryStore(ABC):
    """Abstract interface for loading and saving the registry.

    One store instance is created per process and handed to every component
    that reads or mutates the registry.
    """

    @abstractmethod
    def path(self) -> Path:
        """Location of the registry (for messages and sibling files)."""
        ...

    @abstractmethod
    def exists(self) -> bool:
        """Check if a persisted registry exists."""
        ...

    @abstractmethod
    def load(self) -> Registry:
        """Load the registry, upgrading older layouts and filling defaults.

        Returns a default Registry when nothing is persisted or the file
        cannot be parsed.
        """
        ...

    @abstractmethod
    def save(self, registry: Registry) -> Registry:
        """Persist the registry.

        Returns:
            The registry as written (with its last_updated stamp)

        Raises:
            PersistenceFailed: If the write fails
        """
        ...

    @abstractmethod
    def update(self, mutate: Callable[[Registry], Registry]) -> Registry:
        """Load, apply mutate, and save if the result differs.

        The whole cycle runs under the writer lock.

        Returns:
            The resulting registry (unchanged input when mutate was a no-op)
        """
        ...


class FileRegistryStore(RegistryStore):
    """Production implementation that reads/writes a JSON file."""

    def __init__(self, registry_path: Path, time: Time) -> None:
        self._path = registry_path
        self._time = time
        self._lock = threading.RLock()

    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> Registry:
        with self._lock:
            if not self._path.exists():
                logger.debug("No registry at %s, using defaults", self._path)
                return Registry()

            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.warning("Could not read registry %s (%s), using defaults", self._path, e)
                return Registry()

            if not isinstance(raw, dict):
                logger.warning("Registry %s is not a JSON object, using defaults", self._path)
                return Registry()

            data, original_version = upgrade_registry_data(raw)
            registry = registry_from_dict(data)
            if original_version != registry.scheme_version:
                self._backup(original_version)
                logger.debug(
                    "Upgraded registry from scheme %s to %s",
                    original_version,
                    registry.scheme_version,
                )
                registry = self.save(registry)
            return registry

    def save(self, registry: Registry) -> Registry:
        with self._lock:
            stamped = replace(registry, last_updated=self._time.now().isoformat())
            content = json.dumps(registry_to_dict(stamped), indent=2) + "\n"
            atomic_write(self._path, content)
            return stamped

    def update(self, mutate: Callable[[Registry], Registry]) -> Registry:
        with self._lock:
            current = self.load()
            updated = mutate(current)
            if updated == current:
                return current
            return self.save(updated)

    def _backup(self, original_version: str) -> None:
        backup = self._path.with_name(f"{self._path.name}.scheme{original_version}.bak")
        if backup.exists():
            return
        try:
            backup.write_bytes(self._path.read_bytes())
        except OSError as e:
            raise PersistenceFailed(backup, str(e)) from e


def atomic_write(path: Path, content: str) -> None:
    """Write content to path via a temp file and os.replace.

    Raises:
        PersistenceFailed: If any step fails; the original file is untouched
    """
    temp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            temp_name = f.name
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_name, path)
        temp_name = None
    except OSError as e:
        raise PersistenceFailed(path, str(e)) from e
    finally:
        if temp_name is not None and os.path.exists(temp_name):
            os.unlink(temp_name)


class InMemoryRegistryStore(RegistryStore):
    """Test implementation that keeps the registry in memory."""

    def __init__(
        self,
        registry: Registry | None = None,
        *,
        path: Path | None = None,
        fail_on_save: bool = False,
        fail_after_saves: int | None = None,
    ) -> None:
        """Initialize in-memory store.

        Args:
            registry: Initial registry (None = nothing persisted yet)
            path: Reported path (defaults to /fake/registry.json)
            fail_on_save: Raise PersistenceFailed from every save
            fail_after_saves: Raise PersistenceFailed once this many saves succeeded
        """
        self._registry = registry
        self._path = path if path is not None else Path("/fake/registry.json")
        self._fail_on_save = fail_on_save
        self._fail_after_saves = fail_after_saves
        self._saved: list[Registry] = []
        self._lock = threading.RLock()

    @property
    def saved(self) -> list[Registry]:
        """Every registry passed to save(), in order."""
        return self._saved

    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._registry is not None

    def load(self) -> Registry:
        if self._registry is None:
            return Registry()
        return self._registry

    def save(self, registry: Registry) -> Registry:
        with self._lock:
            if self._fail_on_save or (
                self._fail_after_saves is not None
                and len(self._saved) >= self._fail_after_saves
            ):
                raise PersistenceFailed(self._path, "simulated write failure")
            self._registry = registry
            self._saved.append(registry)
            return registry

    def update(self, mutate: Callable[[Registry], Registry]) -> Registry:
        with self._lock:
            current = self.load()
            updated = mutate(current)
            if updated == current:
                return current
            return self.save(updated)
