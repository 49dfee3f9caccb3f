"""Persistence of runtime static configuration.

Backends register themselves by name so the CLI can pick one::

    @register_storage("json")
    class JsonFileStorage(BaseStorage):
        ...
"""

from __future__ import annotations

import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from ethagent.exceptions import StorageError
from ethagent.models import StaticConfig


class BaseStorage(ABC):
    """Persistence port: get / put / delete a single static configuration."""

    @abstractmethod
    def get(self) -> StaticConfig | None:
        """Return the stored configuration, or None if there is none."""

    @abstractmethod
    def put(self, config: StaticConfig) -> None:
        """Store ``config``, replacing any previous configuration."""

    @abstractmethod
    def delete(self) -> None:
        """Remove the stored configuration (no-op if absent)."""


_STORAGE_REGISTRY: dict[str, type[BaseStorage]] = {}


def register_storage(name: str) -> Callable[[type[BaseStorage]], type[BaseStorage]]:
    """Decorator to register a storage backend class under ``name``."""

    def decorator(cls: type[BaseStorage]) -> type[BaseStorage]:
        _STORAGE_REGISTRY[name.lower()] = cls
        return cls

    return decorator


def create_storage(kind: str, **kwargs: Any) -> BaseStorage:
    """Create a storage backend by registered name.

    Raises:
        ValueError: If ``kind`` is not registered.
    """
    kind_lower = kind.lower()
    if kind_lower not in _STORAGE_REGISTRY:
        available = ", ".join(sorted(_STORAGE_REGISTRY.keys()))
        raise ValueError(f"Unknown storage '{kind}'. Available: {available}")
    return _STORAGE_REGISTRY[kind_lower](**kwargs)


def list_storages() -> list[str]:
    """Return a sorted list of registered storage backend names."""
    return sorted(_STORAGE_REGISTRY.keys())


@register_storage("memory")
class MemoryStorage(BaseStorage):
    """Keeps the configuration in process memory only."""

    def __init__(self, config: StaticConfig | None = None):
        self._config = config

    def get(self) -> StaticConfig | None:
        return self._config

    def put(self, config: StaticConfig) -> None:
        self._config = config

    def delete(self) -> None:
        self._config = None


@register_storage("json")
class JsonFileStorage(BaseStorage):
    """Stores the configuration as one JSON document on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def get(self) -> StaticConfig | None:
        try:
            raw = self.path.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e

        try:
            return StaticConfig.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid static configuration in {self.path}: {e}")
            return None

    def put(self, config: StaticConfig) -> None:
        # write to a sibling temp file, then rename over the target
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            with os.fdopen(fd, "w") as fh:
                fh.write(config.model_dump_json(indent=2, exclude_none=True) + "\n")
            os.replace(tmp_name, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e
        logger.debug(f"static configuration written to {self.path}")

    def delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot delete {self.path}: {e}") from e
