"""
Keyed durable state for task inputs and results.

``PersistedStore`` serializes values to JSON text and keeps one logical slot per key
on top of a minimal key-value backend (get / set / delete).
"""
from __future__ import annotations

import copy
import json
import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Optional, Protocol, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

log = logging.getLogger(__name__)

T = TypeVar("T")

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueBackend(Protocol):
    """Durable medium: text values addressed by text keys."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryBackend:
    """Process-local backend, mostly useful for tests and ephemeral sessions."""

    def __init__(self, initial: Dict[str, str] | None = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class FileBackend:
    """Stores each key as ``<root>/<key>.json``; writes replace the file atomically."""

    def __init__(self, root_dir: str | Path) -> None:
        self._root = Path(root_dir)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root_dir(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


@dataclass(frozen=True, slots=True)
class CorruptRecord:
    """Diagnostic event emitted when a durable record cannot be used."""

    key: str
    raw: str
    error: str


CorruptCallback = Callable[[CorruptRecord], None]


def _key_name(key: str | Enum) -> str:
    name = key.value if isinstance(key, Enum) else key
    if not isinstance(name, str) or not _KEY_PATTERN.match(name):
        raise ValueError(f"Invalid storage key: {name!r}")
    return name


class PersistedStore:
    """
    JSON-serializing store with reset-to-default.

    Reads never raise: a missing or unreadable record, unparseable JSON, or data that
    fails type validation all yield the caller's default. Unusable records are still reported
    through the log and the optional ``on_corrupt`` callback. Write failures from the
    backend propagate.
    """

    def __init__(self, backend: KeyValueBackend, on_corrupt: CorruptCallback | None = None) -> None:
        self._backend = backend
        self._on_corrupt = on_corrupt
        self._claimed: set[str] = set()

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    def _report_corrupt(self, key: str, raw: str, error: Exception) -> None:
        log.warning("Discarding unreadable record for key '%s': %s", key, error)
        if self._on_corrupt is not None:
            self._on_corrupt(CorruptRecord(key=key, raw=raw, error=str(error)))

    def load(self, key: str | Enum, default: T, type_: Any = None) -> T:
        name = _key_name(key)
        try:
            raw = self._backend.get(name)
        except (UnicodeDecodeError, OSError) as exc:
            self._report_corrupt(name, "", exc)
            return default
        if raw is None:
            return default
        try:
            value = json.loads(raw)
            if type_ is not None:
                value = TypeAdapter(type_).validate_python(value)
        except (json.JSONDecodeError, ValidationError) as exc:
            self._report_corrupt(name, raw, exc)
            return default
        return value

    def store(self, key: str | Enum, value: Any) -> None:
        name = _key_name(key)
        self._backend.set(name, json.dumps(to_jsonable_python(value), ensure_ascii=False))

    def reset(self, key: str | Enum, default: T) -> T:
        self._backend.delete(_key_name(key))
        return default

    def slot(self, key: str | Enum, default: T, type_: Any = None) -> "Slot[T]":
        """Claim ``key`` for a single owner and return its typed handle."""
        name = _key_name(key)
        if name in self._claimed:
            raise ValueError(f"Storage key '{name}' is already owned by another slot")
        self._claimed.add(name)
        return Slot(self, name, default, type_)


class Slot(Generic[T]):
    """
    In-memory value for one key, loaded on first access and written on every change.
    """

    def __init__(self, store: PersistedStore, key: str, default: T, type_: Any = None) -> None:
        self._store = store
        self._key = key
        self._default = default
        self._type = type_
        self._loaded = False
        self._value: T = default

    @property
    def key(self) -> str:
        return self._key

    @property
    def value(self) -> T:
        if not self._loaded:
            self._value = self._store.load(self._key, self._fresh_default(), self._type)
            self._loaded = True
        return self._value

    def set(self, value: T) -> T:
        self._store.store(self._key, value)
        self._value = value
        self._loaded = True
        return value

    def update(self, **changes: Any) -> T:
        """Apply field changes to a pydantic model or dict value and persist the result."""
        current = self.value
        if hasattr(current, "model_copy"):
            updated = current.model_copy(update=changes)
        elif isinstance(current, dict):
            updated = {**current, **changes}
        else:
            raise TypeError(f"Slot '{self._key}' holds {type(current).__name__}; use set() instead")
        return self.set(updated)

    def reset(self) -> T:
        self._value = self._store.reset(self._key, self._fresh_default())
        self._loaded = True
        return self._value

    def _fresh_default(self) -> T:
        return copy.deepcopy(self._default)
