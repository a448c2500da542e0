"""String key-value stores backing progress and challenge records.

The engine only needs ``get``/``set``/``remove`` over string values, the same
contract a mobile key-value store offers. ``JsonFileStore`` keeps one small
file per key inside the workspace ``store/`` directory and writes atomically
under a short-lived lock file; ``MemoryStore`` is used by tests and by
throwaway sessions.
"""

from __future__ import annotations

import os
import re
import tempfile
import time
from pathlib import Path
from typing import Iterator, MutableMapping, Protocol, runtime_checkable

from ..errors import PersistenceError

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
]


_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
_SUFFIX = ".json"
_LOCK_SUFFIX = ".lock"
_LOCK_TIMEOUT_SECONDS = 5.0


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal persistence contract used by the engine."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...


class MemoryStore:
    """Dictionary-backed store."""

    def __init__(self, initial: MutableMapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(_validate_key(key))

    def set(self, key: str, value: str) -> None:
        self._data[_validate_key(key)] = value

    def remove(self, key: str) -> None:
        self._data.pop(_validate_key(key), None)

    def keys(self) -> Iterator[str]:
        return iter(sorted(self._data))

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStore:
    """Persist each key as ``<root>/<key>.json``."""

    def __init__(self, root: Path) -> None:
        self._root = root
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(
                f"Unable to prepare store directory: {root}"
            ) from exc

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        return self._root / f"{_validate_key(key)}{_SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(f"Failed to read '{key}': {exc}") from exc

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        lock_path = path.with_suffix(_LOCK_SUFFIX)
        try:
            with _FileLock(lock_path):
                _atomic_write_text(path, value)
        except OSError as exc:
            raise PersistenceError(f"Failed to write '{key}': {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to remove '{key}': {exc}") from exc

    def keys(self) -> Iterator[str]:
        return iter(
            sorted(
                path.stem
                for path in self._root.glob(f"*{_SUFFIX}")
                if path.is_file()
            )
        )


class _FileLock:
    """Exclusive-create lock file with a bounded wait."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def __enter__(self) -> "_FileLock":
        deadline = time.time() + _LOCK_TIMEOUT_SECONDS
        while True:
            try:
                fd = os.open(
                    self._path,
                    os.O_CREAT | os.O_EXCL | os.O_WRONLY,
                )
                os.close(fd)
                break
            except FileExistsError:
                if time.time() > deadline:
                    raise PersistenceError(
                        f"Timed out waiting for store lock: {self._path}"
                    )
                time.sleep(0.05)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self._path.unlink(missing_ok=True)


def _atomic_write_text(path: Path, text: str) -> None:
    handle = tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        encoding="utf-8",
        dir=str(path.parent),
        suffix=".tmp",
    )
    try:
        handle.write(text)
        handle.flush()
        os.fsync(handle.fileno())
    finally:
        handle.close()
    os.replace(handle.name, path)
    try:
        path.chmod(0o600)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass


def _validate_key(key: str) -> str:
    if not isinstance(key, str) or not _KEY_PATTERN.match(key):
        raise PersistenceError(f"Invalid store key: {key!r}")
    return key
