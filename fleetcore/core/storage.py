"""Key/value object storage for bootstrap state and metadata indexes.

Two implementations of the ``Storage`` protocol:

- ``LocalFileStorage`` — one file per key under a bucket directory.  The
  create-if-absent primitive hard-links a fully written temp file, so it is
  atomic across processes sharing the directory.
- ``MemoryStorage`` — a dict guarded by a lock, for tests and the fake
  backend.

Keys are slash-separated relative paths (``tools/index.json``).
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class Storage(Protocol):
    """Protocol for object storage backends."""

    @property
    def base_url(self) -> str:
        """URL under which every key of this storage is addressable."""
        ...

    def get(self, key: str) -> bytes:
        """Return the object's bytes.  Raises ``KeyError`` if absent."""
        ...

    def put(self, key: str, data: bytes) -> None:
        """Write (or overwrite) an object."""
        ...

    def put_if_absent(self, key: str, data: bytes) -> bool:
        """Atomically create an object.  Returns ``False`` if it existed."""
        ...

    def remove(self, key: str) -> None:
        """Delete an object.  Removing a missing key is not an error."""
        ...

    def list(self, prefix: str = "") -> list[str]:
        """Return the sorted keys starting with ``prefix``."""
        ...

    def url(self, key: str) -> str:
        ...


def _check_key(key: str) -> str:
    parts = key.strip("/").split("/")
    if not key.strip("/") or any(p in ("", ".", "..") for p in parts):
        raise ValueError(f"invalid storage key {key!r}")
    return "/".join(parts)


class LocalFileStorage:
    """Directory-backed storage.

    Layout: ``{base_path}/{bucket}/{key}``

    Parameters
    ----------
    base_path:
        Root directory shared by all buckets.
    bucket:
        Bucket (control bucket) name.
    """

    def __init__(self, base_path: Path, bucket: str) -> None:
        self._root = Path(base_path).resolve() / bucket
        self._root.mkdir(parents=True, exist_ok=True)
        self.bucket = bucket

    @property
    def base_url(self) -> str:
        return self._root.as_uri() + "/"

    def _path(self, key: str) -> Path:
        return self._root / _check_key(key)

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise KeyError(key)
        return path.read_bytes()

    def _write_tmp(self, path: Path, data: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        tmp.write_bytes(data)
        return tmp

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        os.replace(self._write_tmp(path, data), path)

    def put_if_absent(self, key: str, data: bytes) -> bool:
        # link() refuses to replace an existing name, and readers never see
        # a partially written object.
        path = self._path(key)
        tmp = self._write_tmp(path, data)
        try:
            os.link(tmp, path)
        except FileExistsError:
            return False
        finally:
            tmp.unlink(missing_ok=True)
        return True

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def list(self, prefix: str = "") -> list[str]:
        keys = [
            p.relative_to(self._root).as_posix()
            for p in self._root.rglob("*")
            if p.is_file() and not p.name.startswith(".")
        ]
        return sorted(k for k in keys if k.startswith(prefix))

    def url(self, key: str) -> str:
        return self.base_url + _check_key(key)


class MemoryStorage:
    """In-process storage.  Thread-safe."""

    def __init__(self, bucket: str = "test-bucket") -> None:
        self.bucket = bucket
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    @property
    def base_url(self) -> str:
        return f"memory://{self.bucket}/"

    def get(self, key: str) -> bytes:
        with self._lock:
            return self._objects[_check_key(key)]

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[_check_key(key)] = bytes(data)

    def put_if_absent(self, key: str, data: bytes) -> bool:
        key = _check_key(key)
        with self._lock:
            if key in self._objects:
                return False
            self._objects[key] = bytes(data)
            return True

    def remove(self, key: str) -> None:
        with self._lock:
            self._objects.pop(_check_key(key), None)

    def list(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._objects if k.startswith(prefix))

    def url(self, key: str) -> str:
        return self.base_url + _check_key(key)
