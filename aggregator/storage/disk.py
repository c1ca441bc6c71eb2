"""Local filesystem storage, for development and single-node deployments."""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from aggregator.errors import StorageError
from aggregator.storage.base import CollatorFactory
from aggregator.storage.objects import ObjectStorage, StoredObject


class DiskStorage(ObjectStorage):
    """Object storage rooted at a local directory.

    Object timestamps are kept as file modification times.
    """

    def __init__(self, path: str | Path, new_collator: CollatorFactory | None = None):
        super().__init__(new_collator)
        if not str(path):
            raise StorageError("disk storage requires a path")
        self.root = Path(path)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StorageError(f"object key escapes storage root: {key}")
        return path

    def put_object(self, key: str, body: bytes, timestamp: datetime | None = None) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(body)
            if timestamp is not None:
                ts = timestamp.timestamp()
                os.utime(tmp_name, (ts, ts))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_object(self, key: str) -> StoredObject | None:
        path = self._path(key)
        try:
            body = path.read_bytes()
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None
        return StoredObject(body=body, timestamp=datetime.fromtimestamp(mtime, timezone.utc))

    def has_object(self, key: str) -> bool:
        return self._path(key).is_file()

    def list_objects(self, prefix: str) -> list[str]:
        base = self._path(prefix)
        if not base.is_dir():
            return []
        keys = []
        for path in base.rglob("*"):
            if path.is_file() and not path.name.startswith("."):
                keys.append(path.relative_to(self.root.resolve()).as_posix())
        return sorted(keys)
