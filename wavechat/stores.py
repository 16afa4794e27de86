"""Key-value blob stores used for snapshots and the dashboard cache.

Every store implements two calls: get(key) -> bytes | None and
put(key, blob) -> None. Failures raise; the persistence bridge decides
what to do with them.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path

from .paths import ensure_private_dir
from .util import expand_path

log = logging.getLogger("wavechat.stores")


class MemoryStore:
    name = "memory"

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    def put(self, key: str, blob: bytes) -> None:
        self._blobs[key] = bytes(blob)

    def close(self) -> None:
        pass


class FileStore:
    """One file per key inside a private directory."""

    name = "file"

    def __init__(self, directory: str) -> None:
        self.directory = Path(expand_path(directory))
        ensure_private_dir(self.directory)

    def _path(self, key: str) -> Path:
        safe = "".join(ch for ch in key if ch.isalnum() or ch in "-_")
        if not safe:
            raise ValueError(f"invalid store key {key!r}")
        return self.directory / f"{safe}.cbor"

    def get(self, key: str) -> bytes | None:
        p = self._path(key)
        if not p.exists():
            return None
        return p.read_bytes()

    def put(self, key: str, blob: bytes) -> None:
        p = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=str(self.directory), prefix=f".{p.stem}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
            os.chmod(tmp, 0o600)
            os.replace(tmp, p)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def close(self) -> None:
        pass


class MongoStore:
    """One document per key: {_id: key, blob: <binary>, updatedAt: <ms>}."""

    name = "mongodb"

    def __init__(self, uri: str, db_name: str, *, collection: str = "blobs") -> None:
        from pymongo import MongoClient

        self._client = MongoClient(uri, serverSelectionTimeoutMS=5000)
        self._client.admin.command("ping")
        self._coll = self._client[db_name][collection]
        log.info("Connected to MongoDB db=%s", db_name)

    def get(self, key: str) -> bytes | None:
        doc = self._coll.find_one({"_id": key})
        if doc is None:
            return None
        return bytes(doc["blob"])

    def put(self, key: str, blob: bytes) -> None:
        from bson.binary import Binary

        self._coll.update_one(
            {"_id": key},
            {"$set": {"blob": Binary(blob), "updatedAt": int(time.time() * 1000)}},
            upsert=True,
        )

    def close(self) -> None:
        self._client.close()


def open_store(url: str | None, *, db_name: str = "wave-chat"):
    """Open the store named by `url`, falling back to memory on failure."""
    url = (url or "").strip()
    if not url:
        log.warning("No store configured; running memory-only (no restart durability)")
        return MemoryStore()

    try:
        if url.startswith(("mongodb://", "mongodb+srv://")):
            return MongoStore(url, db_name)
        if url.startswith("file://"):
            return FileStore(url[len("file://"):])
        return FileStore(url)
    except Exception:
        log.exception("Store unavailable; running memory-only (no restart durability)")
        return MemoryStore()
