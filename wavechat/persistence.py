"""Snapshot save/load between the hub and a key-value store."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from .codec import decode_doc, encode_doc
from .constants import (
    BAN_KIND_FINGERPRINT,
    BAN_KIND_IP,
    BAN_KIND_NICKNAME,
    BAN_KIND_USER,
    S_ADMIN_ID,
    S_BANNED_FINGERPRINTS,
    S_BANNED_IPS,
    S_BANNED_NICKNAMES,
    S_BANNED_USERS,
    S_FINGERPRINTS,
    S_MESSAGES,
    S_TIMESTAMP,
    S_TOKENS,
    S_USERS,
)
from .envelope import now_ms
from .stores import MemoryStore

if TYPE_CHECKING:
    from .service import ChatHub


class PersistenceBridge:
    """
    Serializes hub state into one CBOR document and back.

    In-memory state is always mutated first; writes happen afterwards. Under a
    running event loop a write is handed to a worker thread and only the most
    recent pending snapshot is written, so a slow store never blocks message
    delivery and an older snapshot never overwrites a newer one.
    """

    def __init__(self, hub: ChatHub, store=None) -> None:
        self.hub = hub
        self.log = logging.getLogger("wavechat.persistence")
        self.store = store if store is not None else MemoryStore()
        self._pending: bytes | None = None
        self._writer: asyncio.Task | None = None

    @property
    def backend(self) -> str:
        return getattr(self.store, "name", type(self.store).__name__)

    def build_snapshot(self) -> dict[str, Any]:
        hub = self.hub
        bans = hub.bans.dump()
        return {
            S_USERS: hub.identities.dump(),
            S_TOKENS: hub.sessions.dump_tokens(),
            S_MESSAGES: hub.pipeline.dump(int(hub.config.snapshot_max_messages)),
            S_BANNED_USERS: bans[BAN_KIND_USER],
            S_BANNED_NICKNAMES: bans[BAN_KIND_NICKNAME],
            S_BANNED_IPS: bans[BAN_KIND_IP],
            S_BANNED_FINGERPRINTS: bans[BAN_KIND_FINGERPRINT],
            S_FINGERPRINTS: {
                i.id: i.fingerprint for i in hub.identities if i.fingerprint
            },
            S_ADMIN_ID: hub.identities.admin_id,
            S_TIMESTAMP: now_ms(),
        }

    def apply_snapshot(self, data: dict[str, Any], *, now: int | None = None) -> None:
        if not isinstance(data, dict):
            raise TypeError("snapshot must be a map")

        hub = self.hub
        users = data.get(S_USERS) or {}
        hub.identities.load(users, data.get(S_ADMIN_ID))

        for identity_id, fp in (data.get(S_FINGERPRINTS) or {}).items():
            ident = hub.identities.get(identity_id)
            if ident is not None and not ident.fingerprint:
                ident.fingerprint = fp

        hub.sessions.load_tokens(data.get(S_TOKENS) or {})
        kept = hub.pipeline.load(list(data.get(S_MESSAGES) or ()), now=now)
        hub.bans.load(
            users=data.get(S_BANNED_USERS),
            nicknames=data.get(S_BANNED_NICKNAMES),
            ips=data.get(S_BANNED_IPS),
            fingerprints=data.get(S_BANNED_FINGERPRINTS),
        )

        self.log.info(
            "Snapshot applied users=%s messages=%s banned_ips=%s",
            len(hub.identities),
            kept,
            len(hub.bans.banned_ips()),
        )

    def load(self) -> bool:
        """Load the snapshot from the store. Returns False if none was applied."""
        key = self.hub.config.snapshot_key
        try:
            blob = self.store.get(key)
        except Exception:
            self.log.exception("Snapshot load failed backend=%s", self.backend)
            return False

        if blob is None:
            self.log.info("No existing snapshot backend=%s; starting fresh", self.backend)
            return False

        try:
            self.apply_snapshot(decode_doc(blob))
        except Exception:
            self.log.exception("Snapshot is unreadable; starting fresh")
            return False
        return True

    def _write(self, blob: bytes) -> None:
        started = time.monotonic()
        try:
            self.store.put(self.hub.config.snapshot_key, blob)
        except Exception:
            self.hub.stats.inc("snapshot_failures")
            self.log.exception("Snapshot save failed backend=%s", self.backend)
            return
        self.hub.stats.inc("snapshots_saved")
        self.log.debug(
            "Snapshot saved backend=%s bytes=%s in %.3fs",
            self.backend,
            len(blob),
            time.monotonic() - started,
        )

    def save_soon(self) -> None:
        """Snapshot now; write in the background when an event loop is running."""
        blob = encode_doc(self.build_snapshot())

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(blob)
            return

        self._pending = blob
        if self._writer is None or self._writer.done():
            self._writer = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending is not None:
            blob, self._pending = self._pending, None
            await asyncio.to_thread(self._write, blob)

    async def flush(self) -> None:
        """Wait for any in-flight write to finish."""
        if self._writer is not None and not self._writer.done():
            await self._writer

    async def load_cache(self) -> dict[str, Any] | None:
        blob = await asyncio.to_thread(self.store.get, self.hub.config.cache_key)
        if blob is None:
            return None
        return decode_doc(blob)

    async def save_cache(self, data: dict[str, Any]) -> None:
        doc = {**data, "lastUpdated": now_ms()}
        await asyncio.to_thread(self.store.put, self.hub.config.cache_key, encode_doc(doc))
