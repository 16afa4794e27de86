from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from .bans import BanRegistry
from .commands import CommandHandler
from .config import HubRuntimeConfig
from .connections import ConnectionHub
from .devicecodes import DeviceCodeExchange
from .identities import IdentityStore
from .messages import MessageHelper, Outgoing
from .persistence import PersistenceBridge
from .pipeline import MessagePipeline
from .router import MessageRouter
from .session import SessionManager
from .stats import StatsManager
from .stores import open_store


class ChatHub:
    """
    Owns all chat state and the components that act on it.

    Entry points are synchronous: each one handles a single transport event
    and returns the frames to deliver as (connection id, frame) pairs. The
    transport sends them once the call has returned. Everything runs on one
    event loop, so no locking is needed.
    """

    def __init__(self, config: HubRuntimeConfig, store=None) -> None:
        self.config = config
        self.log = logging.getLogger("wavechat.hub")

        if store is None:
            store = open_store(config.store_url, db_name=config.store_db_name)

        self.stats = StatsManager(self)
        self.messages = MessageHelper(self)
        self.bans = BanRegistry(self)
        self.identities = IdentityStore(self)
        self.sessions = SessionManager(self)
        self.devicecodes = DeviceCodeExchange(self)
        self.connections = ConnectionHub(self)
        self.pipeline = MessagePipeline(self)
        self.persistence = PersistenceBridge(self, store)
        self.router = MessageRouter(self)
        self.commands = CommandHandler(self)

        self._shutdown = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    def on_connect(self, conn_id: str, ip: str, session_token: str | None = None) -> Outgoing:
        outgoing: Outgoing = []
        conn = self.connections.on_connect(conn_id, ip, outgoing)
        if conn is not None and session_token:
            self.router.resume(conn, session_token, outgoing)
        return outgoing

    def on_event(self, conn_id: str, raw) -> Outgoing:
        outgoing: Outgoing = []
        self.router.route(conn_id, raw, outgoing)
        return outgoing

    def on_disconnect(self, conn_id: str) -> Outgoing:
        outgoing: Outgoing = []
        self.connections.on_disconnect(conn_id, outgoing)
        return outgoing

    def clear_users(self) -> tuple[dict[str, int], Outgoing]:
        outgoing: Outgoing = []
        stats = self.commands.clear_identities(outgoing)
        return stats, outgoing

    def load(self) -> bool:
        return self.persistence.load()

    async def start(self) -> None:
        self.stats.set_start_time()
        self._shutdown.clear()

        cfg = self.config
        self._spawn("sweep", cfg.sweep_interval_s, self.pipeline.sweep)
        self._spawn("snapshot", cfg.snapshot_interval_s, self.persistence.save_soon)
        self._spawn("stats", cfg.stats_interval_s, self._log_stats)

        self.log.info(
            "Hub running backend=%s users=%s messages=%s admin=%s",
            self.persistence.backend,
            len(self.identities),
            len(self.pipeline),
            "yes" if self.identities.admin_id else "no",
        )
        self.log.info(
            "Policy nick_chars=%s-%s message_max_chars=%s retention_s=%s",
            cfg.nick_min_chars,
            cfg.nick_max_chars,
            cfg.message_max_chars,
            cfg.retention_s,
        )

    def _spawn(self, name: str, interval_s: float, fn: Callable[[], Any]) -> None:
        if not interval_s or float(interval_s) <= 0:
            self.log.info("Background %s loop disabled", name)
            return
        task = asyncio.get_running_loop().create_task(
            self._periodic(name, float(interval_s), fn), name=f"wavechat-{name}"
        )
        self._tasks.append(task)

    async def _periodic(self, name: str, interval_s: float, fn: Callable[[], Any]) -> None:
        while not self._shutdown.is_set():
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=interval_s)
                break
            except asyncio.TimeoutError:
                pass
            try:
                fn()
            except Exception:
                self.log.exception("Background %s loop iteration failed", name)

    def _log_stats(self) -> None:
        self.log.info(self.stats.format_stats())

    async def stop(self) -> None:
        self._shutdown.set()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            await task

        self.log.info("Saving final snapshot")
        self.persistence.save_soon()
        await self.persistence.flush()

        try:
            self.persistence.store.close()
        except Exception:
            self.log.exception("Store close failed")
        self.log.info("Hub stopped")
