"""FastAPI transport: the /ws event socket and the REST surface."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import HubRuntimeConfig
from .constants import BAN_KIND_IP, K_EVENT, T_CLOSE
from .errors import AuthError, NotFoundError, ValidationError
from .messages import Outgoing
from .schemas import (
    AdminKeyBody,
    AdminResult,
    BannedIps,
    DebugUser,
    Health,
    UnbanBody,
    UnbanIpBody,
)
from .service import ChatHub
from .util import client_ip

log = logging.getLogger("wavechat.server")


class ConnectionRegistry:
    """
    Maps hub connection ids to websockets.

    Each socket gets an outbound queue drained by its own writer task, so
    delivery is ordered per connection and never blocks the hub.
    """

    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue] = {}

    def add(self, conn_id: str) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue()
        self._queues[conn_id] = q
        return q

    def remove(self, conn_id: str) -> None:
        self._queues.pop(conn_id, None)

    def __len__(self) -> int:
        return len(self._queues)

    def deliver(self, outgoing: Outgoing) -> None:
        for conn_id, frame in outgoing:
            q = self._queues.get(conn_id)
            if q is not None:
                q.put_nowait(frame)

    async def writer(self, conn_id: str, websocket: WebSocket, q: asyncio.Queue) -> None:
        while True:
            frame = await q.get()
            if frame is None:
                return
            try:
                if frame.get(K_EVENT) == T_CLOSE:
                    await websocket.close()
                    self.remove(conn_id)
                    return
                await websocket.send_text(json.dumps(frame))
            except (RuntimeError, WebSocketDisconnect) as e:
                log.debug("Send failed conn=%s err=%s", conn_id, e)
                self.remove(conn_id)
                return


def create_app(config: HubRuntimeConfig, hub: ChatHub | None = None) -> FastAPI:
    hub = hub if hub is not None else ChatHub(config)
    registry = ConnectionRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Starting wavechat %s on %s:%s", __version__, config.host, config.port)
        hub.load()
        await hub.start()
        yield
        log.info("Shutting down; saving data")
        await hub.stop()

    app = FastAPI(title="wavechat", version=__version__, lifespan=lifespan)
    app.state.hub = hub
    app.state.connections = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def require_admin(key: str | None) -> None:
        try:
            hub.commands.check_admin_key(key)
        except AuthError as e:
            log.warning("Rejected admin request: %s", e.message)
            raise HTTPException(status_code=403, detail=e.message)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()

        conn_id = uuid.uuid4().hex
        peer = websocket.client.host if websocket.client else None
        ip = client_ip(websocket.headers, peer, trust_proxy_headers=config.trust_proxy_headers)
        token = websocket.cookies.get(config.session_cookie)

        q = registry.add(conn_id)
        writer = asyncio.create_task(registry.writer(conn_id, websocket, q))

        registry.deliver(hub.on_connect(conn_id, ip, token))
        registered = hub.connections.get(conn_id) is not None

        try:
            while registered:
                msg = await websocket.receive()
                if msg["type"] == "websocket.disconnect":
                    break
                raw = msg.get("text")
                if raw is None:
                    raw = msg.get("bytes") or b""
                registry.deliver(hub.on_event(conn_id, raw))
        except RuntimeError as e:
            # receive after the writer closed the socket
            log.debug("Receive ended conn=%s err=%s", conn_id, e)
        finally:
            if registered:
                registry.deliver(hub.on_disconnect(conn_id))
            q.put_nowait(None)
            await writer
            registry.remove(conn_id)

    @app.get("/health", response_model=Health)
    async def health():
        return hub.stats.health()

    @app.get("/admin/banned-ips", response_model=BannedIps)
    async def banned_ips():
        ips = hub.bans.banned_ips()
        return {"count": len(ips), "ips": ips}

    @app.post("/admin/clear-bans", response_model=AdminResult)
    async def clear_bans(body: AdminKeyBody):
        require_admin(body.adminKey)
        stats = hub.commands.clear_bans()
        return {"message": "All bans cleared", "stats": stats}

    @app.post("/admin/clear-users", response_model=AdminResult)
    async def clear_users(body: AdminKeyBody):
        require_admin(body.adminKey)
        stats, outgoing = hub.clear_users()
        registry.deliver(outgoing)
        return {"message": "All users cleared", "stats": stats}

    @app.post("/admin/unban-ip", response_model=AdminResult)
    async def unban_ip(body: UnbanIpBody):
        require_admin(body.adminKey)
        if not body.ip:
            raise HTTPException(status_code=400, detail="IP address required")
        try:
            hub.commands.unban(BAN_KIND_IP, body.ip)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="IP not found in ban list")
        return {"message": f"IP {body.ip} unbanned"}

    @app.post("/admin/unban", response_model=AdminResult)
    async def unban(body: UnbanBody):
        require_admin(body.adminKey)
        try:
            hub.commands.unban(body.kind or "", body.value)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=e.message)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)
        return {"message": f"{body.kind} {body.value} unbanned"}

    @app.get("/debug/user/{nickname}", response_model=DebugUser)
    async def debug_user(nickname: str):
        return hub.commands.debug_user(nickname)

    @app.get("/api/wave-cache")
    async def get_wave_cache():
        try:
            cache = await hub.persistence.load_cache()
        except Exception:
            log.exception("Error loading cache")
            raise HTTPException(status_code=500, detail="Failed to load cache")
        if cache is None:
            raise HTTPException(status_code=404, detail="No cache available")
        return cache

    @app.post("/api/wave-cache")
    async def save_wave_cache(data: Dict[str, Any] = Body(...)):
        try:
            await hub.persistence.save_cache(data)
        except Exception:
            log.exception("Error saving cache")
            raise HTTPException(status_code=500, detail="Failed to save cache")
        return {"success": True, "message": "Cache saved"}

    return app
