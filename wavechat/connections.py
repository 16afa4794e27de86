"""Live transport connections and presence."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .constants import T_ONLINE_COUNT, T_USER_JOINED, T_USER_LEFT
from .util import fmt_secret

if TYPE_CHECKING:
    from .identities import Identity
    from .messages import Outgoing
    from .service import ChatHub


@dataclass
class LiveConnection:
    conn_id: str
    ip: str
    fingerprint: str | None = None
    identity_id: str | None = None
    connected_at: float = field(default_factory=time.time)


class ConnectionHub:
    """
    Tracks every live connection and derives presence from them.

    Online count is the size of the global set (named or not). Presence
    events follow the per-identity connection count: "joined" on 0 -> 1,
    "left" on -> 0, so a user with several tabs or devices does not flicker.
    """

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = logging.getLogger("wavechat.connections")
        self._live: dict[str, LiveConnection] = {}

    def get(self, conn_id: str) -> LiveConnection | None:
        return self._live.get(conn_id)

    def conn_ids(self) -> list[str]:
        return list(self._live.keys())

    def online_count(self) -> int:
        return len(self._live)

    def attributed_count(self) -> int:
        return sum(1 for c in self._live.values() if c.identity_id is not None)

    def live_for_nickname(self, nickname: str) -> list[LiveConnection]:
        ident = self.hub.identities.find_by_nickname(nickname)
        if ident is None:
            return []
        return [c for c in self._live.values() if c.identity_id == ident.id]

    def broadcast_count(self, outgoing: Outgoing) -> None:
        self.hub.messages.broadcast(outgoing, T_ONLINE_COUNT, self.online_count())

    def on_connect(self, conn_id: str, ip: str, outgoing: Outgoing) -> LiveConnection | None:
        """Register a new transport connection.

        Returns None (after queueing a banned notice and close) if the IP is
        banned; the connection is then never counted.
        """
        if self.hub.bans.is_ip_banned(ip):
            self.log.warning("Banned IP attempted to connect ip=%s conn=%s", ip, conn_id)
            self.hub.messages.emit_banned(outgoing, conn_id)
            self.hub.messages.close(outgoing, conn_id)
            return None

        conn = LiveConnection(conn_id=conn_id, ip=ip)
        self._live[conn_id] = conn
        self.hub.stats.inc("connections")

        self.log.info(
            "New connection conn=%s ip=%s online=%s", conn_id, ip, self.online_count()
        )
        self.broadcast_count(outgoing)
        return conn

    def on_fingerprint(self, conn: LiveConnection, fingerprint, outgoing: Outgoing) -> None:
        if not fingerprint or not isinstance(fingerprint, str):
            return

        conn.fingerprint = fingerprint
        self.log.debug("Fingerprint set conn=%s fp=%s", conn.conn_id, fmt_secret(fingerprint))

        if self.hub.bans.is_fingerprint_banned(fingerprint):
            self.log.warning(
                "Banned fingerprint attempted to connect fp=%s conn=%s",
                fmt_secret(fingerprint),
                conn.conn_id,
            )
            self.force_close(conn.conn_id, outgoing)
            return

        if conn.identity_id is not None:
            ident = self.hub.identities.get(conn.identity_id)
            if ident is not None:
                ident.fingerprint = fingerprint

    def attach(self, conn: LiveConnection, identity: Identity, outgoing: Outgoing) -> bool:
        """Attribute a connection to an identity. True on the 0 -> 1 transition."""
        if conn.identity_id is not None and conn.identity_id != identity.id:
            self.detach(conn, outgoing)

        conn.identity_id = identity.id
        if conn.fingerprint:
            identity.fingerprint = conn.fingerprint
        return self.hub.sessions.track(identity.id, conn.conn_id)

    def detach(self, conn: LiveConnection, outgoing: Outgoing, *, announce: bool = True) -> None:
        identity_id = conn.identity_id
        if identity_id is None:
            return
        conn.identity_id = None

        last = self.hub.sessions.untrack(identity_id, conn.conn_id)
        if last and announce:
            ident = self.hub.identities.get(identity_id)
            if ident is not None:
                self.announce_left(ident.nickname, outgoing)

    def announce_joined(self, identity: Identity, outgoing: Outgoing) -> None:
        self.hub.messages.broadcast(
            outgoing,
            T_USER_JOINED,
            {"nickname": identity.nickname, "onlineCount": self.online_count()},
        )

    def announce_left(self, nickname: str, outgoing: Outgoing, *, banned: bool = False) -> None:
        data: dict[str, object] = {"nickname": nickname, "onlineCount": self.online_count()}
        if banned:
            data["banned"] = True
        self.hub.messages.broadcast(outgoing, T_USER_LEFT, data)

    def force_close(self, conn_id: str, outgoing: Outgoing) -> None:
        """Send a banned notice and drop the connection without a "left" event."""
        conn = self._live.pop(conn_id, None)
        if conn is not None:
            self.detach(conn, outgoing, announce=False)
        self.hub.messages.emit_banned(outgoing, conn_id)
        self.hub.messages.close(outgoing, conn_id)

    def on_disconnect(self, conn_id: str, outgoing: Outgoing) -> None:
        conn = self._live.pop(conn_id, None)
        self.hub.stats.inc("disconnects")
        self.broadcast_count(outgoing)

        if conn is None:
            self.log.debug("Connection closed conn=%s (already dropped)", conn_id)
            return

        identity_id = conn.identity_id
        self.detach(conn, outgoing)

        if identity_id is not None:
            self.log.info(
                "Session ended conn=%s id=%s remaining=%s online=%s",
                conn_id,
                identity_id,
                len(self.hub.sessions.connections_for(identity_id)),
                self.online_count(),
            )
        else:
            self.log.info("Connection closed conn=%s online=%s", conn_id, self.online_count())

    def detach_all(self) -> list[str]:
        """Un-attribute every connection (bulk clear). Returns affected ids."""
        affected = []
        for conn in self._live.values():
            if conn.identity_id is not None:
                conn.identity_id = None
                affected.append(conn.conn_id)
        return affected

    def clear_all(self) -> list[str]:
        conn_ids = list(self._live.keys())
        self._live.clear()
        return conn_ids
