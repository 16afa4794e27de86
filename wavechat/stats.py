"""Statistics tracking and reporting for the chat hub."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .service import ChatHub


class StatsManager:
    """
    Manages hub statistics collection and reporting.

    Tracks counters for:
    - Connections and disconnects
    - Inbound events (good and malformed)
    - Registrations, rejoins and device logins
    - Accepted, rejected and expired messages
    - Bans
    - Snapshot writes and failures
    - Frames and errors sent
    """

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = hub.log

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections": 0,
            "disconnects": 0,
            "events_in": 0,
            "events_bad": 0,
            "registrations": 0,
            "rejoins": 0,
            "device_logins": 0,
            "messages_accepted": 0,
            "messages_rejected": 0,
            "messages_expired": 0,
            "bans": 0,
            "snapshots_saved": 0,
            "snapshot_failures": 0,
            "frames_out": 0,
            "errors_sent": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        """Increment a counter by the given delta."""
        self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        return int(self._counters.get(key, 0))

    def uptime_s(self) -> float:
        if self.started_monotonic is None:
            return 0.0
        return time.monotonic() - self.started_monotonic

    def counters(self) -> dict[str, int]:
        return dict(self._counters)

    def health(self) -> dict[str, Any]:
        """Snapshot used by the /health endpoint."""
        hub = self.hub
        return {
            "status": "ok",
            "uptime_s": round(self.uptime_s(), 1),
            "onlineCount": hub.connections.online_count(),
            "onlineUsers": hub.connections.attributed_count(),
            "registeredUsers": len(hub.identities),
            "totalMessages": len(hub.pipeline),
            "adminExists": hub.identities.admin_id is not None,
            **hub.bans.get_stats(),
            "persistence": hub.persistence.backend,
        }

    def format_stats(self) -> str:
        """Format current statistics as a single human-readable line."""
        from . import __version__

        hub = self.hub
        session_stats = hub.sessions.get_stats()
        ban_stats = hub.bans.get_stats()
        c = dict(self._counters)

        parts: list[str] = []
        parts.append(f"wavechat {__version__} stats")
        parts.append(f"uptime_s={self.uptime_s():.1f}")
        parts.append(
            f"connections={hub.connections.online_count()} "
            f"attributed={session_stats['attributed_connections']} "
            f"online_users={session_stats['online_identities']} "
            f"registered={len(hub.identities)}"
        )
        parts.append(f"messages={len(hub.pipeline)}")
        parts.append(
            "bans: users={} nicknames={} ips={} fingerprints={}".format(
                ban_stats["bannedUsers"],
                ban_stats["bannedNicknames"],
                ban_stats["bannedIPs"],
                ban_stats["bannedFingerprints"],
            )
        )
        parts.append(
            "events: in={} bad={} msgs_ok={} msgs_rejected={} expired={} errors_sent={}".format(
                c.get("events_in", 0),
                c.get("events_bad", 0),
                c.get("messages_accepted", 0),
                c.get("messages_rejected", 0),
                c.get("messages_expired", 0),
                c.get("errors_sent", 0),
            )
        )
        parts.append(
            "snapshots: saved={} failed={} backend={}".format(
                c.get("snapshots_saved", 0),
                c.get("snapshot_failures", 0),
                hub.persistence.backend,
            )
        )

        return " | ".join(parts)
