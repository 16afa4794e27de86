"""Outbound frame queueing for the chat hub."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .constants import T_BANNED, T_CLOSE, T_ERROR, T_INVALID_SESSION
from .envelope import make_event

if TYPE_CHECKING:
    from .service import ChatHub

# (connection id, frame) pairs produced while handling one event and sent by
# the transport once the handler has returned.
Outgoing = list[tuple[str, dict]]


class MessageHelper:
    """
    Helper methods for queueing frames.

    Handles:
    - Per-connection frames
    - Broadcast to every live connection
    - Error, invalid-session and banned notices
    - Forced close markers
    """

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = hub.log

    def queue_frame(self, outgoing: Outgoing, conn_id: str, frame: dict) -> None:
        self.hub.stats.inc("frames_out")
        outgoing.append((conn_id, frame))

    def queue(self, outgoing: Outgoing, conn_id: str, event: str, data: Any = None) -> None:
        self.queue_frame(outgoing, conn_id, make_event(event, data))

    def broadcast(
        self, outgoing: Outgoing, event: str, data: Any = None, *, exclude: str | None = None
    ) -> None:
        frame = make_event(event, data)
        for conn_id in self.hub.connections.conn_ids():
            if conn_id == exclude:
                continue
            self.queue_frame(outgoing, conn_id, frame)

    def emit_error(self, outgoing: Outgoing, conn_id: str, text: str) -> None:
        self.hub.stats.inc("errors_sent")
        self.queue(outgoing, conn_id, T_ERROR, {"message": text})

    def emit_invalid_session(self, outgoing: Outgoing, conn_id: str) -> None:
        self.queue(outgoing, conn_id, T_INVALID_SESSION)

    def emit_banned(self, outgoing: Outgoing, conn_id: str) -> None:
        self.queue(outgoing, conn_id, T_BANNED)

    def close(self, outgoing: Outgoing, conn_id: str) -> None:
        outgoing.append((conn_id, make_event(T_CLOSE)))
