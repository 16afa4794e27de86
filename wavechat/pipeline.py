"""Chat message log, intake and retention."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from .constants import T_MESSAGE
from .envelope import now_ms
from .errors import AuthError, BannedError, MessageRejected
from .moderation import check_message

if TYPE_CHECKING:
    from .connections import LiveConnection
    from .messages import Outgoing
    from .service import ChatHub


class MessagePipeline:
    """
    Validates, stores, broadcasts and expires chat messages.

    The log is kept in timestamp order: messages are only ever appended at the
    tail with a timestamp no smaller than the previous one, which lets the
    retention sweep trim from the head.
    """

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = logging.getLogger("wavechat.pipeline")
        self._log: list[dict[str, Any]] = []
        self._last_text: dict[str, str] = {}  # identity id -> last accepted text
        self._accepted = 0

    def __len__(self) -> int:
        return len(self._log)

    def _cutoff(self, now: int | None = None) -> int:
        now = now_ms() if now is None else now
        return now - int(float(self.hub.config.retention_s) * 1000)

    def history(self, now: int | None = None) -> list[dict[str, Any]]:
        cutoff = self._cutoff(now)
        return [dict(m) for m in self._log if m["timestamp"] >= cutoff]

    def submit(self, conn: LiveConnection, text, outgoing: Outgoing) -> dict[str, Any]:
        if conn.identity_id is None:
            raise AuthError("You must set a nickname first")
        identity = self.hub.identities.get(conn.identity_id)
        if identity is None:
            raise AuthError("You must set a nickname first")
        if self.hub.bans.is_user_banned(identity.id):
            raise BannedError()

        try:
            body = check_message(
                text,
                previous=self._last_text.get(identity.id),
                max_chars=self.hub.config.message_max_chars,
            )
        except MessageRejected as e:
            self.hub.stats.inc("messages_rejected")
            self.log.info("Blocked %s message nick=%r", e.gate, identity.nickname)
            raise

        ts = now_ms()
        if self._log and ts < self._log[-1]["timestamp"]:
            ts = self._log[-1]["timestamp"]

        msg = {
            "id": str(uuid.uuid4()),
            "userId": identity.id,
            "nickname": identity.nickname,
            "avatarHue": identity.avatar_hue,
            "message": body,
            "timestamp": ts,
        }
        self._last_text[identity.id] = body
        self._log.append(msg)
        self._accepted += 1
        self.hub.stats.inc("messages_accepted")

        every = int(self.hub.config.persist_every_messages)
        if every > 0 and self._accepted % every == 0:
            self.hub.persistence.save_soon()

        self.hub.messages.broadcast(outgoing, T_MESSAGE, dict(msg))
        self.log.debug("Message nick=%r id=%s chars=%s", identity.nickname, msg["id"], len(body))
        return msg

    def sweep(self, now: int | None = None) -> int:
        """Drop messages older than the retention horizon from the head."""
        cutoff = self._cutoff(now)
        n = 0
        while n < len(self._log) and self._log[n]["timestamp"] < cutoff:
            n += 1
        if n:
            del self._log[:n]
            self.hub.stats.inc("messages_expired", n)
            self.log.info("Cleaned %s old messages", n)
            self.hub.persistence.save_soon()
        return n

    def purge_author(self, identity_id: str) -> list[str]:
        """Remove every message by an author; returns the removed ids in log order."""
        removed = [m["id"] for m in self._log if m["userId"] == identity_id]
        if removed:
            self._log = [m for m in self._log if m["userId"] != identity_id]
        self._last_text.pop(identity_id, None)
        return removed

    def forget_senders(self) -> None:
        self._last_text.clear()

    def dump(self, limit: int) -> list[dict[str, Any]]:
        if limit <= 0:
            return []
        return [dict(m) for m in self._log[-limit:]]

    def load(self, messages: list[dict[str, Any]], now: int | None = None) -> int:
        """Replace the log from a snapshot, skipping expired messages."""
        cutoff = self._cutoff(now)
        kept = [dict(m) for m in messages if int(m.get("timestamp", 0)) >= cutoff]
        kept.sort(key=lambda m: m["timestamp"])
        self._log = kept
        return len(kept)
