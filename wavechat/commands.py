from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING, Any

from .constants import BAN_KINDS, T_MESSAGE_DELETED
from .errors import AuthError, NotFoundError, ValidationError
from .util import fmt_secret, nick_key

if TYPE_CHECKING:
    from .connections import LiveConnection
    from .messages import Outgoing
    from .service import ChatHub


class CommandHandler:
    """Admin operations: the in-chat ban and the admin-key REST commands."""

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = logging.getLogger("wavechat.commands")

    def check_admin_key(self, key) -> None:
        expected = self.hub.config.admin_key
        if not expected or not isinstance(key, str):
            raise AuthError("Invalid admin key")
        if not hmac.compare_digest(key.encode("utf-8"), expected.encode("utf-8")):
            raise AuthError("Invalid admin key")

    def ban_user(self, conn: LiveConnection, target_id, outgoing: Outgoing) -> None:
        """Ban an identity across every facet and tear down its presence.

        All checks run before anything is changed.
        """
        hub = self.hub
        admin_id = hub.identities.admin_id
        if conn.identity_id is None or conn.identity_id != admin_id:
            raise AuthError("Only admin can ban users")

        target = hub.identities.get(target_id)
        if target is None:
            self.log.warning("Ban failed: target id=%r not registered", target_id)
            raise NotFoundError("User not found")

        if target.id == admin_id:
            raise ValidationError("Cannot ban admin")

        self.log.info("Admin banning nick=%r id=%s", target.nickname, target.id)

        hub.bans.add_user(target.id)
        hub.bans.add_nickname(target.nickname)

        if target.ip:
            admin = hub.identities.admin()
            admin_ip = admin.ip if admin is not None else None
            if target.ip != admin_ip:
                hub.bans.add_ip(target.ip)
                self.log.info("Banned IP %s (nick=%r)", target.ip, target.nickname)
            else:
                self.log.info("Skipped banning admin IP %s", target.ip)

        if target.fingerprint:
            hub.bans.add_fingerprint(target.fingerprint)
            self.log.info(
                "Banned fingerprint %s (nick=%r)", fmt_secret(target.fingerprint), target.nickname
            )

        hub.sessions.revoke(target)

        for message_id in hub.pipeline.purge_author(target.id):
            hub.messages.broadcast(outgoing, T_MESSAGE_DELETED, message_id)

        for conn_id in hub.sessions.connections_for(target.id):
            hub.connections.force_close(conn_id, outgoing)
        hub.sessions.drop_identity(target.id)

        hub.identities.delete(target.id)
        hub.stats.inc("bans")
        hub.persistence.save_soon()

        hub.connections.announce_left(target.nickname, outgoing, banned=True)
        self.log.info("User banned nick=%r", target.nickname)

    def clear_bans(self) -> dict[str, int]:
        stats = self.hub.bans.clear_all()
        self.hub.persistence.save_soon()
        self.log.info("All bans cleared %s", stats)
        return stats

    def clear_identities(self, outgoing: Outgoing) -> dict[str, int]:
        hub = self.hub
        stats = {"registeredUsersCleared": len(hub.identities)}
        stats.update(hub.sessions.clear_all())

        for conn_id in hub.connections.detach_all():
            hub.messages.emit_invalid_session(outgoing, conn_id)

        hub.identities.clear()
        hub.pipeline.forget_senders()
        hub.persistence.save_soon()
        self.log.info("All users cleared %s", stats)
        return stats

    def unban(self, kind: str, value) -> None:
        if kind not in BAN_KINDS:
            raise ValidationError(f"kind must be one of: {', '.join(BAN_KINDS)}")
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("value required")

        if not self.hub.bans.remove(kind, value.strip()):
            raise NotFoundError(f"{kind} not found in ban list")

        self.hub.persistence.save_soon()
        self.log.info("Unbanned %s %s", kind, value if kind != "fingerprint" else fmt_secret(value))

    def debug_user(self, nickname: str) -> dict[str, Any]:
        hub = self.hub
        key = nick_key(nickname)
        ident = hub.identities.find_by_nickname(key)
        live = hub.connections.live_for_nickname(key)

        sessions = [
            {"connId": c.conn_id, "ip": c.ip, "connectedAt": int(c.connected_at * 1000)}
            for c in live
        ]
        registered = None
        if ident is not None:
            registered = {
                **ident.public(),
                "ip": ident.ip,
                "hasDeviceCode": ident.device_code is not None,
                "hasFingerprint": ident.fingerprint is not None,
            }

        return {
            "nickname": nickname,
            "activeSessions": sessions,
            "sessionCount": len(sessions),
            "registeredUser": registered,
            "registeredUserId": ident.id if ident is not None else None,
            "isBanned": hub.bans.is_nickname_banned(key),
            "totalActiveConnections": hub.connections.attributed_count(),
            "totalRegisteredUsers": len(hub.identities),
        }
