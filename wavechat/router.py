from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .constants import (
    K_DATA,
    K_EVENT,
    T_BAN_USER,
    T_DEVICE_CODE_GENERATED,
    T_GENERATE_DEVICE_CODE,
    T_MESSAGE,
    T_MESSAGE_HISTORY,
    T_NICKNAME_ACCEPTED,
    T_REJOIN,
    T_SESSION_VALID,
    T_SET_FINGERPRINT,
    T_SET_NICKNAME,
)
from .devicecodes import looks_like_code
from .envelope import decode_frame
from .errors import BannedError, ChatError, InvalidSession, ValidationError
from .util import fmt_secret

if TYPE_CHECKING:
    from .connections import LiveConnection
    from .identities import Identity
    from .messages import Outgoing
    from .service import ChatHub


class MessageRouter:
    """
    Handles inbound event routing for the chat hub.

    This class is responsible for:
    - Decoding and validating incoming frames
    - Dispatching events by name
    - Registration, rejoin and device-code login
    - Turning handler errors into frames for the originating connection
    """

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = logging.getLogger("wavechat.router")

    def route(self, conn_id: str, raw, outgoing: Outgoing) -> None:
        """Main entry point for one inbound frame from a live connection."""
        conn = self.hub.connections.get(conn_id)
        if conn is None:
            return

        try:
            frame = decode_frame(raw)
        except (TypeError, ValueError) as e:
            self.hub.stats.inc("events_bad")
            self.log.debug("Bad frame conn=%s err=%s", conn_id, e)
            self.hub.messages.emit_error(outgoing, conn_id, f"bad message: {e}")
            return

        self.hub.stats.inc("events_in")
        event = frame[K_EVENT]
        data = frame.get(K_DATA)

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX conn=%s id=%s event=%s data_type=%s",
                conn_id,
                conn.identity_id,
                event,
                type(data).__name__,
            )

        try:
            self.dispatch(conn, event, data, outgoing)
        except InvalidSession:
            self.hub.messages.emit_invalid_session(outgoing, conn_id)
        except BannedError:
            self.hub.connections.force_close(conn_id, outgoing)
        except ChatError as e:
            self.hub.messages.emit_error(outgoing, conn_id, e.message)
        except Exception:
            self.log.exception("Handler failed conn=%s event=%s", conn_id, event)
            self.hub.messages.emit_error(outgoing, conn_id, "Internal server error")

    def dispatch(self, conn: LiveConnection, event: str, data: Any, outgoing: Outgoing) -> None:
        if event == T_SET_FINGERPRINT:
            self.hub.connections.on_fingerprint(conn, data, outgoing)
        elif event == T_SET_NICKNAME:
            self._handle_set_nickname(conn, data, outgoing)
        elif event == T_REJOIN:
            self._handle_rejoin(conn, data, outgoing)
        elif event == T_GENERATE_DEVICE_CODE:
            code = self.hub.devicecodes.generate(conn)
            self.hub.messages.queue(
                outgoing, conn.conn_id, T_DEVICE_CODE_GENERATED, {"deviceCode": code}
            )
        elif event == T_MESSAGE:
            self.hub.pipeline.submit(conn, data, outgoing)
        elif event == T_BAN_USER:
            self.hub.commands.ban_user(conn, data, outgoing)

    def _check_not_banned(self, conn: LiveConnection) -> None:
        bans = self.hub.bans
        if bans.is_ip_banned(conn.ip) or bans.is_fingerprint_banned(conn.fingerprint):
            self.log.warning("Banned client rejected conn=%s ip=%s", conn.conn_id, conn.ip)
            raise BannedError()

    def _welcome(
        self,
        conn: LiveConnection,
        identity: Identity,
        token: str,
        outgoing: Outgoing,
        **flags: Any,
    ) -> None:
        """Attribute `conn` and send the login frames in their fixed order."""
        first = self.hub.connections.attach(conn, identity, outgoing)

        accepted: dict[str, Any] = {
            "user": identity.public(),
            "deviceCode": flags.pop("device_code", None),
            "sessionToken": token,
            "isAdmin": identity.is_admin,
        }
        if flags.get("rejoin"):
            accepted["isRejoin"] = True
        if flags.get("device_login"):
            accepted["isDeviceLogin"] = True

        self.hub.messages.queue(outgoing, conn.conn_id, T_NICKNAME_ACCEPTED, accepted)
        self.hub.messages.queue(
            outgoing, conn.conn_id, T_MESSAGE_HISTORY, self.hub.pipeline.history()
        )
        if first:
            self.hub.connections.announce_joined(identity, outgoing)

    def _handle_set_nickname(self, conn: LiveConnection, data, outgoing: Outgoing) -> None:
        self._check_not_banned(conn)

        if looks_like_code(data):
            result = self.hub.devicecodes.consume(data, conn, outgoing)
            if result is not None:
                identity, token = result
                self.hub.stats.inc("device_logins")
                self._welcome(conn, identity, token, outgoing, device_login=True)
                return

        identity = self.hub.identities.register(
            data, ip=conn.ip, fingerprint=conn.fingerprint
        )
        token = self.hub.sessions.issue_token(identity)
        self.hub.stats.inc("registrations")
        self.hub.persistence.save_soon()

        self.log.info(
            "Registered nick=%r id=%s conn=%s ip=%s admin=%s",
            identity.nickname,
            identity.id,
            conn.conn_id,
            conn.ip,
            identity.is_admin,
        )
        self._welcome(conn, identity, token, outgoing)

    def _handle_rejoin(self, conn: LiveConnection, data, outgoing: Outgoing) -> None:
        self._check_not_banned(conn)

        token = data.get("sessionToken") if isinstance(data, dict) else None
        if not token:
            raise ValidationError("Invalid session data")

        identity = self.hub.sessions.validate_token(token)
        if identity is None:
            self.log.info("Rejoin with unknown token=%s conn=%s", fmt_secret(token), conn.conn_id)
            raise InvalidSession()

        if self.hub.bans.is_user_banned(identity.id):
            raise BannedError()

        rotated = self.hub.sessions.rotate_on_ip_change(identity, conn.ip)
        if rotated is not None:
            token = rotated

        self.hub.stats.inc("rejoins")
        self.log.info("Rejoin nick=%r id=%s conn=%s", identity.nickname, identity.id, conn.conn_id)
        self._welcome(
            conn, identity, token, outgoing, device_code=identity.device_code, rejoin=True
        )

    def resume(self, conn: LiveConnection, token, outgoing: Outgoing) -> None:
        """Silent resume from the handshake cookie.

        Validates the token and reports the result; the connection stays
        unattributed until the client follows up with a rejoin.
        """
        identity = self.hub.sessions.validate_token(token)
        if identity is None:
            self.hub.messages.emit_invalid_session(outgoing, conn.conn_id)
            return

        if self.hub.bans.is_user_banned(identity.id):
            self.hub.connections.force_close(conn.conn_id, outgoing)
            return

        rotated = self.hub.sessions.rotate_on_ip_change(identity, conn.ip)
        self.hub.messages.queue(
            outgoing,
            conn.conn_id,
            T_SESSION_VALID,
            {
                "userId": identity.id,
                "nickname": identity.nickname,
                "avatarHue": identity.avatar_hue,
                "isAdmin": identity.is_admin,
                "sessionToken": rotated or identity.session_token,
            },
        )
        self.log.debug("Cookie session valid nick=%r conn=%s", identity.nickname, conn.conn_id)
