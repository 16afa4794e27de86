"""Short human-typable codes that move an identity to another device."""

from __future__ import annotations

import logging
import re
import secrets
from typing import TYPE_CHECKING

from .constants import DEVICE_CODE_ALPHABET, T_DEVICE_CODE_DELETED
from .errors import AuthError, BannedError, NotFoundError
from .identities import Identity

if TYPE_CHECKING:
    from .connections import LiveConnection
    from .messages import Outgoing
    from .service import ChatHub

# Anything typed into the nickname box that has this shape is tried as a
# device code first. Upper bound covers the long fallback codes.
_CODE_SHAPE = re.compile(r"[A-Z0-9]{4,8}")


def looks_like_code(text) -> bool:
    if not isinstance(text, str):
        return False
    return _CODE_SHAPE.fullmatch(text.upper()) is not None


def random_code(length: int) -> str:
    return "".join(secrets.choice(DEVICE_CODE_ALPHABET) for _ in range(int(length)))


class DeviceCodeExchange:
    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = logging.getLogger("wavechat.devicecodes")

    def _unique_code(self) -> str:
        cfg = self.hub.config
        taken = self.hub.identities.assigned_device_codes()
        for _ in range(max(1, int(cfg.device_code_max_attempts))):
            code = random_code(cfg.device_code_len)
            if code not in taken:
                return code

        # The short code space is crowded; a long code always terminates.
        while True:
            code = random_code(cfg.device_code_fallback_len)
            if code not in taken:
                return code

    def generate(self, conn: LiveConnection) -> str:
        """Assign a new code to the identity behind an attributed connection.

        Any previous unused code of that identity stops working.
        """
        if conn.identity_id is None:
            raise AuthError("You must be logged in")

        identity = self.hub.identities.get(conn.identity_id)
        if identity is None:
            raise NotFoundError("User not found")

        code = self._unique_code()
        identity.device_code = code
        self.hub.persistence.save_soon()

        self.log.info("Device code generated nick=%r code=%s", identity.nickname, code)
        return code

    def consume(
        self, code: str, conn: LiveConnection, outgoing: Outgoing
    ) -> tuple[Identity, str] | None:
        """Log `conn` in as the owner of `code`.

        Returns (identity, fresh session token), or None if no identity holds
        the code. The code is gone afterwards.
        """
        identity = self.hub.identities.find_by_device_code(code.upper())
        if identity is None:
            return None

        if self.hub.bans.is_user_banned(identity.id):
            raise BannedError()

        used = identity.device_code
        identity.device_code = None

        for other_id in self.hub.sessions.connections_for(identity.id):
            if other_id == conn.conn_id:
                continue
            self.hub.messages.queue(
                outgoing,
                other_id,
                T_DEVICE_CODE_DELETED,
                {"reason": "Used for login on another device"},
            )

        identity.ip = conn.ip
        token = self.hub.sessions.issue_token(identity)
        self.hub.persistence.save_soon()

        self.log.info(
            "Device code %s consumed nick=%r conn=%s ip=%s",
            used,
            identity.nickname,
            conn.conn_id,
            conn.ip,
        )
        return identity, token
