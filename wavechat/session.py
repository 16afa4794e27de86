from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING

from .identities import Identity
from .util import fmt_secret

if TYPE_CHECKING:
    from .service import ChatHub


class SessionManager:
    """
    Maps bearer session tokens to identities and tracks live connections.

    This class is responsible for:
    - Issuing tokens (one active token per identity)
    - Validating presented tokens (fails closed)
    - Rotating tokens when an identity shows up from a new IP
    - Tracking which live connections belong to each identity
    """

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = logging.getLogger("wavechat.session")
        self._tokens: dict[str, str] = {}  # token -> identity id
        self._sessions: dict[str, set[str]] = {}  # identity id -> conn ids

    def _new_token(self) -> str:
        while True:
            token = secrets.token_hex(32)
            if token not in self._tokens:
                return token

    def issue_token(self, identity: Identity) -> str:
        """Issue a fresh token, invalidating the identity's previous one."""
        if identity.session_token:
            self._tokens.pop(identity.session_token, None)

        token = self._new_token()
        identity.session_token = token
        self._tokens[token] = identity.id
        return token

    def validate_token(self, token) -> Identity | None:
        if not token or not isinstance(token, str):
            return None

        identity_id = self._tokens.get(token)
        if identity_id is None:
            return None

        identity = self.hub.identities.get(identity_id)
        if identity is None:
            return None

        # Guards against a stale index entry left behind by a rotation.
        if identity.session_token != token:
            return None

        return identity

    def rotate_on_ip_change(self, identity: Identity, new_ip: str) -> str | None:
        """Rotate the token if the identity's recorded IP differs.

        Returns the new token, or None if no rotation was needed.
        """
        if identity.ip == new_ip:
            return None

        old_ip = identity.ip
        identity.ip = new_ip
        token = self.issue_token(identity)
        self.log.info(
            "IP changed nick=%r %s -> %s; new token=%s",
            identity.nickname,
            old_ip,
            new_ip,
            fmt_secret(token),
        )
        self.hub.persistence.save_soon()
        return token

    def revoke(self, identity: Identity) -> None:
        if identity.session_token:
            self._tokens.pop(identity.session_token, None)
        identity.session_token = None

    def track(self, identity_id: str, conn_id: str) -> bool:
        """Attach a connection to an identity. True if it was the first one."""
        conns = self._sessions.setdefault(identity_id, set())
        first = not conns
        conns.add(conn_id)
        return first

    def untrack(self, identity_id: str, conn_id: str) -> bool:
        """Detach a connection. True if the identity has no connections left."""
        conns = self._sessions.get(identity_id)
        if conns is None:
            return False
        conns.discard(conn_id)
        if conns:
            return False
        self._sessions.pop(identity_id, None)
        return True

    def connections_for(self, identity_id: str) -> set[str]:
        return set(self._sessions.get(identity_id, ()))

    def is_online(self, identity_id: str) -> bool:
        return bool(self._sessions.get(identity_id))

    def drop_identity(self, identity_id: str) -> set[str]:
        """Forget every live connection of an identity; returns their ids."""
        return self._sessions.pop(identity_id, set())

    def clear_all(self) -> dict[str, int]:
        stats = {
            "sessionTokensCleared": len(self._tokens),
            "activeUsersCleared": sum(len(v) for v in self._sessions.values()),
        }
        self._tokens.clear()
        self._sessions.clear()
        return stats

    def get_stats(self) -> dict[str, int]:
        return {
            "tokens": len(self._tokens),
            "online_identities": len(self._sessions),
            "attributed_connections": sum(len(v) for v in self._sessions.values()),
        }

    def dump_tokens(self) -> dict[str, str]:
        return dict(self._tokens)

    def load_tokens(self, tokens: dict[str, str]) -> None:
        self._tokens = {}
        for token, identity_id in tokens.items():
            identity = self.hub.identities.get(identity_id)
            # Only the identity's current token survives a reload.
            if identity is not None and identity.session_token == token:
                self._tokens[str(token)] = str(identity_id)
        for identity in self.hub.identities:
            if identity.session_token and identity.session_token not in self._tokens:
                self._tokens[identity.session_token] = identity.id
