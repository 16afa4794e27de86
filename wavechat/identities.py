"""Registry of permanent chat identities."""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from .errors import NicknameInvalid, NicknameTaken
from .util import check_nick_shape, nick_key

if TYPE_CHECKING:
    from .service import ChatHub


@dataclass
class Identity:
    id: str
    nickname: str
    avatar_hue: int
    is_admin: bool = False
    ip: str | None = None
    session_token: str | None = None
    device_code: str | None = None
    fingerprint: str | None = None

    def public(self) -> dict[str, Any]:
        """The user object shown to clients."""
        return {
            "id": self.id,
            "nickname": self.nickname,
            "avatarHue": self.avatar_hue,
            "isAdmin": self.is_admin,
        }

    def to_record(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> Identity:
        return cls(
            id=str(rec["id"]),
            nickname=str(rec["nickname"]),
            avatar_hue=int(rec.get("avatar_hue", 0)) % 360,
            is_admin=bool(rec.get("is_admin", False)),
            ip=rec.get("ip"),
            session_token=rec.get("session_token"),
            device_code=rec.get("device_code"),
            fingerprint=rec.get("fingerprint"),
        )


class IdentityStore:
    """
    Owns every registered identity.

    Handles:
    - Nickname shape and availability checks (registered + banned nicknames)
    - The one-time admin grant
    - Lookup by id, nickname and device code
    """

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = logging.getLogger("wavechat.identities")
        self._by_id: dict[str, Identity] = {}
        self.admin_id: str | None = None
        # Once the admin has been granted, no later registration can be
        # granted again in this process, even after a bulk clear.
        self._admin_granted = False

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(list(self._by_id.values()))

    def get(self, identity_id) -> Identity | None:
        if not isinstance(identity_id, str):
            return None
        return self._by_id.get(identity_id)

    def admin(self) -> Identity | None:
        if self.admin_id is None:
            return None
        return self._by_id.get(self.admin_id)

    def find_by_nickname(self, nickname: str) -> Identity | None:
        key = nick_key(nickname)
        for ident in self._by_id.values():
            if nick_key(ident.nickname) == key:
                return ident
        return None

    def find_by_device_code(self, code) -> Identity | None:
        if not code or not isinstance(code, str):
            return None
        for ident in self._by_id.values():
            if ident.device_code == code:
                return ident
        return None

    def assigned_device_codes(self) -> set[str]:
        return {i.device_code for i in self._by_id.values() if i.device_code}

    def is_nickname_available(self, nickname: str, *, exclude_id: str | None = None) -> bool:
        key = nick_key(nickname)
        if self.hub.bans.is_nickname_banned(key):
            return False
        for ident in self._by_id.values():
            if ident.id != exclude_id and nick_key(ident.nickname) == key:
                return False
        return True

    def check_nickname(self, nickname) -> str:
        """Validate a nickname for registration; raises on rejection."""
        cfg = self.hub.config
        problem = check_nick_shape(
            nickname, min_chars=cfg.nick_min_chars, max_chars=cfg.nick_max_chars
        )
        if problem is not None:
            raise NicknameInvalid(problem)
        if not self.is_nickname_available(nickname):
            raise NicknameTaken()
        return nickname

    def register(
        self, nickname, *, ip: str | None = None, fingerprint: str | None = None
    ) -> Identity:
        nickname = self.check_nickname(nickname)

        is_admin = (
            not self._admin_granted
            and self.admin_id is None
            and nick_key(nickname) == nick_key(self.hub.config.admin_nickname)
        )

        ident = Identity(
            id=str(uuid.uuid4()),
            nickname=nickname,
            avatar_hue=secrets.randbelow(360),
            is_admin=is_admin,
            ip=ip,
            fingerprint=fingerprint,
        )
        self._by_id[ident.id] = ident

        if is_admin:
            self.admin_id = ident.id
            self._admin_granted = True
            self.log.info("Admin identity created nick=%r id=%s", nickname, ident.id)

        return ident

    def delete(self, identity_id: str) -> Identity | None:
        ident = self._by_id.pop(identity_id, None)
        if ident is not None and ident.id == self.admin_id:
            self.admin_id = None
        return ident

    def clear(self) -> int:
        """Drop every identity. The admin grant is not re-armed."""
        n = len(self._by_id)
        self._by_id.clear()
        self.admin_id = None
        return n

    def load(self, records: dict[str, dict[str, Any]], admin_id: str | None) -> None:
        self._by_id = {}
        for key, rec in records.items():
            ident = Identity.from_record(rec)
            self._by_id[str(key)] = ident
        self.admin_id = admin_id if admin_id in self._by_id else None
        if admin_id:
            self._admin_granted = True

    def dump(self) -> dict[str, dict[str, Any]]:
        return {k: v.to_record() for k, v in self._by_id.items()}
