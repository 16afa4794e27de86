"""Ban registry for the chat hub."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .constants import (
    BAN_KIND_FINGERPRINT,
    BAN_KIND_IP,
    BAN_KIND_NICKNAME,
    BAN_KIND_USER,
)
from .util import nick_key

if TYPE_CHECKING:
    from .service import ChatHub


class BanRegistry:
    """
    Four independent ban sets.

    Handles:
    - Banned identity ids
    - Banned nicknames (stored lowercase)
    - Banned client IPs
    - Banned browser fingerprints
    """

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self.log = hub.log

        self._users: set[str] = set()
        self._nicknames: set[str] = set()
        self._ips: set[str] = set()
        self._fingerprints: set[str] = set()

    def _set_for(self, kind: str) -> set[str]:
        if kind == BAN_KIND_USER:
            return self._users
        if kind == BAN_KIND_NICKNAME:
            return self._nicknames
        if kind == BAN_KIND_IP:
            return self._ips
        if kind == BAN_KIND_FINGERPRINT:
            return self._fingerprints
        raise ValueError(f"unknown ban kind {kind!r}")

    def is_user_banned(self, identity_id: str | None) -> bool:
        if not identity_id:
            return False
        return identity_id in self._users

    def is_nickname_banned(self, nickname: str | None) -> bool:
        if not nickname:
            return False
        return nick_key(nickname) in self._nicknames

    def is_ip_banned(self, ip: str | None) -> bool:
        if not ip:
            return False
        return ip in self._ips

    def is_fingerprint_banned(self, fingerprint: str | None) -> bool:
        if not fingerprint:
            return False
        return fingerprint in self._fingerprints

    def add_user(self, identity_id: str) -> None:
        self._users.add(identity_id)

    def add_nickname(self, nickname: str) -> None:
        self._nicknames.add(nick_key(nickname))

    def add_ip(self, ip: str) -> None:
        self._ips.add(ip)

    def add_fingerprint(self, fingerprint: str) -> None:
        self._fingerprints.add(fingerprint)

    def remove(self, kind: str, value: str) -> bool:
        """Remove a single entry. Returns False if it was not banned."""
        entries = self._set_for(kind)
        if kind == BAN_KIND_NICKNAME:
            value = nick_key(value)
        if value not in entries:
            return False
        entries.discard(value)
        return True

    def banned_ips(self) -> list[str]:
        return sorted(self._ips)

    def clear_all(self) -> dict[str, int]:
        """Clear every set. Returns how many entries each set held."""
        stats = {
            "bannedIPsCleared": len(self._ips),
            "bannedUsersCleared": len(self._users),
            "bannedNicknamesCleared": len(self._nicknames),
            "bannedFingerprintsCleared": len(self._fingerprints),
        }
        self._users.clear()
        self._nicknames.clear()
        self._ips.clear()
        self._fingerprints.clear()
        return stats

    def get_stats(self) -> dict[str, int]:
        return {
            "bannedUsers": len(self._users),
            "bannedNicknames": len(self._nicknames),
            "bannedIPs": len(self._ips),
            "bannedFingerprints": len(self._fingerprints),
        }

    def dump(self) -> dict[str, list[str]]:
        return {
            BAN_KIND_USER: sorted(self._users),
            BAN_KIND_NICKNAME: sorted(self._nicknames),
            BAN_KIND_IP: sorted(self._ips),
            BAN_KIND_FINGERPRINT: sorted(self._fingerprints),
        }

    def load(
        self,
        *,
        users=(),
        nicknames=(),
        ips=(),
        fingerprints=(),
    ) -> None:
        self._users = {str(x) for x in users or () if x}
        self._nicknames = {nick_key(str(x)) for x in nicknames or () if x}
        self._ips = {str(x) for x in ips or () if x}
        self._fingerprints = {str(x) for x in fingerprints or () if x}
