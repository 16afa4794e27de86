from __future__ import annotations

import os
import re
from collections.abc import Mapping

_NICK_RE = re.compile(r"[A-Za-z0-9_]+")


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def nick_key(nickname: str) -> str:
    return nickname.lower()


def check_nick_shape(value, *, min_chars: int, max_chars: int) -> str | None:
    """Return a rejection message for a nickname, or None if acceptable."""
    if not isinstance(value, str) or len(value.strip()) < int(min_chars) or len(value) > int(max_chars):
        return f"Nickname must be {min_chars}-{max_chars} characters"

    if not _NICK_RE.fullmatch(value):
        return "Nickname must contain only English letters, numbers, and underscores"

    return None


def client_ip(
    headers: Mapping[str, str], peer: str | None, *, trust_proxy_headers: bool = True
) -> str:
    if trust_proxy_headers:
        forwarded = headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first

        real_ip = headers.get("x-real-ip")
        if real_ip and real_ip.strip():
            return real_ip.strip()

    return peer or "-"


def fmt_secret(value, *, prefix: int = 16) -> str:
    if not isinstance(value, str) or not value:
        return "-"
    return value[: min(prefix, len(value))] + "..."
