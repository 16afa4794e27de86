"""Content gates applied to every chat message.

Gates run in a fixed order and the first failure wins, so a message is
always rejected for the earliest rule it breaks.
"""

from __future__ import annotations

import re

from .errors import MessageRejected

GATE_LENGTH = "length"
GATE_LINK = "link"
GATE_MENTION = "mention"
GATE_DUPLICATE = "duplicate"
GATE_CAPS = "caps"
GATE_LANGUAGE = "language"

GATE_ORDER = (
    GATE_LENGTH,
    GATE_LINK,
    GATE_MENTION,
    GATE_DUPLICATE,
    GATE_CAPS,
    GATE_LANGUAGE,
)

_LINK_TLDS = (
    "com|ru|net|org|io|gg|xyz|me|co|uk|us|tv|yt|cc|link|site|online|store|app|dev|tech"
)

_LINK_RE = re.compile(
    r"(https?://\S+)|(www\.\S+)|([a-zA-Z0-9-]+\.(" + _LINK_TLDS + r")\S*)",
    re.IGNORECASE,
)
_MENTION_RE = re.compile(r"@\w+", re.ASCII)
_NON_LETTER_RE = re.compile(r"[^a-zA-Z]")

# Cyrillic, Hebrew, Arabic (+ supplement), Devanagari, Hiragana, Katakana,
# CJK unified ideographs, Hangul syllables, halfwidth/fullwidth forms.
_BLOCKED_SCRIPTS_RE = re.compile(
    "["
    "\u0400-\u04ff"
    "\u0590-\u05ff"
    "\u0600-\u06ff"
    "\u0750-\u077f"
    "\u0900-\u097f"
    "\u3040-\u309f"
    "\u30a0-\u30ff"
    "\u4e00-\u9fff"
    "\uac00-\ud7af"
    "\uff00-\uffef"
    "]"
)


def has_link(text: str) -> bool:
    return _LINK_RE.search(text) is not None


def has_mention(text: str) -> bool:
    return _MENTION_RE.search(text) is not None


def is_shouting(text: str) -> bool:
    letters = _NON_LETTER_RE.sub("", text)
    return len(letters) >= 3 and letters == letters.upper()


def has_blocked_script(text: str) -> bool:
    return _BLOCKED_SCRIPTS_RE.search(text) is not None


def check_message(text, *, previous: str | None, max_chars: int = 100) -> str:
    """Run the content gates and return the trimmed message.

    Raises MessageRejected naming the first gate that failed.
    """
    trimmed = text.strip() if isinstance(text, str) else ""
    if not trimmed or len(trimmed) > int(max_chars):
        raise MessageRejected(GATE_LENGTH, f"Message must be 1-{max_chars} characters")

    if has_link(trimmed):
        raise MessageRejected(GATE_LINK, "Links are not allowed in chat")

    if has_mention(trimmed):
        raise MessageRejected(GATE_MENTION, "Mentions (@username) are not allowed")

    if previous is not None and trimmed == previous:
        raise MessageRejected(GATE_DUPLICATE, "Cannot send duplicate messages")

    if is_shouting(trimmed):
        raise MessageRejected(GATE_CAPS, "Please do not use all CAPS")

    if has_blocked_script(trimmed):
        raise MessageRejected(GATE_LANGUAGE, "Only English language is allowed in chat")

    return trimmed
