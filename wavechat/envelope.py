from __future__ import annotations

import json
import time

from .constants import CLIENT_EVENTS, K_DATA, K_EVENT


def now_ms() -> int:
    return int(time.time() * 1000)


def make_event(event: str, data=None) -> dict:
    frame: dict[str, object] = {K_EVENT: str(event)}
    if data is not None:
        frame[K_DATA] = data
    return frame


def decode_frame(text: str | bytes) -> dict:
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8")
    frame = json.loads(text)
    validate_frame(frame)
    return frame


def validate_frame(frame: dict) -> None:
    if not isinstance(frame, dict):
        raise TypeError("frame must be a JSON object")

    if K_EVENT not in frame:
        raise ValueError(f"missing frame key {K_EVENT!r}")

    event = frame[K_EVENT]
    if not isinstance(event, str):
        raise TypeError("event name must be a string")
    if event not in CLIENT_EVENTS:
        raise ValueError(f"unknown event {event!r}")

    for k in frame.keys():
        if not isinstance(k, str):
            raise TypeError("frame keys must be strings")
