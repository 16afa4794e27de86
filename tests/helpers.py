from __future__ import annotations

import json

from wavechat.constants import K_DATA, K_EVENT
from wavechat.service import ChatHub


def send(hub: ChatHub, conn_id: str, event: str, data=None) -> list:
    frame = {K_EVENT: event}
    if data is not None:
        frame[K_DATA] = data
    return hub.on_event(conn_id, json.dumps(frame))


def events_for(outgoing: list, conn_id: str) -> list[str]:
    return [frame[K_EVENT] for cid, frame in outgoing if cid == conn_id]


def data_for(outgoing: list, conn_id: str, event: str) -> list:
    return [
        frame.get(K_DATA)
        for cid, frame in outgoing
        if cid == conn_id and frame[K_EVENT] == event
    ]


def login(hub: ChatHub, conn_id: str, nickname: str, ip: str = "10.0.0.1") -> dict:
    """Connect and register; returns the nicknameAccepted payload."""
    hub.on_connect(conn_id, ip)
    out = send(hub, conn_id, "setNickname", nickname)
    accepted = data_for(out, conn_id, "nicknameAccepted")
    assert accepted, out
    return accepted[0]
