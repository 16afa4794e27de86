from dataclasses import replace

import pytest

from wavechat.constants import DEVICE_CODE_ALPHABET
from wavechat.devicecodes import looks_like_code
from wavechat.errors import AuthError
from wavechat.service import ChatHub

from helpers import data_for, events_for, login, send


def test_code_shape() -> None:
    assert looks_like_code("AB12")
    assert looks_like_code("ab12")
    assert looks_like_code("ABCD1234")
    assert not looks_like_code("AB1")
    assert not looks_like_code("AB_1")
    assert not looks_like_code(None)


def test_code_shaped_nickname_registers_when_no_code_matches(hub) -> None:
    hub.on_connect("c1", "10.0.0.1")
    out = send(hub, "c1", "setNickname", "GAMER123")
    assert looks_like_code("GAMER123")
    accepted = data_for(out, "c1", "nicknameAccepted")
    assert accepted and accepted[0]["user"]["nickname"] == "GAMER123"
    assert "isDeviceLogin" not in accepted[0]
    assert hub.stats.get("registrations") == 1


def test_generate_requires_login(hub) -> None:
    hub.on_connect("c1", "1.1.1.1")
    conn = hub.connections.get("c1")
    with pytest.raises(AuthError):
        hub.devicecodes.generate(conn)

    out = send(hub, "c1", "generateDeviceCode")
    assert data_for(out, "c1", "error") == [{"message": "You must be logged in"}]


def test_generate_replaces_previous_code(hub) -> None:
    login(hub, "c1", "alice")
    first = data_for(send(hub, "c1", "generateDeviceCode"), "c1", "deviceCodeGenerated")
    second = data_for(send(hub, "c1", "generateDeviceCode"), "c1", "deviceCodeGenerated")
    code1, code2 = first[0]["deviceCode"], second[0]["deviceCode"]

    assert len(code1) == 4 and set(code1) <= set(DEVICE_CODE_ALPHABET)
    ident = hub.identities.find_by_nickname("alice")
    assert ident.device_code == code2
    if code1 != code2:
        assert hub.identities.find_by_device_code(code1) is None


def test_code_moves_identity_to_new_device(hub) -> None:
    accepted = login(hub, "phone", "alice", ip="1.1.1.1")
    old_token = accepted["sessionToken"]
    code = data_for(send(hub, "phone", "generateDeviceCode"), "phone", "deviceCodeGenerated")[0][
        "deviceCode"
    ]

    hub.on_connect("laptop", "2.2.2.2")
    out = send(hub, "laptop", "setNickname", code.lower())

    got = data_for(out, "laptop", "nicknameAccepted")[0]
    assert got["isDeviceLogin"] is True
    assert got["user"]["nickname"] == "alice"
    assert got["deviceCode"] is None
    assert events_for(out, "laptop")[:2] == ["nicknameAccepted", "messageHistory"]

    # The other device is told the code is gone; alice was already online.
    assert data_for(out, "phone", "deviceCodeDeleted") == [
        {"reason": "Used for login on another device"}
    ]
    assert "userJoined" not in events_for(out, "laptop")

    ident = hub.identities.find_by_nickname("alice")
    assert ident.device_code is None
    assert ident.ip == "2.2.2.2"
    assert hub.sessions.validate_token(got["sessionToken"]) is ident
    assert hub.sessions.validate_token(old_token) is None
    assert hub.stats.get("device_logins") == 1


def test_code_is_single_use(hub) -> None:
    login(hub, "phone", "alice")
    code = data_for(send(hub, "phone", "generateDeviceCode"), "phone", "deviceCodeGenerated")[0][
        "deviceCode"
    ]
    hub.on_connect("laptop", "2.2.2.2")
    send(hub, "laptop", "setNickname", code)

    hub.on_connect("tablet", "3.3.3.3")
    out = send(hub, "tablet", "setNickname", code)
    got = data_for(out, "tablet", "nicknameAccepted")
    # Unknown code falls through to plain registration as a nickname.
    assert got and got[0]["user"]["nickname"] == code
    assert "isDeviceLogin" not in got[0]


def test_fallback_code_when_short_space_is_full(config, store) -> None:
    hub = ChatHub(replace(config, device_code_len=1, device_code_max_attempts=3), store=store)
    for i, ch in enumerate(DEVICE_CODE_ALPHABET):
        hub.identities.register(f"user{i}").device_code = ch

    login(hub, "c1", "alice")
    code = hub.devicecodes.generate(hub.connections.get("c1"))
    assert len(code) == config.device_code_fallback_len
    assert looks_like_code(code)
