import json

from wavechat.constants import K_EVENT

from helpers import data_for, events_for, login, send


def test_connect_broadcasts_online_count(hub) -> None:
    hub.on_connect("c1", "1.1.1.1")
    out = hub.on_connect("c2", "1.1.1.2")
    assert data_for(out, "c1", "onlineCount") == [2]
    assert data_for(out, "c2", "onlineCount") == [2]


def test_registration_frames_in_order(hub) -> None:
    hub.on_connect("c1", "1.1.1.1")
    out = send(hub, "c1", "setNickname", "alice")
    assert events_for(out, "c1") == ["nicknameAccepted", "messageHistory", "userJoined"]

    accepted = data_for(out, "c1", "nicknameAccepted")[0]
    assert accepted["user"]["nickname"] == "alice"
    assert accepted["deviceCode"] is None
    assert accepted["isAdmin"] is False
    assert data_for(out, "c1", "userJoined") == [{"nickname": "alice", "onlineCount": 1}]
    assert hub.stats.get("registrations") == 1


def test_registration_error_is_reported(hub) -> None:
    login(hub, "c1", "alice")
    hub.on_connect("c2", "1.1.1.2")
    out = send(hub, "c2", "setNickname", "ALICE")
    assert events_for(out, "c2") == ["error"]
    assert data_for(out, "c2", "error") == [{"message": "Nickname already taken"}]


def test_presence_coalesces_across_connections(hub) -> None:
    token = login(hub, "tab1", "alice")["sessionToken"]

    hub.on_connect("tab2", "10.0.0.1")
    out = send(hub, "tab2", "rejoin", {"sessionToken": token})
    rejoined = data_for(out, "tab2", "nicknameAccepted")[0]
    assert rejoined["isRejoin"] is True
    assert rejoined["sessionToken"] == token
    assert "userJoined" not in events_for(out, "tab1")

    out = hub.on_disconnect("tab1")
    assert "userLeft" not in events_for(out, "tab2")
    assert data_for(out, "tab2", "onlineCount") == [1]

    hub.on_connect("watcher", "9.9.9.9")
    out = hub.on_disconnect("tab2")
    assert data_for(out, "watcher", "userLeft") == [{"nickname": "alice", "onlineCount": 1}]


def test_rejoin_from_new_ip_rotates_token(hub) -> None:
    token = login(hub, "c1", "alice", ip="1.1.1.1")["sessionToken"]
    hub.on_disconnect("c1")

    hub.on_connect("c2", "2.2.2.2")
    out = send(hub, "c2", "rejoin", {"sessionToken": token})
    new_token = data_for(out, "c2", "nicknameAccepted")[0]["sessionToken"]
    assert new_token != token
    assert hub.sessions.validate_token(token) is None
    assert events_for(out, "c2")[-1] == "userJoined"


def test_rejoin_with_bad_token(hub) -> None:
    hub.on_connect("c1", "1.1.1.1")
    out = send(hub, "c1", "rejoin", {"sessionToken": "deadbeef"})
    assert events_for(out, "c1") == ["invalidSession"]

    out = send(hub, "c1", "rejoin", {})
    assert data_for(out, "c1", "error") == [{"message": "Invalid session data"}]


def test_cookie_resume(hub) -> None:
    token = login(hub, "c1", "alice", ip="1.1.1.1")["sessionToken"]

    out = hub.on_connect("c2", "1.1.1.1", token)
    valid = data_for(out, "c2", "sessionValid")[0]
    assert valid["nickname"] == "alice"
    assert valid["sessionToken"] == token
    # Resume does not attribute the connection by itself.
    assert hub.connections.get("c2").identity_id is None

    out = hub.on_connect("c3", "1.1.1.1", "bogus")
    assert events_for(out, "c3")[-1] == "invalidSession"


def test_banned_ip_is_turned_away(hub) -> None:
    hub.bans.add_ip("6.6.6.6")
    out = hub.on_connect("c1", "6.6.6.6")
    assert events_for(out, "c1") == ["banned", "close"]
    assert hub.connections.get("c1") is None
    assert hub.connections.online_count() == 0


def test_banned_fingerprint_is_closed(hub) -> None:
    hub.bans.add_fingerprint("fp-bad")
    hub.on_connect("c1", "1.1.1.1")
    out = send(hub, "c1", "setFingerprint", "fp-bad")
    assert events_for(out, "c1") == ["banned", "close"]
    assert hub.connections.get("c1") is None


def test_fingerprint_recorded_on_identity(hub) -> None:
    login(hub, "c1", "alice")
    send(hub, "c1", "setFingerprint", "fp-1")
    assert hub.identities.find_by_nickname("alice").fingerprint == "fp-1"


def test_reattribution_detaches_previous_identity(hub) -> None:
    login(hub, "c1", "alice")
    hub.on_connect("watcher", "9.9.9.9")
    out = send(hub, "c1", "setNickname", "bob")
    assert data_for(out, "watcher", "userLeft") == [{"nickname": "alice", "onlineCount": 2}]
    assert data_for(out, "watcher", "userJoined") == [{"nickname": "bob", "onlineCount": 2}]
    assert not hub.sessions.is_online(hub.identities.find_by_nickname("alice").id)


def test_message_broadcast(hub) -> None:
    login(hub, "c1", "alice")
    hub.on_connect("c2", "1.1.1.2")
    out = send(hub, "c1", "message", "  hello world  ")

    msg = data_for(out, "c2", "message")[0]
    assert msg["message"] == "hello world"
    assert msg["nickname"] == "alice"
    assert data_for(out, "c1", "message") == [msg]
    assert hub.pipeline.history() == [msg]


def test_message_requires_nickname(hub) -> None:
    hub.on_connect("c1", "1.1.1.1")
    out = send(hub, "c1", "message", "hello")
    assert data_for(out, "c1", "error") == [{"message": "You must set a nickname first"}]


def test_rejected_message_only_reaches_sender(hub) -> None:
    login(hub, "c1", "alice")
    hub.on_connect("c2", "1.1.1.2")
    out = send(hub, "c1", "message", "AAAA http://x.io")
    assert data_for(out, "c1", "error") == [{"message": "Links are not allowed in chat"}]
    assert events_for(out, "c2") == []
    assert hub.stats.get("messages_rejected") == 1


def test_history_sent_on_login(hub) -> None:
    login(hub, "c1", "alice")
    send(hub, "c1", "message", "first")
    hub.on_connect("c2", "1.1.1.2")
    out = send(hub, "c2", "setNickname", "bob")
    history = data_for(out, "c2", "messageHistory")[0]
    assert [m["message"] for m in history] == ["first"]


def test_bad_frames_are_reported(hub) -> None:
    hub.on_connect("c1", "1.1.1.1")
    out = hub.on_event("c1", "not json")
    assert events_for(out, "c1") == ["error"]
    out = hub.on_event("c1", json.dumps({K_EVENT: "onlineCount"}))
    assert events_for(out, "c1") == ["error"]
    assert hub.stats.get("events_bad") == 2


def test_events_from_unknown_connection_are_ignored(hub) -> None:
    assert hub.on_event("ghost", json.dumps({K_EVENT: "message", "data": "hi"})) == []
