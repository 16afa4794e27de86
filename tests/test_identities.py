import pytest

from wavechat.errors import NicknameInvalid, NicknameTaken


def test_nicknames_are_unique_across_case(hub) -> None:
    hub.identities.register("Alice")
    with pytest.raises(NicknameTaken):
        hub.identities.register("aLiCe")
    assert hub.identities.find_by_nickname("ALICE").nickname == "Alice"


@pytest.mark.parametrize(
    "nickname, message",
    [
        ("ab", "Nickname must be 3-20 characters"),
        ("a" * 21, "Nickname must be 3-20 characters"),
        ("bad name", "Nickname must contain only English letters, numbers, and underscores"),
        ("élan", "Nickname must contain only English letters, numbers, and underscores"),
    ],
)
def test_nickname_shape(hub, nickname: str, message: str) -> None:
    with pytest.raises(NicknameInvalid) as exc:
        hub.identities.register(nickname)
    assert exc.value.message == message


def test_banned_nickname_is_unavailable(hub) -> None:
    hub.bans.add_nickname("Troll")
    assert not hub.identities.is_nickname_available("troll")
    with pytest.raises(NicknameTaken):
        hub.identities.register("TROLL")


def test_admin_granted_to_first_matching_nickname(hub) -> None:
    bob = hub.identities.register("bob")
    admin = hub.identities.register("Mefisto")
    assert not bob.is_admin
    assert admin.is_admin
    assert hub.identities.admin_id == admin.id


def test_admin_is_never_granted_twice(hub) -> None:
    admin = hub.identities.register("mefisto")
    hub.identities.delete(admin.id)
    assert hub.identities.admin_id is None

    again = hub.identities.register("mefisto")
    assert not again.is_admin
    assert hub.identities.admin_id is None


def test_clear_does_not_rearm_admin(hub) -> None:
    hub.identities.register("mefisto")
    assert hub.identities.clear() == 1
    assert len(hub.identities) == 0
    assert not hub.identities.register("mefisto").is_admin


def test_records_round_trip(hub) -> None:
    ident = hub.identities.register("carol", ip="1.2.3.4", fingerprint="fp1")
    dumped = hub.identities.dump()
    hub.identities.load(dumped, admin_id=None)
    restored = hub.identities.get(ident.id)
    assert restored == ident
    assert 0 <= restored.avatar_hue < 360
