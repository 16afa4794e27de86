import cbor2
import pytest

from wavechat.codec import decode_doc, encode_doc
from wavechat.constants import S_ADMIN_ID, S_BANNED_IPS, S_MESSAGES, S_USERS


def test_codec_round_trip_snapshot_shape() -> None:
    doc = {
        S_USERS: {"u1": {"id": "u1", "nickname": "alice", "avatar_hue": 12}},
        S_MESSAGES: [{"id": "m1", "message": "hello", "timestamp": 1_700_000_000_000}],
        S_BANNED_IPS: ["10.0.0.9"],
        S_ADMIN_ID: None,
    }
    assert decode_doc(encode_doc(doc)) == doc


def test_encode_requires_map() -> None:
    with pytest.raises(TypeError):
        encode_doc([1, 2])  # type: ignore[arg-type]


def test_decode_rejects_non_map() -> None:
    with pytest.raises(ValueError, match="not a map"):
        decode_doc(cbor2.dumps([1, 2]))
