import pytest

from wavechat.errors import MessageRejected
from wavechat.moderation import (
    GATE_CAPS,
    GATE_DUPLICATE,
    GATE_LANGUAGE,
    GATE_LENGTH,
    GATE_LINK,
    GATE_MENTION,
    check_message,
    has_link,
    is_shouting,
)


def _gate(text: str, previous: str | None = None) -> str:
    with pytest.raises(MessageRejected) as exc:
        check_message(text, previous=previous)
    return exc.value.gate


def test_returns_trimmed_message() -> None:
    assert check_message("  hello there  ", previous=None) == "hello there"


def test_length_gate_counts_trimmed_text() -> None:
    assert _gate("   ") == GATE_LENGTH
    assert _gate("a" * 101) == GATE_LENGTH
    assert check_message(" " + "a" * 100 + " ", previous=None) == "a" * 100


def test_non_string_is_rejected_on_length() -> None:
    assert _gate(None) == GATE_LENGTH  # type: ignore[arg-type]


def test_first_failing_gate_wins() -> None:
    # Shouting and a link: the link gate comes first.
    assert _gate("AAAA http://x.io") == GATE_LINK


@pytest.mark.parametrize(
    "text",
    ["see https://example.org", "go to www.thing", "visit foo.gg now", "Example.COM"],
)
def test_links_are_blocked(text: str) -> None:
    assert has_link(text)
    assert _gate(text) == GATE_LINK


def test_plain_dotted_text_is_not_a_link() -> None:
    assert not has_link("end of sentence. next one")


def test_mentions_are_blocked() -> None:
    assert _gate("hey @bob") == GATE_MENTION
    with pytest.raises(MessageRejected) as exc:
        check_message("hey @bob", previous=None)
    assert exc.value.message == "Mentions (@username) are not allowed"


def test_duplicate_of_previous_is_blocked() -> None:
    assert _gate("hello", previous="hello") == GATE_DUPLICATE
    assert check_message("hello", previous="hello!") == "hello"


def test_shouting_needs_three_letters() -> None:
    assert is_shouting("HEY")
    assert not is_shouting("OK!")
    assert not is_shouting("Hey")
    assert _gate("STOP THAT") == GATE_CAPS


@pytest.mark.parametrize("text", ["привет", "こんにちは", "你好", "안녕", "שלום", "ｈｉ"])
def test_non_english_scripts_are_blocked(text: str) -> None:
    assert _gate(text) == GATE_LANGUAGE


def test_accented_latin_is_allowed() -> None:
    assert check_message("café au lait", previous=None) == "café au lait"
