import pytest

from llmirc.channels.codec import (
    IRC_LINE_LIMIT,
    PREFIX_HEADROOM,
    byte_length,
    privmsg_budget,
    split_into_chunks,
)


def test_split_into_chunks_on_word_boundaries() -> None:
    chunks = split_into_chunks("aaa bbb ccc ddd", 7)
    assert chunks == ["aaa bbb", "ccc ddd"]
    assert all(len(c) <= 7 for c in chunks)


def test_split_into_chunks_hard_splits_long_words() -> None:
    chunks = split_into_chunks("hi " + "x" * 12, 5)
    assert chunks == ["hi", "xxxxx", "xxxxx", "xx"]


def test_split_into_chunks_empty_text() -> None:
    assert split_into_chunks("   ", 10) == []
    with pytest.raises(ValueError):
        split_into_chunks("abc", 0)


def test_split_into_chunks_counts_utf8_bytes() -> None:
    text = "日本語の文章です " * 200
    budget = privmsg_budget("#chat")
    chunks = split_into_chunks(text, budget)

    assert len(chunks) > 1
    assert all(byte_length(c) <= budget for c in chunks)
    assert " ".join(chunks) == text.strip()
    wire = [PREFIX_HEADROOM + byte_length(f"PRIVMSG #chat :{c}\r\n") for c in chunks]
    assert max(wire) <= IRC_LINE_LIMIT


def test_hard_split_never_cuts_a_code_point() -> None:
    word = "é" * 9 + "😀" * 3
    chunks = split_into_chunks(word, 5)
    assert "".join(chunks) == word
    assert all(byte_length(c) <= 5 for c in chunks)
    assert chunks[:4] == ["éé", "éé", "éé", "éé"]


def test_privmsg_budget_leaves_room_for_command_and_prefix() -> None:
    assert privmsg_budget("#chat") == 512 - len("PRIVMSG #chat :\r\n") - PREFIX_HEADROOM
    assert privmsg_budget("#a-much-longer-channel") < privmsg_budget("#chat")
