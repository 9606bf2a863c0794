"""Outbound line budgeting: split replies so each relayed PRIVMSG fits in 512 bytes."""

from __future__ import annotations

IRC_LINE_LIMIT = 512
# ":nick!user@host " prepended by the server when it relays our line
PREFIX_HEADROOM = 120


def byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


def privmsg_budget(target: str, limit: int = IRC_LINE_LIMIT) -> int:
    """Bytes left for the text of one PRIVMSG to ``target`` once the server relays it."""
    overhead = byte_length(f"PRIVMSG {target} :\r\n")
    return max(1, limit - overhead - PREFIX_HEADROOM)


def _hard_split(word: str, max_bytes: int) -> list[str]:
    pieces: list[str] = []
    current: list[str] = []
    size = 0
    for char in word:
        width = byte_length(char)
        if current and size + width > max_bytes:
            pieces.append("".join(current))
            current, size = [], 0
        current.append(char)
        size += width
    if current:
        pieces.append("".join(current))
    return pieces


def split_into_chunks(text: str, max_bytes: int) -> list[str]:
    """Split text on word boundaries into chunks of at most ``max_bytes`` UTF-8 bytes.

    Words longer than ``max_bytes`` are split mid-word, never inside a code point.
    """
    if max_bytes < 1:
        raise ValueError("max_bytes must be positive")

    chunks: list[str] = []
    current = ""
    for word in text.split():
        size = byte_length(word)
        if size > max_bytes:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(_hard_split(word, max_bytes))
            continue
        if current and byte_length(current) + 1 + size > max_bytes:
            chunks.append(current)
            current = ""
        current = f"{current} {word}" if current else word
    if current:
        chunks.append(current)
    return chunks
