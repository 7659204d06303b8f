"""Lyric clean-up applied before submission to the music provider."""

from __future__ import annotations

import re

_SECTION_HEADER = re.compile(
    r"^(?:final\s+chorus|verse|chorus|intro|outro|bridge)(?:\s*\d+)?\s*:?$",
    re.IGNORECASE,
)
_PRODUCTION_NOTE = re.compile(r"^\(.*\)$")


def is_section_header(line: str) -> bool:
    return bool(_SECTION_HEADER.match(line.strip()))


def is_production_note(line: str) -> bool:
    return bool(_PRODUCTION_NOTE.match(line.strip()))


def sanitize_lyrics(raw_lyrics: str) -> str:
    """Strip section headers, parenthesised production notes and blank lines.

    Only sung text survives, in its original order and trimmed. Returns an
    empty string when nothing is left; callers decide whether that is an
    error.
    """

    if not raw_lyrics:
        return ""
    kept = []
    for line in raw_lyrics.splitlines():
        text = line.strip()
        if not text or is_section_header(text) or is_production_note(text):
            continue
        kept.append(text)
    return "\n".join(kept)
