from __future__ import annotations

import re
from typing import List

_WS = re.compile(r"\s+")
_EDGE_PUNCT = re.compile(r"^[\"'(\[]+|[.,!?;:\"')\]。！？、]+$")


def clean_text(text: str | None) -> str:
    """Collapse whitespace runs and trim."""
    return _WS.sub(" ", text or "").strip()


def word_count(text: str | None) -> int:
    t = clean_text(text)
    return len(t.split(" ")) if t else 0


def _comparable_words(text: str | None) -> List[str]:
    out = []
    for w in clean_text(text).split(" "):
        w = _EDGE_PUNCT.sub("", w.lower())
        if w:
            out.append(w)
    return out


def is_prefix_compatible(current: str | None, source: str | None) -> bool:
    """
    True when one text extends the other word-by-word.
    Case and trailing punctuation are ignored so that "the weather is" still
    matches "The weather is nice today."
    """
    a = _comparable_words(current)
    b = _comparable_words(source)
    if not a or not b:
        return False
    n = min(len(a), len(b))
    return a[:n] == b[:n]


def word_boundary(text: str, max_words: int) -> int:
    """
    Index just past the max_words-th word of text, or len(text) when the
    text has max_words words or fewer.
    """
    if max_words <= 0:
        return 0
    seen = 0
    in_word = False
    for i, ch in enumerate(text):
        if ch.isspace():
            if in_word:
                seen += 1
                in_word = False
                if seen == max_words:
                    return i
        else:
            in_word = True
    return len(text)
