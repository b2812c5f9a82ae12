"""Highlight extraction: short snippets of a result that contain query terms."""

from __future__ import annotations

import re

from fusion_retrieval.core.constants import MAX_HIGHLIGHT_CHARS, MAX_HIGHLIGHTS


_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n+")
_TOKEN = re.compile(r"\w+")


def highlight_terms(query: str) -> list[str]:
    """Distinct lowercase word tokens of ``query``."""
    return list(dict.fromkeys(token.lower() for token in _TOKEN.findall(query)))


def _window(sentence: str, position: int, width: int) -> str:
    if len(sentence) <= width:
        return sentence
    start = max(0, min(position - width // 4, len(sentence) - width))
    snippet = sentence[start:start + width].strip()
    if start > 0:
        snippet = "..." + snippet
    if start + width < len(sentence):
        snippet += "..."
    return snippet


def extract_highlights(
    content: str,
    terms: list[str],
    max_highlights: int = MAX_HIGHLIGHTS,
    width: int = MAX_HIGHLIGHT_CHARS,
) -> list[str]:
    """Up to ``max_highlights`` sentences of ``content`` containing any term.

    Sentences longer than ``width`` are cut to a window around the first
    matching term. Snippets keep their order of appearance.
    """
    if not terms or not content:
        return []
    pattern = re.compile("|".join(re.escape(term) for term in terms), re.IGNORECASE)
    highlights: list[str] = []
    for sentence in _SENTENCE_BOUNDARY.split(content):
        sentence = sentence.strip()
        if not sentence:
            continue
        match = pattern.search(sentence)
        if match is None:
            continue
        highlights.append(_window(sentence, match.start(), width))
        if len(highlights) >= max_highlights:
            break
    return highlights
