"""Text helpers for normalizing keys, labels and free-text queries."""

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"[a-z0-9$][a-z0-9$.,'-]*")

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "is", "are", "was", "were", "be", "our", "we", "us", "my",
        "of", "for", "to", "in", "on", "at", "by", "do", "does", "did", "what", "who",
        "whom", "when", "where", "why", "how", "which", "me", "tell", "about", "show",
        "find", "get", "list", "please", "any", "all", "have", "has", "with", "and",
    }
)


def normalize_key(value: str) -> str:
    """Identity key used to deduplicate facts: casefolded, single-spaced."""
    return _WHITESPACE.sub(" ", value).strip().casefold().rstrip(".,;")


def humanize_key(key: str, *, title: bool = False) -> str:
    """``state_tax_id`` -> ``state tax id`` (or ``State Tax Id``)."""
    text = key.replace("_", " ").strip()
    return text.title() if title else text


def keywords(query: str) -> list[str]:
    """Lowercased query words without stop words or trailing punctuation."""
    words = [w.strip(".,'?!") for w in _WORD.findall(query.lower())]
    return [w for w in words if w and w not in STOP_WORDS]
