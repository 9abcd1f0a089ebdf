"""Fuzzy matching of note names for "did you mean" suggestions."""

import re
from collections.abc import Iterable
from difflib import SequenceMatcher

_SUFFIX_RE = re.compile(r"\.md$", re.IGNORECASE)


def normalize_name(name: str) -> str:
    """Normalize a note name for comparison.

    Drops the .md suffix, lowercases, and treats dashes and underscores
    as spaces.
    """
    return re.sub(r"[-_]", " ", _SUFFIX_RE.sub("", name).lower())


def find_similar_names(
    target: str,
    names: Iterable[str],
    max_results: int = 5,
    threshold: float = 0.4,
) -> list[str]:
    """Find names similar to target, best first.

    Args:
        target: The name that was not found.
        names: Candidate note names.
        max_results: Maximum number of suggestions.
        threshold: Minimum similarity to be suggested.

    Returns:
        Matching names ordered by descending similarity.
    """
    wanted = normalize_name(target)
    scored: list[tuple[float, str]] = []
    for name in names:
        candidate = normalize_name(name)
        ratio = SequenceMatcher(None, wanted, candidate).ratio()
        # Substring matches are nearly always what the caller meant
        if wanted and candidate and (wanted in candidate or candidate in wanted):
            ratio += 0.3
        if ratio >= threshold:
            scored.append((ratio, name))

    scored.sort(key=lambda x: x[0], reverse=True)
    return [name for _, name in scored[:max_results]]
