"""Utility functions."""

from sbmcp.utils.patterns import (
    CompiledPattern,
    LiteralMatcher,
    PatternMatcher,
    RegexMatcher,
    compile_pattern,
)
from sbmcp.utils.similarity import find_similar_names, normalize_name


def ensure_note_suffix(name: str) -> str:
    """Append .md to a bare note name.

    Args:
        name: Note name with or without the suffix.

    Returns:
        The name ending in .md.
    """
    name = name.strip()
    return name if name.endswith(".md") else f"{name}.md"


__all__ = [
    "CompiledPattern",
    "LiteralMatcher",
    "PatternMatcher",
    "RegexMatcher",
    "compile_pattern",
    "ensure_note_suffix",
    "find_similar_names",
    "normalize_name",
]
