"""Pattern compilation for note search and replace.

Queries are treated as regular expressions first. A query that does not
compile is escaped and matched literally instead, so searches never fail
on a malformed pattern.
"""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from sbmcp.exceptions import InvalidPatternError

logger = logging.getLogger(__name__)

_DOLLAR_REF = re.compile(r"\$(\$|&|`|'|\d{1,2})")


def expand_dollar_refs(match: re.Match[str], template: str) -> str:
    """Expand $-style references in a replacement template.

    $1 to $99 insert a capture group (empty if it did not participate),
    $& the whole match, $` the text before it, $' the text after it and $$ a
    single dollar sign. A reference to a group the pattern does not have is
    kept as written. When a two-digit reference names a missing group but its
    first digit does not, the second digit is literal text.
    """
    groups = match.re.groups

    def substitute(ref: re.Match[str]) -> str:
        token = ref.group(1)
        if token == "$":
            return "$"
        if token == "&":
            return match.group(0)
        if token == "`":
            return match.string[: match.start()]
        if token == "'":
            return match.string[match.end() :]

        index = int(token)
        if 1 <= index <= groups:
            return match.group(index) or ""
        if len(token) == 2 and 1 <= int(token[0]) <= groups:
            return (match.group(int(token[0])) or "") + token[1]
        return ref.group(0)

    return _DOLLAR_REF.sub(substitute, template)


@dataclass(frozen=True)
class CompiledPattern:
    """A compiled query plus how it was obtained."""

    source: str
    regex: re.Pattern[str]
    literal_fallback: bool = False

    def count(self, text: str) -> int:
        """Number of (non-overlapping) matches in text."""
        return sum(1 for _ in self.regex.finditer(text))

    def search(self, text: str) -> bool:
        return self.regex.search(text) is not None

    def replace(
        self,
        text: str,
        replacement: str,
        replace_all: bool = True,
        expand_refs: bool = False,
    ) -> tuple[str, int]:
        """Replace matches in text.

        Args:
            text: Text to search.
            replacement: Replacement string. Taken literally unless
                expand_refs is set.
            replace_all: Replace every match instead of only the first.
            expand_refs: Expand $-style references (see expand_dollar_refs).
                Backslash sequences stay literal either way.

        Returns:
            The new text and the number of replacements made.
        """
        if expand_refs:
            return self.regex.subn(
                lambda m: expand_dollar_refs(m, replacement), text, count=0 if replace_all else 1
            )
        return self.regex.subn(lambda _: replacement, text, count=0 if replace_all else 1)


class PatternMatcher(Protocol):
    """Turns a user query into a CompiledPattern."""

    def compile(self, query: str, case_sensitive: bool = False) -> CompiledPattern: ...


def _flags(case_sensitive: bool) -> int:
    return 0 if case_sensitive else re.IGNORECASE


class RegexMatcher:
    """Regex semantics with a silent literal fallback."""

    def compile_strict(self, query: str, case_sensitive: bool = False) -> CompiledPattern:
        """Compile the query as a regular expression.

        Raises:
            InvalidPatternError: If the query is not a valid pattern.
        """
        try:
            return CompiledPattern(query, re.compile(query, _flags(case_sensitive)))
        except re.error as e:
            raise InvalidPatternError(query, str(e)) from e

    def compile(self, query: str, case_sensitive: bool = False) -> CompiledPattern:
        try:
            return self.compile_strict(query, case_sensitive)
        except InvalidPatternError as e:
            logger.debug("Falling back to literal matching: %s", e)
            return CompiledPattern(
                query,
                re.compile(re.escape(query), _flags(case_sensitive)),
                literal_fallback=True,
            )


class LiteralMatcher:
    """Plain substring semantics; metacharacters have no meaning."""

    def compile(self, query: str, case_sensitive: bool = False) -> CompiledPattern:
        return CompiledPattern(query, re.compile(re.escape(query), _flags(case_sensitive)))


def compile_pattern(
    query: str,
    case_sensitive: bool = False,
    matcher: PatternMatcher | None = None,
) -> CompiledPattern:
    """Compile a query with the given matcher (regex with fallback by default)."""
    return (matcher or RegexMatcher()).compile(query, case_sensitive)
