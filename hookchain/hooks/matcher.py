"""
Matcher compilation.

Turns a matcher pattern into a predicate over operation names. Supported
forms, most specific first:

- exact literal:   "Bash" matches only "Bash"
- wildcard:        "*" matches every name
- prefix glob:     "Read*" matches any name starting with "Read"
- alternation:     "(Read|Write)" is a regular expression over the full name

Matching is case-sensitive and has no side effects.
"""

import re
from functools import lru_cache
from typing import Callable

from .errors import MatchCompileError

Predicate = Callable[[str], bool]

# Characters that only have meaning inside the alternation form
_SPECIAL = set("*?()[]{}|^$\\+")


def _is_literal(text: str) -> bool:
    return bool(text) and not any(c in _SPECIAL or c.isspace() for c in text)


def describe_pattern(pattern: str) -> str:
    """
    Name the grammar form of a pattern.

    Returns:
        One of "wildcard", "exact", "prefix", "alternation"

    Raises:
        MatchCompileError: If the pattern fits none of the forms
    """
    if not isinstance(pattern, str) or not pattern:
        raise MatchCompileError(str(pattern), "pattern is empty")
    if pattern == "*":
        return "wildcard"
    if _is_literal(pattern):
        return "exact"
    if pattern.endswith("*") and _is_literal(pattern[:-1]):
        return "prefix"
    if pattern.startswith("(") and pattern.endswith(")") and len(pattern) > 2:
        return "alternation"
    raise MatchCompileError(pattern, "not an exact name, '*', 'Prefix*' or '(A|B)' expression")


@lru_cache(maxsize=512)
def compile_matcher(pattern: str) -> Predicate:
    """
    Compile a matcher pattern into a predicate.

    Args:
        pattern: The matcher pattern

    Returns:
        A function taking an operation name and returning whether it matches

    Raises:
        MatchCompileError: If the pattern is empty or invalid
    """
    form = describe_pattern(pattern)

    if form == "wildcard":
        return lambda name: True

    if form == "exact":
        return lambda name: name == pattern

    if form == "prefix":
        prefix = pattern[:-1]
        return lambda name: name.startswith(prefix)

    try:
        regex = re.compile(pattern)
    except re.error as e:
        raise MatchCompileError(pattern, f"bad regular expression: {e}") from e
    return lambda name: regex.fullmatch(name) is not None
