"""Glob and regex pattern compilation shared by path filtering and priority scoring."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from collections.abc import Sequence


class CompiledPattern(BaseModel):
    """A user pattern together with its compiled regex."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    source: str
    regex: re.Pattern[str]

    def matches(self, rel: str) -> bool:
        return self.regex.search(rel) is not None


class PatternError(BaseModel):
    """A pattern that failed to compile."""

    model_config = ConfigDict(frozen=True)

    source: str
    reason: str


def is_regex_pattern(pattern: str) -> bool:
    """Tell whether a pattern is a ready-made regex rather than a glob.

    Args:
        pattern (str): the user pattern

    Returns:
        bool: True if the pattern starts with `^` or ends with `$`
    """
    return pattern.startswith("^") or pattern.endswith("$")


def glob_to_regex(pattern: str) -> str:
    """Translate a glob-like pattern to an equivalent regex.

    - `*` matches any run of characters except `/`.
    - `**` matches any run of characters, `/` included.
    - `?` matches a single character.
    - `[...]` classes are copied verbatim.
    - `{a,b,c}` becomes the alternation `(a|b|c)`.
    - alphanumerics, `_`, `-` and `/` are kept, `.` and anything else is escaped.

    Args:
        pattern (str): the glob pattern to translate

    Returns:
        str: the regex source (not anchored)
    """
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        i += 1
        if c == "*":
            if i < n and pattern[i] == "*":
                i += 1
                out.append(".*")
            else:
                out.append("[^/]*")
        elif c == "?":
            out.append(".")
        elif c == "/":
            out.append("/")
        elif c == "[":
            end = pattern.find("]", i)
            if end == -1:
                # unterminated class: left unbalanced so compilation rejects it
                out.append("[" + pattern[i:])
                i = n
            else:
                out.append("[" + pattern[i:end] + "]")
                i = end + 1
        elif c == "{":
            end = pattern.find("}", i)
            if end == -1:
                out.append("(" + pattern[i:].replace(",", "|"))
                i = n
            else:
                out.append("(" + pattern[i:end].replace(",", "|") + ")")
                i = end + 1
        elif c.isalnum() or c in "_-":
            out.append(c)
        else:
            out.append(re.escape(c))
    return "".join(out)


def to_regex_source(pattern: str) -> str:
    """Return the regex source for a user pattern (glob or ready-made regex)."""
    return pattern if is_regex_pattern(pattern) else glob_to_regex(pattern)


def compile_pattern(pattern: str) -> CompiledPattern:
    """Compile one user pattern.

    Args:
        pattern (str): a glob, or a regex starting with `^` / ending with `$`

    Raises:
        re.error: if the resulting regex does not compile

    Returns:
        CompiledPattern: the compiled matcher
    """
    return CompiledPattern(source=pattern, regex=re.compile(to_regex_source(pattern)))


def compile_patterns(patterns: Sequence[str]) -> tuple[list[CompiledPattern], list[PatternError]]:
    """Compile a list of patterns, keeping their order.

    Patterns that fail to compile are left out of the matchers and returned as errors.

    Args:
        patterns (Sequence[str]): the user patterns

    Returns:
        tuple[list[CompiledPattern], list[PatternError]]: the compiled matchers and the rejected patterns
    """
    compiled: list[CompiledPattern] = []
    errors: list[PatternError] = []
    for pattern in patterns:
        try:
            compiled.append(compile_pattern(pattern))
        except re.error as e:
            errors.append(PatternError(source=pattern, reason=str(e)))
    return compiled, errors


def match_any(rel: str, patterns: Sequence[CompiledPattern]) -> bool:
    """Check if a relative path matches any compiled pattern."""
    return any(p.matches(rel) for p in patterns)
