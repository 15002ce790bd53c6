"""Priority scoring: best matching rule score plus a git recency boost."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from chunk_repo.config import MAX_RECENCY_BOOST
from chunk_repo.patterns import CompiledPattern

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class ScoredPattern(CompiledPattern):
    """A compiled priority rule."""

    score: int


def pattern_score(rel: str, rules: Sequence[ScoredPattern]) -> int:
    """Return the highest score among the rules matching `rel`, or 0 if none match.

    Args:
        rel (str): the normalized relative path
        rules (Sequence[ScoredPattern]): the compiled priority rules, in any order

    Returns:
        int: the maximum matching score
    """
    return max((rule.score for rule in rules if rule.matches(rel)), default=0)


def compute_recency_boost(
    commit_times: Mapping[str, int],
    max_boost: int = MAX_RECENCY_BOOST,
) -> dict[str, int]:
    """Rank files by last commit time and scale the rank to `[0, max_boost]`.

    The oldest file gets 0, the newest gets `max_boost`. Ties on the timestamp
    are broken by path so the result does not depend on mapping order. With
    fewer than two files there is no ranking and every boost is 0.

    Args:
        commit_times (Mapping[str, int]): relative path -> last commit Unix time
        max_boost (int): boost given to the newest file

    Returns:
        dict[str, int]: relative path -> boost
    """
    if len(commit_times) < 2:  # noqa: PLR2004
        return dict.fromkeys(commit_times, 0)

    ordered = sorted(commit_times.items(), key=lambda item: (item[1], item[0]))
    last_index = len(ordered) - 1
    # half-up rounding; boosts are never negative
    return {path: int(i / last_index * max_boost + 0.5) for i, (path, _ts) in enumerate(ordered)}


class PriorityEngine(BaseModel):
    """Scores files from compiled rules and a recency table computed once per run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    rules: tuple[ScoredPattern, ...] = ()
    boosts: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def build(
        cls,
        rules: Sequence[ScoredPattern],
        commit_times: Mapping[str, int] | None,
        max_boost: int = MAX_RECENCY_BOOST,
    ) -> PriorityEngine:
        """Create an engine; `commit_times=None` means history is unavailable (no boost)."""
        boosts = compute_recency_boost(commit_times, max_boost) if commit_times else {}
        return cls(rules=tuple(rules), boosts=boosts)

    def recency_boost(self, rel: str) -> int:
        return self.boosts.get(rel, 0)

    def priority(self, rel: str) -> int:
        return pattern_score(rel, self.rules) + self.recency_boost(rel)
