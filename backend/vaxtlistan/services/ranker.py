"""
Candidate filtering and did-you-mean truncation

Rules, applied in order:
- drop candidates without a name, and those below the minimum score
  (0.4 for inputs shorter than 8 characters, 0.3 otherwise)
- sort by score, ties by shorter name then name
- a top score >= 0.85 keeps only the top candidate
- a lead of >= 0.15 over the second, with top >= 0.7, keeps the top two
- otherwise up to 4, or 2 when the top score is >= 0.8
"""

from dataclasses import dataclass

from vaxtlistan.config import Settings, get_settings
from vaxtlistan.schemas.catalog import MatchCandidate


@dataclass(frozen=True)
class RankingPolicy:
    min_score_short: float = 0.4
    min_score_long: float = 0.3
    short_input_length: int = 8
    excellent_score: float = 0.85
    gap: float = 0.15
    gap_min_top: float = 0.7
    strong_leader_score: float = 0.8
    max_results: int = 4
    strong_leader_results: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "RankingPolicy":
        return cls(
            min_score_short=settings.rank_min_score_short,
            min_score_long=settings.rank_min_score_long,
            short_input_length=settings.fuzzy_short_input_length,
            excellent_score=settings.rank_excellent_score,
            gap=settings.rank_gap,
            gap_min_top=settings.rank_gap_min_top,
            strong_leader_score=settings.rank_strong_leader_score,
            max_results=settings.rank_max_results,
            strong_leader_results=settings.rank_strong_leader_results,
        )

    def min_score(self, input_length: int) -> float:
        if input_length < self.short_input_length:
            return self.min_score_short
        return self.min_score_long


def rank(
    candidates: list[MatchCandidate],
    input_length: int,
    policy: RankingPolicy | None = None,
) -> list[MatchCandidate]:
    """
    Filter and truncate candidates for presentation

    Args:
        candidates: Scored candidates from the matchers
        input_length: Length of the normalized input
        policy: Thresholds (defaults from settings)

    Returns:
        list[MatchCandidate]: Between 0 and max_results candidates
    """
    policy = policy or RankingPolicy.from_settings(get_settings())
    floor = policy.min_score(input_length)

    kept = [
        candidate
        for candidate in candidates
        if candidate.entry.name and candidate.entry.name.strip() and candidate.score >= floor
    ]
    if not kept:
        return []

    kept.sort(key=lambda c: (-c.score, len(c.name), c.name))
    top = kept[0].score

    if top >= policy.excellent_score:
        return kept[:1]

    # Rounded so 0.72 - 0.57 counts as a full 0.15 gap
    if len(kept) > 1 and top >= policy.gap_min_top and round(top - kept[1].score, 6) >= policy.gap:
        return kept[:2]

    if top >= policy.strong_leader_score:
        return kept[: policy.strong_leader_results]
    return kept[: policy.max_results]
