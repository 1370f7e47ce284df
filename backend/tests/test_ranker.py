"""
Tests for candidate filtering and did-you-mean truncation
"""

import pytest

from vaxtlistan.schemas.catalog import CatalogEntry, MatchCandidate, MatchStrategy
from vaxtlistan.services.ranker import RankingPolicy, rank

LONG_INPUT = 12
SHORT_INPUT = 5


def make_candidates(*scores, names=None):
    names = names or [f"Plantus number{i}" for i in range(len(scores))]
    return [
        MatchCandidate(
            entry=CatalogEntry(id=index + 1, name=name),
            score=score,
            strategy=MatchStrategy.FUZZY,
        )
        for index, (score, name) in enumerate(zip(scores, names))
    ]


class TestRank:
    """Tests for rank"""

    def test_excellent_top_collapses_to_one(self):
        ranked = rank(make_candidates(0.9, 0.88, 0.87), LONG_INPUT, RankingPolicy())

        assert [c.score for c in ranked] == [0.9]

    def test_clear_leader_keeps_two(self):
        """0.72 and 0.55 give exactly two suggestions"""
        ranked = rank(make_candidates(0.72, 0.55), LONG_INPUT, RankingPolicy())

        assert [c.score for c in ranked] == [0.72, 0.55]

    def test_gap_rule_truncates_longer_list(self):
        ranked = rank(make_candidates(0.75, 0.6, 0.5, 0.45), LONG_INPUT, RankingPolicy())

        assert [c.score for c in ranked] == [0.75, 0.6]

    def test_strong_leader_keeps_two(self):
        ranked = rank(make_candidates(0.82, 0.78, 0.7), LONG_INPUT, RankingPolicy())

        assert len(ranked) == 2

    def test_close_scores_keep_four(self):
        ranked = rank(
            make_candidates(0.65, 0.6, 0.55, 0.5, 0.45), LONG_INPUT, RankingPolicy()
        )

        assert [c.score for c in ranked] == [0.65, 0.6, 0.55, 0.5]

    @pytest.mark.parametrize(
        "input_length, expected",
        [(SHORT_INPUT, 0), (LONG_INPUT, 1)],
    )
    def test_minimum_score_depends_on_input_length(self, input_length, expected):
        ranked = rank(make_candidates(0.35), input_length, RankingPolicy())

        assert len(ranked) == expected

    def test_ties_prefer_shorter_name(self):
        candidates = make_candidates(0.6, 0.6, names=["Acer platanoides", "Acer rubrum"])

        ranked = rank(candidates, LONG_INPUT, RankingPolicy())

        assert [c.name for c in ranked] == ["Acer rubrum", "Acer platanoides"]

    def test_drops_nameless_candidates(self):
        candidates = make_candidates(0.95, 0.6, names=["", "Acer rubrum"])

        ranked = rank(candidates, LONG_INPUT, RankingPolicy())

        assert [c.name for c in ranked] == ["Acer rubrum"]

    def test_any_candidate_above_excellent_wins_alone(self):
        candidates = make_candidates(0.4, 0.86, 0.5)

        ranked = rank(candidates, LONG_INPUT, RankingPolicy())

        assert [c.score for c in ranked] == [0.86]

    def test_empty(self):
        assert rank([], LONG_INPUT, RankingPolicy()) == []

    def test_policy_from_settings(self, test_settings):
        policy = RankingPolicy.from_settings(test_settings)

        assert policy.excellent_score == 0.85
        assert policy.max_results == 4
