"""
Unit tests for point calculation.
"""

import pytest

from quiz_engine.domain.quiz.entities import OXQuiz, QuizHint
from quiz_engine.domain.quiz.scoring import calculate_points


@pytest.fixture
def priced_quiz() -> OXQuiz:
    return OXQuiz(
        id="priced",
        points=10,
        hints=(
            QuizHint(id="h2", points_penalty=2),
            QuizHint(id="h5", points_penalty=5),
            QuizHint(id="h8", points_penalty=8),
            QuizHint(id="free"),
        ),
    )


class TestCalculatePoints:
    """Test hint-penalized scoring."""

    def test_incorrect_earns_nothing(self, priced_quiz):
        assert calculate_points(priced_quiz, [], is_correct=False) == 0
        assert calculate_points(priced_quiz, ["h2", "h5"], is_correct=False) == 0

    def test_correct_without_hints(self, priced_quiz):
        assert calculate_points(priced_quiz, [], is_correct=True) == 10

    def test_penalties_are_subtracted(self, priced_quiz):
        assert calculate_points(priced_quiz, ["h2"], is_correct=True) == 8
        assert calculate_points(priced_quiz, ["h2", "h5"], is_correct=True) == 3

    def test_floored_at_zero(self, priced_quiz):
        assert calculate_points(priced_quiz, ["h5", "h8"], is_correct=True) == 0
        assert calculate_points(priced_quiz, ["h2", "h5", "h8"], is_correct=True) == 0

    def test_unknown_hint_ids_are_ignored(self, priced_quiz):
        assert calculate_points(priced_quiz, ["nope", "h2"], is_correct=True) == 8

    def test_hint_without_penalty_is_free(self, priced_quiz):
        assert calculate_points(priced_quiz, ["free"], is_correct=True) == 10

    @pytest.mark.parametrize("hint_ids", [["h2"], ["h5", "h2"], ["h8", "h2", "h5"]])
    def test_matches_points_minus_total_penalty(self, priced_quiz, hint_ids):
        total = sum(priced_quiz.get_hint(h).penalty for h in hint_ids)
        expected = max(0, priced_quiz.points - total)
        assert calculate_points(priced_quiz, hint_ids, is_correct=True) == expected
