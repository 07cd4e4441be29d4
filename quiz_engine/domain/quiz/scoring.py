"""
Quiz Engine - Scoring
"""

from typing import Iterable

from quiz_engine.domain.quiz.entities import Quiz


def calculate_points(quiz: Quiz, hints_used: Iterable[str], is_correct: bool) -> int:
    """
    Points earned for one answered quiz.

    Incorrect answers earn nothing. Correct answers start from ``quiz.points``
    and lose each used hint's penalty in order, floored at zero after every
    subtraction. Hint ids the quiz does not own are ignored.
    """
    if not is_correct:
        return 0

    points = quiz.points
    for hint_id in hints_used:
        hint = quiz.get_hint(hint_id)
        if hint is not None and hint.penalty:
            points = max(0, points - hint.penalty)
    return points
