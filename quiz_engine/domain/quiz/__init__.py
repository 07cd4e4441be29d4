"""
Quiz Domain Module

Question types, hints, results and the repository contract.
"""

from quiz_engine.domain.quiz.entities import (
    BlankField,
    FillInBlankQuiz,
    HintLevel,
    MultipleChoiceOption,
    MultipleChoiceQuiz,
    OXQuiz,
    Quiz,
    QuizDifficulty,
    QuizFactory,
    QuizHint,
    QuizLevel,
    QuizProgress,
    QuizResult,
    QuizType,
)
from quiz_engine.domain.quiz.repository import (
    ProgressAnalytics,
    QuizAnalytics,
    QuizCache,
    QuizRepository,
    QuizSearchQuery,
    QuizStatistics,
    UserPerformance,
    UserStatisticsSink,
)
from quiz_engine.domain.quiz.scoring import calculate_points

__all__ = [
    "BlankField",
    "FillInBlankQuiz",
    "HintLevel",
    "MultipleChoiceOption",
    "MultipleChoiceQuiz",
    "OXQuiz",
    "Quiz",
    "QuizDifficulty",
    "QuizFactory",
    "QuizHint",
    "QuizLevel",
    "QuizProgress",
    "QuizResult",
    "QuizType",
    "ProgressAnalytics",
    "QuizAnalytics",
    "QuizCache",
    "QuizRepository",
    "QuizSearchQuery",
    "QuizStatistics",
    "UserPerformance",
    "UserStatisticsSink",
    "calculate_points",
]
