"""
Quiz Engine - Exception Taxonomy

Only quiz construction and the infrastructure boundary raise. Answer
validation and hint operations report failure through return values.
"""


class QuizEngineError(Exception):
    """Base class for all engine errors."""


class UnsupportedQuizTypeError(QuizEngineError, ValueError):
    """Raised by the factory for a discriminant it cannot construct."""

    def __init__(self, quiz_type: object):
        self.quiz_type = quiz_type
        super().__init__(f"Unsupported quiz type: {quiz_type}")


class RepositoryError(QuizEngineError):
    """Infrastructure failure while reading or writing quiz data."""


class QuizBankError(RepositoryError):
    """A quiz bank file could not be read or decoded."""
