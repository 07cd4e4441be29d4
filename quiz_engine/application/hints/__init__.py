"""
Hint System Application Service Module
"""

from quiz_engine.application.hints.service import (
    HintPreview,
    HintState,
    HintStatistics,
    LevelHintCount,
    QuizHintService,
)

__all__ = ["QuizHintService", "HintState", "HintStatistics", "HintPreview", "LevelHintCount"]
