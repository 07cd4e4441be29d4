"""
Quiz Engine - Quiz Domain Entities
Polymorphic question types, hints, results and progress aggregates
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Mapping, Optional, Tuple, Type, Union
from uuid import uuid4

from quiz_engine.core.exceptions import UnsupportedQuizTypeError


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _get(data: Mapping[str, Any], key: str, alias: Optional[str] = None,
         default: Any = None) -> Any:
    """Read ``key`` from raw data, falling back to its camelCase ``alias``."""
    if key in data:
        return data[key]
    if alias is not None and alias in data:
        return data[alias]
    return default


class QuizType(str, Enum):
    """Quiz type discriminant."""
    OX = "OX"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    FILL_IN_BLANK = "FILL_IN_BLANK"
    DEBUGGING = "DEBUGGING"
    CODE_REVIEW = "CODE_REVIEW"
    VIBE_CODING = "VIBE_CODING"


class QuizLevel(str, Enum):
    """Difficulty tier."""
    LV1 = "LV1"
    LV2 = "LV2"
    LV3 = "LV3"
    LV4 = "LV4"
    LV5 = "LV5"


class QuizDifficulty(str, Enum):
    """Qualitative difficulty band."""
    BEGINNER = "BEGINNER"
    ELEMENTARY = "ELEMENTARY"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    CHALLENGER = "CHALLENGER"


class HintLevel(str, Enum):
    """Hint disclosure level, ordered from least to most revealing."""
    BASIC = "BASIC"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    SOLUTION = "SOLUTION"

    @property
    def rank(self) -> int:
        return list(HintLevel).index(self)


@dataclass(frozen=True)
class QuizHint:
    """
    Priced hint owned by a quiz.

    A ``level`` outside ``HintLevel`` is kept as its raw string so that
    quizzes with non-standard hint data still load.
    """
    id: str = field(default_factory=_new_id)
    content: str = ""
    level: Union[HintLevel, str] = HintLevel.BASIC
    unlock_condition: Optional[str] = None
    points_penalty: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.level, HintLevel):
            try:
                object.__setattr__(self, "level", HintLevel(self.level))
            except ValueError:
                object.__setattr__(self, "level", str(self.level))
        if self.points_penalty is not None and self.points_penalty < 0:
            raise ValueError("Hint points penalty cannot be negative")

    @property
    def penalty(self) -> int:
        """Penalty with the unset case resolved to zero."""
        return self.points_penalty or 0

    @property
    def level_value(self) -> str:
        if isinstance(self.level, HintLevel):
            return self.level.value
        return self.level

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuizHint":
        return cls(
            id=str(_get(data, "id", default=_new_id())),
            content=_get(data, "content", default=""),
            level=_get(data, "level", default=HintLevel.BASIC),
            unlock_condition=_get(data, "unlock_condition", "unlockCondition"),
            points_penalty=_get(data, "points_penalty", "pointsPenalty"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "content": self.content,
            "level": self.level_value,
            "unlock_condition": self.unlock_condition,
            "points_penalty": self.points_penalty,
        }


@dataclass(frozen=True)
class MultipleChoiceOption:
    """Value object for a multiple choice option."""
    id: str = field(default_factory=_new_id)
    text: str = ""
    is_code: bool = False
    explanation: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MultipleChoiceOption":
        return cls(
            id=str(_get(data, "id", default=_new_id())),
            text=_get(data, "text", default=""),
            is_code=bool(_get(data, "is_code", "isCode", default=False)),
            explanation=_get(data, "explanation"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "is_code": self.is_code,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class BlankField:
    """One blank of a fill-in-the-blank quiz with its accepted answers."""
    id: str = field(default_factory=_new_id)
    position: int = 0
    accepted_answers: Tuple[str, ...] = ()
    hint: Optional[str] = None
    placeholder: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "accepted_answers", tuple(self.accepted_answers))

    def accepts(self, answer: Any) -> bool:
        """Case-insensitive, whitespace-trimmed match against accepted answers."""
        if not isinstance(answer, str):
            return False
        normalized = answer.strip().casefold()
        return any(
            accepted.strip().casefold() == normalized
            for accepted in self.accepted_answers
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BlankField":
        return cls(
            id=str(_get(data, "id", default=_new_id())),
            position=int(_get(data, "position", default=0)),
            accepted_answers=tuple(
                _get(data, "accepted_answers", "acceptedAnswers", default=())
            ),
            hint=_get(data, "hint"),
            placeholder=_get(data, "placeholder"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "position": self.position,
            "accepted_answers": list(self.accepted_answers),
            "hint": self.hint,
            "placeholder": self.placeholder,
        }


@dataclass(frozen=True)
class Quiz(ABC):
    """
    Quiz aggregate root.

    Immutable value object. Concrete variants add their payload and the
    answer validation rule; ``type`` is a class-level discriminant.
    """
    type: ClassVar[QuizType]

    id: str = field(default_factory=_new_id)
    level: QuizLevel = QuizLevel.LV1
    difficulty: QuizDifficulty = QuizDifficulty.BEGINNER
    question: str = ""
    category: str = ""
    tags: FrozenSet[str] = frozenset()
    time_limit: Optional[int] = None  # seconds
    points: int = 0
    explanation: str = ""
    hints: Tuple[QuizHint, ...] = ()

    def __post_init__(self):
        """Normalize collections and enforce invariants."""
        object.__setattr__(self, "level", QuizLevel(self.level))
        object.__setattr__(self, "difficulty", QuizDifficulty(self.difficulty))
        object.__setattr__(self, "tags", frozenset(self.tags))
        object.__setattr__(self, "hints", tuple(self.hints))
        if self.time_limit is not None and self.time_limit <= 0:
            raise ValueError("Quiz time limit must be positive when set")
        if self.points < 0:
            raise ValueError("Quiz points cannot be negative")

    def is_time_limited(self) -> bool:
        return self.time_limit is not None and self.time_limit > 0

    @abstractmethod
    def validate_answer(self, user_answer: Any) -> bool:
        """Return True if ``user_answer`` is correct. Never raises."""

    def get_hints(self) -> List[QuizHint]:
        """Hints in the order they were defined."""
        return list(self.hints)

    def get_hint(self, hint_id: str) -> Optional[QuizHint]:
        return next((h for h in self.hints if h.id == hint_id), None)

    def get_explanation(self) -> str:
        return self.explanation

    @classmethod
    def _common_fields(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            "question": _get(data, "question", default=""),
            "category": _get(data, "category", default=""),
            "tags": frozenset(_get(data, "tags", default=())),
            "time_limit": _get(data, "time_limit", "timeLimit"),
            "points": int(_get(data, "points", default=0)),
            "explanation": _get(data, "explanation", default=""),
            "hints": tuple(
                QuizHint.from_dict(h) for h in _get(data, "hints", default=())
            ),
        }
        if "id" in data:
            fields["id"] = str(data["id"])
        if "level" in data:
            fields["level"] = QuizLevel(data["level"])
        if "difficulty" in data:
            fields["difficulty"] = QuizDifficulty(data["difficulty"])
        return fields

    @classmethod
    @abstractmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Quiz":
        """Build the variant from raw data."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary accepted back by ``QuizFactory``."""
        return {
            "id": self.id,
            "type": self.type.value,
            "level": self.level.value,
            "difficulty": self.difficulty.value,
            "question": self.question,
            "category": self.category,
            "tags": sorted(self.tags),
            "time_limit": self.time_limit,
            "points": self.points,
            "explanation": self.explanation,
            "hints": [h.to_dict() for h in self.hints],
        }


@dataclass(frozen=True)
class OXQuiz(Quiz):
    """True/false (O/X) question."""
    type: ClassVar[QuizType] = QuizType.OX

    level: QuizLevel = QuizLevel.LV1
    correct_answer: bool = True

    def validate_answer(self, user_answer: Any) -> bool:
        return isinstance(user_answer, bool) and user_answer == self.correct_answer

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OXQuiz":
        return cls(
            correct_answer=bool(_get(data, "correct_answer", "correctAnswer", default=True)),
            **cls._common_fields(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["correct_answer"] = self.correct_answer
        return result


@dataclass(frozen=True)
class MultipleChoiceQuiz(Quiz):
    """Single-answer multiple choice question."""
    type: ClassVar[QuizType] = QuizType.MULTIPLE_CHOICE

    level: QuizLevel = QuizLevel.LV2
    options: Tuple[MultipleChoiceOption, ...] = ()
    correct_answer_index: int = 0

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "options", tuple(self.options))

    def validate_answer(self, user_answer: Any) -> bool:
        if isinstance(user_answer, bool) or not isinstance(user_answer, int):
            return False
        return user_answer == self.correct_answer_index

    def get_correct_option(self) -> Optional[MultipleChoiceOption]:
        if 0 <= self.correct_answer_index < len(self.options):
            return self.options[self.correct_answer_index]
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MultipleChoiceQuiz":
        return cls(
            options=tuple(
                MultipleChoiceOption.from_dict(o)
                for o in _get(data, "options", default=())
            ),
            correct_answer_index=int(
                _get(data, "correct_answer_index", "correctAnswerIndex", default=0)
            ),
            **cls._common_fields(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["options"] = [o.to_dict() for o in self.options]
        result["correct_answer_index"] = self.correct_answer_index
        return result


@dataclass(frozen=True)
class FillInBlankQuiz(Quiz):
    """Code snippet with ordered blanks to fill in."""
    type: ClassVar[QuizType] = QuizType.FILL_IN_BLANK

    level: QuizLevel = QuizLevel.LV3
    blanks: Tuple[BlankField, ...] = ()
    code_context: str = ""

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "blanks", tuple(self.blanks))

    def validate_answer(self, user_answer: Any) -> bool:
        """
        Every blank must match, in order.

        The answer must be a list or tuple with exactly one entry per blank.
        """
        if not isinstance(user_answer, (list, tuple)):
            return False
        if len(user_answer) != len(self.blanks):
            return False
        return all(
            blank.accepts(answer)
            for blank, answer in zip(self.blanks, user_answer)
        )

    def get_formatted_code_with_blanks(self, label: str = "[Input {n}]") -> str:
        """Replace ``{{blank_N}}`` markers with numbered input labels."""
        formatted = self.code_context
        for index in range(len(self.blanks)):
            formatted = formatted.replace(
                "{{blank_%d}}" % index, label.format(n=index + 1)
            )
        return formatted

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FillInBlankQuiz":
        return cls(
            blanks=tuple(
                BlankField.from_dict(b) for b in _get(data, "blanks", default=())
            ),
            code_context=_get(data, "code_context", "codeContext", default=""),
            **cls._common_fields(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["blanks"] = [b.to_dict() for b in self.blanks]
        result["code_context"] = self.code_context
        return result


class QuizFactory:
    """Single construction path from raw data to a Quiz variant."""

    _registry: ClassVar[Dict[QuizType, Type[Quiz]]] = {
        QuizType.OX: OXQuiz,
        QuizType.MULTIPLE_CHOICE: MultipleChoiceQuiz,
        QuizType.FILL_IN_BLANK: FillInBlankQuiz,
    }

    @classmethod
    def supported_types(cls) -> List[QuizType]:
        return list(cls._registry)

    @classmethod
    def create_quiz(cls, quiz_type: Any, data: Mapping[str, Any]) -> Quiz:
        """
        Create a quiz of the given type.

        Raises:
            UnsupportedQuizTypeError: unknown discriminant, or one with no variant
            ValueError: data violates a quiz invariant
        """
        try:
            resolved = QuizType(quiz_type)
        except ValueError:
            raise UnsupportedQuizTypeError(quiz_type) from None

        quiz_cls = cls._registry.get(resolved)
        if quiz_cls is None:
            raise UnsupportedQuizTypeError(resolved.value)
        return quiz_cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Quiz:
        """Create a quiz from data carrying its own ``type`` key."""
        return cls.create_quiz(data.get("type"), data)


@dataclass(frozen=True)
class QuizResult:
    """Outcome of one submitted answer. Created once, never changed."""
    quiz_id: str = ""
    user_id: str = ""
    is_correct: bool = False
    user_answer: Any = None
    time_spent: float = 0.0  # seconds
    hints_used: Tuple[str, ...] = ()
    points_earned: int = 0
    timestamp: datetime = field(default_factory=_utcnow)
    explanation: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "hints_used", tuple(self.hints_used))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuizResult":
        timestamp = _get(data, "timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            quiz_id=_get(data, "quiz_id", "quizId", default=""),
            user_id=_get(data, "user_id", "userId", default=""),
            is_correct=bool(_get(data, "is_correct", "isCorrect", default=False)),
            user_answer=_get(data, "user_answer", "userAnswer"),
            time_spent=float(_get(data, "time_spent", "timeSpent", default=0.0)),
            hints_used=tuple(_get(data, "hints_used", "hintsUsed", default=())),
            points_earned=int(_get(data, "points_earned", "pointsEarned", default=0)),
            timestamp=timestamp or _utcnow(),
            explanation=_get(data, "explanation"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "quiz_id": self.quiz_id,
            "user_id": self.user_id,
            "is_correct": self.is_correct,
            "user_answer": self.user_answer,
            "time_spent": self.time_spent,
            "hints_used": list(self.hints_used),
            "points_earned": self.points_earned,
            "timestamp": self.timestamp.isoformat(),
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class QuizProgress:
    """Per (user, level) progress aggregate."""
    user_id: str = ""
    level: QuizLevel = QuizLevel.LV1
    total_quizzes: int = 0
    completed_quizzes: int = 0
    correct_answers: int = 0
    total_points: int = 0
    average_time: float = 0.0
    last_activity: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, QuizLevel]:
        return self.user_id, QuizLevel(self.level)

    @property
    def accuracy(self) -> float:
        if self.completed_quizzes == 0:
            return 0.0
        return self.correct_answers / self.completed_quizzes

    def record(self, result: QuizResult,
               total_quizzes: Optional[int] = None) -> "QuizProgress":
        """Return a new aggregate with ``result`` folded in."""
        completed = self.completed_quizzes + 1
        average = (self.average_time * self.completed_quizzes + result.time_spent) / completed
        return replace(
            self,
            total_quizzes=max(total_quizzes or 0, self.total_quizzes, completed),
            completed_quizzes=completed,
            correct_answers=self.correct_answers + (1 if result.is_correct else 0),
            total_points=self.total_points + result.points_earned,
            average_time=average,
            last_activity=result.timestamp,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuizProgress":
        last_activity = _get(data, "last_activity", "lastActivity")
        if isinstance(last_activity, str):
            last_activity = datetime.fromisoformat(last_activity)
        return cls(
            user_id=_get(data, "user_id", "userId", default=""),
            level=QuizLevel(_get(data, "level", default=QuizLevel.LV1)),
            total_quizzes=int(_get(data, "total_quizzes", "totalQuizzes", default=0)),
            completed_quizzes=int(_get(data, "completed_quizzes", "completedQuizzes", default=0)),
            correct_answers=int(_get(data, "correct_answers", "correctAnswers", default=0)),
            total_points=int(_get(data, "total_points", "totalPoints", default=0)),
            average_time=float(_get(data, "average_time", "averageTime", default=0.0)),
            last_activity=last_activity,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "level": QuizLevel(self.level).value,
            "total_quizzes": self.total_quizzes,
            "completed_quizzes": self.completed_quizzes,
            "correct_answers": self.correct_answers,
            "total_points": self.total_points,
            "average_time": self.average_time,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
        }
