from __future__ import annotations
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Literal

QuestionFormat = Literal["multiple_choice","true_false","drag_and_drop","fill_in_blanks","short_answer"]
AnswerType = Literal["text","numerical","coordinates","domain_range","equation","algebraic"]

_FORMAT_ALIASES: Dict[str, str] = {
    "multiplechoice": "multiple_choice",
    "mcq": "multiple_choice",
    "truefalse": "true_false",
    "draganddrop": "drag_and_drop",
    "dragdrop": "drag_and_drop",
    "fillinblanks": "fill_in_blanks",
    "fillintheblanks": "fill_in_blanks",
    "shortanswer": "short_answer",
}


def canonical_format(raw: Optional[str]) -> Optional[str]:
    """Lower-case, strip '-' and '_', and map to a canonical format tag (None if unknown)."""
    if not isinstance(raw, str) or not raw.strip():
        return None
    key = raw.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
    return _FORMAT_ALIASES.get(key)


@dataclass
class Question:
    id: str
    subject: Optional[str] = None
    grade: Optional[int] = None
    topic: Optional[str] = None
    paper: Optional[str] = None
    year: Optional[int] = None
    season: Optional[str] = None
    cognitive_level: Optional[str] = None
    difficulty: Optional[str] = None
    marks: Optional[float] = None
    max_marks: Optional[float] = None
    format: str = "multiple_choice"
    declared_format: Optional[str] = None
    question_text: Optional[str] = None
    image_url: Optional[str] = None
    explanation: Optional[str] = None
    is_parent: bool = False
    parent_question_id: Optional[str] = None
    uses_parent_image: bool = False
    child_question_ids: List[str] = field(default_factory=list)
    pqp_data: Optional[Dict[str, Any]] = None
    parent_context: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def mark_value(self) -> float:
        return float(self.max_marks or self.marks or 1)

    @property
    def level(self) -> str:
        return self.cognitive_level or "Level 1"

    @property
    def has_parent(self) -> bool:
        return bool(self.parent_question_id)

    @property
    def pqp_number(self) -> Optional[str]:
        num = (self.pqp_data or {}).get("questionNumber")
        return num if isinstance(num, str) and num else None

    def copy(self, **changes: Any) -> "Question":
        return replace(self, **changes)


@dataclass
class MultipleChoiceQuestion(Question):
    format: str = "multiple_choice"
    options: List[Any] = field(default_factory=list)
    correct_answer: Optional[str] = None


@dataclass
class TrueFalseQuestion(Question):
    format: str = "true_false"
    correct_answer: Optional[str] = None


@dataclass
class DragTarget:
    id: Optional[str] = None
    text: Optional[str] = None
    correct_pair: Optional[str] = None


@dataclass
class OrderingQuestion(Question):
    format: str = "drag_and_drop"
    drag_items: List[Any] = field(default_factory=list)
    correct_order: List[str] = field(default_factory=list)


@dataclass
class MatchingQuestion(Question):
    format: str = "drag_and_drop"
    drag_items: List[Any] = field(default_factory=list)
    drag_targets: List[DragTarget] = field(default_factory=list)


@dataclass
class FillInBlanksQuestion(Question):
    format: str = "fill_in_blanks"
    correct_answers: List[str] = field(default_factory=list)


@dataclass
class ShortAnswerQuestion(Question):
    format: str = "short_answer"
    correct_answer: Optional[str] = None
    answer_variations: List[str] = field(default_factory=list)
    answer_type: str = "text"
    case_sensitive: bool = False
    tolerance: float = 0.0


@dataclass
class Blueprint:
    id: str
    topics: Dict[str, int] = field(default_factory=dict)
    cognitive_levels: Dict[str, float] = field(default_factory=dict)
    total_marks: Optional[int] = None
    total_questions: Optional[int] = None
    formats: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def target_total(self) -> int:
        return int(sum(self.topics.values()))

    def scaled(self, ratio: float, floor: int = 2) -> "Blueprint":
        topics = {t: max(floor, int(math.floor(m * ratio + 0.5))) for t, m in self.topics.items()}
        return replace(self, topics=topics, total_marks=sum(topics.values()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "topics": dict(self.topics),
            "cognitiveLevels": dict(self.cognitive_levels),
            "totalMarks": self.total_marks,
        }


@dataclass
class Slot:
    question: Question
    allocated_topic: str
    allocated_marks: int
    variety_score: Optional[float] = None
    question_number: Optional[int] = None

    @property
    def topic(self) -> str:
        return self.allocated_topic or self.question.topic or ""


@dataclass
class GradingResult:
    question_id: str
    format: Optional[str]
    is_correct: bool
    marks_awarded: float
    max_marks: float
    user_answer: Any = None
    correct_answer: Any = None
    was_unanswered: bool = False
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "questionId": self.question_id,
            "format": self.format,
            "userAnswer": self.user_answer,
            "correctAnswer": self.correct_answer,
            "isCorrect": self.is_correct,
            "marksAwarded": self.marks_awarded,
            "maxMarks": self.max_marks,
        }
        if self.was_unanswered:
            out["wasUnanswered"] = True
        out.update(self.detail)
        return out


@dataclass
class TestStatistics:
    __test__ = False  # keep pytest from collecting this as a test class

    total_questions: int
    correct_questions: int
    total_marks: float
    marks_awarded: float
    percentage: int
    grade: str
    accuracy: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalQuestions": self.total_questions,
            "correctQuestions": self.correct_questions,
            "totalMarks": self.total_marks,
            "marksAwarded": self.marks_awarded,
            "percentage": self.percentage,
            "grade": self.grade,
            "accuracy": self.accuracy,
        }
