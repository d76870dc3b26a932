from __future__ import annotations

import json
import logging
import importlib.resources as ir
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from . import config
from .errors import NotFound
from .types import (
    Blueprint,
    DragTarget,
    FillInBlanksQuestion,
    MatchingQuestion,
    MultipleChoiceQuestion,
    OrderingQuestion,
    Question,
    ShortAnswerQuestion,
    TrueFalseQuestion,
    canonical_format,
)

log = logging.getLogger(__name__)

NO_QUESTIONS_MESSAGE = "No questions found for the selected criteria."


def normalize_paper_format(paper: Optional[str]) -> str:
    """'Paper 1' -> 'p1', 'P2' -> 'p2', '1' -> 'p1'."""
    if not paper:
        return ""
    value = str(paper).lower().strip()
    if "paper" in value:
        value = "".join(value.replace("paper", "p", 1).split())
    if not value.startswith("p"):
        value = "p" + value
    return value


def blueprint_id(subject: str, paper: Optional[str], grade: Any) -> str:
    return f"{subject}_{normalize_paper_format(paper)}_gr{grade}".lower()


@dataclass
class QuestionFilter:
    subject: Optional[str] = None
    grade: Optional[int] = None
    paper: Optional[str] = None
    year: Optional[int] = None
    season: Optional[str] = None
    topic: Optional[str] = None
    cognitive_level: Optional[str] = None
    limit: int = 50

    def with_(self, **changes: Any) -> "QuestionFilter":
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data.update(changes)
        return QuestionFilter(**data)

    def matches(self, q: Question) -> bool:
        # Empty criteria are ignored, mirroring the optional where-clauses of a document store.
        if self.subject is not None and q.subject != self.subject:
            return False
        if self.grade is not None and q.grade != self.grade:
            return False
        if self.paper and normalize_paper_format(q.paper) != normalize_paper_format(self.paper):
            return False
        for attr in ("year", "season", "topic", "cognitive_level"):
            want = getattr(self, attr)
            if want and getattr(q, attr) != want:
                return False
        return True


class QuestionRepository(ABC):
    """Read side of the question store. Implementations never mutate what they return."""

    @abstractmethod
    def query_questions(self, flt: QuestionFilter) -> List[Question]:
        """Equality-filtered query; raises NotFound when nothing matches."""

    @abstractmethod
    def get_question(self, question_id: str) -> Optional[Question]:
        ...

    @abstractmethod
    def get_blueprint(self, blueprint_id: str) -> Blueprint:
        ...

    @abstractmethod
    def _fetch_by_ids(self, batch: List[str]) -> List[Question]:
        ...

    def get_questions_by_id(self, ids: Iterable[str]) -> List[Question]:
        wanted = [i for i in ids if i]
        out: List[Question] = []
        step = max(1, config.ID_BATCH_LIMIT)
        for start in range(0, len(wanted), step):
            out.extend(self._fetch_by_ids(wanted[start:start + step]))
        if len(out) != len(set(wanted)):
            found = {q.id for q in out}
            missing = [i for i in wanted if i not in found]
            log.warning("question ids not found: %s", missing)
        return out


def _first(record: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        v = record.get(k)
        if v not in (None, ""):
            return v
    return None


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return int(num) if num.is_integer() else num


def _drag_targets(raw: Any) -> List[DragTarget]:
    out: List[DragTarget] = []
    for t in raw or []:
        if isinstance(t, dict):
            out.append(DragTarget(
                id=t.get("id"),
                text=t.get("text"),
                correct_pair=_first(t, "correctPair", "correctAnswer"),
            ))
    return out


def question_from_record(record: Dict[str, Any]) -> Question:
    """Map a raw camelCase document (legacy aliases included) onto a tagged question."""
    declared = _first(record, "format", "questionType")
    fmt = canonical_format(declared)
    correct = record.get("correctAnswer")
    variations = record.get("answerVariations") or []
    if isinstance(correct, dict):
        variations = correct.get("variations") or variations
        correct = correct.get("answer")

    pqp = record.get("pqpData") if isinstance(record.get("pqpData"), dict) else None
    base: Dict[str, Any] = dict(
        id=str(record.get("id", "")),
        subject=record.get("subject"),
        grade=_as_int(record.get("grade")),
        topic=_first(record, "topic", "topicId"),
        paper=record.get("paper"),
        year=_as_int(record.get("year")),
        season=record.get("season"),
        cognitive_level=record.get("cognitiveLevel"),
        difficulty=record.get("difficulty"),
        marks=_as_number(_first(record, "marks", "mark", "points")),
        max_marks=_as_number(record.get("maxMarks")),
        declared_format=declared,
        question_text=_first(record, "questionText", "question_text", "mainQuestionText", "text"),
        image_url=_first(record, "imageUrl", "questionImage"),
        explanation=record.get("explanation"),
        is_parent=bool(record.get("isParent")),
        parent_question_id=record.get("parentQuestionId"),
        uses_parent_image=bool(record.get("usesParentImage")),
        child_question_ids=list(record.get("childQuestionIds") or []),
        pqp_data=dict(pqp) if pqp else None,
    )

    if fmt == "true_false":
        return TrueFalseQuestion(correct_answer=correct, **base)
    if fmt == "drag_and_drop":
        items = list(record.get("dragItems") or [])
        order = [str(s) for s in (record.get("correctOrder") or [])]
        if order:
            return OrderingQuestion(drag_items=items, correct_order=order, **base)
        targets = _drag_targets(_first(record, "dragTargets", "dropTargets"))
        return MatchingQuestion(drag_items=items, drag_targets=targets, **base)
    if fmt == "fill_in_blanks":
        return FillInBlanksQuestion(correct_answers=list(record.get("correctAnswers") or []), **base)
    if fmt == "short_answer":
        return ShortAnswerQuestion(
            correct_answer=correct if isinstance(correct, str) else (str(correct) if correct is not None else None),
            answer_variations=[str(v) for v in variations],
            answer_type=record.get("answerType") or "text",
            case_sensitive=bool(record.get("caseSensitive")),
            tolerance=float(record.get("tolerance") or 0.0),
            **base,
        )
    # multiple choice, and the fallback for unknown formats
    return MultipleChoiceQuestion(
        options=list(_first(record, "options", "choices") or []),
        correct_answer=correct,
        **base,
    )


def question_to_record(q: Question) -> Dict[str, Any]:
    """Inverse of question_from_record; None-valued keys are omitted."""
    rec: Dict[str, Any] = {
        "id": q.id,
        "subject": q.subject,
        "grade": q.grade,
        "topic": q.topic,
        "paper": q.paper,
        "year": q.year,
        "season": q.season,
        "cognitiveLevel": q.cognitive_level,
        "difficulty": q.difficulty,
        "marks": q.marks,
        "maxMarks": q.max_marks,
        "format": q.format,
        "questionText": q.question_text,
        "imageUrl": q.image_url,
        "explanation": q.explanation,
        "parentQuestionId": q.parent_question_id,
        "pqpData": q.pqp_data,
        "parentContext": q.parent_context,
    }
    if q.is_parent:
        rec["isParent"] = True
        rec["childQuestionIds"] = list(q.child_question_ids)
    if q.uses_parent_image:
        rec["usesParentImage"] = True
    if isinstance(q, MultipleChoiceQuestion):
        rec["options"] = list(q.options)
        rec["correctAnswer"] = q.correct_answer
    elif isinstance(q, TrueFalseQuestion):
        rec["correctAnswer"] = q.correct_answer
    elif isinstance(q, OrderingQuestion):
        rec["dragItems"] = list(q.drag_items)
        rec["correctOrder"] = list(q.correct_order)
    elif isinstance(q, MatchingQuestion):
        rec["dragItems"] = list(q.drag_items)
        rec["dragTargets"] = [
            {"id": t.id, "text": t.text, "correctPair": t.correct_pair} for t in q.drag_targets
        ]
    elif isinstance(q, FillInBlanksQuestion):
        rec["correctAnswers"] = list(q.correct_answers)
    elif isinstance(q, ShortAnswerQuestion):
        rec["correctAnswer"] = q.correct_answer
        rec["answerVariations"] = list(q.answer_variations)
        rec["answerType"] = q.answer_type
    rec.update(q.extra)
    return {k: v for k, v in rec.items() if v is not None}


def blueprint_from_record(bp_id: str, record: Dict[str, Any]) -> Blueprint:
    topics = {str(k): int(v) for k, v in (record.get("topics") or {}).items()}
    levels = {str(k): float(v) for k, v in (record.get("cognitiveLevels") or {}).items()}
    return Blueprint(
        id=bp_id,
        topics=topics,
        cognitive_levels=levels,
        total_marks=_as_int(record.get("totalMarks")),
        total_questions=_as_int(record.get("totalQuestions")),
        formats=list(record.get("formats") or []),
    )


class InMemoryRepository(QuestionRepository):
    def __init__(self, questions: Iterable[Question | Dict[str, Any]] = (),
                 blueprints: Optional[Dict[str, Blueprint | Dict[str, Any]]] = None):
        self._questions: List[Question] = [
            q if isinstance(q, Question) else question_from_record(q) for q in questions
        ]
        self._by_id: Dict[str, Question] = {q.id: q for q in self._questions}
        self._blueprints: Dict[str, Blueprint] = {}
        for key, bp in (blueprints or {}).items():
            self._blueprints[key.lower()] = bp if isinstance(bp, Blueprint) else blueprint_from_record(key.lower(), bp)

    def __len__(self) -> int:
        return len(self._questions)

    @property
    def questions(self) -> List[Question]:
        return list(self._questions)

    def query_questions(self, flt: QuestionFilter) -> List[Question]:
        hits: List[Question] = []
        for q in self._questions:
            if flt.matches(q):
                hits.append(q.copy())
                if flt.limit and len(hits) >= flt.limit:
                    break
        if not hits:
            log.warning("no questions for %s", flt)
            raise NotFound(NO_QUESTIONS_MESSAGE)
        return hits

    def get_question(self, question_id: str) -> Optional[Question]:
        q = self._by_id.get(question_id)
        return q.copy() if q is not None else None

    def get_blueprint(self, blueprint_id: str) -> Blueprint:
        bp = self._blueprints.get(blueprint_id.lower())
        if bp is None:
            log.warning("blueprint not found: %s (available: %s)", blueprint_id, sorted(self._blueprints)[:10])
            raise NotFound("Exam format not found. Please check your subject and paper selection.")
        return bp

    def _fetch_by_ids(self, batch: List[str]) -> List[Question]:
        return [self._by_id[i].copy() for i in batch if i in self._by_id]

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "InMemoryRepository":
        return cls(data.get("questions") or [], data.get("blueprints") or {})

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryRepository":
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_data(raw)

    @classmethod
    def load_default(cls) -> "InMemoryRepository":
        override = os.getenv("QUESTION_BANK_PATH")
        if override:
            log.info("loading question bank from %s", override)
            return cls.from_json(override)
        data = ir.files("exam_core").joinpath("data/bank.json").read_text(encoding="utf-8")
        return cls.from_data(json.loads(data))
