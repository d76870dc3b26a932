from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from .equivalence import is_equivalent
from .errors import InvalidArgument, NotFound
from .question_bank import QuestionRepository
from .statistics import compute_statistics, round_half_up
from .types import (
    FillInBlanksQuestion,
    GradingResult,
    MatchingQuestion,
    OrderingQuestion,
    Question,
    ShortAnswerQuestion,
    TrueFalseQuestion,
    canonical_format,
)

log = logging.getLogger(__name__)

PASS_FRACTION = 0.5

SaveResult = Callable[[str, Dict[str, Any]], None]

_FEEDBACK = {
    "numerical": ("Correct numerical answer", "Incorrect numerical value"),
    "coordinates": ("Correct coordinates", "Incorrect coordinate values"),
    "domain_range": ("Correct domain/range", "Incorrect domain/range notation"),
    "equation": ("Correct algebraic expression", "Incorrect algebraic form"),
    "algebraic": ("Correct algebraic expression", "Incorrect algebraic form"),
}
_TEXT_FEEDBACK = ("Correct answer", "Answer does not match expected response")


def _max_marks(q: Question, default: float) -> float:
    return q.max_marks or q.marks or default


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def grade_multiple_choice(q: Question, answer: Any) -> GradingResult:
    correct = getattr(q, "correct_answer", None)
    ok = _text(answer).upper() == _text(correct).upper()
    mx = _max_marks(q, 2)
    return GradingResult(q.id, "multiple_choice", ok, mx if ok else 0, mx, answer, correct)


def grade_true_false(q: TrueFalseQuestion, answer: Any) -> GradingResult:
    ok = _text(answer).lower() == _text(q.correct_answer).lower()
    mx = _max_marks(q, 1)
    return GradingResult(q.id, "true_false", ok, mx if ok else 0, mx, answer, q.correct_answer)


def _as_list(answers: Any) -> List[Any]:
    if answers is None:
        return []
    if isinstance(answers, (list, tuple)):
        return list(answers)
    return [answers]


def grade_ordering(q: OrderingQuestion, answers: Any) -> GradingResult:
    """Step-based marking: each position in the expected order carries an equal share."""
    if isinstance(answers, str):
        given = [s.strip() for s in answers.split(",") if s.strip()]
    else:
        given = _as_list(answers)
    expected = list(q.correct_order)
    steps = len(expected)
    mx = _max_marks(q, steps)
    per_step = mx / steps if steps else 0.0

    rows = []
    correct = 0
    for idx, want in enumerate(expected):
        got = given[idx] if idx < len(given) else None
        hit = _text(want) == _text(got)
        correct += hit
        rows.append({
            "stepPosition": idx + 1,
            "userAnswer": got if got else "Not provided",
            "correctAnswer": want,
            "isCorrect": hit,
            "marksAwarded": per_step if hit else 0,
            "marksAvailable": per_step,
        })

    awarded = correct * per_step
    return GradingResult(
        q.id, "drag_and_drop", awarded >= mx * PASS_FRACTION, awarded, mx,
        user_answer=given, correct_answer=expected,
        detail={
            "subFormat": "ordering",
            "correctOrder": expected,
            "correctCount": correct,
            "totalSteps": steps,
            "marksPerStep": per_step,
            "percentage": correct / steps if steps else 0,
            "detailedResults": rows,
            "markingMethod": "step-based",
            "explanation": f"Each correct step awards {per_step:.2f} marks. Total: {correct}/{steps} steps correct.",
        },
    )


def _parse_pairs(answers: Any) -> List[Any]:
    if isinstance(answers, str):
        out = []
        for pair in answers.split(","):
            target, sep, item = pair.partition(":")
            out.append({"target": target.strip(), "item": item.strip() if sep else None})
        return out
    return _as_list(answers)


def grade_matching(q: MatchingQuestion, answers: Any) -> GradingResult:
    given = _parse_pairs(answers)
    rows = []
    correct = 0
    for idx, target in enumerate(q.drag_targets):
        mapping = next((g for g in given if isinstance(g, dict) and g.get("target") == target.id), None)
        if mapping is None and idx < len(given):
            mapping = given[idx]
        got = mapping.get("item") if isinstance(mapping, dict) else mapping
        hit = _text(got) == _text(target.correct_pair)
        correct += hit
        rows.append({
            "targetId": target.id if target.id is not None else idx,
            "targetText": target.text,
            "userAnswer": got,
            "correctAnswer": target.correct_pair,
            "isCorrect": hit,
        })

    total = len(q.drag_targets)
    frac = correct / total if total else 0.0
    mx = q.max_marks or total
    return GradingResult(
        q.id, "drag_and_drop", frac >= PASS_FRACTION, round_half_up(mx * frac), mx,
        user_answer=given, correct_answer=[t.correct_pair for t in q.drag_targets],
        detail={
            "subFormat": "matching",
            "correctCount": correct,
            "totalTargets": total,
            "percentage": frac,
            "detailedResults": rows,
        },
    )


def grade_fill_in_blanks(q: FillInBlanksQuestion, answers: Any) -> GradingResult:
    given = _as_list(answers)
    rows = []
    correct = 0
    for idx, want in enumerate(q.correct_answers):
        got = given[idx] if idx < len(given) else None
        hit = _text(got).lower() == _text(want).lower()
        correct += hit
        rows.append({"blankIndex": idx, "userAnswer": got, "correctAnswer": want, "isCorrect": hit})

    total = len(q.correct_answers)
    frac = correct / total if total else 0.0
    mx = q.max_marks or total
    return GradingResult(
        q.id, "fill_in_blanks", frac >= PASS_FRACTION, round_half_up(mx * frac), mx,
        user_answer=given, correct_answer=list(q.correct_answers),
        detail={"correctCount": correct, "totalBlanks": total, "percentage": frac, "detailedResults": rows},
    )


def grade_short_answer(q: ShortAnswerQuestion, answer: Any) -> GradingResult:
    mx = _max_marks(q, 1)
    if not answer or not isinstance(answer, str):
        return GradingResult(
            q.id, "short_answer", False, 0, mx,
            user_answer=answer or "", correct_answer=q.correct_answer,
            detail={"feedback": "No answer provided"},
        )

    kind = (q.answer_type or "text").lower()
    good, bad = _FEEDBACK.get(kind, _TEXT_FEEDBACK)
    try:
        ok = is_equivalent(answer, q)
        feedback = good if ok else bad
    except Exception:  # a malformed answer or key is marked wrong, never fatal
        log.exception("short answer grading failed for %s", q.id)
        ok, feedback = False, "Error processing answer"

    return GradingResult(
        q.id, "short_answer", ok, mx if ok else 0, mx,
        user_answer=answer, correct_answer=q.correct_answer,
        detail={
            "answerType": q.answer_type,
            "acceptedVariations": list(q.answer_variations),
            "feedback": feedback,
            "caseSensitive": q.case_sensitive,
            "tolerance": q.tolerance,
        },
    )


def _submission(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {"answer": value}


def grade_question(q: Question, submission: Any) -> GradingResult:
    """Grade one question. ``submission`` is a raw answer or a mapping with answer/answers."""
    sub = _submission(submission)
    answer = sub.get("answer")
    multi = sub.get("answers") or answer

    if isinstance(q, TrueFalseQuestion):
        return grade_true_false(q, answer)
    if isinstance(q, OrderingQuestion):
        return grade_ordering(q, multi)
    if isinstance(q, MatchingQuestion):
        return grade_matching(q, multi)
    if isinstance(q, FillInBlanksQuestion):
        return grade_fill_in_blanks(q, multi)
    if isinstance(q, ShortAnswerQuestion):
        return grade_short_answer(q, answer)
    if q.declared_format and canonical_format(q.declared_format) is None:
        log.warning("unknown question format %r for %s, grading as multiple choice", q.declared_format, q.id)
    return grade_multiple_choice(q, answer)


def unanswered_result(q: Question) -> GradingResult:
    return GradingResult(
        q.id, q.format, False, 0, _max_marks(q, 2),
        user_answer=None, correct_answer=getattr(q, "correct_answer", None),
        was_unanswered=True,
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def grade_submission(
    repository: QuestionRepository,
    submissions: Mapping[str, Any],
    user_id: Optional[str] = None,
    metadata: Optional[Mapping[str, Any]] = None,
    save_result: Optional[SaveResult] = None,
    graded_at: Optional[str] = None,
) -> Dict[str, Any]:
    meta = dict(metadata or {})
    ids = list(submissions)
    if not ids:
        raise InvalidArgument("No question IDs provided for grading.")

    questions = {q.id: q for q in repository.get_questions_by_id(ids)}
    if not questions:
        raise NotFound("Questions not found for grading.")

    results: List[GradingResult] = []
    for qid in ids:
        q = questions.get(qid)
        if q is None:
            log.warning("skipping unknown question id %s", qid)
            continue
        value = submissions[qid]
        if value is None:
            log.info("unanswered question %s graded as 0", qid)
            results.append(unanswered_result(q))
        else:
            results.append(grade_question(q, value))

    base = compute_statistics(results).to_dict()
    stats = dict(base)
    stats.update({
        "totalQuestions": meta.get("totalQuestions") or base["totalQuestions"] or len(results),
        "subject": meta.get("subject"),
        "paper": meta.get("paper"),
        "mode": meta.get("mode") or "Practice",
        "durationMinutes": meta.get("durationMinutes"),
        "sessionDurationSeconds": meta.get("sessionDurationSeconds"),
        "flags": meta.get("flags") or {},
    })
    out_meta = dict(meta)
    for key in ("totalQuestions", "subject", "paper", "mode", "durationMinutes", "sessionDurationSeconds"):
        out_meta[key] = stats[key]

    payload: Dict[str, Any] = {
        "results": [r.to_dict() for r in results],
        "statistics": stats,
        "metadata": out_meta,
        "gradedAt": meta.get("submittedAt") or graded_at or _now_iso(),
        "userId": user_id,
    }

    if user_id and save_result is not None:
        try:
            save_result(user_id, payload)
        except Exception:  # the grade is returned even when the hand-off fails
            log.exception("failed to hand off result for user %s", user_id)
    elif not user_id:
        log.info("no user id, result not persisted")

    log.info("graded %d questions: %s%% (%s)", len(results), stats["percentage"], stats["grade"])
    return payload
