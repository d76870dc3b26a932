"""Per-topic marks fitting.

A topic target is met with a greedy pass over the candidates (largest marks
first), an optional single-swap refinement when the greedy sum lands outside
the tolerance band, and a capped fallback when nothing was taken at all.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

from . import config
from .errors import ExamError
from .question_bank import QuestionFilter, QuestionRepository
from .types import Question

log = logging.getLogger(__name__)


def marks_of(questions: Iterable[Question]) -> float:
    return sum(q.mark_value for q in questions)


def marks_band(target: float, tolerance: float) -> Tuple[float, float]:
    dev = target * tolerance
    return max(1.0, target - dev), target + dev


@dataclass
class MarksFit:
    questions: List[Question] = field(default_factory=list)
    marks: float = 0.0
    band: Tuple[float, float] = (0.0, 0.0)
    phase1_marks: float = 0.0
    swapped: bool = False
    fallback_used: bool = False

    @property
    def in_band(self) -> bool:
        low, high = self.band
        return low <= self.marks <= high


def optimize_marks_with_swaps(selected: Sequence[Question], available: Sequence[Question],
                              target: float, tolerance: float) -> List[Question]:
    """Try every single-position replacement; keep the in-band one closest to target.

    Each trial starts from the initial selection, so at most one question is
    replaced. The swap band is the raw ``target +/- dev`` (no floor at 1).
    """
    dev = target * tolerance
    low, high = target - dev, target + dev
    best = list(selected)
    best_gap = abs(marks_of(selected) - target)
    for i in range(len(selected)):
        for cand in available:
            trial = list(selected)
            trial[i] = cand
            total = marks_of(trial)
            gap = abs(total - target)
            if gap < best_gap and low <= total <= high:
                best, best_gap = trial, gap
    return best


def fit_marks(candidates: Sequence[Question], target: float, tolerance: float) -> MarksFit:
    low, high = marks_band(target, tolerance)
    fit = MarksFit(band=(low, high))
    if not candidates:
        log.warning("no candidates for knapsack selection (target %s)", target)
        return fit

    ranked = sorted((q for q in candidates if q.mark_value > 0), key=lambda q: -q.mark_value)
    if not ranked:
        log.warning("no candidates with marks > 0 (target %s)", target)
        return fit

    chosen: List[Question] = []
    remaining = list(ranked)
    current = 0.0
    i = 0
    while i < len(remaining) and current < low:
        q = remaining[i]
        if current + q.mark_value <= high or current < low:
            chosen.append(q)
            current += q.mark_value
            del remaining[i]
            continue
        i += 1
    fit.phase1_marks = current

    if current < low or current > high:
        log.debug("swap pass: %s outside %.1f-%.1f", current, low, high)
        swapped = optimize_marks_with_swaps(chosen, remaining, target, tolerance)
        fit.swapped = [q.id for q in swapped] != [q.id for q in chosen]
        chosen = swapped
        current = marks_of(chosen)

    if not chosen:
        log.warning("knapsack selected nothing for target %s, using fallback", target)
        fit.fallback_used = True
        total = 0.0
        for q in ranked:
            if total + q.mark_value <= high:
                chosen.append(q)
                total += q.mark_value
            if total >= low:
                break
        current = total

    fit.questions = chosen
    fit.marks = current
    return fit


def select_by_marks(candidates: Sequence[Question], target: float, tolerance: float) -> List[Question]:
    return fit_marks(candidates, target, tolerance).questions


def answerable(questions: Iterable[Question]) -> List[Question]:
    """Parents are context documents, never answerable on their own."""
    return [q for q in questions if not q.is_parent]


def select_topic(repository: QuestionRepository, base: QuestionFilter, topic: str,
                 target: float, tolerance: float | None = None) -> List[Question]:
    tol = config.TOPIC_TOLERANCE if tolerance is None else tolerance
    try:
        pool = repository.query_questions(base.with_(topic=topic, limit=config.TOPIC_POOL_LIMIT))
    except (ExamError, OSError) as e:
        log.warning("topic %s: candidate query failed: %s", topic, e)
        return []
    usable = answerable(pool)
    if len(usable) < len(pool):
        log.info("topic %s: dropped %d parent questions", topic, len(pool) - len(usable))
    picked = select_by_marks(usable, target, tol)
    if not picked:
        log.warning("topic %s: nothing selected (available %d, target %s)", topic, len(usable), target)
    else:
        log.info("topic %s: %d questions, %s marks", topic, len(picked), marks_of(picked))
    return picked
