from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

from . import config
from .rng import RandomSource, shuffle
from .types import Question

BASE_SCORE = 100.0
LEVEL_PENALTY = 10.0
YEAR_BONUS = 2.0
BASE_YEAR = 2020
SIMILAR_MARKS_PENALTY = 5.0
JITTER = 10.0


@dataclass
class ScoredQuestion:
    question: Question
    score: float | None = None


def variety_score(question: Question, selected: Sequence[Question], rng: RandomSource) -> float:
    score = BASE_SCORE
    score -= LEVEL_PENALTY * sum(1 for s in selected if s.level == question.level)
    score += YEAR_BONUS * ((question.year or BASE_YEAR) - BASE_YEAR)
    marks = question.mark_value
    score -= SIMILAR_MARKS_PENALTY * sum(1 for s in selected if abs(s.mark_value - marks) <= 1)
    score += rng.next() * JITTER
    return score


def select_variety(candidates: Sequence[Question], count_needed: int,
                   rng: RandomSource) -> List[ScoredQuestion]:
    """Round-robin over cognitive levels, then top up by best variety score.

    When the pool is no larger than ``count_needed`` it comes back unscored.
    """
    if len(candidates) <= count_needed:
        return [ScoredQuestion(q) for q in candidates]

    by_level: Dict[str, List[Question]] = {}
    for q in candidates:
        by_level.setdefault(q.level or config.DEFAULT_LEVEL, []).append(q)
    for level in by_level:
        by_level[level] = shuffle(by_level[level], rng)

    levels = list(by_level)
    picked: List[ScoredQuestion] = []
    taken: List[Question] = []
    for i in range(count_needed):
        group = by_level[levels[i % len(levels)]]
        if group:
            q = group.pop(0)
            picked.append(ScoredQuestion(q, variety_score(q, taken, rng)))
            taken.append(q)

    while len(picked) < count_needed:
        used = {id(q) for q in taken}
        rest = [q for q in candidates if id(q) not in used]
        if not rest:
            break
        scored = [ScoredQuestion(q, variety_score(q, taken, rng)) for q in rest]
        best = max(scored, key=lambda s: s.score)
        picked.append(best)
        taken.append(best.question)
    return picked
