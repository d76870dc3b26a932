"""Swap-based cognitive-level balancing.

Scores a paper on three normalized axes (cognitive counts, per-topic marks,
total marks) and greedily replaces single questions with same-topic
candidates at under-represented levels. A swap must improve the cognitive
axis and the total, and may not cost more than 5% on either other axis.
"""
from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Sequence

from . import config
from .errors import ExamError
from .question_bank import QuestionFilter, QuestionRepository
from .selection import answerable
from .types import Slot

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceScores:
    cognitive: float
    topic: float
    marks: float
    total: float

    def __str__(self) -> str:
        return f"C={self.cognitive:.3f} T={self.topic:.3f} M={self.marks:.3f} total={self.total:.3f}"


def required_level_counts(cognitive_levels: Mapping[str, float], question_count: int) -> Dict[str, int]:
    return {level: int(math.floor(question_count * pct + 0.5)) for level, pct in cognitive_levels.items()}


def level_counts(slots: Sequence[Slot]) -> Counter:
    return Counter(s.question.level for s in slots)


def topic_marks(slots: Sequence[Slot]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for s in slots:
        out[s.topic] = out.get(s.topic, 0.0) + s.question.mark_value
    return out


def _closeness(current: float, target: float) -> float:
    return max(0.0, 1.0 - abs(current - target) / max(target, 1))


def balance_scores(slots: Sequence[Slot], required_levels: Mapping[str, int],
                   topic_targets: Mapping[str, float]) -> BalanceScores:
    levels = level_counts(slots)
    marks = topic_marks(slots)

    cognitive = sum(_closeness(levels.get(lvl, 0), tgt) for lvl, tgt in required_levels.items())
    cognitive /= max(len(required_levels), 1)
    topic = sum(_closeness(marks.get(t, 0.0), tgt) for t, tgt in topic_targets.items())
    topic /= max(len(topic_targets), 1)

    total_target = sum(topic_targets.values())
    total_current = sum(marks.values())
    marks_score = max(0.0, 1.0 - abs(total_current - total_target) / total_target) if total_target > 0 else 1.0
    return BalanceScores(cognitive, topic, marks_score, (cognitive + topic + marks_score) / 3)


def _accepts(trial: BalanceScores, best: BalanceScores) -> bool:
    limit = config.BALANCE_DEGRADE_LIMIT
    return (
        trial.cognitive > best.cognitive
        and trial.topic >= best.topic * limit
        and trial.marks >= best.marks * limit
        and trial.total > best.total
    )


def balance(slots: Sequence[Slot], required_levels: Mapping[str, int], topic_targets: Mapping[str, float],
            repository: QuestionRepository, base: QuestionFilter,
            max_swaps: int | None = None, tolerance: float | None = None) -> List[Slot]:
    """Return a rebalanced copy of ``slots``; the input list is left as is.

    ``tolerance`` is accepted for parity with the other selectors; acceptance is
    governed by the degrade limit and target score.
    """
    max_swaps = config.BALANCE_MAX_SWAPS if max_swaps is None else max_swaps
    current = list(slots)
    best = balance_scores(current, required_levels, topic_targets)
    swaps = 0
    log.info("balance start: %s", best)

    while swaps < max_swaps and best.total < config.BALANCE_TARGET_SCORE:
        improved = False
        counts = level_counts(current)
        adjust = {lvl: tgt - counts.get(lvl, 0) for lvl, tgt in required_levels.items()}
        wanted = sorted((lvl for lvl, d in adjust.items() if d > 0), key=lambda lvl: -adjust[lvl])

        for i, slot in enumerate(current):
            if improved:
                break
            level = slot.question.level
            if level in adjust and adjust[level] >= 0 and best.total > config.BALANCE_SKIP_SCORE:
                continue
            topic = slot.topic
            try:
                for target_level in wanted:
                    pool = repository.query_questions(
                        base.with_(topic=topic, cognitive_level=target_level, limit=config.BALANCE_CANDIDATE_LIMIT)
                    )
                    in_use = {s.question.id for s in current}
                    for cand in answerable(pool):
                        if cand.id in in_use:
                            continue
                        trial = list(current)
                        trial[i] = replace(slot, question=cand, allocated_topic=topic)
                        score = balance_scores(trial, required_levels, topic_targets)
                        if _accepts(score, best):
                            log.info("swap %s(%s) -> %s(%s): %s -> %s",
                                     slot.question.id, level, cand.id, target_level, best, score)
                            current = trial
                            best = score
                            swaps += 1
                            improved = True
                            break
                    if improved:
                        break
            except ExamError as e:
                log.warning("balance: candidate query failed for topic %s: %s", topic, e)

        if not improved:
            log.info("balance: no further improvement")
            break

    log.info("balance done: %d swaps, %s", swaps, best)
    return current
