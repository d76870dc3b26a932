from __future__ import annotations

import math
from typing import Iterable, List, Tuple

from .types import GradingResult, TestStatistics

# (minimum percentage, letter), checked top-down
GRADE_BANDS: List[Tuple[int, str]] = [(90, "A+"), (80, "A"), (70, "B"), (60, "C"), (50, "D")]


def round_half_up(x: float) -> int:
    # half-up; round() would use banker's rounding
    return int(math.floor(x + 0.5))


def letter_grade(percentage: float) -> str:
    for floor, letter in GRADE_BANDS:
        if percentage >= floor:
            return letter
    return "F"


def compute_statistics(results: Iterable[GradingResult]) -> TestStatistics:
    rows = list(results)
    n = len(rows)
    correct = sum(1 for r in rows if r.is_correct)
    total = sum(r.max_marks or 0 for r in rows)
    awarded = sum(r.marks_awarded or 0 for r in rows)
    pct = round_half_up(awarded / total * 100) if total > 0 else 0
    return TestStatistics(
        total_questions=n,
        correct_questions=correct,
        total_marks=total,
        marks_awarded=awarded,
        percentage=pct,
        grade=letter_grade(pct),
        accuracy=round_half_up(correct / n * 100) if n > 0 else 0,
    )
