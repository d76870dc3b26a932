from __future__ import annotations

import math
from collections import Counter
from typing import Any, Dict, Sequence

from . import config
from .types import Blueprint, Slot


def compliance_report(slots: Sequence[Slot], blueprint: Blueprint) -> Dict[str, Any]:
    """Per-topic marks, cognitive mix and total marks measured against the blueprint."""
    n = len(slots)
    actual_marks: Dict[str, float] = {}
    for s in slots:
        actual_marks[s.topic] = actual_marks.get(s.topic, 0.0) + s.question.mark_value

    topic_rows = []
    for topic, target in blueprint.topics.items():
        actual = actual_marks.get(topic, 0.0)
        dev = actual - target
        topic_rows.append({
            "topic": topic,
            "target": target,
            "actual": actual,
            "deviation": dev,
            "deviationPct": (dev / target * 100) if target > 0 else 0.0,
            "compliant": abs(dev) <= target * config.TOPIC_COMPLIANCE_TOLERANCE,
        })
    topic_ok = all(r["compliant"] for r in topic_rows)

    levels = Counter(s.question.level for s in slots)
    level_rows = []
    for level, pct in blueprint.cognitive_levels.items():
        target_count = int(math.floor(n * pct + 0.5))
        actual_count = levels.get(level, 0)
        actual_pct = actual_count / n if n > 0 else 0.0
        gap = actual_pct - pct
        level_rows.append({
            "level": level,
            "targetPct": pct * 100,
            "actualPct": actual_pct * 100,
            "targetCount": target_count,
            "actualCount": actual_count,
            "deviation": actual_count - target_count,
            "deviationPct": gap * 100,
            "compliant": abs(gap) <= config.COGNITIVE_COMPLIANCE_TOLERANCE,
        })
    cognitive_ok = all(r["compliant"] for r in level_rows)

    total_target = sum(blueprint.topics.values())
    total_actual = sum(actual_marks.values())
    marks_dev = total_actual - total_target
    marks_tol = total_target * config.MARKS_COMPLIANCE_TOLERANCE
    marks_ok = abs(marks_dev) <= marks_tol

    return {
        "topic": {
            "compliant": topic_ok,
            "deviations": topic_rows,
            "summary": {
                "totalTopics": len(blueprint.topics),
                "compliantTopics": sum(1 for r in topic_rows if r["compliant"]),
            },
        },
        "cognitive": {
            "compliant": cognitive_ok,
            "deviations": level_rows,
            "summary": {
                "totalLevels": len(blueprint.cognitive_levels),
                "compliantLevels": sum(1 for r in level_rows if r["compliant"]),
            },
        },
        "marks": {
            "compliant": marks_ok,
            "target": total_target,
            "actual": total_actual,
            "deviation": marks_dev,
            "deviationPct": (marks_dev / total_target * 100) if total_target > 0 else 0.0,
            "tolerance": marks_tol,
        },
        "overall": {
            "compliant": topic_ok and cognitive_ok and marks_ok,
            "score": (int(topic_ok) + int(cognitive_ok) + int(marks_ok)) / 3,
        },
    }
