from __future__ import annotations

import pytest

from exam_core.compliance import compliance_report
from exam_core.types import MultipleChoiceQuestion, Slot
from tests.conftest import build_blueprint


def _slot(qid: str, topic: str, level: str, marks: int) -> Slot:
    return Slot(MultipleChoiceQuestion(id=qid, topic=topic, cognitive_level=level, marks=marks), topic, 0)


def test_shortfall_is_reported_not_raised():
    bp = build_blueprint({"Algebra": 10, "Functions": 10}, {"Level 1": 0.5, "Level 2": 0.5})
    slots = [
        _slot("a", "Algebra", "Level 1", 5),
        _slot("b", "Algebra", "Level 2", 5),
        _slot("c", "Functions", "Level 1", 4),
    ]
    report = compliance_report(slots, bp)

    algebra, functions = report["topic"]["deviations"]
    assert algebra["compliant"] and algebra["deviation"] == 0
    assert not functions["compliant"]
    assert functions["deviation"] == -6
    assert functions["deviationPct"] == pytest.approx(-60)
    assert report["topic"]["summary"] == {"totalTopics": 2, "compliantTopics": 1}

    level1 = report["cognitive"]["deviations"][0]
    assert level1["targetCount"] == 2
    assert level1["actualCount"] == 2
    assert not report["cognitive"]["compliant"]

    assert report["marks"]["target"] == 20
    assert report["marks"]["actual"] == 14
    assert report["marks"]["tolerance"] == pytest.approx(4)
    assert not report["marks"]["compliant"]
    assert report["overall"] == {"compliant": False, "score": 0.0}


def test_matching_paper_is_fully_compliant():
    bp = build_blueprint({"Algebra": 10}, {"Level 1": 0.5, "Level 2": 0.5})
    slots = [_slot("a", "Algebra", "Level 1", 5), _slot("b", "Algebra", "Level 2", 5)]
    report = compliance_report(slots, bp)
    assert report["overall"] == {"compliant": True, "score": 1.0}


def test_empty_selection_has_zero_percentages():
    bp = build_blueprint({"Algebra": 10}, {"Level 1": 1.0})
    report = compliance_report([], bp)
    assert report["cognitive"]["deviations"][0]["actualPct"] == 0
    assert report["marks"]["actual"] == 0
    assert not report["overall"]["compliant"]
