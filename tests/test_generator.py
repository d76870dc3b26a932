from __future__ import annotations

import pytest

from exam_core import config
from exam_core.errors import NotFound
from exam_core.generator import (
    GenerationParams,
    _compensate,
    generate_blueprint_test,
    generate_test,
    public_question,
    scale_blueprint,
)
from exam_core.rng import SeededRandomSource
from exam_core.types import Blueprint, DragTarget, MatchingQuestion, Slot
from tests.conftest import build_blueprint, build_repository, build_synthetic_bank

STAMP = "2024-06-01T00:00:00+00:00"


def _params(**kw) -> GenerationParams:
    payload = {"grade": 12, "subject": "mathematics", "paper": "Paper 1"}
    payload.update(kw)
    return GenerationParams.from_payload(payload)


def _segments(number: str) -> list[int]:
    return [int(s) for s in number.split(".")]


def test_full_paper_follows_blueprint(sample_repo):
    out = generate_test(sample_repo, _params(mode="full_exam", seed=7),
                        strategy=config.STRATEGY_MARKS_ONLY, generated_at=STAMP)

    assert out["generatedAt"] == STAMP
    assert out["totalQuestions"] == len(out["questions"]) > 0
    assert out["blueprint"]["id"] == "mathematics_p1_gr12"
    assert set(out["topicDistribution"]) <= set(out["blueprint"]["topics"])
    assert out["complianceReport"]["marks"]["target"] == 150
    assert out["totalMarks"] == sum(q["maxMarks"] for q in out["questions"])
    assert [q["questionNumber"] for q in out["questions"]] == list(range(1, out["totalQuestions"] + 1))

    numbers = [_segments(q["pqpData"]["questionNumber"]) for q in out["questions"]]
    assert numbers == sorted(numbers)


def test_generated_questions_hide_answers(sample_repo):
    out = generate_test(sample_repo, _params(seed=7), strategy=config.STRATEGY_MARKS_ONLY, generated_at=STAMP)
    for q in out["questions"]:
        for key in ("correctAnswer", "correctAnswers", "explanation", "answerVariations"):
            assert key not in q
        for target in q.get("dragTargets", []):
            assert "correctPair" not in target
    assert any("correctOrder" in q for q in out["questions"])
    assert any(q.get("dragTargets") for q in out["questions"])


def test_same_seed_same_paper(sample_repo):
    a = generate_test(sample_repo, _params(seed="abc", duration=60, numQuestions=5),
                      strategy=config.STRATEGY_MARKS_ONLY, generated_at=STAMP)
    b = generate_test(sample_repo, _params(seed="abc", duration=60, numQuestions=5),
                      strategy=config.STRATEGY_MARKS_ONLY, generated_at=STAMP)
    assert a == b


def test_quick_practice_scales_and_caps(sample_repo):
    out = generate_test(sample_repo, _params(mode="quick_practice", duration=30, numQuestions=4, seed=1),
                        strategy=config.STRATEGY_MARKS_ONLY, generated_at=STAMP)
    assert out["blueprint"]["totalMarks"] == 30
    assert out["totalQuestions"] == 4
    assert all("varietyScore" in q for q in out["questions"])


def test_balanced_strategy_still_reports_compliance(sample_repo):
    result = generate_blueprint_test(sample_repo, _params(), SeededRandomSource(5), strategy=config.STRATEGY_BALANCED)
    assert result["slots"]
    assert "overall" in result["complianceReport"]


def test_scale_blueprint_rounds_and_floors():
    bp = Blueprint(id="x", topics={"A": 140, "B": 10}, cognitive_levels={"Level 1": 1.0}, total_marks=150)
    scaled = scale_blueprint(bp, 15)
    assert scaled.topics == {"A": 14, "B": 2}
    assert scaled.total_marks == 16


def test_topic_test_enriches_children(sample_repo):
    out = generate_test(sample_repo, _params(mode="by_topic", topic="Functions", questionCount=10, seed=3),
                        generated_at=STAMP)
    ids = {q["id"]: q for q in out["questions"]}
    assert "m12-fun-00" not in ids, "parents are never served as questions"
    assert out["topicDistribution"] == {"Functions": len(ids)}

    child = ids["m12-fun-01"]
    assert child["parentContext"]["questionText"].startswith("The graph of f(x)")
    assert child["imageUrl"] == child["parentContext"]["imageUrl"]
    assert "imageUrl" not in ids["m12-fun-03"]


def test_topic_test_honours_exclusions(sample_repo):
    excluded = ["m12-cal-01", "m12-cal-02", "m12-cal-03", "m12-cal-04", "m12-cal-05"]
    out = generate_test(sample_repo, _params(mode="by_topic", topic="Calculus", questionCount=3,
                                             excludeIds=excluded, seed=3))
    assert [q["id"] for q in out["questions"]] == ["m12-cal-06"]


def test_topic_test_unknown_topic(sample_repo):
    with pytest.raises(NotFound, match="No questions available for topic: Geometry"):
        generate_test(sample_repo, _params(mode="by_topic", topic="Geometry"))


def test_legacy_sections(sample_repo):
    params = GenerationParams.from_payload({"grade": 11, "subject": "mathematics", "paper": "p2", "seed": 9})
    out = generate_test(sample_repo, params, generated_at=STAMP)
    assert out["totalQuestions"] == 6
    mc = [q for q in out["questions"] if q["format"] == "multiple_choice"]
    tf = [q for q in out["questions"] if q["format"] == "true_false"]
    assert len(mc) == 3 and all(q["maxMarks"] == 2 for q in mc)
    assert len(tf) == 3 and all(q["maxMarks"] == 1 for q in tf)
    assert {q["sectionFormat"] for q in mc} == {"multiple-choice"}


def test_legacy_sample_by_total_marks():
    repo = build_repository(blueprint=Blueprint(id="mathematics_p1_gr12", total_marks=20))
    out = generate_test(repo, _params(seed=2), generated_at=STAMP)
    assert out["totalQuestions"] == 4


def test_missing_blueprint_is_not_found(sample_repo):
    params = GenerationParams.from_payload({"grade": 12, "subject": "physics", "paper": "p1"})
    with pytest.raises(NotFound):
        generate_test(sample_repo, params)


def test_public_question_strips_pairings():
    q = MatchingQuestion(id="m", marks=3, explanation="because", drag_items=["a"],
                         drag_targets=[DragTarget(id="t1", text="T", correct_pair="a")])
    rec = public_question(Slot(q, "Functions", 10, question_number=4))
    assert rec["dragTargets"] == [{"id": "t1", "text": "T"}]
    assert "explanation" not in rec
    assert rec["maxMarks"] == 3
    assert rec["questionNumber"] == 4
    assert rec["allocatedTopic"] == "Functions"


def test_shortfall_is_topped_up_from_wider_pool(monkeypatch, caplog):
    bank = build_synthetic_bank(topics=["Algebra"], per_topic=8, marks_cycle=(5,))
    repo = build_repository(bank, build_blueprint({"Algebra": 20}))
    monkeypatch.setattr(config, "TOPIC_POOL_LIMIT", 2)

    out = generate_blueprint_test(repo, _params(), SeededRandomSource(1), strategy=config.STRATEGY_MARKS_ONLY)

    assert "compensating" in caplog.text
    assert out["totalMarks"] == 20
    assert out["totalQuestions"] == 4
    assert out["totalMarks"] <= 20 * config.COMPENSATION_OVERSHOOT


def test_compensation_respects_overshoot_cap():
    bank = build_synthetic_bank(topics=["Algebra"], per_topic=3, marks_cycle=(16, 9))
    repo = build_repository(bank, build_blueprint({"Algebra": 10}))
    picks = {"Algebra": []}

    _compensate(repo, _params().base_filter(), picks, {"Algebra": 10})

    assert [q.id for q in picks["Algebra"]] == ["algebra_1"]
