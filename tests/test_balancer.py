from __future__ import annotations

from exam_core.balancer import balance, balance_scores, required_level_counts
from exam_core.question_bank import InMemoryRepository, QuestionFilter
from exam_core.types import MultipleChoiceQuestion, Slot

BASE = QuestionFilter(subject="mathematics", grade=12, paper="p1")


def _q(qid: str, level: str, marks: int = 5, topic: str = "Algebra") -> MultipleChoiceQuestion:
    return MultipleChoiceQuestion(id=qid, subject="mathematics", grade=12, paper="p1",
                                  topic=topic, cognitive_level=level, marks=marks)


def test_required_counts_round_half_up():
    shares = {"Level 1": 0.25, "Level 2": 0.35}
    assert required_level_counts(shares, 10) == {"Level 1": 3, "Level 2": 4}


def test_perfect_paper_scores_one():
    slots = [Slot(_q("a", "Level 1"), "Algebra", 10), Slot(_q("b", "Level 2"), "Algebra", 10)]
    scores = balance_scores(slots, {"Level 1": 1, "Level 2": 1}, {"Algebra": 10})
    assert scores.cognitive == scores.topic == scores.marks == scores.total == 1.0


def test_swaps_in_missing_level_from_same_topic():
    a1, a2, a3 = _q("a1", "Level 1"), _q("a2", "Level 1"), _q("a3", "Level 2")
    repo = InMemoryRepository([a1, a2, a3])
    slots = [Slot(a1, "Algebra", 10), Slot(a2, "Algebra", 10)]

    out = balance(slots, {"Level 1": 1, "Level 2": 1}, {"Algebra": 10}, repo, BASE, max_swaps=5)

    assert [s.question.id for s in out] == ["a3", "a2"]
    assert [s.question.id for s in slots] == ["a1", "a2"], "input must not be mutated"
    assert out[0].allocated_topic == "Algebra"


def test_no_candidates_leaves_paper_alone():
    a1, a2 = _q("a1", "Level 1"), _q("a2", "Level 1")
    repo = InMemoryRepository([a1, a2])
    slots = [Slot(a1, "Algebra", 10), Slot(a2, "Algebra", 10)]

    out = balance(slots, {"Level 1": 1, "Level 2": 1}, {"Algebra": 10}, repo, BASE)
    assert [s.question.id for s in out] == ["a1", "a2"]


def test_swap_rejected_when_topic_marks_collapse():
    a1, a2 = _q("a1", "Level 1", marks=5), _q("a2", "Level 1", marks=5)
    tiny = _q("tiny", "Level 2", marks=1)
    repo = InMemoryRepository([a1, a2, tiny])
    slots = [Slot(a1, "Algebra", 10), Slot(a2, "Algebra", 10)]

    out = balance(slots, {"Level 1": 1, "Level 2": 1}, {"Algebra": 10}, repo, BASE)
    assert [s.question.id for s in out] == ["a1", "a2"]


def test_max_swaps_zero_is_a_no_op():
    a1, a2, a3 = _q("a1", "Level 1"), _q("a2", "Level 1"), _q("a3", "Level 2")
    repo = InMemoryRepository([a1, a2, a3])
    slots = [Slot(a1, "Algebra", 10), Slot(a2, "Algebra", 10)]
    out = balance(slots, {"Level 1": 1, "Level 2": 1}, {"Algebra": 10}, repo, BASE, max_swaps=0)
    assert [s.question.id for s in out] == ["a1", "a2"]


def test_unrated_level_stays_eligible_above_skip_score():
    a1, a2, a3 = _q("a1", "Level 1"), _q("a2", "Level 2"), _q("a3", "Level 3")
    odd, l4 = _q("odd", "Level 9"), _q("l4", "Level 4")
    repo = InMemoryRepository([a1, a2, a3, odd, l4])
    slots = [Slot(q, "Algebra", 20) for q in (a1, a2, a3, odd)]
    required = {"Level 1": 1, "Level 2": 1, "Level 3": 1, "Level 4": 1}

    before = balance_scores(slots, required, {"Algebra": 20})
    assert 0.8 < before.total < 0.95

    out = balance(slots, required, {"Algebra": 20}, repo, BASE)
    assert [s.question.id for s in out] == ["a1", "a2", "a3", "l4"]
