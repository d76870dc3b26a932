from __future__ import annotations

import json

import pytest

from exam_core import config
from exam_core.errors import NotFound
from exam_core.question_bank import (
    InMemoryRepository,
    QuestionFilter,
    blueprint_id,
    normalize_paper_format,
    question_from_record,
    question_to_record,
)
from exam_core.types import (
    MatchingQuestion,
    MultipleChoiceQuestion,
    OrderingQuestion,
    ShortAnswerQuestion,
    TrueFalseQuestion,
)
from tests.conftest import build_repository, build_synthetic_bank


@pytest.mark.parametrize(
    "raw, expected",
    [("Paper 1", "p1"), ("P2", "p2"), ("1", "p1"), ("paper  3", "p3"), ("", ""), (None, "")],
)
def test_normalize_paper_format(raw, expected):
    assert normalize_paper_format(raw) == expected


def test_blueprint_id_is_lower_case():
    assert blueprint_id("Mathematics", "Paper 1", 12) == "mathematics_p1_gr12"


def test_record_aliases_map_to_variants():
    mc = question_from_record({"id": "a", "questionType": "Multiple-Choice", "choices": ["x", "y"],
                               "correctAnswer": "A", "mark": "3"})
    assert isinstance(mc, MultipleChoiceQuestion)
    assert mc.options == ["x", "y"]
    assert mc.marks == 3

    tf = question_from_record({"id": "b", "format": "true_false", "correctAnswer": "false"})
    assert isinstance(tf, TrueFalseQuestion)

    order = question_from_record({"id": "c", "format": "drag-and-drop", "correctOrder": [1, 2]})
    assert isinstance(order, OrderingQuestion)
    assert order.correct_order == ["1", "2"]

    match = question_from_record({"id": "d", "format": "drag_and_drop",
                                  "dropTargets": [{"id": "t1", "correctAnswer": "p1"}]})
    assert isinstance(match, MatchingQuestion)
    assert match.drag_targets[0].correct_pair == "p1"

    sa = question_from_record({"id": "e", "format": "short_answer", "topicId": "Algebra",
                               "correctAnswer": {"answer": "3", "variations": ["three"]},
                               "answerType": "numerical", "mainQuestionText": "Solve"})
    assert isinstance(sa, ShortAnswerQuestion)
    assert (sa.correct_answer, sa.answer_variations, sa.topic, sa.question_text) == ("3", ["three"], "Algebra", "Solve")


def test_unknown_format_keeps_declared_value():
    q = question_from_record({"id": "x", "format": "essay"})
    assert isinstance(q, MultipleChoiceQuestion)
    assert q.declared_format == "essay"


def test_record_round_trip_drops_none():
    q = question_from_record({"id": "p", "isParent": True, "childQuestionIds": ["c1"], "topic": "Functions"})
    rec = question_to_record(q)
    assert rec["isParent"] is True
    assert rec["childQuestionIds"] == ["c1"]
    assert "imageUrl" not in rec


def test_paper_filter_normalises_both_sides():
    bank = build_synthetic_bank(topics=["Algebra"], per_topic=2, paper="Paper 1")
    repo = build_repository(bank)
    hits = repo.query_questions(QuestionFilter(subject="mathematics", grade=12, paper="P1"))
    assert len(hits) == 2


def test_query_returns_copies_and_honours_limit(repo):
    hits = repo.query_questions(QuestionFilter(subject="mathematics", topic="Algebra", limit=3))
    assert len(hits) == 3
    hits[0].marks = 999
    assert repo.get_question(hits[0].id).marks != 999


def test_query_without_hits_raises(repo):
    with pytest.raises(NotFound):
        repo.query_questions(QuestionFilter(subject="physics"))


def test_missing_blueprint_raises(repo):
    with pytest.raises(NotFound, match="Exam format not found"):
        repo.get_blueprint("history_p1_gr12")
    assert repo.get_blueprint("MATHEMATICS_P1_GR12").topics


class _CountingRepository(InMemoryRepository):
    def __init__(self, *a, **kw):
        super().__init__(*a, **kw)
        self.batches: list[list[str]] = []

    def _fetch_by_ids(self, batch):
        self.batches.append(list(batch))
        return super()._fetch_by_ids(batch)


def test_get_questions_by_id_chunks_and_warns(monkeypatch, caplog):
    monkeypatch.setattr(config, "ID_BATCH_LIMIT", 3)
    repo = _CountingRepository(build_synthetic_bank(topics=["Algebra"], per_topic=6))
    ids = [f"algebra_{i}" for i in range(6)] + ["missing"]

    found = repo.get_questions_by_id(ids)

    assert [len(b) for b in repo.batches] == [3, 3, 1]
    assert len(found) == 6
    assert "missing" in caplog.text


def test_load_default_and_override(monkeypatch, tmp_path):
    repo = InMemoryRepository.load_default()
    assert repo.get_blueprint("mathematics_p1_gr12").target_total == 150

    path = tmp_path / "bank.json"
    path.write_text(json.dumps({"questions": [{"id": "only", "format": "mcq"}], "blueprints": {}}), encoding="utf-8")
    monkeypatch.setenv("QUESTION_BANK_PATH", str(path))
    assert len(InMemoryRepository.load_default()) == 1
