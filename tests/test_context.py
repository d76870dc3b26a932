from __future__ import annotations

from exam_core.context import enrich_with_parent, family_index, get_family
from exam_core.question_bank import InMemoryRepository
from exam_core.types import MultipleChoiceQuestion


def _family_repo() -> InMemoryRepository:
    return InMemoryRepository([
        MultipleChoiceQuestion(id="p", is_parent=True, child_question_ids=["c1", "c2"],
                               question_text="Shared stimulus", image_url="img.png",
                               pqp_data={"questionNumber": "3"}),
        MultipleChoiceQuestion(id="c1", parent_question_id="p", uses_parent_image=True, marks=2),
        MultipleChoiceQuestion(id="c2", parent_question_id="p", image_url="own.png", marks=3),
        MultipleChoiceQuestion(id="orphan", parent_question_id="gone"),
    ])


def test_child_inherits_parent_context():
    repo = _family_repo()
    c1 = enrich_with_parent(repo.get_question("c1"), repo)
    assert c1.parent_context == {"questionText": "Shared stimulus", "imageUrl": "img.png",
                                 "pqpData": {"questionNumber": "3"}}
    assert c1.image_url == "img.png"

    c2 = enrich_with_parent(repo.get_question("c2"), repo)
    assert c2.image_url == "own.png"


def test_missing_parent_leaves_question_alone(caplog):
    repo = _family_repo()
    cache = {}
    orphan = enrich_with_parent(repo.get_question("orphan"), repo, cache)
    assert orphan.parent_context is None
    assert cache == {"gone": None}
    assert "parent question not found" in caplog.text


def test_family_lookup():
    repo = _family_repo()
    fam = get_family(repo, "p")
    assert [c.id for c in fam.children] == ["c1", "c2"]
    assert fam.question_count == 2
    assert fam.total_marks == 5
    assert fam.image_url == "img.png"
    assert get_family(repo, "nope") is None
    assert family_index(repo.questions) == {"p": ["c1", "c2"], "gone": ["orphan"]}
