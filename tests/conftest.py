from __future__ import annotations

import pytest

from exam_core.question_bank import InMemoryRepository
from exam_core.rng import SeededRandomSource
from exam_core.types import Blueprint, MultipleChoiceQuestion, Question

TOPIC_MARKS: dict[str, int] = {"Algebra": 20, "Functions": 30, "Calculus": 30}
LEVEL_SHARES: dict[str, float] = {"Level 1": 0.25, "Level 2": 0.25, "Level 3": 0.25, "Level 4": 0.25}


def build_synthetic_bank(
    *,
    topics: list[str] | None = None,
    per_topic: int = 8,
    marks_cycle: tuple[int, ...] = (2, 3, 4, 5, 6),
    subject: str = "mathematics",
    grade: int = 12,
    paper: str = "p1",
) -> list[Question]:
    """Create a deterministic synthetic bank for tests."""

    questions: list[Question] = []
    for t_idx, topic in enumerate(topics or list(TOPIC_MARKS)):
        slug = topic.lower().replace(" ", "_")
        for idx in range(per_topic):
            questions.append(
                MultipleChoiceQuestion(
                    id=f"{slug}_{idx}",
                    subject=subject,
                    grade=grade,
                    paper=paper,
                    topic=topic,
                    year=2020 + idx % 4,
                    season="November" if idx % 2 else "June",
                    cognitive_level=f"Level {idx % 4 + 1}",
                    marks=marks_cycle[idx % len(marks_cycle)],
                    question_text=f"{topic} question #{idx}",
                    options=["A", "B", "C", "D"],
                    correct_answer="A",
                    pqp_data={"questionNumber": f"{t_idx + 1}.{idx + 1}"},
                )
            )
    return questions


def build_blueprint(topics: dict[str, int] | None = None, levels: dict[str, float] | None = None) -> Blueprint:
    topics = dict(topics or TOPIC_MARKS)
    return Blueprint(
        id="mathematics_p1_gr12",
        topics=topics,
        cognitive_levels=dict(levels or LEVEL_SHARES),
        total_marks=sum(topics.values()),
    )


def build_repository(questions: list[Question] | None = None,
                     blueprint: Blueprint | None = None) -> InMemoryRepository:
    bp = blueprint or build_blueprint()
    return InMemoryRepository(
        questions if questions is not None else build_synthetic_bank(),
        {bp.id: bp},
    )


@pytest.fixture
def synthetic_bank() -> list[Question]:
    return build_synthetic_bank()


@pytest.fixture
def repo() -> InMemoryRepository:
    return build_repository()


@pytest.fixture
def sample_repo() -> InMemoryRepository:
    return InMemoryRepository.load_default()


@pytest.fixture
def rng() -> SeededRandomSource:
    return SeededRandomSource(42)
