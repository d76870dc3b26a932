"""Parent/child question families.

A parent carries shared stimulus (text, diagram, paper numbering) and is never
answerable itself; children point back via ``parent_question_id``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, MutableMapping, Optional

from .question_bank import QuestionRepository
from .types import Question

log = logging.getLogger(__name__)


@dataclass
class QuestionFamily:
    parent: Question
    children: List[Question] = field(default_factory=list)

    @property
    def image_url(self) -> Optional[str]:
        return self.parent.image_url

    @property
    def question_count(self) -> int:
        return len(self.parent.child_question_ids) or len(self.children)

    @property
    def total_marks(self) -> float:
        return sum(c.mark_value for c in self.children)


def family_index(questions: Iterable[Question]) -> Dict[str, List[str]]:
    """Parent id -> ordered child ids, as seen in ``questions``."""
    index: Dict[str, List[str]] = {}
    for q in questions:
        if q.is_parent:
            index.setdefault(q.id, [])
    for q in questions:
        if q.parent_question_id:
            index.setdefault(q.parent_question_id, []).append(q.id)
    return index


def _lookup_parent(repository: QuestionRepository, parent_id: str,
                   cache: Optional[MutableMapping[str, Optional[Question]]]) -> Optional[Question]:
    if cache is not None and parent_id in cache:
        return cache[parent_id]
    parent = repository.get_question(parent_id)
    if parent is None:
        log.warning("parent question not found: %s", parent_id)
    if cache is not None:
        cache[parent_id] = parent
    return parent


def enrich_with_parent(question: Question, repository: QuestionRepository,
                       cache: Optional[MutableMapping[str, Optional[Question]]] = None) -> Question:
    if not question.has_parent:
        return question
    parent = _lookup_parent(repository, question.parent_question_id, cache)
    if parent is None:
        return question
    ctx = {
        "questionText": parent.question_text,
        "imageUrl": parent.image_url,
        "pqpData": parent.pqp_data,
    }
    image = parent.image_url if question.uses_parent_image else question.image_url
    return question.copy(parent_context=ctx, image_url=image)


def get_family(repository: QuestionRepository, parent_id: str) -> Optional[QuestionFamily]:
    parent = _lookup_parent(repository, parent_id, None)
    if parent is None:
        return None
    children = repository.get_questions_by_id(parent.child_question_ids) if parent.child_question_ids else []
    return QuestionFamily(parent=parent, children=children)
