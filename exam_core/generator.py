"""Paper assembly.

Routes a generation request to one of three paths: by-topic practice, the
blueprint path (per-topic marks fitting, compensation, optional balancing,
compliance), or the legacy path for blueprints without topic allocations.
"""
from __future__ import annotations

import logging
import math
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from . import config
from .balancer import balance, required_level_counts
from .compliance import compliance_report
from .context import enrich_with_parent
from .errors import ExamError, NotFound
from .question_bank import (
    NO_QUESTIONS_MESSAGE,
    QuestionFilter,
    QuestionRepository,
    blueprint_id,
    normalize_paper_format,
    question_to_record,
)
from .rng import RandomSource, make_source, sample
from .selection import answerable, marks_of, select_topic
from .types import Blueprint, Question, Slot, canonical_format
from .variety import select_variety

log = logging.getLogger(__name__)

_SENSITIVE_KEYS = ("correctAnswer", "correctAnswers", "explanation", "answerVariations")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class GenerationParams:
    grade: int
    subject: str
    paper: Optional[str] = None
    year: Optional[int] = None
    season: Optional[str] = None
    topic: Optional[str] = None
    mode: Optional[str] = None
    duration: Optional[float] = None
    num_questions: Optional[int] = None
    seed: Any = None
    exclude_ids: List[str] = field(default_factory=list)
    question_count: Optional[int] = None
    pool_factor: Optional[float] = None
    quick: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GenerationParams":
        excl = payload.get("excludeIds")
        return cls(
            grade=payload.get("grade"),
            subject=payload.get("subject"),
            paper=payload.get("paper"),
            year=payload.get("year"),
            season=payload.get("season"),
            topic=payload.get("topic"),
            mode=payload.get("mode"),
            duration=payload.get("duration"),
            num_questions=payload.get("numQuestions"),
            seed=payload.get("seed"),
            exclude_ids=list(excl) if isinstance(excl, list) else [],
            question_count=payload.get("questionCount"),
            pool_factor=payload.get("poolFactor"),
            quick=bool(payload.get("quick")),
        )

    @property
    def mode_key(self) -> str:
        return (self.mode or "").lower()

    @property
    def is_quick(self) -> bool:
        return self.mode_key in config.QUICK_MODES or self.quick or bool(self.duration)

    @property
    def sort_by_pqp(self) -> bool:
        return self.mode_key in config.PQP_MODES

    def base_filter(self, limit: int = 50) -> QuestionFilter:
        return QuestionFilter(
            subject=self.subject,
            grade=self.grade,
            paper=normalize_paper_format(self.paper) or None,
            year=self.year,
            season=self.season,
            limit=limit,
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "grade": self.grade, "subject": self.subject, "paper": self.paper, "year": self.year,
            "season": self.season, "topic": self.topic, "mode": self.mode, "duration": self.duration,
            "numQuestions": self.num_questions, "seed": self.seed, "questionCount": self.question_count,
            "poolFactor": self.pool_factor,
        }
        if self.exclude_ids:
            out["excludeIds"] = list(self.exclude_ids)
        if self.quick:
            out["quick"] = True
        return {k: v for k, v in out.items() if v is not None}


def scale_blueprint(blueprint: Blueprint, duration: float) -> Blueprint:
    base_total = blueprint.total_marks or config.QUICK_DEFAULT_TOTAL
    target = max(config.QUICK_MIN_TOTAL, int(math.floor(base_total * duration / config.QUICK_BASE_DURATION + 0.5)))
    ratio = target / base_total
    scaled = blueprint.scaled(ratio, floor=config.QUICK_MIN_TOPIC_MARKS)
    log.info("quick practice: %sm -> %s marks (base %s)", duration, scaled.total_marks, base_total)
    return scaled


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def public_question(slot: Slot) -> Dict[str, Any]:
    """Client-safe record: answer keys and explanations removed, ordering data kept for review."""
    rec = question_to_record(slot.question)
    for key in _SENSITIVE_KEYS:
        rec.pop(key, None)
    if "dragTargets" in rec:
        rec["dragTargets"] = [{k: v for k, v in t.items() if k != "correctPair"} for t in rec["dragTargets"]]
    rec["id"] = slot.question.id
    rec["maxMarks"] = slot.question.mark_value
    rec["questionNumber"] = slot.question_number
    if slot.allocated_topic:
        rec["allocatedTopic"] = slot.allocated_topic
        rec["allocatedMarks"] = slot.allocated_marks
    if slot.variety_score is not None:
        rec["varietyScore"] = slot.variety_score
    return rec


def _pqp_segments(slot: Slot) -> List[int]:
    raw = slot.question.pqp_number
    if raw is None and slot.question_number is not None:
        raw = str(slot.question_number)
    if not raw:
        return []
    out = []
    for seg in raw.split("."):
        m = _LEADING_INT.match(seg)
        out.append(int(m.group(1)) if m else 0)
    return out


def _number(slots: Sequence[Slot]) -> List[Slot]:
    for i, s in enumerate(slots, start=1):
        s.question_number = i
    return list(slots)


def _order(slots: List[Slot], params: GenerationParams) -> List[Slot]:
    slots = _number(slots)
    if params.sort_by_pqp and any(s.question.pqp_number for s in slots):
        keys = {id(s): _pqp_segments(s) for s in slots}
        width = max(len(k) for k in keys.values())
        # missing trailing segments count as 0, so "1" and "1.0" tie
        slots = _number(sorted(slots, key=lambda s: keys[id(s)] + [0] * (width - len(keys[id(s)]))))
    return slots


def _enrich(slots: List[Slot], repository: QuestionRepository) -> None:
    cache: Dict[str, Optional[Question]] = {}
    for s in slots:
        if s.question.has_parent:
            s.question = enrich_with_parent(s.question, repository, cache)


def _distributions(slots: Sequence[Slot]) -> Dict[str, Dict[str, Any]]:
    topics: Dict[str, int] = {}
    levels: Dict[str, int] = {}
    marks: Dict[str, float] = {}
    for s in slots:
        topics[s.topic] = topics.get(s.topic, 0) + 1
        levels[s.question.level] = levels.get(s.question.level, 0) + 1
        marks[s.topic] = marks.get(s.topic, 0) + s.question.mark_value
    return {"topicDistribution": topics, "cognitiveDistribution": levels, "topicMarksDistribution": marks}


def _compensate(repository: QuestionRepository, base: QuestionFilter,
                picks: Dict[str, List[Question]], topics: Mapping[str, int]) -> None:
    """Top up underfilled topics from a wider pool, allowing up to 150% of the allocation."""
    target = sum(topics.values())
    achieved = sum(marks_of(qs) for qs in picks.values())
    shortfall = target - achieved
    if shortfall <= 0 or shortfall <= target * config.COMPENSATION_TRIGGER:
        return
    log.warning("shortfall %s of %s marks, compensating", shortfall, target)

    for topic, allocated in topics.items():
        have = marks_of(picks[topic])
        if have >= allocated:
            continue
        need = allocated - have
        try:
            pool = repository.query_questions(base.with_(topic=topic, limit=config.COMPENSATION_POOL_LIMIT))
        except ExamError as e:
            log.warning("compensation failed for %s: %s", topic, e)
            continue
        taken = {q.id for q in picks[topic]}
        added = 0.0
        for q in answerable(pool):
            if q.id in taken:
                continue
            m = q.mark_value
            if have + added + m <= allocated * config.COMPENSATION_OVERSHOOT:
                picks[topic].append(q)
                taken.add(q.id)
                added += m
                if added >= need:
                    break
        if added:
            log.info("compensation: +%s marks for %s (now %s)", added, topic, have + added)


def _cap_with_variety(slots: List[Slot], cap: int, rng: RandomSource) -> List[Slot]:
    by_id = {id(s.question): s for s in slots}
    chosen = select_variety([s.question for s in slots], cap, rng)
    keep = []
    for sq in chosen:
        slot = by_id[id(sq.question)]
        slot.variety_score = sq.score
        keep.append(slot)
    wanted = {id(s) for s in keep}
    return [s for s in slots if id(s) in wanted]


def generate_blueprint_test(repository: QuestionRepository, params: GenerationParams,
                            rng: Optional[RandomSource] = None,
                            strategy: Optional[str] = None) -> Dict[str, Any]:
    rng = rng or make_source(params.seed)
    strategy = strategy or config.get_strategy(config.load_config())
    bp_id = blueprint_id(params.subject, params.paper, params.grade)
    blueprint = repository.get_blueprint(bp_id)
    if not blueprint.topics or not blueprint.cognitive_levels:
        log.warning("blueprint %s has no topics or cognitive levels, using legacy generation", bp_id)
        return generate_legacy_test(repository, params, rng, blueprint=blueprint)

    effective = blueprint
    if params.is_quick and params.duration:
        effective = scale_blueprint(blueprint, float(params.duration))
    base = params.base_filter()
    topics = effective.topics
    log.info("blueprint %s: %s marks across %d topics (%s)", bp_id, effective.target_total, len(topics), strategy)

    workers = max(1, min(config.TOPIC_WORKERS, len(topics)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {t: pool.submit(select_topic, repository, base, t, m, config.TOPIC_TOLERANCE)
                   for t, m in topics.items()}
        picks = {t: futures[t].result() for t in topics}

    _compensate(repository, base, picks, topics)

    slots = [Slot(question=q, allocated_topic=t, allocated_marks=topics[t])
             for t in topics for q in picks[t]]
    if not slots:
        raise NotFound(NO_QUESTIONS_MESSAGE)

    if strategy == config.STRATEGY_BALANCED:
        required = required_level_counts(effective.cognitive_levels, len(slots))
        slots = balance(slots, required, topics, repository, base,
                        max_swaps=config.BALANCE_MAX_SWAPS, tolerance=config.BALANCE_TOLERANCE)

    if params.is_quick and params.num_questions and len(slots) > params.num_questions:
        slots = _cap_with_variety(slots, int(params.num_questions), rng)

    report = compliance_report(slots, effective)
    dist = _distributions(slots)
    _enrich(slots, repository)
    slots = _order(slots, params)
    log.info("generated %d questions, %s marks, compliance %.3f",
             len(slots), marks_of(s.question for s in slots), report["overall"]["score"])

    return {
        "slots": slots,
        "totalQuestions": len(slots),
        "totalMarks": marks_of(s.question for s in slots),
        "blueprint": effective.to_dict(),
        "complianceReport": report,
        **dist,
    }


def generate_topic_test(repository: QuestionRepository, params: GenerationParams,
                        rng: Optional[RandomSource] = None) -> Dict[str, Any]:
    rng = rng or make_source(params.seed)
    count = int(params.question_count or config.TOPIC_TEST_DEFAULT_COUNT)
    factor = float(params.pool_factor or config.TOPIC_TEST_POOL_FACTOR)
    limit = max(int(count * factor), count)
    try:
        pool = answerable(repository.query_questions(params.base_filter(limit).with_(topic=params.topic)))
    except NotFound:
        raise NotFound(f"No questions available for topic: {params.topic}") from None
    if params.exclude_ids:
        seen = set(params.exclude_ids)
        before = len(pool)
        pool = [q for q in pool if q.id not in seen]
        log.info("excluded %d previously seen questions (%d remain)", before - len(pool), len(pool))

    picked = sample(pool, count, rng)
    slots = [Slot(question=q.copy(max_marks=q.marks or q.max_marks or 1), allocated_topic="", allocated_marks=0)
             for q in picked]
    _enrich(slots, repository)
    slots = _order(slots, params)
    log.info("topic test %s: %d questions", params.topic, len(slots))
    return {
        "slots": slots,
        "totalQuestions": len(slots),
        "topicDistribution": {params.topic: len(slots)},
    }


def generate_legacy_test(repository: QuestionRepository, params: GenerationParams,
                         rng: Optional[RandomSource] = None,
                         blueprint: Optional[Blueprint] = None) -> Dict[str, Any]:
    rng = rng or make_source(params.seed)
    if blueprint is None:
        blueprint = repository.get_blueprint(blueprint_id(params.subject, params.paper, params.grade))

    slots: List[Slot] = []
    if blueprint.formats:
        for section in blueprint.formats:
            count = int(section.get("questionCount") or 0)
            fmt = canonical_format(section.get("format"))
            pool = answerable(repository.query_questions(params.base_filter(count * 3)))
            if fmt:
                pool = [q for q in pool if q.format == fmt]
            marks = section.get("marksPerQuestion") or 1
            for q in sample(pool, count, rng):
                slot = Slot(question=q.copy(max_marks=marks), allocated_topic="", allocated_marks=0)
                slot.question.extra = {**slot.question.extra, "sectionFormat": section.get("format")}
                slots.append(slot)
            log.info("legacy section %s: %d questions", section.get("format"), count)
    else:
        total = blueprint.total_questions or (
            math.ceil(blueprint.total_marks / 5) if blueprint.total_marks else 0
        ) or config.LEGACY_DEFAULT_COUNT
        pool = answerable(repository.query_questions(params.base_filter(total * 2)))
        slots = [Slot(question=q.copy(max_marks=q.marks or 1), allocated_topic="", allocated_marks=0)
                 for q in sample(pool, total, rng)]

    _enrich(slots, repository)
    slots = _order(slots, params)
    return {
        "slots": slots,
        "totalQuestions": len(slots),
        "blueprint": blueprint.to_dict(),
    }


def generate_test(repository: QuestionRepository, params: GenerationParams,
                  rng: Optional[RandomSource] = None, strategy: Optional[str] = None,
                  generated_at: Optional[str] = None) -> Dict[str, Any]:
    """Top-level entry: pick a path, then render client-safe questions."""
    rng = rng or make_source(params.seed)
    if params.mode_key == "by_topic" and params.topic:
        result = generate_topic_test(repository, params, rng)
    else:
        result = None
        try:
            result = generate_blueprint_test(repository, params, rng, strategy)
        except ExamError as e:
            log.warning("blueprint generation failed, falling back to legacy: %s", e)
        if not result or not result["slots"]:
            result = generate_legacy_test(repository, params, rng)

    slots = result.pop("slots")
    out: Dict[str, Any] = {
        "questions": [public_question(s) for s in slots],
        "params": params.to_dict(),
        "generatedAt": generated_at or _now_iso(),
    }
    out.update(result)
    out["totalQuestions"] = len(slots)
    return out
