from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Iterable

from .errors import NotFound
from .question_bank import InMemoryRepository, QuestionFilter, blueprint_id, normalize_paper_format
from .types import Blueprint, Question

SAMPLE_PER_TOPIC: int = 10


def _blank_topic() -> dict[str, object]:
    return {"count": 0, "marks": 0, "questions": []}


def audit_coverage(questions: Iterable[Question], blueprint: Blueprint) -> dict[str, object]:
    """Compare answerable marks per topic with what the blueprint asks for."""
    topics: dict[str, dict[str, object]] = {}
    year_season: dict[str, dict[str, int]] = {}
    parents = 0
    answerable = 0

    for q in questions:
        key = f"{q.year or 'Unknown'} {q.season or 'Unknown'}"
        bucket = year_season.setdefault(key, {"count": 0, "marks": 0})
        bucket["count"] += 1
        if q.is_parent:
            parents += 1
            continue

        answerable += 1
        marks = q.marks or q.max_marks or 0
        bucket["marks"] += marks
        data = topics.setdefault(q.topic or "Unknown", _blank_topic())
        data["count"] += 1  # type: ignore[operator]
        data["marks"] += marks  # type: ignore[operator]
        data["questions"].append({  # type: ignore[union-attr]
            "id": q.id,
            "marks": marks,
            "format": q.format,
            "hasParent": q.has_parent,
        })

    rows: list[dict[str, object]] = []
    warnings: list[str] = []
    available_total = 0
    for topic, required in blueprint.topics.items():
        data = topics.get(topic, _blank_topic())
        available = data["marks"]
        available_total += available  # type: ignore[operator]
        shortfall = max(0, required - available)  # type: ignore[operator]
        rows.append({
            "topic": topic,
            "required": required,
            "available": available,
            "count": data["count"],
            "shortfall": shortfall,
        })
        if shortfall:
            warnings.append(f"{topic} is short by {shortfall} marks ({available}/{required})")

    extra = sorted(t for t in topics if t not in blueprint.topics)
    for topic in extra:
        warnings.append(f"{topic} has questions but is not in blueprint {blueprint.id}")

    required_total = sum(blueprint.topics.values())
    return {
        "blueprint": blueprint.id,
        "requiredMarks": required_total,
        "availableMarks": available_total,
        "parentQuestions": parents,
        "answerableQuestions": answerable,
        "topics": rows,
        "topicQuestions": {t: d["questions"] for t, d in topics.items()},
        "yearSeason": dict(sorted(year_season.items(), reverse=True)),
        "warnings": warnings,
    }


def print_report(summary: dict[str, object]) -> None:
    print(f"=== Blueprint Coverage: {summary['blueprint']} ===")
    print(f"Parent questions (not answerable): {summary['parentQuestions']}")
    print(f"Answerable questions: {summary['answerableQuestions']}")

    print("\nYear/season:")
    for key, stats in summary["yearSeason"].items():  # type: ignore[union-attr]
        print(f"  {key}: {stats['count']} questions ({stats['marks']} marks)")

    samples: dict[str, list] = summary["topicQuestions"]  # type: ignore[assignment]
    print("\nTopics:")
    for row in summary["topics"]:  # type: ignore[union-attr]
        flag = "ok  " if not row["shortfall"] else "SHORT"
        print(f"  [{flag}] {row['topic']}: {row['available']}/{row['required']} marks ({row['count']} questions)")
        listed = samples.get(row["topic"], [])
        for q in listed[:SAMPLE_PER_TOPIC]:
            suffix = " (has parent)" if q["hasParent"] else ""
            print(f"        - {q['id']}: {q['marks']}m [{q['format']}]{suffix}")
        if len(listed) > SAMPLE_PER_TOPIC:
            print(f"        ... and {len(listed) - SAMPLE_PER_TOPIC} more")

    warnings: list[str] = summary["warnings"]  # type: ignore[assignment]
    if warnings:
        print("\nWarnings:")
        for msg in warnings:
            print(f" - {msg}")
    else:
        print("\nNo warnings.")
    print(f"\nTotal: {summary['availableMarks']} available for {summary['requiredMarks']} required")


def write_summary(summary: dict[str, object], path: Path = Path("/tmp/blueprint_coverage.json")) -> str:
    text = json.dumps(summary, indent=2, sort_keys=True)
    path.write_text(text + "\n", encoding="utf-8")
    return text


def load_repository() -> InMemoryRepository:
    return InMemoryRepository.load_default()


def main(argv: list[str] | None = None) -> int:
    """``audit_bank SUBJECT PAPER GRADE [YEAR [SEASON]]``; exits 2 when any topic falls short."""
    args = list(sys.argv[1:] if argv is None else argv)
    subject = args[0] if len(args) > 0 else "mathematics"
    paper = normalize_paper_format(args[1] if len(args) > 1 else "p1")
    grade = int(args[2]) if len(args) > 2 else 12
    year = int(args[3]) if len(args) > 3 else None
    season = args[4] if len(args) > 4 else None

    repo = load_repository()
    try:
        blueprint = repo.get_blueprint(blueprint_id(subject, paper, grade))
    except NotFound as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    flt = QuestionFilter(subject=subject, grade=grade, paper=paper, year=year, season=season, limit=0)
    matching = [q for q in repo.questions if flt.matches(q)]

    summary = audit_coverage(matching, blueprint)
    print_report(summary)
    write_summary(summary)
    return 2 if summary["warnings"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
