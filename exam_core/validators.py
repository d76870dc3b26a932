from __future__ import annotations
from typing import Any, Dict, Mapping
from . import config
from .errors import InvalidArgument


def validate_generation_params(payload: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise InvalidArgument("Grade (as number) and subject are required.")
    grade = payload.get("grade")
    if grade is None or isinstance(grade, bool) or not isinstance(grade, (int, float)) or not payload.get("subject"):
        raise InvalidArgument("Grade (as number) and subject are required.")
    requested = payload.get("numQuestions") or config.DEFAULT_GENERATE_QUESTIONS
    try: requested = int(requested)
    except (TypeError, ValueError): raise InvalidArgument("numQuestions must be a number.") from None
    if requested < 1:
        raise InvalidArgument("numQuestions must be at least 1.")
    if requested > config.MAX_GENERATE_QUESTIONS:
        raise InvalidArgument(f"Cannot generate more than {config.MAX_GENERATE_QUESTIONS} questions at once.")
    out = dict(payload)
    if "numQuestions" in payload:
        out["numQuestions"] = requested
    if isinstance(grade, float) and grade.is_integer():
        out["grade"] = int(grade)
    return out


def validate_grading_params(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Returns the submissions mapping (``submissions`` or its ``answers`` alias)."""
    subs = payload.get("submissions") if isinstance(payload, Mapping) else None
    if subs is None and isinstance(payload, Mapping):
        subs = payload.get("answers")
    if not isinstance(subs, Mapping):
        raise InvalidArgument("Submissions object is required.")
    if len(subs) > config.MAX_SUBMISSIONS:
        raise InvalidArgument(f"Cannot grade more than {config.MAX_SUBMISSIONS} questions at once.")
    for value in subs.values():
        if isinstance(value, str) and len(value) > config.MAX_ANSWER_CHARS:
            raise InvalidArgument("Answer text is too long. Maximum 50,000 characters per answer.")
    if not subs:
        raise InvalidArgument("No submissions provided for grading.")
    return dict(subs)
