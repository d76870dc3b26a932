"""Answer equivalence for short-answer questions.

Everything here is pure string/number work. The interval and algebraic
rewrite tables are deliberately small lookup lists, not a symbolic engine:
they cover the notations seen in the bank and nothing more.
"""
from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional, Tuple

from . import config
from .types import Question

_WS = re.compile(r"\s+")
_OP_SPACING = re.compile(r"\s*([=+\-*/()^])\s*")
_CARET_SPACING = re.compile(r"\s*\^\s*")
_NUMBER = re.compile(r"([+-]?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)")
_COORDS = re.compile(r"[^\d\-]*([+-]?\d+(?:\.\d+)?)[,;\s]+[^\d\-]*([+-]?\d+(?:\.\d+)?)")

# (pattern over one notation, template of the equivalent inequality)
INTERVAL_EQUIVALENTS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"x\s*∈\s*\(([^;,]+)[;,]\s*∞\)"), "x>{0}"),
    (re.compile(r"x\s*∈\s*\[([^;,]+)[;,]\s*∞\)"), "x>={0}"),
    (re.compile(r"x\s*∈\s*\(([^;,]+)[;,]\s*([^)]+)\)"), "{0}<x<{1}"),
    (re.compile(r"\(([^;,]+)[;,]\s*∞\)"), "x>{0}"),
]

ALGEBRAIC_REWRITES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"(\d+)([a-z])"), r"\1*\2"),
    (re.compile(r"([a-z])(\d+)"), r"\1*\2"),
    (re.compile(r"\^2"), "²"),
    (re.compile(r"\^3"), "³"),
    (re.compile(r"\s*\*\s*\("), "*("),
    (re.compile(r"\)\s*\*"), ")*"),
]


def normalize_text(text: Any, case_sensitive: bool = False) -> str:
    if not text or not isinstance(text, str):
        return ""
    out = text.strip()
    if not case_sensitive:
        out = out.lower()
    out = _WS.sub(" ", out)
    out = _OP_SPACING.sub(r"\1", out)
    out = out.replace("**", "^")
    out = _CARET_SPACING.sub("^", out)
    return out


def _accepted(question: Question) -> Tuple[Optional[str], List[str]]:
    correct = getattr(question, "correct_answer", None)
    variations = list(getattr(question, "answer_variations", []) or [])
    return (correct if isinstance(correct, str) else None), variations


def matches_variations(user_answer: Any, question: Question) -> bool:
    case = bool(getattr(question, "case_sensitive", False))
    mine = normalize_text(user_answer, case)
    if not mine:
        return False
    correct, variations = _accepted(question)
    if correct and mine == normalize_text(correct, case):
        return True
    return any(mine == normalize_text(v, case) for v in variations)


def extract_number(text: Any) -> Optional[float]:
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        return float(text)
    if not isinstance(text, str):
        return None
    m = _NUMBER.search(text)
    return float(m.group(1)) if m else None


def numbers_match(user_answer: Any, expected: Any, tolerance: float = 0.0) -> bool:
    mine, theirs = extract_number(user_answer), extract_number(expected)
    if mine is None or theirs is None:
        return False
    if tolerance > 0:
        return abs(mine - theirs) <= tolerance
    return abs(mine - theirs) < config.NUMERIC_EPSILON


def _coords(text: str) -> Optional[Tuple[float, float]]:
    m = _COORDS.search(text)
    if not m:
        return None
    return float(m.group(1)), float(m.group(2))


def coordinates_match(user_answer: str, expected: str, tolerance: float = 0.0) -> bool:
    mine, theirs = _coords(user_answer), _coords(expected or "")
    if mine is None or theirs is None:
        return False
    if tolerance > 0:
        return abs(mine[0] - theirs[0]) <= tolerance and abs(mine[1] - theirs[1]) <= tolerance
    return mine == theirs


def _squash(text: str) -> str:
    return "".join(text.split())


def _interval_equivalent(a: str, b: str) -> bool:
    """True when ``a`` is written in interval notation and ``b`` is its inequality form."""
    target = _squash(b)
    for pattern, template in INTERVAL_EQUIVALENTS:
        m = pattern.search(a)
        if m and _squash(template.format(*(g.strip() for g in m.groups()))) == target:
            return True
    return False


def domain_range_match(user_answer: str, question: Question) -> bool:
    if matches_variations(user_answer, question):
        return True
    correct, _ = _accepted(question)
    mine = normalize_text(user_answer)
    theirs = normalize_text(correct)
    if not mine or not theirs:
        return False
    return _interval_equivalent(mine, theirs) or _interval_equivalent(theirs, mine)


def _rewrite(text: str, rules: Iterable[Tuple[re.Pattern, str]]) -> str:
    for pattern, repl in rules:
        text = pattern.sub(repl, text)
    return text


def algebraic_match(user_answer: str, question: Question) -> bool:
    if matches_variations(user_answer, question):
        return True
    correct, _ = _accepted(question)
    mine = _rewrite(normalize_text(user_answer), ALGEBRAIC_REWRITES)
    theirs = _rewrite(normalize_text(correct), ALGEBRAIC_REWRITES)
    return bool(mine) and mine == theirs


def is_equivalent(user_answer: str, question: Question) -> bool:
    """Dispatch on the question's answer type; unknown types use text matching."""
    kind = (getattr(question, "answer_type", None) or "text").lower()
    tolerance = float(getattr(question, "tolerance", 0.0) or 0.0)
    correct, _ = _accepted(question)
    if kind == "numerical":
        return numbers_match(user_answer, correct, tolerance)
    if kind == "coordinates":
        return coordinates_match(user_answer, correct or "", tolerance)
    if kind == "domain_range":
        return domain_range_match(user_answer, question)
    if kind in ("equation", "algebraic"):
        return algebraic_match(user_answer, question)
    return matches_variations(user_answer, question)
