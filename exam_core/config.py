from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


TOPIC_TOLERANCE: float = 0.30
TOPIC_POOL_LIMIT: int = 50
COMPENSATION_POOL_LIMIT: int = 100
COMPENSATION_TRIGGER: float = 0.10
COMPENSATION_OVERSHOOT: float = 1.5

TOPIC_COMPLIANCE_TOLERANCE: float = 0.20
MARKS_COMPLIANCE_TOLERANCE: float = 0.20
COGNITIVE_COMPLIANCE_TOLERANCE: float = 0.10

BALANCE_MAX_SWAPS: int = 50
BALANCE_TOLERANCE: float = 0.10
BALANCE_TARGET_SCORE: float = 0.95
BALANCE_SKIP_SCORE: float = 0.80
BALANCE_DEGRADE_LIMIT: float = 0.95
BALANCE_CANDIDATE_LIMIT: int = 10

STRATEGY_MARKS_ONLY = "marks_only"
STRATEGY_BALANCED = "balanced"
SELECTION_STRATEGY: str = STRATEGY_MARKS_ONLY

QUICK_MODES: tuple[str, ...] = ("sprint", "quick_practice")
PQP_MODES: tuple[str, ...] = ("full_exam", "pqp")
QUICK_BASE_DURATION: int = 150
QUICK_DEFAULT_TOTAL: int = 150
QUICK_MIN_TOTAL: int = 10
QUICK_MIN_TOPIC_MARKS: int = 2

TOPIC_TEST_DEFAULT_COUNT: int = 10
TOPIC_TEST_POOL_FACTOR: int = 5
LEGACY_DEFAULT_COUNT: int = 20
DEFAULT_LEVEL: str = "Level 1"

ID_BATCH_LIMIT: int = 10
TOPIC_WORKERS: int = 8

MAX_GENERATE_QUESTIONS: int = 100
DEFAULT_GENERATE_QUESTIONS: int = 50
MAX_SUBMISSIONS: int = 100
MAX_ANSWER_CHARS: int = 50_000
RATE_LIMIT_SECONDS: float = 3.0

NUMERIC_EPSILON: float = 1e-10

DEBUG_SEED: int | None = None

# // env overrides for staging/ops; defaults remain conservative.
TOPIC_TOLERANCE = _env_float("TOPIC_TOLERANCE", TOPIC_TOLERANCE)
TOPIC_POOL_LIMIT = _env_int("TOPIC_POOL_LIMIT", TOPIC_POOL_LIMIT)
BALANCE_MAX_SWAPS = _env_int("BALANCE_MAX_SWAPS", BALANCE_MAX_SWAPS)
SELECTION_STRATEGY = _env_str("SELECTION_STRATEGY", SELECTION_STRATEGY)
ID_BATCH_LIMIT = _env_int("ID_BATCH_LIMIT", ID_BATCH_LIMIT)
TOPIC_WORKERS = _env_int("TOPIC_WORKERS", TOPIC_WORKERS)
RATE_LIMIT_SECONDS = _env_float("RATE_LIMIT_SECONDS", RATE_LIMIT_SECONDS)
_seed_raw = os.getenv("DEBUG_SEED")
DEBUG_SEED = int(_seed_raw) if _seed_raw and _seed_raw.strip().lstrip("-").isdigit() else None


def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError): cfg = {}
    e = os.environ
    if e.get("SELECTION_STRATEGY"): cfg["SELECTION_STRATEGY"] = e.get("SELECTION_STRATEGY")
    if e.get("BALANCE_ENABLED"): cfg["BALANCE_ENABLED"] = _env_bool("BALANCE_ENABLED", False)
    if e.get("QUESTION_BANK_PATH"): cfg["QUESTION_BANK_PATH"] = e.get("QUESTION_BANK_PATH")
    if e.get("SEED"):
        raw = e.get("SEED").strip()
        cfg["SEED"] = int(raw) if raw.lstrip("-").isdigit() else raw
    return cfg
def get_strategy(cfg: dict) -> str:
    if cfg.get("BALANCE_ENABLED"): return STRATEGY_BALANCED
    s = (cfg.get("SELECTION_STRATEGY") or SELECTION_STRATEGY).lower().strip()
    return s if s in (STRATEGY_MARKS_ONLY, STRATEGY_BALANCED) else STRATEGY_MARKS_ONLY
