"""Persistence for graded results.

Results are written as JSON files under ``DATA_DIR`` with a small index so a
user's history can be listed without opening every file. A database-backed
store can replace this module as long as ``save_result`` keeps its contract
of never raising into the grading path.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)

DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
RESULTS_DIR = DATA_ROOT / "results"
RESULT_INDEX_PATH = DATA_ROOT / "results_index.json"

_LOCK = threading.Lock()


def _ensure_dirs() -> None:
    RESULTS_DIR.mkdir(parents=True, exist_ok=True)
    DATA_ROOT.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        log.warning("unreadable json at %s, using default", path)
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def save_result(user_id: str, payload: Dict[str, Any]) -> Optional[str]:
    """Store one graded submission; failures are logged and swallowed."""
    try:
        _ensure_dirs()
        result_id = str(uuid.uuid4())
        record = dict(payload)
        record["id"] = result_id
        record["userId"] = user_id
        record.setdefault("createdAt", utcnow_iso())
        _write_json(RESULTS_DIR / f"{result_id}.json", record)

        stats = record.get("statistics") or {}
        with _LOCK:
            index: Dict[str, Dict[str, Any]] = _read_json(RESULT_INDEX_PATH, {})
            index[result_id] = {
                "userId": user_id,
                "createdAt": record["createdAt"],
                "gradedAt": record.get("gradedAt"),
                "subject": stats.get("subject"),
                "paper": stats.get("paper"),
                "mode": stats.get("mode"),
                "percentage": stats.get("percentage"),
                "grade": stats.get("grade"),
            }
            _write_json(RESULT_INDEX_PATH, index)
        log.info("saved result %s for user %s", result_id, user_id)
        return result_id
    except Exception:
        log.exception("failed to save result for user %s", user_id)
        return None


def load_result(result_id: str) -> Optional[Dict[str, Any]]:
    return _read_json(RESULTS_DIR / f"{result_id}.json", None)


def list_results_for_user(user_id: str) -> List[Dict[str, Any]]:
    index: Dict[str, Dict[str, Any]] = _read_json(RESULT_INDEX_PATH, {})
    out: List[Dict[str, Any]] = []
    for rid, meta in index.items():
        if meta.get("userId") == user_id:
            item = {"id": rid}
            item.update({k: v for k, v in meta.items() if k != "id"})
            out.append(item)
    out.sort(key=lambda r: r.get("createdAt", ""), reverse=True)
    return out
