from __future__ import annotations
from fastapi import BackgroundTasks, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict
import logging, os, threading, time, typing as t

from exam_core import config
from exam_core.errors import ExamError, ResourceExhausted
from exam_core.generator import GenerationParams, generate_test
from exam_core.grading import grade_submission
from exam_core.question_bank import InMemoryRepository
from exam_core.validators import validate_generation_params, validate_grading_params
from . import storage

log = logging.getLogger(__name__)

CFG = config.load_config()
REPO = (InMemoryRepository.from_json(CFG["QUESTION_BANK_PATH"]) if CFG.get("QUESTION_BANK_PATH")
        else InMemoryRepository.load_default())
STRATEGY = config.get_strategy(CFG)

# user id -> monotonic time of the last generation request
_LAST_GENERATED: dict[str, float] = {}
_RATE_LOCK = threading.Lock()

app = FastAPI(title="Exam Paper API")


@app.get("/")
def root():
    return {"status": "ok", "service": "exam-paper-api"}


ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


# ---- Schemas ----
# Field types stay loose so malformed values reach the validators and come back as 400s.
class GenerateReq(BaseModel):
    model_config = ConfigDict(extra="allow")

    grade: t.Any = None
    subject: t.Any = None
    paper: str | None = None
    year: int | None = None
    season: str | None = None
    topic: str | None = None
    mode: str | None = None
    duration: float | None = None
    numQuestions: t.Any = None
    seed: int | str | None = None
    excludeIds: list[str] | None = None


class GradeReq(BaseModel):
    model_config = ConfigDict(extra="allow")

    submissions: t.Any = None
    answers: t.Any = None
    subject: str | None = None
    paper: str | None = None
    mode: str | None = None
    totalQuestions: int | None = None
    durationMinutes: float | None = None
    sessionDurationSeconds: float | None = None
    submittedAt: str | None = None
    flags: dict[str, t.Any] | None = None


# ---- Helpers ----
def _raise_http(exc: Exception) -> t.NoReturn:
    if isinstance(exc, ExamError):
        raise HTTPException(exc.status, exc.message) from exc
    log.exception("unhandled error")
    raise HTTPException(500, "internal") from exc


def _check_rate(user_id: str | None) -> None:
    if not user_id:
        return
    now = time.monotonic()
    with _RATE_LOCK:
        last = _LAST_GENERATED.get(user_id)
        if last is not None and now - last < config.RATE_LIMIT_SECONDS:
            raise ResourceExhausted("Please wait a few seconds before generating another test.")
        _LAST_GENERATED[user_id] = now


# ---- Health ----
@app.get("/health")
def health():
    return {
        "questions": len(REPO),
        "strategy": STRATEGY,
        "data_dir": str(storage.DATA_ROOT),
    }


# ---- Tests ----
@app.post("/tests/generate")
def generate(req: GenerateReq, x_user_id: str | None = Header(default=None)):
    try:
        payload = validate_generation_params(req.model_dump(exclude_none=True))
        if "seed" not in payload and CFG.get("SEED") is not None:
            payload["seed"] = CFG["SEED"]
        _check_rate(x_user_id)
        params = GenerationParams.from_payload(payload)
        log.info("generate for user %s: %s", x_user_id, params.to_dict())
        return generate_test(REPO, params, strategy=STRATEGY)
    except Exception as e:
        _raise_http(e)


@app.post("/tests/grade")
def grade(req: GradeReq, background: BackgroundTasks, x_user_id: str | None = Header(default=None)):
    body = req.model_dump(exclude_none=True, exclude={"submissions", "answers"})
    # unanswered questions arrive as nulls and must survive the dump
    if req.submissions is not None:
        body["submissions"] = req.submissions
    if req.answers is not None:
        body["answers"] = req.answers
    try:
        submissions = validate_grading_params(body)
        metadata = {k: v for k, v in body.items() if k not in ("submissions", "answers")}
        return grade_submission(
            REPO,
            submissions,
            user_id=x_user_id,
            metadata=metadata,
            save_result=lambda uid, payload: background.add_task(storage.save_result, uid, payload),
        )
    except Exception as e:
        _raise_http(e)


@app.get("/users/{user_id}/results")
def list_results(user_id: str):
    return {"results": storage.list_results_for_user(user_id)}


@app.get("/results/{result_id}")
def get_result(result_id: str):
    result = storage.load_result(result_id)
    if not result:
        raise HTTPException(404, "result not found")
    return result
