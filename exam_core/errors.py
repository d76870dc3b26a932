"""Error taxonomy surfaced to callers of the generation and grading paths."""
from __future__ import annotations


class ExamError(Exception):
    code: str = "internal"
    status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidArgument(ExamError):
    """Missing or malformed request field, or an oversized request."""

    code = "invalid-argument"
    status = 400


class NotFound(ExamError):
    """Blueprint, candidate questions or graded question ids are absent."""

    code = "not-found"
    status = 404


class ResourceExhausted(ExamError):
    code = "resource-exhausted"
    status = 429


__all__ = ["ExamError", "InvalidArgument", "NotFound", "ResourceExhausted"]
