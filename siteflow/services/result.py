"""Uniform success/failure result returned across the workflow boundary."""
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from siteflow.services.errors import WorkflowError

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """
    Either {success: True, data} or {success: False, error, code}.

    error is the short localized message meant for the end user; detail is the
    technical description meant for logs and developers.
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    code: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, data: T = None) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: str = "WorkflowError", detail: Optional[str] = None) -> "Result[T]":
        return cls(success=False, error=error, code=code, detail=detail)

    @classmethod
    def from_error(cls, exc: WorkflowError) -> "Result[T]":
        return cls.fail(exc.message, exc.code, exc.detail)

