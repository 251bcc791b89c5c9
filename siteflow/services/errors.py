"""
Error taxonomy for the workflow core.

Services raise these; the workflow boundary turns them into a failed Result.
Each error carries a stable code so callers can react to the condition
(e.g. prompt a reload on ConcurrentModification) instead of parsing text.
"""
from typing import Optional

from siteflow import config


MESSAGES = {
    "en": {
        "NotFound": "The requested record was not found.",
        "InvalidTransition": "This action is not allowed for your role in the current status.",
        "ValidationError": "The request is missing required information.",
        "ConcurrentModification": "The report was already modified by someone else. Reload and try again.",
        "DependencyFailure": "The operation could not be completed.",
        "DependencyFailureAt": "The operation failed at {collection}: {detail}",
        "AuditFailure": "The audit log entry could not be written.",
    },
    "ko": {
        "NotFound": "요청한 데이터를 찾을 수 없습니다.",
        "InvalidTransition": "현재 상태에서 해당 권한으로 수행할 수 없는 작업입니다.",
        "ValidationError": "필수 입력값이 누락되었습니다.",
        "ConcurrentModification": "다른 사용자가 이미 수정했습니다. 새로고침 후 다시 시도하세요.",
        "DependencyFailure": "작업을 완료하지 못했습니다.",
        "DependencyFailureAt": "{collection} 처리 중 작업이 실패했습니다: {detail}",
        "AuditFailure": "감사 로그를 기록하지 못했습니다.",
    },
}


def localized_message(code: str, locale: Optional[str] = None, **params) -> str:
    """Short user-facing message for an error code, falling back to English."""
    catalogue = MESSAGES.get(locale or config.LOCALE, MESSAGES["en"])
    text = catalogue.get(code, MESSAGES["en"].get(code, code))
    return text.format(**params) if params else text


class WorkflowError(Exception):
    """Base class for every failure reported across the workflow boundary."""
    code = "WorkflowError"

    def __init__(self, detail: Optional[str] = None, message: Optional[str] = None):
        self.detail = detail
        self.message = message or localized_message(self.code)
        super().__init__(detail or self.message)


class NotFoundError(WorkflowError):
    code = "NotFound"


class InvalidTransitionError(WorkflowError):
    """
    Raised when a role/status combination is not in the transition table.
    A caller error - never retried.
    """
    code = "InvalidTransition"


class ValidationError(WorkflowError):
    code = "ValidationError"


class ConcurrentModificationError(WorkflowError):
    """
    Raised when the stored version moved past the caller's expected version,
    either at the pre-check or at write time. Both mean "retry with fresh data".
    """
    code = "ConcurrentModification"

    def __init__(self, detail: Optional[str] = None, expected_version: Optional[int] = None,
                 current_version: Optional[int] = None):
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(detail)


class DependencyFailureError(WorkflowError):
    """A step of a cascade or multi-step operation failed; the whole batch failed."""
    code = "DependencyFailure"

    def __init__(self, detail: Optional[str] = None, collection: Optional[str] = None,
                 compensated: int = 0):
        self.collection = collection
        self.compensated = compensated
        message = None
        if collection:
            message = localized_message("DependencyFailureAt", collection=collection, detail=detail)
        super().__init__(detail, message)


class AuditFailure(WorkflowError):
    """Never aborts the primary operation; logged only."""
    code = "AuditFailure"
