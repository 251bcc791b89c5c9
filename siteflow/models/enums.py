"""Enums for the workflow core - the closed sets of statuses, roles and actions."""
from enum import Enum


class ReportStatus(str, Enum):
    """The five states a daily report can be in. No other states are allowed."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED_BY_MANAGER = "approved_by_manager"
    FINAL_APPROVED = "final_approved"
    REJECTED = "rejected"


# final_approved cannot be left; rejected can be re-submitted by the author
TERMINAL_STATUSES = frozenset({ReportStatus.FINAL_APPROVED})


class Role(str, Enum):
    """Acting roles recognised by the transition table."""
    WORKER = "worker"
    SITE_MANAGER = "site_manager"
    ADMIN = "admin"
    PARTNER = "partner"


REVIEWER_ROLES = frozenset({Role.SITE_MANAGER, Role.ADMIN})


class StepAction(str, Enum):
    """Actions a step of a multi-step operation can perform."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
