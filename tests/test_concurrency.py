"""
Tests for the optimistic concurrency guard.

These tests prove:
- A stale expected_version never overwrites a newer edit
- The conditional write catches a writer that slips in after the version check
- Successful edits bump the version by exactly one and persist the patch
"""
from datetime import date

import pytest
from sqlalchemy import text

from siteflow.models.audit import AuditLogEntry, AuditAction
from siteflow.models.enums import ReportStatus
from siteflow.services.concurrency import VersionGuard
from siteflow.services.errors import ConcurrentModificationError, NotFoundError, ValidationError
from siteflow.services.state_machine import StateMachine


class TestVersionCheck:
    """Pre-check of the stored version."""

    def test_matching_version_applies_patch(self, db_session, sample_report):
        guard = VersionGuard(db_session)

        report = guard.update_if_version_matches(sample_report.id, 1, {"content": "Updated content"})

        assert report.version == 2
        assert report.content == "Updated content"

    @pytest.mark.parametrize("expected", [0, 2, 5])
    def test_mismatched_version_is_a_no_op(self, db_session, sample_report, expected):
        """
        INVARIANT: Any expected_version other than the stored one fails and leaves the report unchanged.
        """
        guard = VersionGuard(db_session)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            guard.update_if_version_matches(sample_report.id, expected, {"content": "Overwrite"})

        assert exc_info.value.current_version == 1
        db_session.refresh(sample_report)
        assert sample_report.content == "Original content"
        assert sample_report.version == 1

    def test_missing_report(self, db_session):
        guard = VersionGuard(db_session)

        with pytest.raises(NotFoundError):
            guard.update_if_version_matches("missing", 1, {"content": "x"})

    def test_stale_writer_loses(self, db_session, sample_report):
        """
        SCENARIO: A and B both read version 1. A writes first; B is told to retry
        and A's content survives.
        """
        guard = VersionGuard(db_session)

        first = guard.update_if_version_matches(sample_report.id, 1, {"content": "A"})
        assert first.version == 2

        with pytest.raises(ConcurrentModificationError):
            guard.update_if_version_matches(sample_report.id, 1, {"content": "B"})

        db_session.refresh(sample_report)
        assert sample_report.content == "A"
        assert sample_report.version == 2

    def test_successive_edits_increment_by_one(self, db_session, sample_report):
        guard = VersionGuard(db_session)

        for version in range(1, 5):
            report = guard.update_if_version_matches(sample_report.id, version, {"total_workers": version * 3})
            assert report.version == version + 1

        db_session.refresh(sample_report)
        assert sample_report.total_workers == 12
        assert sample_report.version == 5

    def test_patch_round_trips(self, db_session, sample_report):
        guard = VersionGuard(db_session)
        patch = {
            "work_date": date(2025, 3, 14),
            "member_name": "Formwork crew",
            "npc1000_used": 12.5,
            "issues": "Crane delayed",
        }

        guard.update_if_version_matches(sample_report.id, 1, patch)

        db_session.expire_all()
        stored = guard.load(sample_report.id)
        for field, value in patch.items():
            assert getattr(stored, field) == value


class TestConditionalWrite:
    """The write itself is conditioned on the version, closing the check-then-act gap."""

    def test_writer_between_check_and_write_is_detected(self, db_session, sample_report):
        guard = VersionGuard(db_session)
        original_check = guard.check_version

        def check_then_concurrent_edit(report, expected_version):
            original_check(report, expected_version)
            # Another request commits while this one holds the version-1 snapshot
            db_session.execute(
                text("UPDATE daily_reports SET content = 'Other tab', version = version + 1 WHERE id = :id"),
                {"id": report.id}
            )
            db_session.commit()

        guard.check_version = check_then_concurrent_edit

        with pytest.raises(ConcurrentModificationError):
            guard.update_if_version_matches(sample_report.id, 1, {"content": "Mine"})

        db_session.expire_all()
        stored = guard.load(sample_report.id)
        assert stored.content == "Other tab"
        assert stored.version == 2

    def test_conditional_write_with_old_version_matches_nothing(self, db_session, sample_report):
        guard = VersionGuard(db_session)
        guard.update_if_version_matches(sample_report.id, 1, {"content": "A"})

        with pytest.raises(ConcurrentModificationError):
            guard.conditional_write(sample_report.id, 1, {"content": "B"})


class TestPatchValidation:
    """Only content fields can be patched."""

    @pytest.mark.parametrize("field", ["status", "version", "id", "created_by", "approved_at", "rejection_reason"])
    def test_protected_fields_are_refused(self, db_session, sample_report, field):
        guard = VersionGuard(db_session)

        with pytest.raises(ValidationError):
            guard.update_if_version_matches(sample_report.id, 1, {field: "x"})

        db_session.refresh(sample_report)
        assert sample_report.version == 1
        assert sample_report.status == ReportStatus.DRAFT

    def test_empty_patch_is_refused(self, db_session, sample_report):
        guard = VersionGuard(db_session)

        with pytest.raises(ValidationError):
            guard.update_if_version_matches(sample_report.id, 1, {})


class TestSharedVersioning:
    """Status transitions and content edits share one version counter."""

    def test_edit_after_transition_needs_fresh_version(self, db_session, sample_report):
        sm = StateMachine(db_session)
        sm.advance(sample_report.id, "worker")

        with pytest.raises(ConcurrentModificationError):
            sm.guard.update_if_version_matches(sample_report.id, 1, {"content": "Late edit"})

        report = sm.guard.update_if_version_matches(sample_report.id, 2, {"content": "Fresh edit"})
        assert report.version == 3
        assert report.status == ReportStatus.PENDING_APPROVAL


class TestServiceBoundary:
    def test_conflict_result(self, service, sample_report):
        service.update_if_version_matches(sample_report.id, 1, {"content": "A"})

        result = service.update_if_version_matches(sample_report.id, 1, {"content": "B"})

        assert result.success is False
        assert result.code == "ConcurrentModification"
        assert "someone else" in result.error

    def test_update_is_audited_with_before_and_after(self, service, db_session, sample_report):
        result = service.update_if_version_matches(sample_report.id, 1, {"content": "A"}, user_id="worker-1")

        assert result.success is True
        entry = db_session.query(AuditLogEntry).filter(
            AuditLogEntry.entity_id == sample_report.id,
            AuditLogEntry.action == AuditAction.UPDATE
        ).one()
        assert entry.changes == {"content": {"from": "Original content", "to": "A"}}
        assert entry.metadata_json == {"version": 2}

    def test_string_values_are_converted_to_column_types(self, service, db_session, sample_report):
        result = service.update_if_version_matches(
            sample_report.id, 1, {"work_date": "2025-03-14", "total_workers": "8"}
        )

        assert result.success is True
        assert result.data.work_date == date(2025, 3, 14)
        assert result.data.total_workers == 8

    @pytest.mark.parametrize("patch", [
        {"work_date": "not-a-date"},
        {"total_workers": "many"},
        {"total_workers": -1},
    ])
    def test_badly_typed_values_are_validation_errors(self, service, db_session, sample_report, patch):
        result = service.update_if_version_matches(sample_report.id, 1, patch)

        assert result.success is False
        assert result.code == "ValidationError"
        db_session.refresh(sample_report)
        assert sample_report.version == 1
