"""Unit tests for API request and response schemas."""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from leaveflow.exceptions import ErrorResponse
from leaveflow.models.enums import ClearanceStatus, LeaveType
from leaveflow.schemas.auth import ActorContext
from leaveflow.schemas.request import DecisionPayload, DelegatePayload, SubmitRequestPayload
from leaveflow.schemas.year_end import YearEndRunPayload

# ---------------------------------------------------------------------------
# SubmitRequestPayload
# ---------------------------------------------------------------------------


def test_submit_payload_minimal() -> None:
    p = SubmitRequestPayload(leave_type="ANNUAL", start_date=date(2025, 3, 3), end_date=date(2025, 3, 7))
    assert p.leave_type == LeaveType.ANNUAL
    assert p.declaration_accepted is False
    assert p.external_clearance_status is None
    assert p.requested_days == 5


def test_submit_payload_explicit_days_win_over_span() -> None:
    p = SubmitRequestPayload(
        leave_type="ANNUAL",
        start_date=date(2025, 3, 3),
        end_date=date(2025, 3, 9),
        days=5,
    )
    assert p.requested_days == 5


def test_submit_payload_single_day() -> None:
    p = SubmitRequestPayload(leave_type="SICK", start_date=date(2025, 3, 3), end_date=date(2025, 3, 3))
    assert p.requested_days == 1


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Annual", LeaveType.ANNUAL),
        ("Special Service", LeaveType.SPECIAL_SERVICE),
        ("StudyWithPay", LeaveType.STUDY_WITH_PAY),
        ("study-without-pay", LeaveType.STUDY_WITHOUT_PAY),
    ],
)
def test_submit_payload_accepts_legacy_leave_type_names(raw: str, expected: LeaveType) -> None:
    p = SubmitRequestPayload(leave_type=raw, start_date=date(2025, 3, 3), end_date=date(2025, 3, 3))
    assert p.leave_type == expected


def test_submit_payload_rejects_unknown_leave_type() -> None:
    with pytest.raises(ValidationError, match="Unknown leave type"):
        SubmitRequestPayload(leave_type="Sabbatical", start_date=date(2025, 3, 3), end_date=date(2025, 3, 3))


def test_submit_payload_rejects_reversed_dates() -> None:
    with pytest.raises(ValidationError, match="end_date"):
        SubmitRequestPayload(leave_type="ANNUAL", start_date=date(2025, 3, 7), end_date=date(2025, 3, 3))


@pytest.mark.parametrize("days", [0, -1])
def test_submit_payload_rejects_non_positive_days(days: float) -> None:
    with pytest.raises(ValidationError):
        SubmitRequestPayload(leave_type="ANNUAL", start_date=date(2025, 3, 3), end_date=date(2025, 3, 3), days=days)


def test_submit_payload_clearance_fields() -> None:
    p = SubmitRequestPayload.model_validate(
        {
            "leave_type": "STUDY",
            "start_date": "2025-09-01",
            "end_date": "2025-09-30",
            "external_clearance_status": "APPROVED",
            "external_clearance_reference": "SCH-2025-001",
        }
    )
    assert p.external_clearance_status == ClearanceStatus.APPROVED
    assert p.requested_days == 30


# ---------------------------------------------------------------------------
# Other payloads
# ---------------------------------------------------------------------------


def test_decision_payload_comments_optional() -> None:
    assert DecisionPayload().comments is None


def test_delegate_payload_rejects_empty_target() -> None:
    with pytest.raises(ValidationError):
        DelegatePayload(to_approver_id="")


def test_year_end_payload_defaults_to_today() -> None:
    assert YearEndRunPayload().effective_date is None
    assert YearEndRunPayload(effective_date="2026-01-01").effective_date == date(2026, 1, 1)


def test_actor_context_defaults_to_employee() -> None:
    assert ActorContext(staff_id="STAFF-001").role == "EMPLOYEE"


def test_error_response_defaults() -> None:
    body = ErrorResponse(error="NotFoundError", code="NOT_FOUND", status_code=404).model_dump()
    assert body["retryable"] is False
    assert body["reasons"] == []
    assert body["warnings"] == []
