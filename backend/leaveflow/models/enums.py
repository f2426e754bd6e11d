from __future__ import annotations

import enum


class LeaveType(enum.StrEnum):
    """Kind of leave a staff member can request."""

    ANNUAL = "ANNUAL"
    SICK = "SICK"
    MATERNITY = "MATERNITY"
    PATERNITY = "PATERNITY"
    COMPASSIONATE = "COMPASSIONATE"
    STUDY = "STUDY"
    STUDY_WITH_PAY = "STUDY_WITH_PAY"
    STUDY_WITHOUT_PAY = "STUDY_WITHOUT_PAY"
    TRAINING = "TRAINING"
    SPECIAL_SERVICE = "SPECIAL_SERVICE"
    UNPAID = "UNPAID"


class RequestStatus(enum.StrEnum):
    """State machine for leave requests."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class StepStatus(enum.StrEnum):
    """Status of a single approval level."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DELEGATED = "DELEGATED"
    SKIPPED = "SKIPPED"


class BalanceChangeReason(enum.StrEnum):
    """Reason code recorded on every balance history entry."""

    DEDUCTION = "deduction"
    RESTORATION = "restoration"
    YEAR_END_CARRY_FORWARD = "year-end-carry-forward"
    YEAR_END_FORFEITURE = "year-end-forfeiture"
    ALLOCATION = "allocation"
    ACCRUAL = "accrual"


class Role(enum.StrEnum):
    """Canonical organizational roles."""

    EMPLOYEE = "EMPLOYEE"
    SUPERVISOR = "SUPERVISOR"
    UNIT_HEAD = "UNIT_HEAD"
    DIVISION_HEAD = "DIVISION_HEAD"
    DIRECTOR = "DIRECTOR"
    REGIONAL_MANAGER = "REGIONAL_MANAGER"
    HR_OFFICER = "HR_OFFICER"
    HR_DIRECTOR = "HR_DIRECTOR"
    CHIEF_DIRECTOR = "CHIEF_DIRECTOR"
    AUDITOR = "AUDITOR"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"


class DutyStation(enum.StrEnum):
    """Where a staff member is posted."""

    HQ = "HQ"
    REGION = "REGION"
    DISTRICT = "DISTRICT"
    AGENCY = "AGENCY"


class ClearanceStatus(enum.StrEnum):
    """Status of an externally tracked clearance."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class OutboxEventType(enum.StrEnum):
    """Event emitted after a committed workflow transition."""

    REQUEST_SUBMITTED = "REQUEST_SUBMITTED"
    STEP_APPROVED = "STEP_APPROVED"
    STEP_DELEGATED = "STEP_DELEGATED"
    STEP_ESCALATED = "STEP_ESCALATED"
    EXTERNAL_CLEARANCE_RECORDED = "EXTERNAL_CLEARANCE_RECORDED"
    REQUEST_APPROVED = "REQUEST_APPROVED"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
