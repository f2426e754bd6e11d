# ruff: noqa: TC003
from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class YearEndRunPayload(BaseModel):
    """Request body for triggering year-end processing."""

    effective_date: date | None = None


class YearEndDetail(BaseModel):
    staff_id: str
    leave_type: str
    balance_before: float
    carried_forward: float
    forfeited: float
    new_balance: float


class YearEndRunResponse(BaseModel):
    """Summary of a year-end run."""

    effective_date: date
    closing_year: int
    staff_processed: int
    carried_forward: int
    forfeited: int
    skipped: int
    errors: int
    details: list[YearEndDetail]
