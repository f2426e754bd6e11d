# ruff: noqa: TC003
from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class AccrualRunPayload(BaseModel):
    """Request body for triggering a monthly accrual run."""

    accrual_date: date | None = None


class AccrualRunResponse(BaseModel):
    """Summary of an accrual run."""

    accrual_date: date
    period: str
    processed: int
    accrued: int
    skipped: int
    errors: int
