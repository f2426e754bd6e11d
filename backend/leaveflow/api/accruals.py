from __future__ import annotations

from fastapi import APIRouter

from leaveflow.api.deps import AdminDep, CoreDep
from leaveflow.schemas.accrual import AccrualRunPayload, AccrualRunResponse

accruals_router = APIRouter(prefix="/accruals", tags=["accruals"])


@accruals_router.post("", response_model=AccrualRunResponse)
async def run_accruals(
    core: CoreDep,
    _admin: AdminDep,
    payload: AccrualRunPayload | None = None,
) -> AccrualRunResponse:
    """Credit the monthly accrual for the period containing the accrual date (admin only)."""
    result = await core.accrual.run(payload.accrual_date if payload else None)
    return AccrualRunResponse(
        accrual_date=result.accrual_date,
        period=result.period,
        processed=result.processed,
        accrued=result.accrued,
        skipped=result.skipped,
        errors=result.errors,
    )
