from __future__ import annotations

from fastapi import APIRouter

from leaveflow.api.deps import AdminDep, CoreDep
from leaveflow.schemas.year_end import YearEndDetail, YearEndRunPayload, YearEndRunResponse

year_end_router = APIRouter(prefix="/year-end", tags=["year-end"])


@year_end_router.post("", response_model=YearEndRunResponse)
async def run_year_end(
    core: CoreDep,
    _admin: AdminDep,
    payload: YearEndRunPayload | None = None,
) -> YearEndRunResponse:
    """Run carry-forward and forfeiture for the year ending before the effective date (admin only)."""
    result = await core.year_end.run(payload.effective_date if payload else None)
    return YearEndRunResponse(
        effective_date=result.effective_date,
        closing_year=result.closing_year,
        staff_processed=result.staff_processed,
        carried_forward=result.carried_forward,
        forfeited=result.forfeited,
        skipped=result.skipped,
        errors=result.errors,
        details=[YearEndDetail.model_validate(detail) for detail in result.details],
    )
