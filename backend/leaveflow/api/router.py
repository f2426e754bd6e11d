from fastapi import APIRouter

from leaveflow.api.accruals import accruals_router
from leaveflow.api.balances import staff_balance_router
from leaveflow.api.requests import requests_router
from leaveflow.api.year_end import year_end_router

api_router = APIRouter()
api_router.include_router(requests_router)
api_router.include_router(staff_balance_router)
api_router.include_router(year_end_router)
api_router.include_router(accruals_router)
