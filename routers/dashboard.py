from fastapi import APIRouter, Query, Request
from typing import Annotated, Optional
import logging

from dashboard_service import DashboardService
from deps import AuditDep, EmployeeDep, SessionDep
from exceptions import OnboardingError
from schemas import DashboardStatistics

dashboard_router = APIRouter(prefix="/dashboard", tags=["dashboard"])
log = logging.getLogger(__name__)


@dashboard_router.get("/statistics", response_model=DashboardStatistics, response_model_by_alias=True)
async def get_statistics(
    db_session: SessionDep,
    current_user: EmployeeDep,
    audit: AuditDep,
    request: Request,
    date_from: Annotated[Optional[str], Query(alias="from")] = None,
    date_to: Annotated[Optional[str], Query(alias="to")] = None,
):
    """
    Application counts, approval rate, risk distribution and monthly trend.
    Window defaults to the last six months.
    """
    try:
        stats = await DashboardService.get_statistics(db_session, date_from, date_to)
    except OnboardingError as e:
        await audit.log_action("GET_STATISTICS", "DASHBOARD", result="FAILURE", details=e.message, user=current_user, request=request)
        raise
    await audit.log_action("GET_STATISTICS", "DASHBOARD", user=current_user, request=request)
    return stats
