from fastapi import APIRouter, Query
from typing import Annotated, Optional
import logging

import crud
from date_utils import parse_datetime
from deps import EmployeeDep, SessionDep
from exceptions import ValidationError
from schemas import AuditLogOut, AuditLogPage

audit_router = APIRouter(tags=["audit"])
log = logging.getLogger(__name__)


@audit_router.get("/audit-logs", response_model=AuditLogPage)
async def get_audit_logs(
    db_session: SessionDep,
    current_user: EmployeeDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    user_id: Optional[int] = None,
    date_from: Annotated[Optional[str], Query(alias="from")] = None,
    date_to: Annotated[Optional[str], Query(alias="to")] = None,
):
    """
    Retrieve audit logs, newest first.

    RULE: These logs are immutable - there is no endpoint to change or delete them.
    """
    start = parse_datetime(date_from) if date_from else None
    end = parse_datetime(date_to) if date_to else None
    if (date_from and start is None) or (date_to and end is None):
        raise ValidationError("from and to must be ISO-8601 dates")

    logs, total = await crud.get_audit_logs(
        db_session, skip=(page - 1) * limit, limit=limit, user_id=user_id, date_from=start, date_to=end
    )
    return AuditLogPage(logs=[AuditLogOut.model_validate(entry) for entry in logs], total=total, page=page)
