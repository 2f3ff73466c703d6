"""
Audit Logging Service - append-only audit trail for onboarding actions
"""

import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import crud

log = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 2000


class AuditService:
    """
    Writes audit rows in a session of its own, so a failed audit write can
    neither fail nor roll back the operation being audited.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def log_action(
        self,
        action_type: str,
        entity_type: str,
        entity_id: Optional[int] = None,
        result: str = "SUCCESS",
        details: Optional[Any] = None,
        user: Optional[Any] = None,
        request: Optional[Request] = None,
    ) -> bool:
        """
        Log audit event (immutable append-only)

        Actions: REGISTER, LOGIN, LOGOUT, CREATE_APPLICATION, SUBMIT_APPLICATION,
                 UPDATE_CUSTOMER, APPROVE_APPLICATION, REJECT_APPLICATION,
                 CALCULATE_RISK, COMPLETE_REVIEW, UPLOAD_DOCUMENTS, GET_STATISTICS, ...
        Entity types: USER, EMPLOYEE, CUSTOMER, REVIEW, DOCUMENT, DASHBOARD

        Returns False instead of raising when the write fails.
        """
        safe_details = str(details)[:MAX_DETAILS_LENGTH] if details is not None else None
        try:
            async with self.session_factory() as db:
                await crud.create_audit_log(
                    db,
                    user_id=getattr(user, "id", None),
                    user_role=getattr(user, "role", None),
                    action_type=action_type,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    ip_address=_client_ip(request),
                    user_agent=request.headers.get("user-agent") if request is not None else None,
                    result=result,
                    details=safe_details,
                )
            return True
        except Exception:
            # never let audit errors reach the main flow
            log.exception(f"Error writing audit log {action_type} {entity_type}:{entity_id}")
            return False


def _client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
