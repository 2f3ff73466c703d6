from fastapi import APIRouter, Query, Request
from typing import Annotated, Optional
import logging

from customer_service import CustomerService
from date_utils import parse_date
from deps import AuditDep, CurrentUserDep, EmployeeDep, SessionDep, SettingsDep
from exceptions import ValidationError
from review_service import ReviewScheduler, review_out
from schemas import (
    ApproveAndScheduleResponse,
    BackfillResponse,
    PastReviewResponse,
    ReviewCompleteRequest,
    ReviewCompleteResponse,
    ReviewListResponse,
    SchedulerRunResponse,
)

reviews_router = APIRouter(prefix="/reviews", tags=["reviews"])
log = logging.getLogger(__name__)


def _query_date(value: Optional[str], name: str):
    if not value:
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"{name} must be a date (YYYY-MM-DD)")
    return parsed


@reviews_router.post("/customers/{customer_id}/approve", response_model=ApproveAndScheduleResponse)
async def approve_and_schedule(
    customer_id: int,
    db_session: SessionDep,
    current_user: EmployeeDep,
    app_settings: SettingsDep,
    audit: AuditDep,
    request: Request,
):
    """Approve a customer, schedule their first review and backfill other approved customers."""
    customer, review_created, backfilled = await CustomerService.approve(
        db_session, current_user, customer_id, app_settings.REVIEW_INTERVAL_MONTHS
    )
    await audit.log_action(
        "APPROVE_APPLICATION", "CUSTOMER", customer.id,
        details=f"reviewCreated={review_created} backfilled={len(backfilled)}",
        user=current_user, request=request,
    )
    if review_created:
        message = f"Customer approved and first review created; backfilled {len(backfilled)} other customers"
    else:
        message = f"Customer approved (review already exists); backfilled {len(backfilled)} other customers"
    return ApproveAndScheduleResponse(message=message, reviewCreated=review_created, backfilled=len(backfilled))


@reviews_router.post("/backfill", response_model=BackfillResponse)
async def backfill_reviews(
    db_session: SessionDep,
    current_user: EmployeeDep,
    app_settings: SettingsDep,
    audit: AuditDep,
    request: Request,
):
    created = await ReviewScheduler.backfill(db_session, app_settings.REVIEW_INTERVAL_MONTHS)
    await audit.log_action("BACKFILL_REVIEWS", "REVIEW", details=f"created={len(created)}", user=current_user, request=request)
    return BackfillResponse(
        message=f"Created {len(created)} new reviews for approved customers without reviews.",
        createdReviews=created,
    )


@reviews_router.get("/upcoming", response_model=ReviewListResponse)
async def upcoming_reviews(
    db_session: SessionDep,
    current_user: EmployeeDep,
    date_from: Annotated[Optional[str], Query(alias="from")] = None,
    date_to: Annotated[Optional[str], Query(alias="to")] = None,
):
    reviews = await ReviewScheduler.list_upcoming(
        db_session,
        date_from=_query_date(date_from, "from"),
        date_to=_query_date(date_to, "to"),
    )
    return ReviewListResponse(reviews=reviews)


@reviews_router.get("/overdue", response_model=ReviewListResponse)
async def overdue_reviews(db_session: SessionDep, current_user: EmployeeDep):
    return ReviewListResponse(reviews=await ReviewScheduler.list_overdue(db_session))


@reviews_router.put("/{review_id}/complete", response_model=ReviewCompleteResponse)
async def complete_review(
    review_id: int,
    payload: ReviewCompleteRequest,
    db_session: SessionDep,
    current_user: EmployeeDep,
    audit: AuditDep,
    request: Request,
):
    review = await ReviewScheduler.complete_review(
        db_session,
        review_id,
        completed_date=payload.completedDate,
        notes=payload.notes,
        next_review_date=payload.nextReviewDate,
        completed_by=current_user,
    )
    await audit.log_action(
        "COMPLETE_REVIEW", "REVIEW", review.id,
        details=f"customer={review.customer_id} next={payload.nextReviewDate or '-'}",
        user=current_user, request=request,
    )
    return ReviewCompleteResponse(review=review_out(review))


@reviews_router.get("/customers/{customer_id}/reviews", response_model=ReviewListResponse)
async def customer_reviews(customer_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    await CustomerService.get_accessible(db_session, current_user, customer_id)
    return ReviewListResponse(reviews=await ReviewScheduler.list_for_customer(db_session, customer_id))


@reviews_router.get("/customer/{customer_id}", response_model=PastReviewResponse)
async def customer_past_reviews(customer_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    """Completed reviews of a customer that carry reviewer notes."""
    await CustomerService.get_accessible(db_session, current_user, customer_id)
    return PastReviewResponse(pastReviews=await ReviewScheduler.list_past_with_notes(db_session, customer_id))


@reviews_router.post("/admin/run-review-scheduler", response_model=SchedulerRunResponse)
async def run_review_scheduler(
    db_session: SessionDep,
    current_user: EmployeeDep,
    app_settings: SettingsDep,
    audit: AuditDep,
    request: Request,
):
    created = await ReviewScheduler.run_scheduler(db_session, app_settings.REVIEW_INTERVAL_MONTHS)
    await audit.log_action("RUN_REVIEW_SCHEDULER", "REVIEW", details=f"created={len(created)}", user=current_user, request=request)
    return SchedulerRunResponse(created=created)
