"""
Review Scheduler - periodic compliance reviews of approved customers

Lifecycle per customer:
    (no review) -> DRAFT scheduled decision_date + 6 months -> COMPLETED
    -> optional successor DRAFT at next_review_date, and so on.

Every entry point is idempotent: inserts go through the open-review unique
index (crud.insert_review_if_absent), so reruns and concurrent runs never
produce a second open review for the same customer.
"""

import logging
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import crud
from date_utils import add_months, parse_date, today as utc_today
from exceptions import ConflictError, NotFoundError, ValidationError
from models import Customer, Review, User
from schemas import PastReview, ReviewCustomer, ReviewOut, ScheduledReview

log = logging.getLogger(__name__)

DEFAULT_INTERVAL_MONTHS = 6


def review_out(review: Review, first_name: Optional[str] = None, last_name: Optional[str] = None) -> ReviewOut:
    """Response model of a review; the customer relationship is never lazy loaded."""
    return ReviewOut(
        id=review.id,
        customer_id=review.customer_id,
        scheduled_date=review.scheduled_date,
        completed_date=review.completed_date,
        status=review.status,
        next_review_date=review.next_review_date,
        notes=review.notes,
        completed_by=review.completed_by,
        customer=ReviewCustomer(id=review.customer_id, first_name=first_name, last_name=last_name),
    )


class ReviewScheduler:
    """Creates, completes and lists customer reviews"""

    @staticmethod
    def first_review_date(
        decision_date: Optional[datetime],
        interval_months: int = DEFAULT_INTERVAL_MONTHS,
        today: Optional[date] = None,
    ) -> date:
        """decision_date + interval, or today + interval when the decision date is unknown."""
        base = decision_date.date() if isinstance(decision_date, datetime) else decision_date
        return add_months(base or today or utc_today(), interval_months)

    @staticmethod
    def next_cycle_date(
        decision_date: Optional[datetime],
        interval_months: int = DEFAULT_INTERVAL_MONTHS,
        today: Optional[date] = None,
    ) -> date:
        """First date on the customer's review cycle that is not before today."""
        today = today or utc_today()
        base = decision_date.date() if isinstance(decision_date, datetime) else (decision_date or today)
        cycles = 1
        candidate = add_months(base, interval_months)
        while candidate < today:
            cycles += 1
            candidate = add_months(base, interval_months * cycles)
        return candidate

    @staticmethod
    async def ensure_first_review(
        db: AsyncSession,
        customer_id: int,
        decision_date: Optional[datetime],
        interval_months: int = DEFAULT_INTERVAL_MONTHS,
    ) -> Optional[ScheduledReview]:
        """Schedule a customer's first review if they have no review at all."""
        if await crud.customer_has_reviews(db, customer_id):
            return None

        scheduled_date = ReviewScheduler.first_review_date(decision_date, interval_months)
        review_id = await crud.insert_review_if_absent(db, customer_id, scheduled_date)
        if review_id is None:
            log.info(f"Review for customer {customer_id} created concurrently, skipping")
            return None

        log.info(f"Review {review_id} scheduled for customer {customer_id} on {scheduled_date.isoformat()}")
        return ScheduledReview(customer_id=customer_id, scheduled_date=scheduled_date)

    @staticmethod
    async def backfill(
        db: AsyncSession,
        interval_months: int = DEFAULT_INTERVAL_MONTHS,
        skip_customer_id: Optional[int] = None,
    ) -> List[ScheduledReview]:
        """
        Create the missing first review of every APPROVED customer that has none.

        Args:
            skip_customer_id: customer already handled by the caller

        Returns:
            the reviews created by this run
        """
        created = []
        for customer_id, decision_date in await crud.get_approved_customers(db):
            if customer_id == skip_customer_id:
                continue
            scheduled = await ReviewScheduler.ensure_first_review(db, customer_id, decision_date, interval_months)
            if scheduled:
                created.append(scheduled)

        log.info(f"Backfill created {len(created)} review(s)")
        return created

    @staticmethod
    async def on_customer_approved(
        db: AsyncSession,
        customer: Customer,
        interval_months: int = DEFAULT_INTERVAL_MONTHS,
    ) -> Tuple[bool, List[ScheduledReview]]:
        """
        Approval cascade: first review for the approved customer, then a
        backfill of every other approved customer still missing one.

        Returns:
            (first review created, backfilled reviews)
        """
        first = await ReviewScheduler.ensure_first_review(db, customer.id, customer.decision_date, interval_months)
        backfilled = await ReviewScheduler.backfill(db, interval_months, skip_customer_id=customer.id)
        return first is not None, backfilled

    @staticmethod
    async def run_scheduler(
        db: AsyncSession,
        interval_months: int = DEFAULT_INTERVAL_MONTHS,
        today: Optional[date] = None,
    ) -> List[ScheduledReview]:
        """
        Periodic catch-up: every APPROVED customer without an open (DRAFT)
        review gets one on the next date of its cycle that is not in the past.
        Customers whose open review is overdue are left to the overdue list.
        """
        today = today or utc_today()
        created = []
        for customer_id, decision_date in await crud.get_approved_customers(db):
            if await crud.customer_has_open_review(db, customer_id):
                continue
            scheduled_date = ReviewScheduler.next_cycle_date(decision_date, interval_months, today)
            review_id = await crud.insert_review_if_absent(db, customer_id, scheduled_date)
            if review_id is not None:
                created.append(ScheduledReview(customer_id=customer_id, scheduled_date=scheduled_date))

        log.info(f"Review scheduler created {len(created)} review(s)")
        return created

    @staticmethod
    async def complete_review(
        db: AsyncSession,
        review_id: int,
        completed_date: Optional[str],
        notes: Optional[str] = None,
        next_review_date: Optional[str] = None,
        completed_by: Optional[User] = None,
    ) -> Review:
        """
        Mark a review COMPLETED. When next_review_date is given, a successor
        DRAFT review is scheduled on that date.
        """
        if not completed_date:
            raise ValidationError("completedDate required")
        completed_on = parse_date(completed_date)
        if completed_on is None:
            raise ValidationError("completedDate must be a date (YYYY-MM-DD)")
        next_on = parse_date(next_review_date) if next_review_date else None
        if next_review_date and next_on is None:
            raise ValidationError("nextReviewDate must be a date (YYYY-MM-DD)")

        review = await crud.get_review(db, review_id)
        if review is None:
            raise NotFoundError("Review not found")
        if review.status == "COMPLETED":
            raise ConflictError("Review already completed")

        review.status = "COMPLETED"
        review.completed_date = completed_on
        review.notes = notes or None
        review.next_review_date = next_on
        review.completed_by = completed_by.id if completed_by is not None else None
        db.add(review)
        await db.commit()
        await db.refresh(review)
        log.info(f"Review {review.id} for customer {review.customer_id} completed on {completed_on.isoformat()}")

        if next_on is not None:
            successor_id = await crud.insert_review_if_absent(db, review.customer_id, next_on)
            if successor_id is None:
                log.warning(f"Customer {review.customer_id} already has an open review, next review not created")
            else:
                log.info(f"Next review {successor_id} for customer {review.customer_id} scheduled on {next_on.isoformat()}")

        return review

    # -----------------------
    #  QUERIES
    # -----------------------
    @staticmethod
    async def list_upcoming(
        db: AsyncSession,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        today: Optional[date] = None,
    ) -> List[ReviewOut]:
        query = (
            select(Review, Customer.first_name, Customer.last_name)
            .join(Customer, Customer.id == Review.customer_id)
            .where(Review.scheduled_date >= (date_from or today or utc_today()))
        )
        if date_to is not None:
            query = query.where(Review.scheduled_date <= date_to)
        result = await db.execute(query.order_by(Review.scheduled_date.asc(), Review.id.asc()))
        return [review_out(*row) for row in result.all()]

    @staticmethod
    async def list_overdue(db: AsyncSession, today: Optional[date] = None) -> List[ReviewOut]:
        result = await db.execute(
            select(Review, Customer.first_name, Customer.last_name)
            .join(Customer, Customer.id == Review.customer_id)
            .where(Review.scheduled_date < (today or utc_today()), Review.status == "DRAFT")
            .order_by(Review.scheduled_date.asc(), Review.id.asc())
        )
        return [review_out(*row) for row in result.all()]

    @staticmethod
    async def list_for_customer(db: AsyncSession, customer_id: int) -> List[ReviewOut]:
        result = await db.execute(
            select(Review, Customer.first_name, Customer.last_name)
            .join(Customer, Customer.id == Review.customer_id)
            .where(Review.customer_id == customer_id)
            .order_by(Review.scheduled_date.desc(), Review.id.desc())
        )
        return [review_out(*row) for row in result.all()]

    @staticmethod
    async def list_past_with_notes(db: AsyncSession, customer_id: int) -> List[PastReview]:
        result = await db.execute(
            select(Review)
            .where(Review.customer_id == customer_id, Review.notes.is_not(None))
            .order_by(Review.completed_date.desc().nulls_last(), Review.id.desc())
        )
        return [
            PastReview(
                id=review.id,
                completed_date=review.completed_date,
                notes=review.notes,
                scheduled_date=review.scheduled_date,
            )
            for review in result.scalars().all()
        ]
