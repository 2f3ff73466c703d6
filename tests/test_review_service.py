"""Tests for review scheduling, backfill and completion."""

import asyncio
from datetime import date, datetime

import pytest
from sqlalchemy import func, select

import crud
from customer_service import CustomerService
from date_utils import add_months, today
from exceptions import ConflictError, NotFoundError, ValidationError
from models import Review
from review_service import ReviewScheduler


async def _reviews(db, customer_id):
    db.expire_all()
    result = await db.execute(select(Review).where(Review.customer_id == customer_id).order_by(Review.id))
    return list(result.scalars().all())


class TestScheduleDates:

    def test_first_review_is_six_months_after_decision(self):
        assert ReviewScheduler.first_review_date(datetime(2024, 1, 10, 15, 30)) == date(2024, 7, 10)

    def test_first_review_without_decision_date_uses_today(self):
        assert ReviewScheduler.first_review_date(None, today=date(2025, 5, 1)) == date(2025, 11, 1)

    def test_next_cycle_steps_past_today(self):
        decision = datetime(2023, 1, 31)
        assert ReviewScheduler.next_cycle_date(decision, today=date(2025, 3, 1)) == date(2025, 7, 31)
        assert ReviewScheduler.next_cycle_date(decision, today=date(2023, 2, 1)) == date(2023, 7, 31)

    def test_next_cycle_keeps_date_equal_to_today(self):
        assert ReviewScheduler.next_cycle_date(datetime(2024, 1, 1), today=date(2024, 7, 1)) == date(2024, 7, 1)


class TestApprovalCascade:

    async def test_approval_creates_exactly_one_review(self, db, make_customer, employee):
        customer = await make_customer("ada@example.test", status="PENDING")

        approved, created, backfilled = await CustomerService.approve(db, employee, customer.id)

        assert created is True
        assert backfilled == []
        reviews = await _reviews(db, customer.id)
        assert len(reviews) == 1
        assert reviews[0].status == "DRAFT"
        assert reviews[0].scheduled_date == add_months(approved.decision_date.date(), 6)
        assert approved.approved_by == employee.id

    async def test_reapproval_creates_no_second_review(self, db, make_customer, employee):
        customer = await make_customer("ada@example.test", status="PENDING")
        await CustomerService.approve(db, employee, customer.id)

        _, created, backfilled = await CustomerService.approve(db, employee, customer.id)

        assert created is False
        assert backfilled == []
        assert len(await _reviews(db, customer.id)) == 1

    async def test_approval_backfills_other_approved_customers(self, db, make_customer, employee):
        older = await make_customer("old@example.test", status="APPROVED", decision_date=datetime(2024, 2, 29, 9, 0))
        undated = await make_customer("undated@example.test", status="APPROVED")
        pending = await make_customer("pending@example.test", status="PENDING")
        target = await make_customer("target@example.test", status="PENDING")

        _, created, backfilled = await CustomerService.approve(db, employee, target.id)

        assert created is True
        assert {item.customer_id for item in backfilled} == {older.id, undated.id}
        assert (await _reviews(db, older.id))[0].scheduled_date == date(2024, 8, 29)
        assert (await _reviews(db, undated.id))[0].scheduled_date == add_months(today(), 6)
        assert await _reviews(db, pending.id) == []


class TestBackfill:

    async def test_backfill_covers_every_approved_customer_once(self, db, make_customer):
        customers = [
            await make_customer(f"c{i}@example.test", status="APPROVED", decision_date=datetime(2024, 1, i + 1))
            for i in range(3)
        ]

        created = await ReviewScheduler.backfill(db)
        again = await ReviewScheduler.backfill(db)

        assert len(created) == 3
        assert again == []
        for i, customer in enumerate(customers):
            reviews = await _reviews(db, customer.id)
            assert [r.scheduled_date for r in reviews] == [date(2024, 7, i + 1)]

    async def test_backfill_skips_customers_with_completed_reviews(self, db, make_customer):
        customer = await make_customer("done@example.test", status="APPROVED", decision_date=datetime(2024, 1, 1))
        review_id = await crud.insert_review_if_absent(db, customer.id, date(2024, 7, 1))
        await ReviewScheduler.complete_review(db, review_id, "2024-07-02")

        assert await ReviewScheduler.backfill(db) == []

    async def test_concurrent_backfills_never_duplicate(self, session_factory, make_customer):
        customer = await make_customer("race@example.test", status="APPROVED", decision_date=datetime(2024, 1, 1))

        async def run():
            async with session_factory() as session:
                return await ReviewScheduler.backfill(session)

        results = await asyncio.gather(run(), run())

        assert sum(len(created) for created in results) == 1
        async with session_factory() as session:
            count = await session.scalar(select(func.count(Review.id)).where(Review.customer_id == customer.id))
        assert count == 1


class TestRunScheduler:

    async def test_scheduler_fills_gap_after_completed_review(self, db, make_customer):
        customer = await make_customer("cycle@example.test", status="APPROVED", decision_date=datetime(2023, 1, 15))
        review_id = await crud.insert_review_if_absent(db, customer.id, date(2023, 7, 15))
        await ReviewScheduler.complete_review(db, review_id, "2023-07-20")

        created = await ReviewScheduler.run_scheduler(db, today=date(2025, 3, 1))
        rerun = await ReviewScheduler.run_scheduler(db, today=date(2025, 3, 1))

        assert [(item.customer_id, item.scheduled_date) for item in created] == [(customer.id, date(2025, 7, 15))]
        assert rerun == []

    async def test_scheduler_leaves_open_reviews_alone(self, db, make_customer):
        customer = await make_customer("open@example.test", status="APPROVED", decision_date=datetime(2023, 1, 15))
        await crud.insert_review_if_absent(db, customer.id, date(2023, 7, 15))

        assert await ReviewScheduler.run_scheduler(db, today=date(2025, 3, 1)) == []
        assert len(await _reviews(db, customer.id)) == 1


class TestCompleteReview:

    async def test_completion_with_next_date_creates_successor(self, db, make_customer, employee):
        customer = await make_customer("next@example.test", status="APPROVED", decision_date=datetime(2024, 1, 1))
        review_id = await crud.insert_review_if_absent(db, customer.id, date(2024, 7, 1))

        review = await ReviewScheduler.complete_review(
            db, review_id, "2024-07-03", notes="All documents current", next_review_date="2025-01-03", completed_by=employee
        )

        assert review.status == "COMPLETED"
        assert review.completed_date == date(2024, 7, 3)
        assert review.completed_by == employee.id
        reviews = await _reviews(db, customer.id)
        assert [(r.status, r.scheduled_date) for r in reviews] == [
            ("COMPLETED", date(2024, 7, 1)),
            ("DRAFT", date(2025, 1, 3)),
        ]

    async def test_completion_without_next_date_creates_nothing(self, db, make_customer):
        customer = await make_customer("last@example.test", status="APPROVED", decision_date=datetime(2024, 1, 1))
        review_id = await crud.insert_review_if_absent(db, customer.id, date(2024, 7, 1))

        await ReviewScheduler.complete_review(db, review_id, "2024-07-03")

        assert len(await _reviews(db, customer.id)) == 1

    async def test_missing_completed_date_is_rejected(self, db):
        with pytest.raises(ValidationError):
            await ReviewScheduler.complete_review(db, 1, None)

    async def test_malformed_next_date_is_rejected(self, db):
        with pytest.raises(ValidationError):
            await ReviewScheduler.complete_review(db, 1, "2024-07-03", next_review_date="soon")

    async def test_unknown_review_is_not_found(self, db):
        with pytest.raises(NotFoundError):
            await ReviewScheduler.complete_review(db, 999, "2024-07-03")

    async def test_completed_review_cannot_be_completed_again(self, db, make_customer):
        customer = await make_customer("twice@example.test", status="APPROVED", decision_date=datetime(2024, 1, 1))
        review_id = await crud.insert_review_if_absent(db, customer.id, date(2024, 7, 1))
        await ReviewScheduler.complete_review(db, review_id, "2024-07-03")

        with pytest.raises(ConflictError):
            await ReviewScheduler.complete_review(db, review_id, "2024-07-04", next_review_date="2025-01-01")


class TestReviewQueries:

    async def test_upcoming_and_overdue_split_on_today(self, db, make_customer):
        late = await make_customer("late@example.test", first_name="Late", last_name="Larry", status="APPROVED")
        soon = await make_customer("soon@example.test", first_name="Soon", last_name="Sally", status="APPROVED")
        done = await make_customer("done@example.test", status="APPROVED")
        await crud.insert_review_if_absent(db, late.id, date(2025, 1, 10))
        await crud.insert_review_if_absent(db, soon.id, date(2025, 2, 10))
        done_review = await crud.insert_review_if_absent(db, done.id, date(2025, 1, 5))
        await ReviewScheduler.complete_review(db, done_review, "2025-01-05")

        overdue = await ReviewScheduler.list_overdue(db, today=date(2025, 2, 1))
        upcoming = await ReviewScheduler.list_upcoming(db, today=date(2025, 2, 1))

        assert [r.customer_id for r in overdue] == [late.id]
        assert overdue[0].customer.first_name == "Late"
        assert [r.customer_id for r in upcoming] == [soon.id]
        assert upcoming[0].customer.last_name == "Sally"

    async def test_upcoming_honours_explicit_range(self, db, make_customer):
        customer = await make_customer("range@example.test", status="APPROVED")
        await crud.insert_review_if_absent(db, customer.id, date(2030, 6, 1))

        assert await ReviewScheduler.list_upcoming(db, date_from=date(2030, 1, 1), date_to=date(2030, 5, 31)) == []
        assert len(await ReviewScheduler.list_upcoming(db, date_from=date(2030, 1, 1), date_to=date(2030, 6, 1))) == 1

    async def test_customer_history_and_notes(self, db, make_customer):
        customer = await make_customer("hist@example.test", status="APPROVED")
        first = await crud.insert_review_if_absent(db, customer.id, date(2024, 1, 1))
        await ReviewScheduler.complete_review(db, first, "2024-01-02", notes="Address verified", next_review_date="2024-07-01")
        second = (await _reviews(db, customer.id))[-1].id
        await ReviewScheduler.complete_review(db, second, "2024-07-02", next_review_date="2025-01-01")

        history = await ReviewScheduler.list_for_customer(db, customer.id)
        notes = await ReviewScheduler.list_past_with_notes(db, customer.id)

        assert [r.scheduled_date for r in history] == [date(2025, 1, 1), date(2024, 7, 1), date(2024, 1, 1)]
        assert [(n.id, n.notes) for n in notes] == [(first, "Address verified")]
