"""Tests for the review endpoints."""

from datetime import date, datetime

import crud
from date_utils import add_months, today


class TestApproveAndSchedule:

    async def test_first_approval_creates_review(self, client, make_customer, employee, auth_headers):
        customer = await make_customer("ada@example.test", first_name="Ada", status="PENDING")
        url = f"/api/reviews/customers/{customer.id}/approve"

        first = await client.post(url, headers=auth_headers(employee))
        second = await client.post(url, headers=auth_headers(employee))
        upcoming = await client.get("/api/reviews/upcoming", headers=auth_headers(employee))

        assert first.status_code == 200
        assert first.json()["reviewCreated"] is True
        assert second.json()["reviewCreated"] is False
        assert "already exists" in second.json()["message"]
        reviews = upcoming.json()["reviews"]
        assert len(reviews) == 1
        assert reviews[0]["customer"]["first_name"] == "Ada"
        assert reviews[0]["scheduled_date"] == add_months(today(), 6).isoformat()

    async def test_customers_cannot_approve(self, client, make_customer, db, auth_headers):
        customer = await make_customer("ada@example.test", status="PENDING")
        user = await crud.get_user(db, customer.user_id)

        response = await client.post(f"/api/reviews/customers/{customer.id}/approve", headers=auth_headers(user))

        assert response.status_code == 403

    async def test_backfill_endpoint(self, client, make_customer, employee, auth_headers):
        for i in range(2):
            await make_customer(f"c{i}@example.test", status="APPROVED", decision_date=datetime(2024, 3, 1))

        response = await client.post("/api/reviews/backfill", headers=auth_headers(employee))

        assert response.status_code == 200
        assert response.json()["message"] == "Created 2 new reviews for approved customers without reviews."
        assert {item["scheduled_date"] for item in response.json()["createdReviews"]} == {"2024-09-01"}


class TestReviewLists:

    async def test_overdue_lists_open_past_reviews(self, client, db, make_customer, employee, auth_headers):
        customer = await make_customer("late@example.test", status="APPROVED")
        await crud.insert_review_if_absent(db, customer.id, date(2020, 1, 1))

        response = await client.get("/api/reviews/overdue", headers=auth_headers(employee))

        assert response.status_code == 200
        assert [r["customer_id"] for r in response.json()["reviews"]] == [customer.id]

    async def test_upcoming_rejects_malformed_dates(self, client, employee, auth_headers):
        response = await client.get("/api/reviews/upcoming", params={"from": "next week"}, headers=auth_headers(employee))

        assert response.status_code == 400

    async def test_customer_sees_only_own_reviews(self, client, db, make_customer, auth_headers):
        customer = await make_customer("ada@example.test", status="APPROVED")
        other = await make_customer("mallory@example.test")
        await crud.insert_review_if_absent(db, customer.id, date(2030, 1, 1))
        owner = await crud.get_user(db, customer.user_id)
        stranger = await crud.get_user(db, other.user_id)

        own = await client.get(f"/api/reviews/customers/{customer.id}/reviews", headers=auth_headers(owner))
        foreign = await client.get(f"/api/reviews/customers/{customer.id}/reviews", headers=auth_headers(stranger))

        assert own.status_code == 200
        assert len(own.json()["reviews"]) == 1
        assert foreign.status_code == 403


class TestCompleteReview:

    async def test_complete_schedules_next_review(self, client, db, make_customer, employee, auth_headers):
        customer = await make_customer("ada@example.test", status="APPROVED")
        review_id = await crud.insert_review_if_absent(db, customer.id, date(2025, 1, 1))

        response = await client.put(
            f"/api/reviews/{review_id}/complete",
            json={"completedDate": "2025-01-03", "notes": "Source of funds confirmed", "nextReviewDate": "2025-07-03"},
            headers=auth_headers(employee),
        )
        history = await client.get(f"/api/reviews/customers/{customer.id}/reviews", headers=auth_headers(employee))
        past = await client.get(f"/api/reviews/customer/{customer.id}", headers=auth_headers(employee))

        assert response.status_code == 200
        review = response.json()["review"]
        assert (review["status"], review["completed_date"], review["completed_by"]) == ("COMPLETED", "2025-01-03", employee.id)
        assert [(r["status"], r["scheduled_date"]) for r in history.json()["reviews"]] == [
            ("DRAFT", "2025-07-03"),
            ("COMPLETED", "2025-01-01"),
        ]
        assert past.json() == {
            "pastReviews": [
                {"id": review_id, "completed_date": "2025-01-03", "notes": "Source of funds confirmed", "scheduled_date": "2025-01-01"}
            ]
        }

    async def test_complete_errors(self, client, db, make_customer, employee, auth_headers):
        customer = await make_customer("ada@example.test", status="APPROVED")
        review_id = await crud.insert_review_if_absent(db, customer.id, date(2025, 1, 1))
        headers = auth_headers(employee)

        missing_date = await client.put(f"/api/reviews/{review_id}/complete", json={"notes": "x"}, headers=headers)
        unknown = await client.put("/api/reviews/999/complete", json={"completedDate": "2025-01-03"}, headers=headers)
        done = await client.put(f"/api/reviews/{review_id}/complete", json={"completedDate": "2025-01-03"}, headers=headers)
        again = await client.put(f"/api/reviews/{review_id}/complete", json={"completedDate": "2025-01-04"}, headers=headers)

        assert missing_date.status_code == 400
        assert unknown.status_code == 404
        assert done.status_code == 200
        assert again.status_code == 409


class TestRunScheduler:

    async def test_scheduler_endpoint_is_idempotent(self, client, db, make_customer, employee, auth_headers):
        customer = await make_customer("ada@example.test", status="APPROVED", decision_date=datetime(2021, 5, 10))
        headers = auth_headers(employee)

        first = await client.post("/api/reviews/admin/run-review-scheduler", headers=headers)
        second = await client.post("/api/reviews/admin/run-review-scheduler", headers=headers)

        created = first.json()["created"]
        assert first.status_code == 200
        assert [item["customer_id"] for item in created] == [customer.id]
        assert date.fromisoformat(created[0]["scheduled_date"]) >= today()
        assert date.fromisoformat(created[0]["scheduled_date"]).day == 10
        assert second.json()["created"] == []
