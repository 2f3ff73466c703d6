"""Tests for the audit trail."""

from sqlalchemy import select

from audit_service import AuditService
from models import AuditLog
from tests.conftest import TEST_PASSWORD


class BrokenSessionFactory:
    def __call__(self):
        raise RuntimeError("database unavailable")


class TestAuditService:

    async def test_log_action_writes_row(self, session_factory, employee):
        audit = AuditService(session_factory)

        written = await audit.log_action("APPROVE_APPLICATION", "CUSTOMER", 7, details="ok", user=employee)

        assert written is True
        async with session_factory() as db:
            entry = (await db.execute(select(AuditLog))).scalar_one()
        assert (entry.user_id, entry.user_role, entry.action_type, entry.entity_id) == (
            employee.id, "EMPLOYEE", "APPROVE_APPLICATION", 7
        )
        assert entry.result == "SUCCESS"

    async def test_failed_write_is_reported_not_raised(self):
        audit = AuditService(BrokenSessionFactory())

        assert await audit.log_action("LOGIN", "USER", 1) is False

    async def test_long_details_are_truncated(self, session_factory):
        audit = AuditService(session_factory)

        await audit.log_action("UPLOAD_DOCUMENTS", "DOCUMENT", 1, details="x" * 5000)

        async with session_factory() as db:
            entry = (await db.execute(select(AuditLog))).scalar_one()
        assert len(entry.details) == 2000


class TestAuditEndpoint:

    async def test_login_failures_are_audited(self, client, make_user, employee, auth_headers):
        await make_user("ada@example.test")
        await client.post("/api/auth/customer/login", json={"email": "ada@example.test", "password": "wrong-password"})

        response = await client.get("/api/audit-logs", headers=auth_headers(employee))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        entry = body["logs"][0]
        assert (entry["action_type"], entry["result"], entry["details"]) == ("LOGIN", "FAILURE", "Invalid credentials")
        assert entry["ip_address"] == "127.0.0.1"

    async def test_filters_by_user(self, client, make_user, employee, auth_headers):
        user = await make_user("ada@example.test")
        await client.post("/api/auth/customer/login", json={"email": "ada@example.test", "password": TEST_PASSWORD})
        await client.post("/api/auth/employee/login", json={"email": employee.email, "password": TEST_PASSWORD})

        response = await client.get("/api/audit-logs", params={"user_id": user.id}, headers=auth_headers(employee))

        assert [entry["user_id"] for entry in response.json()["logs"]] == [user.id]

    async def test_rejects_bad_dates_and_customers(self, client, make_user, employee, auth_headers):
        customer_user = await make_user("ada@example.test")

        bad_date = await client.get("/api/audit-logs", params={"from": "last tuesday"}, headers=auth_headers(employee))
        forbidden = await client.get("/api/audit-logs", headers=auth_headers(customer_user))

        assert bad_date.status_code == 400
        assert forbidden.status_code == 403
