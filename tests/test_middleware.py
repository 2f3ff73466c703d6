"""Tests for the application shell: security headers, HTTPS, health, error bodies and the review loop."""

import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import main
from main import create_app
from review_service import ReviewScheduler


class TestSecurityHeaders:

    async def test_headers_on_every_response(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json() == {"message": "Server is running!"}
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert "default-src 'self'" in response.headers["content-security-policy"]
        assert "strict-transport-security" not in response.headers

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_validation_errors_use_message_body(self, client, employee, auth_headers):
        response = await client.get("/api/customers", params={"page": 0}, headers=auth_headers(employee))

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request"
        assert response.json()["errors"][0]["field"] == "query.page"


class TestHttpsEnforcement:

    @pytest_asyncio.fixture
    async def https_client(self, test_settings, engine):
        settings = test_settings.model_copy(update={"ENFORCE_HTTPS": True})
        app = create_app(settings=settings, engine=engine)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
            yield client

    async def test_plain_http_is_redirected(self, https_client):
        response = await https_client.get("/api/auth/me")

        assert response.status_code == 301
        assert response.headers["location"] == "https://testserver/api/auth/me"

    async def test_forwarded_https_gets_hsts(self, https_client):
        response = await https_client.get("/", headers={"X-Forwarded-Proto": "https"})

        assert response.status_code == 200
        assert "max-age=31536000" in response.headers["strict-transport-security"]

    async def test_health_is_exempt(self, https_client):
        response = await https_client.get("/health")

        assert response.status_code == 200


class TestReviewSchedulerLoop:

    async def test_loop_survives_a_failed_run(self, app, monkeypatch):
        calls = []
        recovered = asyncio.Event()

        async def flaky_run(db, interval_months):
            calls.append(interval_months)
            if len(calls) == 1:
                raise ConnectionRefusedError("database unreachable")
            if len(calls) >= 3:
                recovered.set()
            return []

        monkeypatch.setattr(ReviewScheduler, "run_scheduler", staticmethod(flaky_run))

        task = asyncio.create_task(main.review_scheduler_loop(app))
        await asyncio.wait_for(recovered.wait(), timeout=2)

        assert not task.done()
        assert len(calls) >= 3
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_shutdown_tolerates_a_crashed_loop(self, app, monkeypatch):
        async def crashing_loop(app):
            raise RuntimeError("loop crashed")

        monkeypatch.setattr(main, "review_scheduler_loop", crashing_loop)
        app.state.settings = app.state.settings.model_copy(update={"REVIEW_SCHEDULER_INTERVAL_SECONDS": 60})

        async with main.lifespan(app):
            await asyncio.sleep(0)
