"""Tests for the scheduled trigger endpoint."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from autosend.config import get_settings
from autosend.main import app
from autosend.models.batch import AutoSendBatch
from tests.conftest import REPORT_DAY, TEST_CRON_SECRET, TestSettings

pytestmark = pytest.mark.asyncio

CRON_URL = "/api/cron/auto-send"
AUTH = {"Authorization": f"Bearer {TEST_CRON_SECRET}"}
BODY = {"date_from": REPORT_DAY.isoformat(), "date_to": REPORT_DAY.isoformat()}


class TestCronAuthorization:
    """The cron secret is required and checked before anything else."""

    async def test_missing_header(self, client: AsyncClient):
        """Should return 401 without an Authorization header."""
        response = await client.post(CRON_URL, json=BODY)

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Unauthorized"}

    @pytest.mark.parametrize(
        "header",
        ["Bearer wrong-secret", TEST_CRON_SECRET, f"Basic {TEST_CRON_SECRET}"],
    )
    async def test_wrong_header(
        self, client: AsyncClient, header, dispatcher, session_factory, recipient_factory,
        entry_factory, select_recipients,
    ):
        """Should return 401 for anything but the exact bearer secret, planning nothing."""
        await entry_factory()
        await select_recipients([await recipient_factory()])

        response = await client.post(CRON_URL, json=BODY, headers={"Authorization": header})

        assert response.status_code == 401
        async with session_factory() as session:
            batches = (await session.execute(select(func.count(AutoSendBatch.id)))).scalar_one()
        assert batches == 0
        assert dispatcher.sent == []

    async def test_unconfigured_secret(self, client: AsyncClient):
        """Should fail closed with 500 when CRON_SECRET is unset."""
        app.dependency_overrides[get_settings] = lambda: TestSettings(cron_secret="")

        response = await client.post(CRON_URL, json=BODY, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Cron secret is not configured"}

    async def test_auth_checked_before_body(self, client: AsyncClient):
        """Should answer 401, not 422, to an unauthenticated malformed body."""
        response = await client.post(CRON_URL, json={"date_from": "yesterday"})

        assert response.status_code == 401


class TestCronRun:
    """Tests for POST /api/cron/auto-send."""

    async def test_paused(
        self, client: AsyncClient, dispatcher, recipient_factory, entry_factory,
        select_recipients,
    ):
        """Should succeed without planning when auto-send is paused."""
        await entry_factory()
        await select_recipients([await recipient_factory()], is_enabled=False)

        response = await client.post(CRON_URL, json=BODY, headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["skipped"] is True
        assert data["reason"] == "Auto-send is paused"
        assert data["plan"] is None
        assert dispatcher.sent == []

    async def test_sends_and_reports_outcome(
        self, client: AsyncClient, dispatcher, recipient_factory, entry_factory,
        select_recipients,
    ):
        """Should wait for sending and return per-status counts."""
        await entry_factory()
        a = await recipient_factory("a@depot.test")
        b = await recipient_factory("b@depot.test")
        await select_recipients([a, b])
        dispatcher.fail_for.add("a@depot.test")

        response = await client.post(CRON_URL, json=BODY, headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["skipped"] is False
        assert data["plan"]["items"] == 2
        assert data["execution"]["sent"] == 1
        assert data["execution"]["failed"] == 1
        assert data["execution"]["pending"] == 0
        assert data["execution"]["status"] == "partial"

    async def test_without_body_defaults_to_yesterday(
        self, client: AsyncClient, recipient_factory, select_recipients
    ):
        """Should plan yesterday's entries when no body is sent."""
        await select_recipients([await recipient_factory()])

        response = await client.post(CRON_URL, headers=AUTH)

        # No entries yesterday: planning fails with the empty range message
        assert response.status_code == 400
        assert response.json()["error"].startswith("No fuel entries found")

    async def test_nothing_to_send(self, client: AsyncClient, entry_factory):
        """Should return 400 when no recipients are selected."""
        await entry_factory()

        response = await client.post(CRON_URL, json=BODY, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["error"] == "No active recipients configured for auto-send."
