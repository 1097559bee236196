"""Tests for the HTTP API, run in-process over httpx's ASGI transport.

Components are wired onto app.state by hand, against a temporary database,
instead of going through the main.py lifespan.
"""

from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from conftest import FakeClock
from tradeledger.api.app import create_app
from tradeledger.config import AppSettings
from tradeledger.data.account_store import AccountStore
from tradeledger.data.schedule_store import ScheduleStore
from tradeledger.rules.table import RuleTable
from tradeledger.scheduling.scheduler import Scheduler
from tradeledger.scheduling.service import ScheduleService
from tradeledger.settlement.deactivation import DeactivationEngine
from tradeledger.settlement.engine import SettlementEngine


@pytest_asyncio.fixture
async def client(  # type: ignore[no-untyped-def]
    account_store: AccountStore,
    rule_table: RuleTable,
    schedule_store: ScheduleStore,
    settings: AppSettings,
    clock: FakeClock,
    timer: AsyncIOScheduler,
):
    scheduler = Scheduler(
        settlement_engine=SettlementEngine(
            account_store, rule_table, settings.settlement, clock=clock
        ),
        deactivation_engine=DeactivationEngine(account_store, settings.settlement, clock=clock),
        schedule_store=schedule_store,
        settings=settings.schedule,
        clock=clock,
        timer=timer,
    )
    app = create_app()
    app.state.account_store = account_store
    app.state.rule_table = rule_table
    app.state.scheduler = scheduler
    app.state.schedule_service = ScheduleService(
        schedule_store, scheduler, settings.schedule, clock=clock
    )
    await scheduler.start()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    await scheduler.stop()


async def _funded_participant(client: httpx.AsyncClient, amount: str) -> str:
    response = await client.post("/api/accounts")
    assert response.status_code == 201
    account_id = response.json()["id"]
    response = await client.post(
        f"/api/accounts/{account_id}/adjustments",
        json={"amount": amount, "description": "Deposit approved"},
    )
    assert response.status_code == 200
    response = await client.put(
        f"/api/accounts/{account_id}/participation", json={"participating": True}
    )
    assert response.json()["participating"] is True
    return account_id


class TestSettlementFlow:
    @pytest.mark.asyncio
    async def test_rule_settle_then_deactivate(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/rules", json={"minBalance": 100, "maxBalance": 200, "profit": 10}
        )
        assert response.status_code == 201
        rule_id = response.json()["rule"]["id"]
        account_id = await _funded_participant(client, "150")

        response = await client.post("/api/operations/settlement")
        assert response.status_code == 200
        assert response.json()["users_processed"] == 1
        assert response.json()["users_updated"] == 1
        assert response.json()["total_delta"] == "10"

        account = (await client.get(f"/api/accounts/{account_id}")).json()
        assert account["balance"] == "160"
        assert account["profitStats"]["amount"] == "10"
        assert account["profitStats"]["percentage"] == "6.67"

        ledger = (await client.get(f"/api/accounts/{account_id}/ledger")).json()
        assert [(e["kind"], e["amount"]) for e in ledger] == [
            ("credit", "150"),
            ("credit", "10"),
        ]
        assert ledger[1]["ruleId"] == rule_id

        response = await client.post("/api/operations/deactivation")
        assert response.json()["users_deactivated"] == 1
        account = (await client.get(f"/api/accounts/{account_id}")).json()
        assert account["participating"] is False

    @pytest.mark.asyncio
    async def test_status(self, client: httpx.AsyncClient) -> None:
        status = (await client.get("/api/operations/status")).json()
        assert status["running"] is True
        assert status["degraded"] is False
        assert len(status["jobs"]) == 2


class TestRulesApi:
    @pytest.mark.asyncio
    async def test_overlap_is_409(self, client: httpx.AsyncClient) -> None:
        await client.post("/api/rules", json={"minBalance": 100, "maxBalance": 200, "profit": 10})

        response = await client.post(
            "/api/rules", json={"minBalance": "150", "maxBalance": "250", "profit": "5"}
        )

        assert response.status_code == 409
        assert response.json()["success"] is False
        assert len((await client.get("/api/rules")).json()) == 1

    @pytest.mark.asyncio
    async def test_missing_fields_is_400(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/rules", json={"minBalance": 100})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_non_numeric_amount_is_400(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/rules", json={"minBalance": "lots", "maxBalance": 200, "profit": 10}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_toggle_delete(self, client: httpx.AsyncClient) -> None:
        created = await client.post(
            "/api/rules", json={"minBalance": 100, "maxBalance": 200, "profit": 10}
        )
        rule_id = created.json()["rule"]["id"]

        updated = await client.put(f"/api/rules/{rule_id}", json={"profit": "12.5"})
        assert updated.status_code == 200
        assert updated.json()["rule"]["profit"] == "12.5"
        assert updated.json()["rule"]["minBalance"] == "100"

        toggled = await client.patch(f"/api/rules/{rule_id}/toggle-status")
        assert toggled.json()["rule"] == {"id": rule_id, "isActive": False}

        assert (await client.delete(f"/api/rules/{rule_id}")).status_code == 200
        assert (await client.delete(f"/api/rules/{rule_id}")).status_code == 404


class TestScheduleApi:
    @pytest.mark.asyncio
    async def test_get_schedule(self, client: httpx.AsyncClient) -> None:
        schedule = (await client.get("/api/schedule")).json()
        assert schedule["settlementTime"] == "06:00"
        assert schedule["deactivationTime"] == "06:01"
        assert schedule["marketOffDayNames"] == ["Sunday", "Saturday"]

    @pytest.mark.asyncio
    async def test_update_schedule(self, client: httpx.AsyncClient) -> None:
        response = await client.put(
            "/api/schedule",
            json={"time": "07:30", "timeZone": "UTC", "marketOffDays": [5, 6]},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Settlement schedule updated to 07:30 UTC",
            "marketOffDays": [5, 6],
        }
        schedule = (await client.get("/api/schedule")).json()
        assert schedule["settlementTime"] == "07:30"
        assert schedule["nextSettlementAt"] == datetime(
            2026, 10, 19, 7, 30, tzinfo=timezone.utc
        ).isoformat()

    @pytest.mark.asyncio
    async def test_missing_fields(self, client: httpx.AsyncClient) -> None:
        response = await client.put("/api/schedule", json={"time": "07:30"})
        assert response.status_code == 400
        assert response.json()["message"] == "Time and timeZone are required"

    @pytest.mark.asyncio
    async def test_invalid_time(self, client: httpx.AsyncClient) -> None:
        response = await client.put("/api/schedule", json={"time": "7.30", "timeZone": "UTC"})
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["message"] == "Invalid time format. Use HH:mm (e.g., 06:00)"


class TestAccountsApi:
    @pytest.mark.asyncio
    async def test_unknown_account_is_404(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/accounts/nope")
        assert response.status_code == 404
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_zero_adjustment_is_400(self, client: httpx.AsyncClient) -> None:
        account_id = (await client.post("/api/accounts")).json()["id"]
        response = await client.post(
            f"/api/accounts/{account_id}/adjustments",
            json={"amount": 0, "description": "nothing"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_toggle_participation(self, client: httpx.AsyncClient) -> None:
        account_id = (await client.post("/api/accounts")).json()["id"]
        response = await client.patch(f"/api/accounts/{account_id}/toggle-participation")
        assert response.json() == {
            "message": "AI trading activated successfully",
            "participating": True,
        }

    @pytest.mark.asyncio
    async def test_ledger_limit(self, client: httpx.AsyncClient) -> None:
        account_id = await _funded_participant(client, "10")
        await client.post(
            f"/api/accounts/{account_id}/adjustments",
            json={"amount": "-4", "description": "Withdrawal"},
        )

        ledger = (await client.get(f"/api/accounts/{account_id}/ledger?limit=1")).json()

        assert len(ledger) == 1
        assert ledger[0]["kind"] == "credit"
        balance = (await client.get(f"/api/accounts/{account_id}")).json()["balance"]
        assert balance == "6"
