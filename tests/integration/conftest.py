"""Integration test fixtures with an in-process application."""

import random
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from payroll_cycle.api.app import create_app
from payroll_cycle.api.dependencies import CycleRegistry
from payroll_cycle.services import (
    CycleConfig,
    ExecutionConfig,
    FixedClock,
    FlakyRail,
    ImmediateScheduler,
)

NOW = datetime(2025, 11, 20, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def make_registry():
    """Registry with a pinned clock and no real delays."""

    def _make(rail=None) -> CycleRegistry:
        return CycleRegistry(
            CycleConfig(execution=ExecutionConfig(min_delay_ms=1, max_delay_ms=5)),
            clock=FixedClock(NOW),
            scheduler=ImmediateScheduler(),
            rail=rail,
            rng=random.Random(42),
        )

    return _make


@pytest.fixture
def registry(make_registry) -> CycleRegistry:
    return make_registry()


@pytest_asyncio.fixture
async def client(registry) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app(registry)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def flaky_client(make_registry) -> AsyncGenerator[AsyncClient, None]:
    """Client whose rail rejects the ctr-3 payout."""
    app = create_app(make_registry(FlakyRail(0.0, terminal_ids=["ctr-3"])))
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def period_payload() -> dict[str, Any]:
    return {
        "id": "2025-11",
        "label": "November 2025",
        "start_date": "2025-11-01",
        "end_date": "2025-11-30",
    }


@pytest.fixture
def batch_payload() -> dict[str, Any]:
    """Two employees above the approval threshold and three contractors."""
    return {
        "id": "nov-2025",
        "payments": [
            {
                "id": "emp-1", "name": "Marta Lind", "country": "Norway", "currency": "NOK",
                "net_pay": "26000", "est_fees": "120", "fx_rate": "0.094",
                "employment_type": "employee", "employer_taxes": "4000",
            },
            {
                "id": "emp-2", "name": "Paolo Reyes", "country": "Philippines", "currency": "php",
                "net_pay": "22000", "est_fees": "90", "fx_rate": "0.018",
                "employment_type": "employee", "employer_taxes": "3000",
            },
            {
                "id": "ctr-1", "name": "Sofie Becker", "country": "Germany", "currency": "EUR",
                "net_pay": "5200", "est_fees": "25", "fx_rate": "1.08",
                "employment_type": "contractor",
            },
            {
                "id": "ctr-2", "name": "Jonas Berg", "country": "Norway", "currency": "NOK",
                "net_pay": "48000", "est_fees": "60", "fx_rate": "0.094",
                "employment_type": "contractor",
            },
            {
                "id": "ctr-3", "name": "Ana Cruz", "country": "Philippines", "currency": "PHP",
                "net_pay": "180000", "est_fees": "45", "fx_rate": "0.018",
                "employment_type": "contractor",
            },
        ],
        "exceptions": [
            {
                "id": "exc-1", "contractor_id": "ctr-3", "type": "missing-bank",
                "severity": "high", "contractor_name": "Ana Cruz",
                "description": "Bank account details missing",
            },
            {
                "id": "exc-2", "contractor_id": "ctr-1", "type": "doc-expiry",
                "severity": "low", "contractor_name": "Sofie Becker",
                "is_blocking": False,
            },
        ],
    }


@pytest.fixture
def open_period(client, period_payload):
    """Create the November period and open its window."""

    async def _open() -> str:
        await client.post("/api/v1/periods", json=period_payload)
        await client.post(f"/api/v1/periods/{period_payload['id']}/window/open")
        return period_payload["id"]

    return _open


@pytest.fixture
def to_execution():
    """Create a batch and drive it into the execution stage over HTTP."""

    async def _drive(client: AsyncClient, payload: dict[str, Any]) -> str:
        batch_id = payload["id"]
        base = f"/api/v1/batches/{batch_id}"
        await client.post("/api/v1/batches", json=payload)
        await client.post(f"{base}/fx/lock")
        await client.post(f"{base}/advance")
        for exc in payload["exceptions"]:
            await client.post(f"{base}/exceptions/{exc['id']}/resolve")
        await client.post(f"{base}/advance")
        await client.post(f"{base}/approval/request")
        await client.post(f"{base}/approval/approve", headers={"X-Actor-Role": "CFO"}, json={})
        response = await client.post(f"{base}/advance")
        assert response.json()["stage"] == "execution"
        return batch_id

    return _drive
