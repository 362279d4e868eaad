"""Shared pytest fixtures for test suite"""
import asyncio
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from app.core.config import settings
from app.db.ledger import LedgerStore
from app.main import app
from app.services.entitlement_service import EntitlementDispatcher
from app.services.fulfillment_service import FulfillmentOrchestrator, get_orchestrator
from app.services.voucher_service import VoucherEngine


TEST_ADMIN_KEY = "test-admin-key"


class FakeRconSession:
    def __init__(self, channel: "FakeRconChannel"):
        self.channel = channel
        self.closed = False

    async def send(self, command: str) -> str:
        self.channel.sent.append(command)
        if self.channel.delay:
            await asyncio.sleep(self.channel.delay)
        failure = self.channel.failures.get(command)
        if isinstance(failure, BaseException):
            raise failure
        if failure is not None:
            return failure
        return self.channel.response

    async def close(self) -> None:
        self.closed = True
        self.channel.closed += 1


class FakeRconChannel:
    """In-memory stand-in for RconChannel that records every command.

    failures maps a command to either an exception to raise or a response
    string to return instead of the default acknowledgement.
    """

    def __init__(self):
        self.sent = []
        self.failures = {}
        self.response = "Done"
        self.delay = 0.0
        self.opened = 0
        self.closed = 0
        self.connect_error = None
        self.connect_delay = 0.0

    async def connect(self) -> FakeRconSession:
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self.opened += 1
        return FakeRconSession(self)

    @asynccontextmanager
    async def session(self):
        rcon_session = await self.connect()
        try:
            yield rcon_session
        finally:
            await rcon_session.close()


@pytest.fixture(scope="function")
def ledger(tmp_path) -> LedgerStore:
    """Ledger backed by JSON files in a temporary directory"""
    return LedgerStore(tmp_path / "transactions.json", tmp_path / "vouchers.json")


@pytest.fixture(scope="function")
def fake_channel() -> FakeRconChannel:
    return FakeRconChannel()


@pytest.fixture(scope="function")
def dispatcher(fake_channel) -> EntitlementDispatcher:
    return EntitlementDispatcher(
        fake_channel,
        timeout=1.0,
        failure_markers=["Unknown or incomplete command"],
    )


@pytest.fixture(scope="function")
def voucher_engine(ledger) -> VoucherEngine:
    return VoucherEngine(ledger)


@pytest.fixture(scope="function")
def orchestrator(ledger, voucher_engine, dispatcher) -> FulfillmentOrchestrator:
    return FulfillmentOrchestrator(ledger, voucher_engine, dispatcher)


@pytest.fixture(scope="function")
def admin_key(monkeypatch) -> str:
    """Configure ADMIN_KEY for the duration of a test"""
    monkeypatch.setattr(settings, "ADMIN_KEY", TEST_ADMIN_KEY)
    return TEST_ADMIN_KEY


@pytest.fixture(scope="function")
def client(orchestrator) -> Generator[TestClient, None, None]:
    """FastAPI test client wired to the test orchestrator"""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        # Cleanup - always clear overrides
        app.dependency_overrides.clear()
