"""Shared fixtures: in-memory database, frozen clock and a fake Korapay API."""
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Must be set before the app modules are imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_DISABLED"] = "1"
os.environ["PLATFORM_ADMIN_KEY"] = "test-admin-key"

from kenflash.clock import get_clock
from kenflash.database import Base, get_db
from kenflash.main import app
from kenflash.routers import functions as functions_router
from kenflash.services.korapay import KorapayClient


SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for tests."""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db

ADMIN_KEY = "test-admin-key"
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock frozen at a given instant until advanced."""

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class FakeKorapay:
    """Scripted stand-in for the Korapay merchant API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.transactions: list[dict[str, Any]] = []
        self.list_status = 200
        self.list_body: Any = None
        self.init_status = 200
        self.init_body: Any = {
            "status": True,
            "message": "Charge created successfully",
            "data": {
                "reference": "KPY-CHARGE-1",
                "checkout_url": "https://checkout.korapay.com/pay/KPY-CHARGE-1",
            },
        }

    def add_transaction(
        self,
        payment_reference: str,
        email: str,
        amount: float = 2000,
        status: str = "success",
        tx_id: str | None = "KPY-TX-1",
    ) -> None:
        self.transactions.append({
            "id": tx_id,
            "status": status,
            "amount": amount,
            "currency": "KES",
            "payment_reference": payment_reference,
            "customer": {"email": email, "name": "Draftey Customer"},
        })

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/merchant/api/v1/charges/initialize":
            if isinstance(self.init_body, str):
                return httpx.Response(self.init_status, text=self.init_body)
            return httpx.Response(self.init_status, json=self.init_body)
        if request.url.path == "/v1/transactions":
            if isinstance(self.list_body, str):
                return httpx.Response(self.list_status, text=self.list_body)
            body = self.list_body if self.list_body is not None else {
                "status": True,
                "message": "Transactions retrieved",
                "data": self.transactions,
            }
            return httpx.Response(self.list_status, json=body)
        return httpx.Response(404, json={"message": "not found"})

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    yield TestClient(app)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(client):
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    """Freeze server and device time at NOW."""
    fixed = FixedClock(NOW)
    app.dependency_overrides[get_clock] = lambda: fixed
    yield fixed
    app.dependency_overrides.pop(get_clock, None)


@pytest.fixture
def korapay(monkeypatch: pytest.MonkeyPatch) -> FakeKorapay:
    """Route the payment functions' Korapay calls to a FakeKorapay."""
    fake = FakeKorapay()
    monkeypatch.setenv("KORAPAY_SECRET_KEY", "sk_test_demo")
    monkeypatch.setattr(
        functions_router,
        "get_korapay_client",
        lambda: KorapayClient(
            secret_key="sk_test_demo",
            base_url="https://api.korapay.test",
            transport=httpx.MockTransport(fake.handler),
        ),
    )
    return fake


@pytest.fixture
def admin_key_header():
    """Get platform admin key header."""
    return {"X-Platform-Admin-Key": ADMIN_KEY}
