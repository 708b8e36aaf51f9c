# conftest.py
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from insurance_claims.main import app
from insurance_claims.insurance_database import get_db, Base
from insurance_claims.model import CoverageRule
from insurance_claims.services import coverage_rules

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

API_KEY = "test-key"
HEADERS = {"X-API-Key": API_KEY, "X-Actor": "billing.clerk"}


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    monkeypatch.setenv("MY_API_KEYS", API_KEY)
    for name in ("AUDIT_WEBHOOK_URL", "CLAIM_NUMBER_MAX_ATTEMPTS", "DEFAULT_DISPLAY_CURRENCY", "DEV_MODE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def percentage_rule(db):
    return coverage_rules.create_rule(
        db,
        CoverageRule(service_id="SVC-CONSULT", insurer_id="INS-1", copay_percentage=Decimal("80")),
    )


@pytest.fixture
def api():
    return TestClient(app, headers=HEADERS)


@pytest.fixture(scope="module")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def client(anyio_backend):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=HEADERS) as ac:
        yield ac
