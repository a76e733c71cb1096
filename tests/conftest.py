import os

# prima di importare app.*: niente Postgres nei test
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("DB_AUTO_CREATE", "0")

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import get_db
from app.ledger import CommissionLedger
from app.main import app
from models import Base


class FrozenClock:
    """Orologio controllabile per il ledger (timestamp deterministici)."""

    def __init__(self, at: datetime):
        self.at = at

    def __call__(self) -> datetime:
        return self.at

    def set(self, *args):
        self.at = datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="db")
def db_fixture(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="clock")
def clock_fixture():
    return FrozenClock(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture(name="ledger")
def ledger_fixture(db, clock):
    return CommissionLedger(db, now=clock)


@pytest.fixture(name="api")
def api_fixture(db):
    def get_db_override():
        yield db

    app.dependency_overrides[get_db] = get_db_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="partner")
def partner_fixture(ledger):
    return ledger.create_partner({
        "name": "Acme Partners",
        "email": "Partner@Acme.example.com",
        "commission_rate": Decimal("15"),
    })


@pytest.fixture(name="referred")
def referred_fixture(ledger, partner):
    return ledger.create_client(partner.id, {
        "client_name": "Bob Rossi",
        "client_email": "bob@client.example.com",
        "subscription_plan": "pro",
        "subscription_value": Decimal("99.90"),
    })
