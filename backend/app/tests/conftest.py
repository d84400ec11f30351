"""
Shared fixtures: an in-memory SQLite database per test and an API client
wired to it.
"""
import os

# Configure before any app module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FX_API_KEY"] = ""

from datetime import date
from decimal import Decimal
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from app.core.security import create_access_token, get_password_hash
from app.db.base import Base
from app.db.session import get_db
from app.models import User, Trip, TripMember, MemberRole, Spend, SpendAssignment, SpendStatus, SplitType
from app.main import app

TEST_PASSWORD = "testpassword123"


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(TEST_PASSWORD)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db, password_hash):
    def _make_user(username: str, display_name: str = None) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            display_name=display_name,
            hashed_password=password_hash
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_trip(db):
    def _make_trip(owner: User, members=(), base_currency: str = "USD", name: str = "Lisbon") -> Trip:
        trip = Trip(name=name, base_currency=base_currency, created_by_id=owner.id)
        db.add(trip)
        db.flush()
        db.add(TripMember(trip_id=trip.id, user_id=owner.id, role=MemberRole.OWNER))
        for member in members:
            db.add(TripMember(trip_id=trip.id, user_id=member.id, role=MemberRole.MEMBER))
        db.commit()
        db.refresh(trip)
        return trip
    return _make_trip


@pytest.fixture
def add_spend(db):
    """Insert a spend directly, bypassing the write path, with shares given in base currency."""
    def _add_spend(trip: Trip, payer_id, normalized, shares, on=date(2024, 5, 1),
                   currency=None, fx_rate="1", status=SpendStatus.OPEN) -> Spend:
        spend = Spend(
            trip_id=trip.id,
            paid_by_id=payer_id,
            date=on,
            amount=Decimal(normalized) if normalized is not None else Decimal(0),
            currency=currency or trip.base_currency,
            fx_rate=Decimal(fx_rate) if fx_rate is not None else None,
            normalized_amount=Decimal(normalized) if normalized is not None else None,
            status=status
        )
        for user_id, share in shares.items():
            spend.assignments.append(SpendAssignment(
                user_id=user_id,
                share_amount=Decimal(share),
                normalized_share_amount=Decimal(share),
                split_type=SplitType.EXACT,
                split_value=Decimal(share)
            ))
        db.add(spend)
        db.commit()
        db.refresh(spend)
        return spend
    return _add_spend


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.username)}"}
    return _auth_headers
