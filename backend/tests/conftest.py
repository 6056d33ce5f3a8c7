import os
from datetime import date, timedelta
from decimal import Decimal
from itertools import count

# Must be set before qtalent.database is imported
os.environ.setdefault("PYTEST_RUN", "1")
os.environ.setdefault("SKIP_DB_BOOTSTRAP", "1")

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from qtalent.core.config import settings
from qtalent.models import (
    Booking,
    BookingStatus,
    TalentProfile,
    User,
    UserType,
)
from qtalent.models.base import BaseModel

_emails = count(1)


@pytest.fixture
def Session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    BaseModel.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def db(Session):
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(Session):
    from qtalent.main import app
    from qtalent.api.dependencies import get_db

    def override_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(
        user_type: UserType = UserType.BOOKER,
        hourly_rate: Decimal | None = None,
        is_pro: bool = False,
        currency: str | None = None,
    ) -> User:
        n = next(_emails)
        user = User(
            email=f"user{n}@test.com",
            first_name=f"First{n}",
            last_name="Last",
            user_type=user_type,
        )
        db.add(user)
        db.flush()
        if user_type == UserType.TALENT:
            db.add(
                TalentProfile(
                    user_id=user.id,
                    artist_name=f"Act {n}",
                    hourly_rate=hourly_rate,
                    currency=currency,
                    is_pro_subscriber=is_pro,
                    subscription_status="active" if is_pro else "free",
                )
            )
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_booking(db):
    def _make(
        requester: User,
        talent: User | None = None,
        gig: bool = False,
        status: BookingStatus = BookingStatus.PENDING,
        duration_hours: Decimal = Decimal("3"),
        event_date: date | None = None,
    ) -> Booking:
        booking = Booking(
            requester_id=requester.id,
            talent_id=talent.id if talent else None,
            status=status,
            is_gig_opportunity=gig,
            is_public_request=gig,
            event_date=event_date or date.today() + timedelta(days=14),
            duration_hours=duration_hours,
            event_location="Cape Town",
            event_type="Wedding",
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        token = jwt.encode({"sub": str(user.id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return {"Authorization": f"Bearer {token}"}

    return _headers
