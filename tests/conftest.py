# Imports for testing tools
import datetime
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from unittest.mock import AsyncMock

# Import your application code
from booking_service.main import app
from booking_service.database import Base, get_db, make_engine
from booking_service import models, schemas
from booking_service.reservations import ReservationService
from booking_service.resources import SqlResourceRegistry

HOMESTAY_ID = "hs-101"
GUIDE_ID = "guide-7"


# --- Test Database Setup ---
@pytest.fixture(scope="function")
def engine(tmp_path):
    """A fresh SQLite file database per test; file-backed so threads can share it."""
    test_engine = make_engine(f"sqlite:///{tmp_path / 'test_booking.db'}")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Provides a database session for each booking test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def resources(db_session):
    """Seeds one homestay and one guide."""
    db_session.add(models.Homestay(id=HOMESTAY_ID, title="Mountain View Cottage"))
    db_session.add(models.Guide(id=GUIDE_ID, name="Ravi Kumar"))
    db_session.commit()


@pytest.fixture(scope="function")
def service(db_session, resources):
    return ReservationService(db_session, SqlResourceRegistry(db_session))


# --- Helpers ---
def booking_request(
    check_in=datetime.date(2024, 3, 15),
    check_out=datetime.date(2024, 3, 18),
    resource_type=models.ResourceType.HOMESTAY,
    resource_id=HOMESTAY_ID,
    adults=2,
    children=1,
    total=5000.0,
    email="John.Doe@Example.com",
    **pricing,
) -> schemas.BookingCreate:
    return schemas.BookingCreate(
        resource_type=resource_type,
        resource_id=resource_id,
        check_in=check_in,
        check_out=check_out,
        guests=schemas.GuestCount(adults=adults, children=children),
        guest_contact=schemas.GuestContact(name="John Doe", email=email, phone="+91 98765 43210"),
        pricing=schemas.Pricing(base_price=pricing.pop("base_price", 4500.0), total=total, **pricing),
    )


def add_booking(db, check_in, check_out, status=models.BookingStatus.CONFIRMED,
                resource_type=models.ResourceType.HOMESTAY, resource_id=HOMESTAY_ID, number=None):
    """Inserts a booking directly, bypassing the service."""
    booking = models.Booking(
        booking_number=number or f"BK-TEST-{resource_id}-{check_in.isoformat()}",
        resource_type=resource_type,
        resource_id=resource_id,
        check_in=check_in,
        check_out=check_out,
        nights=(check_out - check_in).days,
        adults=1,
        children=0,
        total_guests=1,
        guest_name="Existing Guest",
        guest_email="existing@example.com",
        guest_phone="+1 555 0100",
        base_price=100.0,
        total_price=100.0,
        status=status,
        cancelled_at=models.utcnow() if status is models.BookingStatus.CANCELLED else None,
    )
    db.add(booking)
    db.commit()
    return booking


# --- Mocking External Services ---
@pytest.fixture(scope="function", autouse=True)
def mock_background_tasks(mocker):
    """
    Mocks the outbox poller that runs on app lifespan.
    """
    mocker.patch("booking_service.main.run_outbox_poller", new_callable=AsyncMock)


# --- API Test Client Fixture ---
@pytest.fixture(scope="function")
def client(session_factory, resources):
    """Provides a TestClient for the booking service."""
    def override_get_db():
        """Overrides the get_db dependency for booking tests."""
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    # Apply the database override
    app.dependency_overrides[get_db] = override_get_db

    # Create and yield the TestClient
    with TestClient(app) as c:
        yield c

    # Clean up overrides
    app.dependency_overrides.clear()
