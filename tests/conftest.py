import asyncio
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from studio.auth import create_access_token, hash_password
from studio.clock import FrozenClock, get_clock
from studio.database import Base, create_db_engine, get_db
from studio.main import app
from studio.models import Package, User, UserPackage, UserRole
from studio.rate_limiter import RateLimiter, get_booking_rate_limiter
from studio.services.google_calendar_service import CalendarUnavailableError, get_calendar_service
from studio.services.whatsapp_service import get_whatsapp_service
from studio.shared.timeslots import Interval

# Monday morning; tomorrow is a full bookable day
NOW = datetime(2026, 3, 2, 9, 0)
TODAY = "2026-03-02"
TOMORROW = "2026-03-03"


class FakeCalendar:
    """Stands in for GoogleCalendarService; created events also show up as busy.

    Every call yields to the event loop, as a real HTTP round trip would.
    """

    def __init__(self):
        self.busy: list[tuple[str, Interval]] = []
        self.created: list[dict] = []
        self.deleted: list[str] = []
        self.fail_create = False
        self.fail_list = False

    def is_configured(self) -> bool:
        return True

    async def create_event(self, summary, description, start, end):
        await asyncio.sleep(0)
        if self.fail_create:
            raise RuntimeError("calendar down")
        event_id = f"evt-{len(self.created) + 1}"
        self.created.append({"id": event_id, "summary": summary, "description": description})
        self.busy.append((event_id, Interval(start, end)))
        return event_id

    async def delete_event(self, event_id):
        await asyncio.sleep(0)
        self.deleted.append(event_id)
        self.busy = [(eid, iv) for eid, iv in self.busy if eid != event_id]
        return True

    async def list_busy_intervals(self, day):
        await asyncio.sleep(0)
        if self.fail_list:
            raise CalendarUnavailableError("calendar down")
        return [(eid, iv) for eid, iv in self.busy if iv.start.date() == day]


class FakeNotifier:
    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False
        self.explode = False

    async def send_message(self, to_phone, message_body, message_type, user_id=None, booking_id=None):
        await asyncio.sleep(0)
        if self.explode:
            raise RuntimeError("twilio down")
        if self.fail:
            return False, "HTTP 500"
        self.sent.append(
            {"to": to_phone, "body": message_body, "type": message_type, "booking_id": booking_id}
        )
        return True, None


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'studio_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Sessions the way the app opens them"""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(engine):
    """Session for test setup and assertions; objects stay readable after commit"""
    session = sessionmaker(autoflush=False, bind=engine, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def limiter(clock):
    return RateLimiter(
        limit=10,
        window_seconds=60,
        key_prefix="booking",
        redis_factory=None,
        time_func=lambda: clock.now().timestamp(),
    )


@pytest.fixture
def client(session_factory, clock, calendar, notifier, limiter):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_calendar_service] = lambda: calendar
    app.dependency_overrides[get_whatsapp_service] = lambda: notifier
    app.dependency_overrides[get_booking_rate_limiter] = lambda: limiter
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(name="Client", role=UserRole.CLIENT, phone="333 123 4567", **kwargs):
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            name=name,
            phone=phone,
            password_hash=hash_password("secret123"),
            role=role,
            **kwargs,
        )
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture
def make_package(db):
    def _make_package(users, total_sessions=10, used_sessions=0, duration_minutes=60, is_active=True):
        package = Package(
            name=f"{total_sessions} sessions",
            total_sessions=total_sessions,
            duration_minutes=duration_minutes,
            is_active=is_active,
        )
        package.user_packages = [
            UserPackage(user_id=user.id, used_sessions=used_sessions) for user in users
        ]
        db.add(package)
        db.commit()
        return package

    return _make_package


@pytest.fixture
def auth_headers():
    def _auth_headers(user, expires_delta=None):
        token = create_access_token(user, expires_delta or timedelta(hours=1))
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def fetch(db):
    """Fresh rows of a model, read in a short transaction so the app is never blocked"""

    def _fetch(model, **filters):
        rows = db.query(model).filter_by(**filters).populate_existing().all()
        db.commit()
        return rows

    return _fetch


@pytest.fixture
def used_sessions(fetch):
    def _used_sessions(package_id, user_id):
        (holding,) = fetch(UserPackage, package_id=package_id, user_id=user_id)
        return holding.used_sessions

    return _used_sessions
