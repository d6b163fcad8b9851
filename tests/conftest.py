import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Project root on the path first
sys.path.insert(0, str(Path(__file__).parent.parent))

# Settings are read at import time: no demo data, no background scheduler
os.environ["SEED_DEMO_DATA"] = "0"
os.environ["SCHEDULER_ENABLED"] = "0"
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# SQLite engine for the tests, created BEFORE importing the app
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///./test.db"
test_engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

# PATCH: swap engine and SessionLocal in core.database before the app is imported
import insuratask.core.database
insuratask.core.database.engine = test_engine
insuratask.core.database.SessionLocal = TestingSessionLocal

from insuratask.core.database import Base, get_db
from insuratask.core.errors import GoogleCalendarError
from insuratask.main import app
from insuratask.routers.attachments import get_attachment_store
from insuratask.routers.google_calendar import get_calendar_client
from insuratask.services import calendar_store
from insuratask.services.attachment_service import AttachmentStore
from insuratask.services.template_scheduler import template_scheduler


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_teardown():
    """Fresh tables and an empty scheduler for every test"""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield
    template_scheduler.shutdown()
    Base.metadata.drop_all(bind=test_engine)

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    """FastAPI test client"""
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def db():
    """DB session for the tests"""
    db = TestingSessionLocal()
    yield db
    db.close()


def _utc_iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%S.000Z")


class FakeCalendarClient:
    """In-memory stand-in for GoogleCalendarClient"""

    def __init__(self):
        self.events = {}
        self.calendars = [
            {"id": "agenda@example.com", "name": "Agenda", "description": None,
             "primary": True, "access_role": "owner", "time_zone": "Europe/Rome"},
            {"id": "ufficio@example.com", "name": "Ufficio", "description": "Shared",
             "primary": False, "access_role": "writer", "time_zone": "Europe/Rome"},
        ]
        self.user = {"email": "agente@example.com", "name": "Agente Rossi"}
        self.fail_inserts = False
        self._counter = 0

    def add_event(self, summary, start="2026-03-10T10:00:00+01:00", description=None,
                  color_id=None, updated=None, all_day=False):
        self._counter += 1
        event_id = f"evt-{self._counter}"
        event = {
            "id": event_id,
            "summary": summary,
            "description": description,
            "colorId": color_id,
            "updated": _utc_iso(updated or datetime.utcnow()),
        }
        if all_day:
            event["start"] = {"date": start}
            event["end"] = {"date": start}
        else:
            event["start"] = {"dateTime": start}
            event["end"] = {"dateTime": start}
        self.events[event_id] = event
        return event

    def touch(self, event_id, **changes):
        """Edit an event 'in Google', one hour in the future so it reads as changed"""
        self.events[event_id].update(changes)
        self.events[event_id]["updated"] = _utc_iso(datetime.utcnow() + timedelta(hours=1))

    def get_user_info(self):
        return dict(self.user)

    def list_calendars(self):
        return [dict(c) for c in self.calendars]

    def list_events(self, calendar_id, time_min, time_max):
        return [dict(e) for e in self.events.values()]

    def get_event(self, calendar_id, event_id):
        event = self.events.get(event_id)
        return dict(event) if event else None

    def insert_event(self, calendar_id, body):
        if self.fail_inserts:
            raise GoogleCalendarError("event insert failed (HTTP 500)")
        self._counter += 1
        event = dict(body, id=f"evt-{self._counter}", updated=_utc_iso(datetime.utcnow()))
        self.events[event["id"]] = event
        return dict(event)

    def update_event(self, calendar_id, event_id, body):
        if event_id not in self.events:
            raise GoogleCalendarError("event update failed (HTTP 404)")
        self.events[event_id].update(body)
        self.events[event_id]["updated"] = _utc_iso(datetime.utcnow())
        return dict(self.events[event_id])

    def delete_event(self, calendar_id, event_id):
        return self.events.pop(event_id, None) is not None


@pytest.fixture
def fake_calendar():
    return FakeCalendarClient()


@pytest.fixture
def calendar_config(db):
    """A connected Google account"""
    return calendar_store.save_config(
        db,
        access_token="access-token",
        refresh_token="refresh-token",
        expires_at=datetime.utcnow() + timedelta(hours=1),
        calendar_id="agenda@example.com"
    )


@pytest.fixture
def calendar_client_override(fake_calendar):
    app.dependency_overrides[get_calendar_client] = lambda: fake_calendar
    yield fake_calendar
    app.dependency_overrides.pop(get_calendar_client, None)


@pytest.fixture
def attachment_store(tmp_path):
    store = AttachmentStore(upload_dir=str(tmp_path / "uploads"), max_bytes=1024)
    app.dependency_overrides[get_attachment_store] = lambda: store
    yield store
    app.dependency_overrides.pop(get_attachment_store, None)
