"""
Pytest configuration and fixtures for Planner Outlook Sync tests.

Provides an async database per test, sample planning data, and an
in-memory stand-in for the Microsoft Graph calendar client.
"""

import datetime
import itertools
import re
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from planner_sync.integrations.outlook.client import MAX_BATCH_SIZE, BatchResponse
from planner_sync.integrations.outlook.exceptions import (
    OutlookBatchError,
    OutlookConflictError,
    OutlookNotFoundError,
)
from planner_sync.models import (
    Base,
    CalendarBinding,
    Client,
    DeadlineTask,
    PlanningTask,
    Project,
)

USER_ID = "user-1"
TASK_DAY = datetime.date(2024, 6, 10)

_EVENT_URL = re.compile(r"^/me/calendars/(?P<calendar>[^/]+)/events(?:/(?P<event>[^/]+))?$")


class FakeOutlookClient:
    """
    In-memory Graph calendar client.

    Keeps calendars, master categories and events per calendar, and
    records every call so tests can assert on traffic.
    """

    def __init__(self):
        self.calendars: dict[str, str] = {}
        self.categories: list[dict] = []
        self.events: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple] = []
        self.batch_sizes: list[int] = []
        self.fail_batches = False
        self.create_calendar_conflict = False
        self._ids = itertools.count(1)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def add_calendar(self, name: str) -> str:
        calendar_id = self._next_id("cal")
        self.calendars[calendar_id] = name
        self.events[calendar_id] = {}
        return calendar_id

    def remove_calendar(self, calendar_id: str) -> None:
        del self.calendars[calendar_id]
        self.events.pop(calendar_id, None)

    def add_event(self, calendar_id: str, body: Optional[dict] = None) -> str:
        event_id = self._next_id("evt")
        self.events.setdefault(calendar_id, {})[event_id] = dict(body or {"subject": "stray"})
        return event_id

    # -------------------- Calendars and categories --------------------

    async def list_calendars(self) -> list[dict]:
        self.calls.append(("list_calendars",))
        return [{"id": cid, "name": name} for cid, name in self.calendars.items()]

    async def create_calendar(self, name: str) -> dict:
        self.calls.append(("create_calendar", name))
        if self.create_calendar_conflict:
            # another worker won the race
            self.create_calendar_conflict = False
            self.add_calendar(name)
            raise OutlookConflictError("Resource already exists: ErrorFolderExists", status_code=409)
        calendar_id = self.add_calendar(name)
        return {"id": calendar_id, "name": name}

    async def list_master_categories(self) -> list[dict]:
        self.calls.append(("list_master_categories",))
        return list(self.categories)

    async def create_master_category(self, display_name: str, color: str) -> dict:
        self.calls.append(("create_master_category", display_name))
        category = {"id": self._next_id("cat"), "displayName": display_name, "color": color}
        self.categories.append(category)
        return category

    # -------------------- Events --------------------

    async def list_events(self, calendar_id: str, page_size: int = 100) -> list[dict]:
        self.calls.append(("list_events", calendar_id))
        return [
            {"id": event_id, "subject": body.get("subject")}
            for event_id, body in self.events.get(calendar_id, {}).items()
        ]

    async def create_event(self, calendar_id: str, body: dict) -> dict:
        self.calls.append(("create_event", calendar_id))
        if calendar_id not in self.calendars:
            raise OutlookNotFoundError("Calendar not found", status_code=404)
        event_id = self.add_event(calendar_id, body)
        return {"id": event_id, **body}

    async def update_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        self.calls.append(("update_event", calendar_id, event_id))
        events = self.events.get(calendar_id, {})
        if event_id not in events:
            raise OutlookNotFoundError("Event or calendar not found", status_code=404)
        events[event_id] = dict(body)
        return {"id": event_id, **body}

    async def delete_event(self, calendar_id: str, event_id: str) -> bool:
        self.calls.append(("delete_event", calendar_id, event_id))
        return self.events.get(calendar_id, {}).pop(event_id, None) is not None

    async def batch(self, requests) -> dict[str, BatchResponse]:
        self.calls.append(("batch", len(requests)))
        assert len(requests) <= MAX_BATCH_SIZE
        if self.fail_batches:
            raise OutlookBatchError("Batch of requests failed: Graph server error (503)", status_code=503)
        self.batch_sizes.append(len(requests))

        responses = {}
        # Graph returns batch items in arbitrary order
        for request in reversed(list(requests)):
            match = _EVENT_URL.match(request.url)
            calendar_id, event_id = match.group("calendar"), match.group("event")
            events = self.events.setdefault(calendar_id, {})

            if request.method == "POST":
                new_id = self.add_event(calendar_id, request.body)
                responses[request.id] = BatchResponse(request.id, 201, {"id": new_id})
            elif event_id not in events:
                responses[request.id] = BatchResponse(
                    request.id, 404, {"error": {"code": "ErrorItemNotFound", "message": "Not found"}}
                )
            elif request.method == "PATCH":
                events[event_id] = dict(request.body)
                responses[request.id] = BatchResponse(request.id, 200, {"id": event_id})
            else:
                del events[event_id]
                responses[request.id] = BatchResponse(request.id, 204)
        return responses

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


@pytest_asyncio.fixture
async def engine(tmp_path):
    """
    Async SQLite engine backed by a per-test database file.

    A file (rather than :memory:) gives every session its own connection,
    like the production pool.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, autoflush=False, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_outlook() -> FakeOutlookClient:
    return FakeOutlookClient()


@pytest_asyncio.fixture
async def acme_project(db_session) -> Project:
    client = Client(name="Acme Corp")
    project = Project(name="Acme Website Redesign", common_name="Acme Redesign", client=client)
    db_session.add_all([client, project])
    await db_session.commit()
    return project


@pytest_asyncio.fixture
async def time_off_project(db_session) -> Project:
    project = Project(name="Time Off")
    db_session.add(project)
    await db_session.commit()
    return project


@pytest_asyncio.fixture
async def binding(db_session) -> CalendarBinding:
    binding = CalendarBinding(
        user_id=USER_ID,
        enabled=True,
        email="user1@example.com",
        refresh_token="refresh-token-1",
    )
    db_session.add(binding)
    await db_session.commit()
    return binding


async def add_planning_task(session, **fields) -> PlanningTask:
    values = {"user_id": USER_ID, "date": TASK_DAY, "task": "Build homepage"}
    values.update(fields)
    row = PlanningTask(**values)
    session.add(row)
    await session.commit()
    return row


async def add_deadline_task(session, **fields) -> DeadlineTask:
    values = {"created_by": USER_ID, "date": TASK_DAY, "deadline_type": "DEADLINE"}
    values.update(fields)
    row = DeadlineTask(**values)
    session.add(row)
    await session.commit()
    return row


@pytest.fixture
def make_planning_task(db_session):
    async def _make(**fields) -> PlanningTask:
        return await add_planning_task(db_session, **fields)
    return _make


@pytest.fixture
def make_deadline_task(db_session):
    async def _make(**fields) -> DeadlineTask:
        return await add_deadline_task(db_session, **fields)
    return _make
