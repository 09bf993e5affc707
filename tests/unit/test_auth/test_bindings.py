"""Tests for calendar binding storage."""

import pytest
from sqlalchemy import select

from planner_sync.auth.bindings import (
    cache_calendar_id,
    clear_binding,
    get_binding,
    save_binding,
)
from planner_sync.models import CalendarBinding, DeadlineTask, PlanningTask

from conftest import USER_ID


class TestSaveBinding:
    @pytest.mark.asyncio
    async def test_creates_binding(self, db_session):
        binding = await save_binding(db_session, USER_ID, "refresh-1", email="u@example.com")

        assert binding.enabled is True
        assert binding.is_connected is True
        assert binding.email == "u@example.com"
        assert (await get_binding(db_session, USER_ID)).id == binding.id

    @pytest.mark.asyncio
    async def test_relink_reenables_and_keeps_calendar(self, db_session, binding):
        await clear_binding(db_session, USER_ID)
        binding.calendar_id = "cal-1"
        await db_session.commit()

        relinked = await save_binding(db_session, USER_ID, "refresh-2")

        assert relinked.id == binding.id
        assert relinked.refresh_token == "refresh-2"
        assert relinked.enabled is True
        assert relinked.calendar_id == "cal-1"
        rows = (await db_session.execute(select(CalendarBinding))).scalars().all()
        assert len(rows) == 1


class TestGetBinding:
    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session):
        assert await get_binding(db_session, "nobody") is None

    @pytest.mark.asyncio
    async def test_disabled_binding_not_connected(self, db_session):
        db_session.add(CalendarBinding(user_id="u2", enabled=False, refresh_token="r"))
        await db_session.commit()

        binding = await get_binding(db_session, "u2")
        assert binding is not None
        assert binding.is_connected is False


class TestClearBinding:
    @pytest.mark.asyncio
    async def test_clears_credentials_and_task_references(
        self, db_session, binding, make_planning_task, make_deadline_task
    ):
        planning = await make_planning_task(outlook_event_id="evt-1")
        deadline = await make_deadline_task(description="Launch", outlook_event_id="evt-2")
        other = await make_planning_task(user_id="someone-else", outlook_event_id="evt-3")

        assert await clear_binding(db_session, USER_ID) is True

        stored = await get_binding(db_session, USER_ID)
        assert stored.refresh_token is None
        assert stored.calendar_id is None
        assert stored.enabled is False

        for row in (planning, deadline, other):
            await db_session.refresh(row)
        assert planning.outlook_event_id is None
        assert deadline.outlook_event_id is None
        assert other.outlook_event_id == "evt-3"

    @pytest.mark.asyncio
    async def test_no_binding(self, db_session):
        assert await clear_binding(db_session, USER_ID) is False


class TestCacheCalendarId:
    @pytest.mark.asyncio
    async def test_stores_calendar_id(self, db_session, binding):
        await cache_calendar_id(db_session, binding, "cal-9")

        result = await db_session.execute(
            select(CalendarBinding.calendar_id).where(CalendarBinding.user_id == USER_ID)
        )
        assert result.scalar_one() == "cal-9"
