"""Tests for task classification and task storage helpers."""

import datetime
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from planner_sync.models import Base, Project
from planner_sync.sync.tasks import (
    TaskKind,
    TaskSource,
    clear_event_references,
    load_task,
    load_user_tasks,
    referenced_event_ids,
    store_remote_id,
)

from conftest import TASK_DAY, USER_ID, add_planning_task


@pytest_asyncio.fixture
async def enforcing_session(tmp_path):
    """Session on a database that enforces foreign keys, as production does."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fk.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        async with async_sessionmaker(engine, expire_on_commit=False)() as session:
            yield session
    finally:
        await engine.dispose()


class TestPlanningTaskClassification:
    @pytest.mark.asyncio
    async def test_task_without_project_is_status(self, db_session, make_planning_task):
        row = await make_planning_task(task="Time Off")

        task = await load_task(db_session, row.id)

        assert task.kind == TaskKind.STATUS
        assert task.label == "Time Off"
        assert task.source == TaskSource.PLANNING
        assert task.project is None
        assert task.project_missing is False

    @pytest.mark.asyncio
    async def test_legacy_status_project_is_status(self, db_session, time_off_project, make_planning_task):
        row = await make_planning_task(task="Family trip", project_id=time_off_project.id)

        task = await load_task(db_session, str(row.id))

        assert task.kind == TaskKind.STATUS
        assert task.label == "Time Off"
        assert task.description == "Family trip"

    @pytest.mark.asyncio
    async def test_project_task(self, db_session, acme_project, make_planning_task):
        row = await make_planning_task(task="Wireframes", project_id=acme_project.id)

        task = await load_task(db_session, row.id)

        assert task.kind == TaskKind.PROJECT
        assert task.project.display_name == "Acme Redesign"
        assert task.project.client_name == "Acme Corp"
        assert task.description == "Wireframes"
        assert task.date == TASK_DAY

    @pytest.mark.asyncio
    async def test_dangling_project_reference(self, db_session, make_planning_task):
        row = await make_planning_task(project_id=uuid.uuid4())

        task = await load_task(db_session, row.id)

        assert task.kind == TaskKind.PROJECT
        assert task.project is None
        assert task.project_missing is True


class TestLoadTask:
    @pytest.mark.asyncio
    async def test_falls_back_to_deadline_tasks(self, db_session, acme_project, make_deadline_task):
        row = await make_deadline_task(
            description="Go live", deadline_type="MILESTONE", project_id=acme_project.id
        )

        task = await load_task(db_session, row.id)

        assert task.source == TaskSource.DEADLINE
        assert task.kind == TaskKind.DEADLINE
        assert task.user_id == USER_ID
        assert task.deadline_type == "MILESTONE"

    @pytest.mark.asyncio
    async def test_unknown_id(self, db_session):
        assert await load_task(db_session, uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_malformed_id(self, db_session):
        assert await load_task(db_session, "not-a-uuid") is None


class TestLoadUserTasks:
    @pytest.mark.asyncio
    async def test_only_users_tasks_ordered_by_date(self, db_session, make_planning_task):
        later = await make_planning_task(date=datetime.date(2024, 6, 12))
        earlier = await make_planning_task(date=datetime.date(2024, 6, 11))
        await make_planning_task(user_id="someone-else")

        tasks = await load_user_tasks(db_session, USER_ID, TaskSource.PLANNING)

        assert [t.id for t in tasks] == [str(earlier.id), str(later.id)]

    @pytest.mark.asyncio
    async def test_deadlines_by_creator(self, db_session, make_deadline_task):
        await make_deadline_task(description="Mine")
        await make_deadline_task(description="Theirs", created_by="someone-else")

        tasks = await load_user_tasks(db_session, USER_ID, TaskSource.DEADLINE)

        assert [t.description for t in tasks] == ["Mine"]


class TestEventReferences:
    @pytest.mark.asyncio
    async def test_store_remote_id(self, db_session, make_planning_task):
        row = await make_planning_task()
        task = await load_task(db_session, row.id)

        await store_remote_id(db_session, task, "evt-1")

        await db_session.refresh(row)
        assert row.outlook_event_id == "evt-1"

    @pytest.mark.asyncio
    async def test_referenced_event_ids(self, db_session, make_planning_task, make_deadline_task):
        await make_planning_task(outlook_event_id="evt-1")
        await make_planning_task()
        await make_deadline_task(outlook_event_id="evt-2")
        await make_planning_task(user_id="someone-else", outlook_event_id="evt-3")

        assert await referenced_event_ids(db_session, USER_ID) == {"evt-1", "evt-2"}

    @pytest.mark.asyncio
    async def test_clear_event_references(self, db_session, make_planning_task, make_deadline_task):
        stale = await make_planning_task(outlook_event_id="evt-1")
        kept = await make_planning_task(outlook_event_id="evt-2")
        stale_deadline = await make_deadline_task(outlook_event_id="evt-3")

        cleared = await clear_event_references(db_session, USER_ID, {"evt-1", "evt-3"})

        assert cleared == 2
        for row in (stale, kept, stale_deadline):
            await db_session.refresh(row)
        assert stale.outlook_event_id is None
        assert kept.outlook_event_id == "evt-2"
        assert stale_deadline.outlook_event_id is None

    @pytest.mark.asyncio
    async def test_clear_nothing(self, db_session):
        assert await clear_event_references(db_session, USER_ID, []) == 0


class TestProjectDeletion:
    @pytest.mark.asyncio
    async def test_project_with_tasks_cannot_be_deleted(self, enforcing_session):
        project = Project(name="Acme Website Redesign")
        enforcing_session.add(project)
        await enforcing_session.commit()
        row = await add_planning_task(enforcing_session, task="Wireframes", project_id=project.id)
        row_id = row.id

        await enforcing_session.delete(project)
        with pytest.raises(IntegrityError):
            await enforcing_session.commit()
        await enforcing_session.rollback()

        task = await load_task(enforcing_session, row_id)
        assert task.kind == TaskKind.PROJECT
        assert task.project.name == "Acme Website Redesign"
