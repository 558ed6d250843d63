"""Tests for the one-active-timer-per-user rule."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import ADMIN_ID, ANA_ID, BRUNO_ID
from faae_core import crud, models, schemas
from faae_core.errors import NotFoundError

T0 = datetime(2024, 4, 1, 8, 0)


@pytest.fixture
def tasks(db):
    return [
        crud.create_task(db, schemas.TaskCreate(title=f"Tarefa {i}"), ADMIN_ID, now=T0)
        for i in range(2)
    ]


def _active_count(db, user_id):
    return (
        db.query(models.TimeEntry)
        .filter(models.TimeEntry.user_id == user_id, models.TimeEntry.is_active.is_(True))
        .count()
    )


class TestTimer:
    """Test starting and stopping timers."""

    def test_start_then_stop_records_whole_minutes(self, db, tasks):
        entry = crud.start_timer(db, ANA_ID, tasks[0].id, "Desenho", now=T0)
        assert entry.is_active is True
        assert entry.duration is None

        stopped = crud.stop_timer(db, ANA_ID, now=T0 + timedelta(minutes=90, seconds=59))
        assert stopped.id == entry.id
        assert stopped.is_active is False
        assert stopped.duration == 90
        assert stopped.end_time == T0 + timedelta(minutes=90, seconds=59)

    def test_starting_again_closes_previous_entry(self, db, tasks):
        """Second start closes the first; exactly one entry stays active."""
        first = crud.start_timer(db, ANA_ID, tasks[0].id, now=T0)
        second = crud.start_timer(db, ANA_ID, tasks[1].id, now=T0 + timedelta(minutes=30))

        db.refresh(first)
        assert first.is_active is False
        assert first.duration == 30
        assert second.is_active is True
        assert second.task_id == tasks[1].id
        assert _active_count(db, ANA_ID) == 1

    def test_users_have_independent_timers(self, db, tasks):
        crud.start_timer(db, ANA_ID, tasks[0].id, now=T0)
        crud.start_timer(db, BRUNO_ID, tasks[0].id, now=T0)

        assert _active_count(db, ANA_ID) == 1
        assert _active_count(db, BRUNO_ID) == 1

    def test_stop_without_active_entry(self, db):
        with pytest.raises(NotFoundError):
            crud.stop_timer(db, ANA_ID)

    def test_start_on_missing_task(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            crud.start_timer(db, ANA_ID, 12345)
        assert exc_info.value.field == "task_id"

    def test_get_active_timer(self, db, tasks):
        assert crud.get_active_timer(db, ANA_ID) is None
        entry = crud.start_timer(db, ANA_ID, tasks[0].id, now=T0)
        assert crud.get_active_timer(db, ANA_ID).id == entry.id

    def test_database_rejects_second_active_entry(self, db, tasks):
        """The partial unique index backs the rule at the storage level."""
        crud.start_timer(db, ANA_ID, tasks[0].id, now=T0)
        db.add(models.TimeEntry(task_id=tasks[1].id, user_id=ANA_ID, start_time=T0, is_active=True))

        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_hours_feed_dashboard(self, db, tasks):
        crud.start_timer(db, ANA_ID, tasks[0].id, now=T0)
        crud.stop_timer(db, ANA_ID, now=T0 + timedelta(minutes=90))

        assert crud.get_dashboard_stats(db).total_hours == 1.5

    def test_concurrent_start_is_retried_once(self, db, tasks, session_factory, monkeypatch):
        """A start that loses the race on the active-entry index closes the winner and retries."""
        original_query = crud._active_entry_query
        competitor_ids = []

        def racing_query(session, user_id):
            if competitor_ids:
                return original_query(session, user_id)
            other = session_factory()
            competitor = models.TimeEntry(task_id=tasks[1].id, user_id=user_id, start_time=T0, is_active=True)
            other.add(competitor)
            other.commit()
            competitor_ids.append(competitor.id)
            other.close()
            # The losing start does not see the entry committed just now
            return original_query(session, "nobody")

        monkeypatch.setattr(crud, "_active_entry_query", racing_query)
        entry = crud.start_timer(db, ANA_ID, tasks[0].id, now=T0 + timedelta(minutes=10))

        db.expire_all()
        competitor = db.get(models.TimeEntry, competitor_ids[0])
        assert competitor.is_active is False
        assert competitor.duration == 10
        assert entry.is_active is True
        assert entry.task_id == tasks[0].id
        assert _active_count(db, ANA_ID) == 1
        assert crud.get_active_timer(db, ANA_ID).id == entry.id
