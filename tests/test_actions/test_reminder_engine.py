"""
Tests for Reminder Engine
"""

import pytest
from contextlib import contextmanager
from datetime import datetime
from unittest.mock import AsyncMock

from actions.reminder_engine import ReminderEngine, JobRun, JobType
from services.dose_scheduler import DoseScheduler
from services.missed_dose_sweeper import MissedDoseSweeper
from models import AdherenceLog, AdherenceStatus
from scripts.run_jobs import run_jobs
from actions import tasks
from actions.celery_app import celery_app
from config import settings


@pytest.fixture
def engine(db_session, clock, mock_notifier):
    @contextmanager
    def session_factory():
        yield db_session

    return ReminderEngine(
        scheduler=DoseScheduler(clock=clock, notifier=mock_notifier),
        sweeper=MissedDoseSweeper(clock=clock),
        session_factory=session_factory
    )


class TestJobTicks:
    """Tests for single job runs"""

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_materialization_tick(self, engine, db_session, test_reminder):
        result = await engine.run_materialization()

        assert result.logs_created == 2
        assert db_session.query(AdherenceLog).count() == 2

        history = engine.get_history(JobType.MATERIALIZE)
        assert len(history) == 1
        assert history[0].succeeded is True
        assert history[0].detail["logs_created"] == 2

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_sweep_tick(self, engine, db_session, pending_log, clock):
        clock.current = datetime(2025, 1, 6, 11, 0)

        assert await engine.run_sweep() == 1

        db_session.refresh(pending_log)
        assert pending_log.status == AdherenceStatus.MISSED
        assert engine.get_history(JobType.MISSED_SWEEP)[0].detail == {"marked_missed": 1}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_materialization_is_contained(self, engine):
        engine.scheduler.run = AsyncMock(side_effect=RuntimeError("database unavailable"))

        assert await engine.run_materialization() is None

        run = engine.get_history()[-1]
        assert run.job == JobType.MATERIALIZE
        assert run.succeeded is False
        assert run.finished_at is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_sweep_is_contained(self, engine):
        engine.sweeper.sweep = AsyncMock(side_effect=RuntimeError("database unavailable"))

        assert await engine.run_sweep() == 0
        assert engine.get_history(JobType.MISSED_SWEEP)[0].succeeded is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_history_is_bounded(self, engine):
        engine.history_size = 3
        engine.sweeper.sweep = AsyncMock(return_value=0)

        for _ in range(5):
            await engine.run_sweep()

        assert len(engine.get_history()) == 3

    @pytest.mark.unit
    def test_job_run_to_dict(self, engine, clock):
        run = JobRun(job=JobType.MISSED_SWEEP, started_at=clock.now(), succeeded=True)

        assert run.to_dict() == {
            "job": "missed_sweep",
            "started_at": "2025-01-06T09:00:00",
            "finished_at": None,
            "succeeded": True,
            "detail": {}
        }


class TestCeleryTasks:
    """Tests for the beat schedule and the task wrappers"""

    @pytest.fixture
    def patched_engine(self, engine, monkeypatch):
        monkeypatch.setattr(tasks, "reminder_engine", engine)
        return engine

    @pytest.mark.unit
    def test_beat_schedule(self):
        schedule = celery_app.conf.beat_schedule

        assert schedule["materialize-doses"] == {
            "task": "actions.tasks.materialize_doses",
            "schedule": float(settings.MATERIALIZE_INTERVAL_SECONDS),
        }
        assert schedule["sweep-missed-doses"] == {
            "task": "actions.tasks.sweep_missed_doses",
            "schedule": float(settings.MISSED_SWEEP_INTERVAL_SECONDS),
        }

    @pytest.mark.unit
    def test_tasks_are_registered(self):
        assert "actions.tasks.materialize_doses" in celery_app.tasks
        assert "actions.tasks.sweep_missed_doses" in celery_app.tasks

    @pytest.mark.database
    def test_materialize_task(self, patched_engine, db_session, test_reminder):
        result = tasks.materialize_doses.apply().get()

        assert result["logs_created"] == 2
        assert result["notifications_sent"] == 1
        assert db_session.query(AdherenceLog).count() == 2
        assert patched_engine.get_history(JobType.MATERIALIZE)[0].succeeded is True

    @pytest.mark.database
    def test_sweep_task(self, patched_engine, db_session, pending_log, clock):
        clock.current = datetime(2025, 1, 6, 11, 0)

        assert tasks.sweep_missed_doses.apply().get() == 1

        db_session.refresh(pending_log)
        assert pending_log.status == AdherenceStatus.MISSED

    @pytest.mark.unit
    def test_failed_tick_does_not_raise(self, patched_engine):
        patched_engine.scheduler.run = AsyncMock(side_effect=RuntimeError("database unavailable"))

        assert tasks.materialize_doses.apply().get() is None
        assert patched_engine.get_history()[-1].succeeded is False


class TestRunJobsScript:
    """Tests for the one-shot cron entry point"""

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_all_jobs_succeed(self, engine, test_reminder):
        assert await run_jobs("all", engine=engine) == 0
        assert [r.job for r in engine.get_history()] == [JobType.MATERIALIZE, JobType.MISSED_SWEEP]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_sweep_sets_exit_code(self, engine):
        engine.sweeper.sweep = AsyncMock(side_effect=RuntimeError("database unavailable"))

        assert await run_jobs("sweep", engine=engine) == 1
