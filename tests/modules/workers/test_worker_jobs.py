"""
Tests for the worker reminder job.

These cover:
- Recurrence stepping for daily reminders
- One-off and recurring reminders notify once per occurrence
- Goal deadline warnings
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from studyhub.modules.jobs.runner import JobContext
from studyhub.modules.users.models import User, UserRole
from studyhub.modules.workers.jobs import next_occurrence, send_worker_reminders
from studyhub.modules.workers.models import (
    ReminderCategory,
    Worker,
    WorkerGoal,
    WorkerReminder,
)


async def _add(session_maker, *objects):
    async with session_maker() as db:
        db.add_all(objects)
        await db.commit()


async def _get(session_maker, model, object_id):
    async with session_maker() as db:
        return await db.get(model, object_id)


@pytest_asyncio.fixture
async def worker(session_maker):
    user = User(email="kofi@example.com", first_name="Kofi", role=UserRole.WORKER)
    await _add(session_maker, user)
    profile = Worker(user_id=user.id, country="GH", occupation="Nurse")
    await _add(session_maker, profile)
    return profile


class TestNextOccurrence:
    """Tests for recurring reminder stepping."""

    def test_future_due_date_unchanged(self, start_time):
        due = start_time + timedelta(hours=3)
        assert next_occurrence(due, start_time) == due

    def test_steps_past_now(self, start_time):
        """A reminder missed for two days moves to tomorrow's slot."""
        due = start_time - timedelta(days=2, hours=1)
        assert next_occurrence(due, start_time) == start_time + timedelta(hours=23)

    def test_due_exactly_now_moves_one_step(self, start_time):
        assert next_occurrence(start_time, start_time) == start_time + timedelta(days=1)


class TestSendWorkerReminders:
    """Tests for the worker reminder handler."""

    @pytest.mark.asyncio
    async def test_one_off_reminder_sent_once(self, session_maker, start_time, worker):
        reminder = WorkerReminder(
            worker_id=worker.id,
            title="Submit timesheet",
            due_date=start_time - timedelta(minutes=1),
            category=ReminderCategory.WORK,
        )
        await _add(session_maker, reminder)
        context = JobContext("worker_reminder", start_time, session_maker)

        send = AsyncMock(return_value=True)
        with patch("studyhub.modules.workers.jobs.send_worker_reminder", new=send):
            first = await send_worker_reminders(context)
            second = await send_worker_reminders(context)

        assert first["total_sent"] == 1
        assert second["reminders"] == []
        send.assert_awaited_once()
        assert send.await_args.kwargs["category"] == "work"

        stored = await _get(session_maker, WorkerReminder, reminder.id)
        assert stored.is_sent
        assert stored.sent_at == start_time

    @pytest.mark.asyncio
    async def test_recurring_reminder_moves_to_next_occurrence(
        self, session_maker, start_time, worker
    ):
        reminder = WorkerReminder(
            worker_id=worker.id,
            title="Stretch",
            due_date=start_time - timedelta(days=2, hours=1),
            is_recurring=True,
        )
        await _add(session_maker, reminder)
        context = JobContext("worker_reminder", start_time, session_maker)

        send = AsyncMock(return_value=True)
        with patch("studyhub.modules.workers.jobs.send_worker_reminder", new=send):
            results = await send_worker_reminders(context)
            again = await send_worker_reminders(context)

        assert results["total_sent"] == 1
        assert again["total_sent"] == 0
        send.assert_awaited_once()

        stored = await _get(session_maker, WorkerReminder, reminder.id)
        assert not stored.is_sent
        assert stored.due_date == start_time + timedelta(hours=23)

    @pytest.mark.asyncio
    async def test_dismissed_reminder_ignored(self, session_maker, start_time, worker):
        await _add(
            session_maker,
            WorkerReminder(
                worker_id=worker.id,
                title="Old reminder",
                due_date=start_time - timedelta(hours=1),
                is_dismissed=True,
            ),
        )
        context = JobContext("worker_reminder", start_time, session_maker)

        send = AsyncMock(return_value=True)
        with patch("studyhub.modules.workers.jobs.send_worker_reminder", new=send):
            results = await send_worker_reminders(context)

        assert results["reminders"] == []
        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_goal_deadline_warning_sent_once(self, session_maker, start_time, worker):
        goal = WorkerGoal(
            worker_id=worker.id,
            title="Finish certification",
            target_completion_date=start_time + timedelta(hours=12),
            progress_percentage=80,
        )
        far_goal = WorkerGoal(
            worker_id=worker.id,
            title="Run a marathon",
            target_completion_date=start_time + timedelta(days=30),
        )
        await _add(session_maker, goal, far_goal)
        context = JobContext("worker_reminder", start_time, session_maker)

        send = AsyncMock(return_value=True)
        with patch("studyhub.modules.workers.jobs.send_goal_deadline_reminder", new=send):
            first = await send_worker_reminders(context)
            second = await send_worker_reminders(context)

        assert [g["goal_id"] for g in first["goals"]] == [str(goal.id)]
        assert second["goals"] == []
        send.assert_awaited_once()
        assert send.await_args.kwargs["progress_percentage"] == 80

        stored = await _get(session_maker, WorkerGoal, goal.id)
        assert stored.reminder_sent_at == start_time

    @pytest.mark.asyncio
    async def test_claimed_elsewhere_is_skipped(self, mock_session_maker, start_time):
        """A reminder another run already claimed is not emailed again."""
        reminder = WorkerReminder(title="Submit timesheet", due_date=start_time)
        reminder.is_recurring = False
        profile = Worker(country="GH")
        context = JobContext("worker_reminder", start_time, mock_session_maker)

        with (
            patch("studyhub.modules.workers.jobs.repository") as mock_repo,
            patch("studyhub.modules.workers.jobs.UserRepository") as mock_users,
            patch("studyhub.modules.workers.jobs.send_worker_reminder", new=AsyncMock()) as send,
        ):
            mock_repo.get_due_reminders = AsyncMock(return_value=[(reminder, profile)])
            mock_repo.get_goals_nearing_deadline = AsyncMock(return_value=[])
            mock_repo.claim_one_off_reminder = AsyncMock(return_value=False)
            mock_users.get_active_by_ids = AsyncMock(return_value={})

            results = await send_worker_reminders(context)

        assert results["reminders"][0]["reason"] == "already_sent"
        send.assert_not_awaited()
