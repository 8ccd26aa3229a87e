"""
Seed Demo Data

Creates a demo student and worker with records the background jobs act on:
- a task due in 3 hours (task_reminder schedules and sends its 2 hour reminder)
- a timed quiz attempt that has run out of time (auto-submit picks it up)
- a worker reminder that is already due and a goal due tomorrow

Run this once against a development database, then:

    python -m studyhub.worker --run-now task_reminder --run-now worker_reminder

Usage:
    python scripts/seed_demo_data.py
"""

import asyncio
from datetime import UTC, datetime, timedelta

from sqlalchemy import select

from studyhub.core.database import async_session_maker, close_db
from studyhub.modules.quizzes.models import Quiz, QuizSubmission
from studyhub.modules.tasks.models import StudentTask
from studyhub.modules.users.models import User, UserRole
from studyhub.modules.workers.models import ReminderCategory, Worker, WorkerGoal, WorkerReminder

STUDENT_EMAIL = "demo.student@studyhub.app"
TEACHER_EMAIL = "demo.teacher@studyhub.app"
WORKER_EMAIL = "demo.worker@studyhub.app"


async def seed_demo_data() -> None:
    """Create the demo users and their records if they don't exist."""
    now = datetime.now(UTC)

    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == STUDENT_EMAIL))
        if result.scalar_one_or_none():
            print(f"Demo data already exists: {STUDENT_EMAIL}")
            return

        student = User(email=STUDENT_EMAIL, first_name="Ama", last_name="Mensah")
        teacher = User(email=TEACHER_EMAIL, first_name="Efua", role=UserRole.TEACHER)
        worker_user = User(email=WORKER_EMAIL, first_name="Kofi", role=UserRole.WORKER)
        db.add_all([student, teacher, worker_user])
        await db.flush()

        task = StudentTask(
            student_id=student.id,
            title="Biology essay",
            due_date=now + timedelta(hours=3),
        )
        quiz = Quiz(
            teacher_id=teacher.id,
            title="Cell structure check",
            due_date=now + timedelta(days=1),
            time_limit_minutes=10,
            questions=[
                {
                    "question": "Powerhouse of the cell",
                    "options": ["Nucleus", "Mitochondria"],
                    "correct": "Mitochondria",
                },
            ],
        )
        worker = Worker(user_id=worker_user.id, country="GH", occupation="Nurse")
        db.add_all([task, quiz, worker])
        await db.flush()

        db.add_all(
            [
                QuizSubmission(
                    quiz_id=quiz.id,
                    student_id=student.id,
                    answers=["Mitochondria"],
                    started_at=now - timedelta(minutes=15),
                ),
                WorkerReminder(
                    worker_id=worker.id,
                    title="Renew nursing licence",
                    due_date=now - timedelta(minutes=1),
                    category=ReminderCategory.WORK,
                ),
                WorkerGoal(
                    worker_id=worker.id,
                    title="Finish CPD modules",
                    target_completion_date=now + timedelta(hours=20),
                    progress_percentage=70,
                ),
            ]
        )
        await db.commit()

        print("Demo data created successfully!")
        print(f"  Student: {STUDENT_EMAIL} (task due {task.due_date.isoformat()})")
        print(f"  Teacher: {TEACHER_EMAIL} (quiz '{quiz.title}')")
        print(f"  Worker:  {WORKER_EMAIL}")


async def main() -> None:
    try:
        await seed_demo_data()
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
