"""
Import every ORM model so ``Base.metadata`` knows all tables.

Used by Alembic and by tests that create the schema directly.
"""

from studyhub.core.database import Base
from studyhub.modules.jobs.models import JobDefinition, JobRun
from studyhub.modules.quizzes.models import Quiz, QuizSubmission
from studyhub.modules.tasks.models import StudentTask, TaskReminder
from studyhub.modules.users.models import User
from studyhub.modules.workers.models import Worker, WorkerGoal, WorkerReminder

__all__ = [
    "Base",
    "JobDefinition",
    "JobRun",
    "Quiz",
    "QuizSubmission",
    "StudentTask",
    "TaskReminder",
    "User",
    "Worker",
    "WorkerGoal",
    "WorkerReminder",
]
