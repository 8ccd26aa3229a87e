"""
Quiz Repository

Database operations used by the quiz auto-submit job.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Quiz, QuizSubmission


async def get_timed_quizzes_with_open_submissions(db: AsyncSession) -> list[Quiz]:
    """Timed quizzes that have at least one submission not yet handed in."""
    open_quiz_ids = select(QuizSubmission.quiz_id).where(QuizSubmission.submitted_at.is_(None))
    result = await db.execute(
        select(Quiz).where(
            Quiz.time_limit_minutes.is_not(None),
            Quiz.id.in_(open_quiz_ids),
        )
    )
    return list(result.scalars().all())


async def get_open_submissions(db: AsyncSession, quiz_id: UUID) -> list[QuizSubmission]:
    """Submissions for a quiz that have not been handed in."""
    result = await db.execute(
        select(QuizSubmission).where(
            QuizSubmission.quiz_id == quiz_id,
            QuizSubmission.submitted_at.is_(None),
        )
    )
    return list(result.scalars().all())


async def mark_auto_submitted(
    db: AsyncSession,
    submission: QuizSubmission,
    submitted_at: datetime,
    score: int,
) -> QuizSubmission:
    """Hand in a submission on the student's behalf."""
    submission.submitted_at = submitted_at
    submission.auto_submitted = True
    submission.score = score
    await db.commit()
    return submission
