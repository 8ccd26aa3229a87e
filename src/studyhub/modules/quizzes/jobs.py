"""
Quiz Background Jobs

Auto-submits timed quiz attempts whose time limit has run out, scoring the
answers given so far.

The job is idempotent: a submission is only picked up while ``submitted_at``
is NULL, and handing it in sets it.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from studyhub.modules.jobs.runner import JobContext, JobRunner
from studyhub.modules.quizzes import repository
from studyhub.modules.quizzes.models import Quiz, QuizSubmission

logger = logging.getLogger(__name__)

JOB_ID_AUTO_SUBMIT = "auto-submit overdue quizzes"
AUTO_SUBMIT_INTERVAL = "every 1 minute"


def score_answers(questions: list[dict[str, Any]], answers: list[Any]) -> int:
    """Count answers matching each question's correct option, by position."""
    score = 0
    for index, question in enumerate(questions):
        if index < len(answers) and answers[index] == question.get("correct"):
            score += 1
    return score


def is_overdue(submission: QuizSubmission, quiz: Quiz, now: datetime) -> bool:
    """Whether the attempt has used up the quiz's time limit."""
    if quiz.time_limit_minutes is None or submission.submitted_at is not None:
        return False
    return now - submission.started_at >= timedelta(minutes=quiz.time_limit_minutes)


async def auto_submit_overdue_quizzes(context: JobContext) -> dict[str, Any]:
    """
    Hand in every timed quiz attempt whose time limit has elapsed.

    Failures on one quiz are logged and counted; the remaining quizzes are
    still processed.

    Returns:
        Dict with job execution summary including:
        - executed_at: Reference time of the run
        - quizzes_checked: Timed quizzes with open attempts
        - auto_submitted: Attempts handed in by this run
        - total_errors: Quizzes that failed to process
    """
    now = context.now
    results: dict[str, Any] = {
        "executed_at": now.isoformat(),
        "quizzes_checked": 0,
        "auto_submitted": 0,
        "total_errors": 0,
    }

    async with context.session_maker() as db:
        quizzes = await repository.get_timed_quizzes_with_open_submissions(db)

    results["quizzes_checked"] = len(quizzes)

    for quiz in quizzes:
        try:
            async with context.session_maker() as db:
                submissions = await repository.get_open_submissions(db, quiz.id)
                for submission in submissions:
                    if not is_overdue(submission, quiz, now):
                        continue
                    score = score_answers(quiz.questions or [], submission.answers or [])
                    await repository.mark_auto_submitted(db, submission, now, score)
                    results["auto_submitted"] += 1
                    logger.info(
                        f"Auto-submitted quiz '{quiz.title}' for student "
                        f"{submission.student_id} (score {score}/{len(quiz.questions or [])})"
                    )
        except Exception as e:
            logger.error(f"Error auto-submitting quiz {quiz.id}: {e}", exc_info=True)
            results["total_errors"] += 1

    logger.info(
        f"Quiz auto-submit job completed. "
        f"Submitted: {results['auto_submitted']}, Errors: {results['total_errors']}"
    )
    return results


def register_quiz_jobs(runner: JobRunner) -> None:
    """Define the quiz auto-submit job on the runner."""
    runner.define(JOB_ID_AUTO_SUBMIT, auto_submit_overdue_quizzes, every=AUTO_SUBMIT_INTERVAL)
    logger.info(f"Registered job: {JOB_ID_AUTO_SUBMIT} ({AUTO_SUBMIT_INTERVAL})")
