"""
Quiz Models

Quizzes created by teachers and the per-student submissions against them.
A submission row exists from the moment a student starts a timed quiz;
``submitted_at`` stays NULL until the student (or the auto-submit job)
hands it in.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.core.database import UTCDateTime
from studyhub.modules.shared import BaseModel


class Quiz(BaseModel):
    """
    A quiz assigned to students.

    ``questions`` is a JSON array of
    ``{"question": str, "options": [str, ...], "correct": str}``.
    ``time_limit_minutes`` NULL means untimed.
    """

    __tablename__ = "quizzes"

    teacher_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    time_limit_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    questions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    submissions: Mapped[list["QuizSubmission"]] = relationship(
        "QuizSubmission", back_populates="quiz", cascade="all, delete-orphan"
    )


class QuizSubmission(BaseModel):
    """A student's attempt at a quiz."""

    __tablename__ = "quiz_submissions"

    quiz_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    # Selected answers in question order
    answers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    auto_submitted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    quiz: Mapped["Quiz"] = relationship("Quiz", back_populates="submissions")

    __table_args__ = (
        Index("ix_quiz_submissions_quiz_id", "quiz_id"),
        Index("ix_quiz_submissions_open", "submitted_at"),
    )
