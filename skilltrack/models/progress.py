"""Progress, quiz attempt and user aggregate records."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Float, DateTime, JSON, UniqueConstraint, Index

from skilltrack.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserTrackProgress(Base):
    """Per-learner progress on one track."""
    __tablename__ = "user_track_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    track_id = Column(String, nullable=False)
    completed_modules = Column(JSON, nullable=False, default=list)
    unlocked_modules = Column(JSON, nullable=False, default=list)
    completed_sub_modules = Column(JSON, nullable=False, default=list)  # "moduleId:subModuleId"
    last_accessed = Column(DateTime(timezone=True), default=utcnow)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "track_id", name="uq_user_track_progress_user_track"),
    )


class QuizRecord(Base):
    """Quiz catalogue entry mirrored from the quiz engine."""
    __tablename__ = "quizzes"

    quiz_id = Column(String, primary_key=True)
    title = Column(String, nullable=False, default="")
    subject_id = Column(String, index=True)
    question_count = Column(Integer, nullable=False, default=0)


class AttemptRecord(Base):
    """Submitted quiz attempt."""
    __tablename__ = "quiz_attempts"

    attempt_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    quiz_id = Column(String, nullable=False)
    quiz_title = Column(String, nullable=False, default="")
    score = Column(Float, nullable=False)
    total_questions = Column(Integer, nullable=False)
    percentage = Column(Float, nullable=False)
    time_taken = Column(Integer, nullable=False, default=0)
    answers = Column(JSON, nullable=False, default=dict)
    completed_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_quiz_attempts_user_quiz", "user_id", "quiz_id"),
    )


class UserStats(Base):
    """Aggregate counters shown on the learner profile."""
    __tablename__ = "user_stats"

    user_id = Column(String, primary_key=True)
    total_attempts = Column(Integer, nullable=False, default=0)
    total_score = Column(Integer, nullable=False, default=0)
    xp = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
