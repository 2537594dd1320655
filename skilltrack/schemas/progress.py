"""Learner progress, quiz attempt and cascade result schemas."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from skilltrack.schemas.track import CamelModel, ModuleStatus


def sub_module_key(module_id: str, sub_module_id: str) -> str:
    """Key stored in ``completedSubModules`` for one sub-module."""
    return f"{module_id}:{sub_module_id}"


class UserProgress(CamelModel):
    """Per (user, track) progress record."""

    user_id: str
    track_id: str
    completed_modules: List[str] = Field(default_factory=list)
    unlocked_modules: List[str] = Field(default_factory=list)
    completed_sub_modules: List[str] = Field(default_factory=list)
    last_accessed: Optional[datetime] = None

    @field_validator("completed_modules", "unlocked_modules", "completed_sub_modules")
    @classmethod
    def dedupe(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))


class ResolvedStatus(CamelModel):
    """Status of a module as shown in a view."""

    status: ModuleStatus
    is_locked: bool
    is_completed: bool


class QuizSummary(CamelModel):
    """Quiz catalogue entry owned by the quiz engine."""

    quiz_id: str
    title: str = ""
    subject_id: Optional[str] = None
    question_count: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def from_quiz_document(cls, data: Any) -> Any:
        # Quiz engine documents carry ``id`` and the full question list
        if isinstance(data, dict):
            data = dict(data)
            if "quizId" not in data and "quiz_id" not in data:
                data["quizId"] = data.get("id") or data.get("_id")
            questions = data.get("questions")
            if "questionCount" not in data and "question_count" not in data and isinstance(questions, list):
                data["questionCount"] = len(questions)
        return data


class QuizAttempt(CamelModel):
    """Attempt record submitted to the quiz engine."""

    attempt_id: str
    user_id: str
    quiz_id: str
    quiz_title: str = ""
    score: float
    total_questions: int
    percentage: float
    time_taken: int = 0
    answers: Dict[str, Any] = Field(default_factory=dict)
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AggregateDeltas(CamelModel):
    """Increments applied to a user's aggregate counters."""

    total_attempts: int = 0
    total_score: int = 0
    xp: int = 0


class CascadeResult(CamelModel):
    """Outcome of one completion cascade run."""

    progress: UserProgress
    completed: List[str] = Field(default_factory=list)
    unlocked: List[str] = Field(default_factory=list)
    attempts_recorded: int = 0
    deltas: AggregateDeltas = Field(default_factory=AggregateDeltas)


class CommitProgressRequest(CamelModel):
    """Admin "commit progress" body: the modules to mark completed."""

    completed_modules: List[str]
