"""Reward accounting for completed modules."""

import uuid
from typing import Optional

import structlog

from skilltrack.core.config import Settings, settings
from skilltrack.schemas.progress import AggregateDeltas, QuizAttempt, QuizSummary

logger = structlog.get_logger()


def credit_attempt_id(user_id: str, module_id: str, quiz_id: str) -> str:
    key = uuid.uuid5(uuid.NAMESPACE_URL, f"skilltrack:{user_id}/{module_id}/{quiz_id}")
    return f"att_{key.hex[:12]}"


class RewardEngine:
    """Engine for synthesizing quiz credit and aggregate rewards."""

    def __init__(self, config: Optional[Settings] = None):
        config = config or settings
        self.xp_per_quiz = config.XP_PER_QUIZ
        self.score_per_quiz = config.SCORE_PER_QUIZ

    def full_credit_attempt(
        self,
        user_id: str,
        module_id: str,
        quiz_id: str,
        quiz: Optional[QuizSummary] = None
    ) -> QuizAttempt:
        """Attempt record crediting every question of a quiz.

        The id is derived from user, module and quiz, so completing the same
        module again yields the same attempt. Unknown quizzes count as a
        single question.
        """
        total = quiz.question_count if quiz and quiz.question_count > 0 else 1
        return QuizAttempt(
            attempt_id=credit_attempt_id(user_id, module_id, quiz_id),
            user_id=user_id,
            quiz_id=quiz_id,
            quiz_title=quiz.title if quiz else "",
            score=total,
            total_questions=total,
            percentage=100,
            time_taken=0,
            answers={},
        )

    def completion_deltas(self, quiz_count: int) -> AggregateDeltas:
        """Aggregate increments for completing a module with ``quiz_count`` quizzes."""
        return AggregateDeltas(
            total_attempts=quiz_count,
            total_score=quiz_count * self.score_per_quiz,
            xp=quiz_count * self.xp_per_quiz,
        )
