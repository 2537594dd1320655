"""Data models for Skill Track Service."""

from skilltrack.models.track import TrackRecord
from skilltrack.models.progress import UserTrackProgress, QuizRecord, AttemptRecord, UserStats

__all__ = [
    "TrackRecord",
    "UserTrackProgress",
    "QuizRecord",
    "AttemptRecord",
    "UserStats"
]
