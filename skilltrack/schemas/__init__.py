"""Pydantic schemas for Skill Track Service."""

from skilltrack.schemas.track import (
    Coordinates,
    Module,
    ModuleList,
    ModuleStatus,
    ModuleType,
    SubModule,
    Track,
    TrackImport,
    TrackMetadata,
)
from skilltrack.schemas.progress import (
    AggregateDeltas,
    CascadeResult,
    CommitProgressRequest,
    QuizAttempt,
    QuizSummary,
    ResolvedStatus,
    UserProgress,
    sub_module_key,
)

__all__ = [
    "Coordinates",
    "Module",
    "ModuleList",
    "ModuleStatus",
    "ModuleType",
    "SubModule",
    "Track",
    "TrackImport",
    "TrackMetadata",
    "AggregateDeltas",
    "CascadeResult",
    "CommitProgressRequest",
    "QuizAttempt",
    "QuizSummary",
    "ResolvedStatus",
    "UserProgress",
    "sub_module_key",
]
