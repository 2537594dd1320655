"""
Pytest fixtures for skill track tests.
"""

from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from skilltrack.core.exceptions import PersistenceError, TrackConflictError, TrackNotFoundError
from skilltrack.gateway.base import PersistenceGateway
from skilltrack.schemas.progress import AggregateDeltas, QuizAttempt, QuizSummary, UserProgress
from skilltrack.schemas.track import Coordinates, Module, Track


def build_module(module_id: str, prerequisites: Iterable[str] = (), **fields) -> Module:
    """Module with sensible test defaults; ``x``/``y`` set the coordinates."""
    x = fields.pop("x", 0)
    y = fields.pop("y", 0)
    fields.setdefault("title", module_id.upper())
    return Module(
        module_id=module_id,
        prerequisites=list(prerequisites),
        coordinates=Coordinates(x=x, y=y),
        **fields,
    )


class FakeGateway(PersistenceGateway):
    """In-memory gateway recording every call."""

    def __init__(self):
        self.tracks: Dict[str, Track] = {}
        self.progress: Dict[Tuple[str, str], UserProgress] = {}
        self.quizzes: List[QuizSummary] = []
        self.attempts: List[QuizAttempt] = []
        self.aggregates: Dict[str, AggregateDeltas] = {}
        self.aggregate_calls: List[AggregateDeltas] = []
        self.progress_writes = 0
        self.fail_writes = False
        self.failing_progress_writes = 0

    def _check_writable(self):
        if self.fail_writes:
            raise PersistenceError("backend unavailable")

    async def list_tracks(self, subject_id: Optional[str] = None) -> List[Track]:
        return [t for t in self.tracks.values() if subject_id is None or t.subject_id == subject_id]

    async def get_track(self, track_id: str) -> Optional[Track]:
        return self.tracks.get(track_id)

    async def create_track(self, track: Track) -> Track:
        self._check_writable()
        if track.track_id in self.tracks:
            raise TrackConflictError(track.track_id)
        self.tracks[track.track_id] = track
        return track

    async def update_track(self, track_id: str, track: Track) -> Track:
        self._check_writable()
        if track_id not in self.tracks:
            raise TrackNotFoundError(track_id)
        self.tracks[track_id] = track
        return track

    async def delete_track(self, track_id: str) -> bool:
        self._check_writable()
        return self.tracks.pop(track_id, None) is not None

    async def get_user_progress(self, user_id: str, track_id: str) -> Optional[UserProgress]:
        return self.progress.get((user_id, track_id))

    async def update_user_progress(self, user_id: str, track_id: str, progress: UserProgress) -> UserProgress:
        self._check_writable()
        if self.failing_progress_writes:
            self.failing_progress_writes -= 1
            raise PersistenceError("progress write failed")
        self.progress[(user_id, track_id)] = progress
        self.progress_writes += 1
        return progress

    async def list_quizzes(self, subject_id: Optional[str] = None) -> List[QuizSummary]:
        return [q for q in self.quizzes if subject_id is None or q.subject_id == subject_id]

    async def record_attempt(self, attempt: QuizAttempt) -> bool:
        self._check_writable()
        if any(a.attempt_id == attempt.attempt_id for a in self.attempts):
            return False
        self.attempts.append(attempt)
        return True

    async def list_attempts(self, user_id: str, quiz_ids: Iterable[str]) -> List[QuizAttempt]:
        quiz_ids = set(quiz_ids)
        return [a for a in self.attempts if a.user_id == user_id and a.quiz_id in quiz_ids]

    async def update_user_aggregates(self, user_id: str, deltas: AggregateDeltas) -> None:
        self._check_writable()
        self.aggregate_calls.append(deltas)
        current = self.aggregates.get(user_id, AggregateDeltas())
        self.aggregates[user_id] = AggregateDeltas(
            total_attempts=current.total_attempts + deltas.total_attempts,
            total_score=current.total_score + deltas.total_score,
            xp=current.xp + deltas.xp,
        )


@pytest.fixture
def make_module():
    """Factory building modules for tests."""
    return build_module


@pytest.fixture
def gateway() -> FakeGateway:
    """Empty in-memory gateway."""
    return FakeGateway()


@pytest.fixture
def fan_out_modules() -> List[Module]:
    """A with two dependents B and C."""
    return [
        build_module("A", level=0, title="A"),
        build_module("B", ["A"], level=1, title="B"),
        build_module("C", ["A"], level=1, title="C"),
    ]
