"""Persistence gateway interface.

The track graph core only depends on these coroutines; storage engine and
transport are chosen by the adapter. Adapters raise
:class:`~skilltrack.core.exceptions.PersistenceError` for backend failures.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from skilltrack.schemas.progress import AggregateDeltas, QuizAttempt, QuizSummary, UserProgress
from skilltrack.schemas.track import Track


class PersistenceGateway(ABC):
    """Tracks, learner progress, quizzes, attempts and user aggregates."""

    @abstractmethod
    async def list_tracks(self, subject_id: Optional[str] = None) -> List[Track]:
        ...

    @abstractmethod
    async def get_track(self, track_id: str) -> Optional[Track]:
        ...

    @abstractmethod
    async def create_track(self, track: Track) -> Track:
        ...

    @abstractmethod
    async def update_track(self, track_id: str, track: Track) -> Track:
        ...

    @abstractmethod
    async def delete_track(self, track_id: str) -> bool:
        ...

    @abstractmethod
    async def get_user_progress(self, user_id: str, track_id: str) -> Optional[UserProgress]:
        ...

    @abstractmethod
    async def update_user_progress(
        self,
        user_id: str,
        track_id: str,
        progress: UserProgress
    ) -> UserProgress:
        ...

    @abstractmethod
    async def list_quizzes(self, subject_id: Optional[str] = None) -> List[QuizSummary]:
        ...

    @abstractmethod
    async def record_attempt(self, attempt: QuizAttempt) -> bool:
        """Store an attempt; False when one with the same id is already stored."""
        ...

    @abstractmethod
    async def list_attempts(self, user_id: str, quiz_ids: Iterable[str]) -> List[QuizAttempt]:
        ...

    @abstractmethod
    async def update_user_aggregates(self, user_id: str, deltas: AggregateDeltas) -> None:
        ...
