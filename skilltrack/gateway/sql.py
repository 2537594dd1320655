"""SQLAlchemy-backed persistence gateway."""

from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from skilltrack.core.exceptions import (
    PersistenceError,
    TrackConflictError,
    TrackNotFoundError,
    TrackValidationError,
)
from skilltrack.gateway.base import PersistenceGateway
from skilltrack.models.progress import AttemptRecord, QuizRecord, UserStats, UserTrackProgress, utcnow
from skilltrack.models.track import TrackRecord
from skilltrack.schemas.progress import AggregateDeltas, QuizAttempt, QuizSummary, UserProgress
from skilltrack.schemas.track import Track

logger = structlog.get_logger()


class SqlGateway(PersistenceGateway):
    """Gateway storing everything in the service's own database."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _execute(self, query):
        try:
            return await self.db.execute(query)
        except SQLAlchemyError as e:
            logger.error("Database query failed", error=str(e))
            raise PersistenceError(f"Database query failed: {e}") from e

    async def _get(self, model, key):
        try:
            return await self.db.get(model, key)
        except SQLAlchemyError as e:
            logger.error("Database lookup failed", model=model.__tablename__, error=str(e))
            raise PersistenceError(f"Database lookup failed: {e}") from e

    async def _commit(self, action: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to commit", action=action, error=str(e))
            await self.db.rollback()
            raise PersistenceError(f"Failed to {action}: {e}") from e

    # --- Tracks ---

    @staticmethod
    def _to_track(record: TrackRecord) -> Track:
        return Track.model_validate({
            "trackId": record.track_id,
            "title": record.title,
            "icon": record.icon,
            "description": record.description,
            "category": record.category,
            "subjectId": record.subject_id,
            "modules": record.modules or [],
        })

    @staticmethod
    def _dump_modules(track: Track) -> list:
        return [m.model_dump(mode="json", by_alias=True) for m in track.modules]

    async def list_tracks(self, subject_id: Optional[str] = None) -> List[Track]:
        query = select(TrackRecord)
        if subject_id:
            query = query.where(TrackRecord.subject_id == subject_id)
        result = await self._execute(query.order_by(TrackRecord.created_at, TrackRecord.track_id))
        return [self._to_track(record) for record in result.scalars().all()]

    async def get_track(self, track_id: str) -> Optional[Track]:
        record = await self._get(TrackRecord, track_id)
        return self._to_track(record) if record else None

    async def create_track(self, track: Track) -> Track:
        if not track.track_id:
            raise TrackValidationError("A track id is required to create a track")
        if await self._get(TrackRecord, track.track_id) is not None:
            raise TrackConflictError(f"Track {track.track_id} already exists")

        record = TrackRecord(
            track_id=track.track_id,
            title=track.title,
            icon=track.icon,
            description=track.description,
            category=track.category,
            subject_id=track.subject_id,
            modules=self._dump_modules(track),
        )
        self.db.add(record)
        await self._commit("create track")
        logger.info("Track created", track_id=track.track_id, modules=len(track.modules))
        return self._to_track(record)

    async def update_track(self, track_id: str, track: Track) -> Track:
        record = await self._get(TrackRecord, track_id)
        if record is None:
            raise TrackNotFoundError(f"Track {track_id} not found")

        record.title = track.title
        record.icon = track.icon
        record.description = track.description
        record.category = track.category
        record.subject_id = track.subject_id
        record.modules = self._dump_modules(track)
        await self._commit("update track")
        logger.info("Track updated", track_id=track_id, modules=len(track.modules))
        return self._to_track(record)

    async def delete_track(self, track_id: str) -> bool:
        record = await self._get(TrackRecord, track_id)
        if record is None:
            return False
        await self.db.delete(record)
        await self._commit("delete track")
        logger.info("Track deleted", track_id=track_id)
        return True

    # --- Progress ---

    async def _progress_record(self, user_id: str, track_id: str) -> Optional[UserTrackProgress]:
        result = await self._execute(
            select(UserTrackProgress).where(
                UserTrackProgress.user_id == user_id,
                UserTrackProgress.track_id == track_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_progress(record: UserTrackProgress) -> UserProgress:
        return UserProgress(
            user_id=record.user_id,
            track_id=record.track_id,
            completed_modules=list(record.completed_modules or []),
            unlocked_modules=list(record.unlocked_modules or []),
            completed_sub_modules=list(record.completed_sub_modules or []),
            last_accessed=record.last_accessed,
        )

    async def get_user_progress(self, user_id: str, track_id: str) -> Optional[UserProgress]:
        record = await self._progress_record(user_id, track_id)
        return self._to_progress(record) if record else None

    async def update_user_progress(
        self,
        user_id: str,
        track_id: str,
        progress: UserProgress
    ) -> UserProgress:
        record = await self._progress_record(user_id, track_id)
        if record is None:
            record = UserTrackProgress(user_id=user_id, track_id=track_id)
            self.db.add(record)

        # Assign fresh lists so the JSON columns are flagged dirty
        record.completed_modules = list(progress.completed_modules)
        record.unlocked_modules = list(progress.unlocked_modules)
        record.completed_sub_modules = list(progress.completed_sub_modules)
        record.last_accessed = utcnow()
        await self._commit("update progress")
        return self._to_progress(record)

    # --- Quizzes, attempts and aggregates ---

    async def list_quizzes(self, subject_id: Optional[str] = None) -> List[QuizSummary]:
        query = select(QuizRecord)
        if subject_id:
            query = query.where(QuizRecord.subject_id == subject_id)
        result = await self._execute(query.order_by(QuizRecord.title, QuizRecord.quiz_id))
        return [
            QuizSummary(
                quiz_id=record.quiz_id,
                title=record.title,
                subject_id=record.subject_id,
                question_count=record.question_count,
            )
            for record in result.scalars().all()
        ]

    async def record_attempt(self, attempt: QuizAttempt) -> bool:
        if await self._get(AttemptRecord, attempt.attempt_id) is not None:
            logger.debug("Attempt already recorded", attempt_id=attempt.attempt_id)
            return False
        self.db.add(AttemptRecord(
            attempt_id=attempt.attempt_id,
            user_id=attempt.user_id,
            quiz_id=attempt.quiz_id,
            quiz_title=attempt.quiz_title,
            score=attempt.score,
            total_questions=attempt.total_questions,
            percentage=attempt.percentage,
            time_taken=attempt.time_taken,
            answers=attempt.answers,
            completed_at=attempt.completed_at,
        ))
        await self._commit("record attempt")
        return True

    async def list_attempts(self, user_id: str, quiz_ids: Iterable[str]) -> List[QuizAttempt]:
        quiz_ids = list(quiz_ids)
        if not quiz_ids:
            return []
        result = await self._execute(
            select(AttemptRecord)
            .where(AttemptRecord.user_id == user_id, AttemptRecord.quiz_id.in_(quiz_ids))
            .order_by(AttemptRecord.completed_at)
        )
        return [
            QuizAttempt(
                attempt_id=record.attempt_id,
                user_id=record.user_id,
                quiz_id=record.quiz_id,
                quiz_title=record.quiz_title,
                score=record.score,
                total_questions=record.total_questions,
                percentage=record.percentage,
                time_taken=record.time_taken,
                answers=record.answers or {},
                completed_at=record.completed_at,
            )
            for record in result.scalars().all()
        ]

    async def update_user_aggregates(self, user_id: str, deltas: AggregateDeltas) -> None:
        stats = await self._get(UserStats, user_id)
        if stats is None:
            stats = UserStats(user_id=user_id, total_attempts=0, total_score=0, xp=0)
            self.db.add(stats)

        stats.total_attempts += deltas.total_attempts
        stats.total_score += deltas.total_score
        stats.xp += deltas.xp
        await self._commit("update user aggregates")
        logger.info(
            "User aggregates updated",
            user_id=user_id,
            total_attempts=deltas.total_attempts,
            total_score=deltas.total_score,
            xp=deltas.xp
        )

    async def get_user_stats(self, user_id: str) -> AggregateDeltas:
        """Current aggregate counters of a user (zeros when none were recorded)."""
        stats = await self._get(UserStats, user_id)
        if stats is None:
            return AggregateDeltas()
        return AggregateDeltas(
            total_attempts=stats.total_attempts,
            total_score=stats.total_score,
            xp=stats.xp,
        )
