"""Gateway talking to the platform REST backend over HTTP."""

from typing import Any, Iterable, List, Optional

import httpx
import structlog

from skilltrack.core.exceptions import PersistenceError, TrackConflictError, TrackNotFoundError
from skilltrack.gateway.base import PersistenceGateway
from skilltrack.schemas.progress import AggregateDeltas, QuizAttempt, QuizSummary, UserProgress
from skilltrack.schemas.track import Track

logger = structlog.get_logger()


class HttpGateway(PersistenceGateway):
    """Persistence adapter for the platform backend.

    Payloads use the camelCase wire names of the schemas. Transport errors and
    unexpected status codes surface as :class:`PersistenceError`.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Backend request failed", method=method, url=url, error=str(e))
            raise PersistenceError(f"Backend request failed: {method} {path}: {e}") from e

    @staticmethod
    def _check(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Backend returned an error",
                url=str(response.request.url),
                status_code=response.status_code
            )
            raise PersistenceError(
                f"Backend returned {response.status_code} for {response.request.url}"
            ) from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError(f"Backend returned invalid JSON for {response.request.url}") from e

    @staticmethod
    def _items(payload: Any, key: str) -> list:
        # The backend may return a bare list or wrap it in an envelope
        if isinstance(payload, dict):
            payload = payload.get(key, payload.get("data", []))
        return payload if isinstance(payload, list) else []

    # --- Tracks ---

    async def list_tracks(self, subject_id: Optional[str] = None) -> List[Track]:
        params = {"subjectId": subject_id} if subject_id else None
        response = await self._request("GET", "/skill-tracks", params=params)
        self._check(response)
        return [Track.model_validate(item) for item in self._items(self._json(response), "tracks")]

    async def get_track(self, track_id: str) -> Optional[Track]:
        response = await self._request("GET", f"/skill-tracks/{track_id}")
        if response.status_code == 404:
            return None
        self._check(response)
        return Track.model_validate(self._json(response))

    async def create_track(self, track: Track) -> Track:
        response = await self._request(
            "POST", "/skill-tracks", json=track.model_dump(mode="json", by_alias=True)
        )
        if response.status_code == 409:
            raise TrackConflictError(f"Track {track.track_id} already exists")
        self._check(response)
        logger.info("Track created", track_id=track.track_id, backend=self.base_url)
        return Track.model_validate(self._json(response))

    async def update_track(self, track_id: str, track: Track) -> Track:
        response = await self._request(
            "PUT", f"/skill-tracks/{track_id}", json=track.model_dump(mode="json", by_alias=True)
        )
        if response.status_code == 404:
            raise TrackNotFoundError(f"Track {track_id} not found")
        self._check(response)
        logger.info("Track updated", track_id=track_id, backend=self.base_url)
        return Track.model_validate(self._json(response))

    async def delete_track(self, track_id: str) -> bool:
        response = await self._request("DELETE", f"/skill-tracks/{track_id}")
        if response.status_code == 404:
            return False
        self._check(response)
        return True

    # --- Progress ---

    async def get_user_progress(self, user_id: str, track_id: str) -> Optional[UserProgress]:
        response = await self._request("GET", f"/skill-tracks/{track_id}/progress/{user_id}")
        if response.status_code == 404:
            return None
        self._check(response)
        payload = self._json(response)
        if not payload:
            return None
        payload = dict(payload)
        payload.setdefault("userId", user_id)
        payload.setdefault("trackId", track_id)
        return UserProgress.model_validate(payload)

    async def update_user_progress(
        self,
        user_id: str,
        track_id: str,
        progress: UserProgress
    ) -> UserProgress:
        response = await self._request(
            "PUT",
            f"/skill-tracks/{track_id}/progress/{user_id}",
            json=progress.model_dump(mode="json", by_alias=True)
        )
        self._check(response)
        payload = self._json(response) if response.content else None
        if not payload:
            return progress
        return UserProgress.model_validate({"userId": user_id, "trackId": track_id, **payload})

    # --- Quizzes, attempts and aggregates ---

    async def list_quizzes(self, subject_id: Optional[str] = None) -> List[QuizSummary]:
        params = {"subjectId": subject_id} if subject_id else None
        response = await self._request("GET", "/quizzes", params=params)
        self._check(response)
        return [QuizSummary.model_validate(item) for item in self._items(self._json(response), "quizzes")]

    async def record_attempt(self, attempt: QuizAttempt) -> bool:
        response = await self._request(
            "POST", "/attempts", json=attempt.model_dump(mode="json", by_alias=True)
        )
        if response.status_code == 409:
            logger.debug("Attempt already recorded", attempt_id=attempt.attempt_id)
            return False
        self._check(response)
        return True

    async def list_attempts(self, user_id: str, quiz_ids: Iterable[str]) -> List[QuizAttempt]:
        quiz_ids = list(quiz_ids)
        if not quiz_ids:
            return []
        response = await self._request(
            "GET", "/attempts", params={"userId": user_id, "quizIds": ",".join(quiz_ids)}
        )
        self._check(response)
        return [QuizAttempt.model_validate(item) for item in self._items(self._json(response), "attempts")]

    async def update_user_aggregates(self, user_id: str, deltas: AggregateDeltas) -> None:
        response = await self._request(
            "PATCH", f"/users/{user_id}/aggregates", json=deltas.model_dump(by_alias=True)
        )
        self._check(response)
        logger.info("User aggregates sent", user_id=user_id, xp=deltas.xp)
