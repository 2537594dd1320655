"""Integration tests for the HTTP gateway against a mocked backend."""

import json

import httpx
import pytest
import pytest_asyncio

from skilltrack.core.exceptions import PersistenceError, TrackConflictError, TrackNotFoundError
from skilltrack.gateway.http import HttpGateway
from skilltrack.schemas.progress import AggregateDeltas, QuizAttempt, UserProgress
from skilltrack.schemas.track import Track

BASE_URL = "http://backend.test/api"


class Backend:
    """Minimal stand-in for the platform REST backend."""

    def __init__(self):
        self.tracks = {}
        self.progress = {}
        self.attempts = set()
        self.requests = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None

        if path == "/skill-tracks" and request.method == "GET":
            return httpx.Response(200, json=list(self.tracks.values()))
        if path == "/skill-tracks" and request.method == "POST":
            if body["trackId"] in self.tracks:
                return httpx.Response(409, json={"message": "exists"})
            self.tracks[body["trackId"]] = body
            return httpx.Response(201, json=body)
        if path.startswith("/skill-tracks/") and "/progress/" in path:
            key = path
            if request.method == "GET":
                if key not in self.progress:
                    return httpx.Response(404)
                return httpx.Response(200, json=self.progress[key])
            self.progress[key] = body
            return httpx.Response(200, json=body)
        if path.startswith("/skill-tracks/"):
            track_id = path.rsplit("/", 1)[-1]
            if track_id not in self.tracks:
                return httpx.Response(404)
            if request.method == "PUT":
                self.tracks[track_id] = body
            if request.method == "DELETE":
                del self.tracks[track_id]
                return httpx.Response(204)
            return httpx.Response(200, json=self.tracks[track_id])
        if path == "/quizzes":
            return httpx.Response(200, json={"quizzes": [
                {"_id": "q1", "title": "Basics", "subjectId": "python", "questions": [{}, {}]},
            ]})
        if path == "/attempts" and request.method == "POST":
            if body["attemptId"] in self.attempts:
                return httpx.Response(409, json={"message": "exists"})
            self.attempts.add(body["attemptId"])
            return httpx.Response(201, json=body)
        if path == "/attempts":
            return httpx.Response(200, json=[])
        if path.startswith("/users/"):
            return httpx.Response(200, json={})
        return httpx.Response(500)


@pytest.fixture
def backend() -> Backend:
    return Backend()


@pytest_asyncio.fixture
async def http_gateway(backend):
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend.handle)) as client:
        yield HttpGateway(client, BASE_URL + "/")


class TestTracks:
    """Tests for track calls."""

    async def test_create_get_update_delete(self, http_gateway, fan_out_modules):
        track = Track(track_id="t1", title="Python", category="Programming", modules=fan_out_modules)
        created = await http_gateway.create_track(track)
        assert created == track
        loaded = await http_gateway.get_track("t1")
        assert (loaded.title, loaded.category) == ("Python", "Programming")

        await http_gateway.update_track("t1", track.model_copy(update={"title": "Renamed"}))
        assert [t.title for t in await http_gateway.list_tracks()] == ["Renamed"]

        assert await http_gateway.delete_track("t1") is True
        assert await http_gateway.get_track("t1") is None
        assert await http_gateway.delete_track("t1") is False

    async def test_conflict_and_not_found(self, http_gateway):
        await http_gateway.create_track(Track(track_id="t1"))
        with pytest.raises(TrackConflictError):
            await http_gateway.create_track(Track(track_id="t1"))
        with pytest.raises(TrackNotFoundError):
            await http_gateway.update_track("missing", Track(track_id="missing"))

    async def test_payload_uses_wire_names(self, http_gateway, backend, fan_out_modules):
        await http_gateway.create_track(Track(track_id="t1", modules=fan_out_modules))
        sent = json.loads(backend.requests[-1].content)
        assert sent["trackId"] == "t1"
        assert sent["modules"][1]["moduleId"] == "B"
        assert sent["modules"][1]["xpReward"] == 100


class TestProgressAndQuizzes:
    """Tests for progress, quizzes, attempts and aggregates."""

    async def test_progress_round_trip(self, http_gateway):
        assert await http_gateway.get_user_progress("u1", "t1") is None
        progress = UserProgress(user_id="u1", track_id="t1", unlocked_modules=["A"])
        await http_gateway.update_user_progress("u1", "t1", progress)
        loaded = await http_gateway.get_user_progress("u1", "t1")
        assert loaded.unlocked_modules == ["A"]

    async def test_quiz_documents_are_summarized(self, http_gateway):
        quizzes = await http_gateway.list_quizzes("python")
        assert [(q.quiz_id, q.question_count) for q in quizzes] == [("q1", 2)]

    async def test_attempts_and_aggregates(self, http_gateway, backend):
        attempt = QuizAttempt(
            attempt_id="a1", user_id="u1", quiz_id="q1", score=2, total_questions=2, percentage=100,
        )
        assert await http_gateway.record_attempt(attempt) is True
        assert await http_gateway.record_attempt(attempt) is False
        assert await http_gateway.list_attempts("u1", ["q1", "q2"]) == []
        assert backend.requests[-1].url.params["quizIds"] == "q1,q2"

        await http_gateway.update_user_aggregates("u1", AggregateDeltas(total_attempts=1, total_score=10, xp=50))
        request = backend.requests[-1]
        assert request.method == "PATCH"
        assert request.url.path == "/api/users/u1/aggregates"
        assert json.loads(request.content) == {"totalAttempts": 1, "totalScore": 10, "xp": 50}


class TestFailures:
    """Tests for backend failures."""

    async def test_transport_error_becomes_persistence_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as client:
            gateway = HttpGateway(client, BASE_URL)
            with pytest.raises(PersistenceError):
                await gateway.list_tracks()

    async def test_server_error_becomes_persistence_error(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503))) as client:
            gateway = HttpGateway(client, BASE_URL)
            with pytest.raises(PersistenceError):
                await gateway.update_user_progress("u1", "t1", UserProgress(user_id="u1", track_id="t1"))
