"""Track authoring endpoints."""

import json
from typing import List, Optional

from aiocache import Cache
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
import structlog

from skilltrack.core.config import settings
from skilltrack.core.dependencies import get_cache, get_gateway
from skilltrack.core.exceptions import SkillTrackError, to_http_exception
from skilltrack.gateway.base import PersistenceGateway
from skilltrack.graph.importer import apply_import, parse_import
from skilltrack.graph.layout import compute_layout, redesign
from skilltrack.graph.normalization import load_modules, normalize_modules
from skilltrack.graph.session import new_track_id
from skilltrack.schemas.progress import QuizSummary
from skilltrack.schemas.track import ModuleList, Track

logger = structlog.get_logger()
router = APIRouter()

CACHE_NAMESPACE = "tracks"


def _cache_key(subject_id: Optional[str]) -> str:
    return f"list:{subject_id or '*'}"


async def _invalidate(cache: Cache) -> None:
    await cache.clear(namespace=CACHE_NAMESPACE)


@router.get("", response_model=List[Track])
async def list_tracks(
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    gateway: PersistenceGateway = Depends(get_gateway),
    cache: Cache = Depends(get_cache)
):
    """List tracks, optionally for one subject."""
    key = _cache_key(subject_id)
    cached = await cache.get(key, namespace=CACHE_NAMESPACE)
    if cached:
        return json.loads(cached)

    try:
        tracks = await gateway.list_tracks(subject_id)
    except SkillTrackError as e:
        raise to_http_exception(e)

    payload = [t.model_dump(mode="json", by_alias=True) for t in tracks]
    await cache.set(key, json.dumps(payload), ttl=settings.TRACK_CACHE_TTL, namespace=CACHE_NAMESPACE)
    return payload


@router.get("/quizzes", response_model=List[QuizSummary])
async def list_quizzes(
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    gateway: PersistenceGateway = Depends(get_gateway)
):
    """Quizzes that modules may reference."""
    try:
        return await gateway.list_quizzes(subject_id)
    except SkillTrackError as e:
        raise to_http_exception(e)


@router.post("/import", response_model=Track)
async def import_track(
    request: Request,
    track_id: Optional[str] = Query(None, alias="trackId"),
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    gateway: PersistenceGateway = Depends(get_gateway)
):
    """Merge a JSON document into a track and lay it out; nothing is saved."""
    try:
        document = parse_import(await request.body())
        current = None
        if track_id:
            current = await gateway.get_track(track_id)
            if current is None:
                raise HTTPException(status_code=404, detail=f"Track {track_id} not found")
        return apply_import(document, current, subject_id)
    except SkillTrackError as e:
        logger.warning("Import rejected", track_id=track_id, error=str(e))
        raise to_http_exception(e)


@router.post("/layout", response_model=ModuleList)
async def layout_modules(body: ModuleList):
    """Normalize a module list and compute its layout."""
    return ModuleList(modules=compute_layout(normalize_modules(body.modules)))


@router.post("/normalize", response_model=ModuleList)
async def normalize(body: ModuleList):
    """Normalize a module list, laying it out only when its coordinates are degenerate."""
    return ModuleList(modules=load_modules(body.modules))


@router.post("/redesign", response_model=ModuleList)
async def redesign_modules(body: ModuleList):
    """Renumber levels and lay the modules out again."""
    return ModuleList(modules=compute_layout(redesign(normalize_modules(body.modules))))


@router.get("/{track_id}", response_model=Track)
async def get_track(
    track_id: str,
    gateway: PersistenceGateway = Depends(get_gateway)
):
    """Get a track with normalized modules."""
    try:
        track = await gateway.get_track(track_id)
    except SkillTrackError as e:
        raise to_http_exception(e)

    if track is None:
        raise HTTPException(status_code=404, detail=f"Track {track_id} not found")
    return track.model_copy(update={"modules": load_modules(track.modules)})


@router.post("", response_model=Track, status_code=status.HTTP_201_CREATED)
async def create_track(
    track: Track,
    gateway: PersistenceGateway = Depends(get_gateway),
    cache: Cache = Depends(get_cache)
):
    """Create a track; an id is generated when none is given."""
    track = track.model_copy(update={
        "track_id": track.track_id or new_track_id(),
        "modules": load_modules(track.modules),
    })
    try:
        created = await gateway.create_track(track)
    except SkillTrackError as e:
        raise to_http_exception(e)

    await _invalidate(cache)
    return created


@router.put("/{track_id}", response_model=Track)
async def update_track(
    track_id: str,
    track: Track,
    gateway: PersistenceGateway = Depends(get_gateway),
    cache: Cache = Depends(get_cache)
):
    """Replace a track (last write wins)."""
    track = track.model_copy(update={
        "track_id": track_id,
        "modules": load_modules(track.modules),
    })
    try:
        updated = await gateway.update_track(track_id, track)
    except SkillTrackError as e:
        raise to_http_exception(e)

    await _invalidate(cache)
    return updated


@router.delete("/{track_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_track(
    track_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
    cache: Cache = Depends(get_cache)
):
    """Delete a track."""
    try:
        deleted = await gateway.delete_track(track_id)
    except SkillTrackError as e:
        raise to_http_exception(e)

    if not deleted:
        raise HTTPException(status_code=404, detail=f"Track {track_id} not found")
    await _invalidate(cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
