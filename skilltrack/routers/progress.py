"""Learner progress endpoints."""

from typing import Dict

from fastapi import APIRouter, Depends, HTTPException
import structlog

from skilltrack.core.dependencies import get_cascade, get_gateway
from skilltrack.core.exceptions import SkillTrackError, to_http_exception
from skilltrack.gateway.base import PersistenceGateway
from skilltrack.graph.normalization import normalize_modules
from skilltrack.graph.resolver import resolve_statuses
from skilltrack.progression.cascade import CompletionCascade
from skilltrack.schemas.progress import CascadeResult, CommitProgressRequest, ResolvedStatus, UserProgress
from skilltrack.schemas.track import Track

logger = structlog.get_logger()
router = APIRouter()


async def _load_track(gateway: PersistenceGateway, track_id: str) -> Track:
    try:
        track = await gateway.get_track(track_id)
    except SkillTrackError as e:
        raise to_http_exception(e)

    if track is None:
        raise HTTPException(status_code=404, detail=f"Track {track_id} not found")
    return track.model_copy(update={"modules": normalize_modules(track.modules)})


@router.get("", response_model=UserProgress)
async def get_progress(
    track_id: str,
    user_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
    cascade: CompletionCascade = Depends(get_cascade)
):
    """Get a learner's progress, creating it on first access."""
    track = await _load_track(gateway, track_id)
    try:
        return await cascade.get_or_create_progress(user_id, track)
    except SkillTrackError as e:
        raise to_http_exception(e)


@router.get("/statuses", response_model=Dict[str, ResolvedStatus])
async def get_statuses(
    track_id: str,
    user_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
    cascade: CompletionCascade = Depends(get_cascade)
):
    """Resolved status of every module for the learner."""
    track = await _load_track(gateway, track_id)
    try:
        progress = await cascade.get_or_create_progress(user_id, track)
    except SkillTrackError as e:
        raise to_http_exception(e)
    return resolve_statuses(track.modules, progress)


@router.post("/modules/{module_id}/complete", response_model=CascadeResult)
async def complete_module(
    track_id: str,
    user_id: str,
    module_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
    cascade: CompletionCascade = Depends(get_cascade)
):
    """Complete a module and run the completion cascade."""
    track = await _load_track(gateway, track_id)
    try:
        return await cascade.complete_module(user_id, track, module_id)
    except SkillTrackError as e:
        logger.error("Completion cascade failed", track_id=track_id, user_id=user_id, error=str(e))
        raise to_http_exception(e)


@router.post("/commit", response_model=CascadeResult)
async def commit_progress(
    track_id: str,
    user_id: str,
    body: CommitProgressRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
    cascade: CompletionCascade = Depends(get_cascade)
):
    """Administrator commit: mark several modules completed at once."""
    track = await _load_track(gateway, track_id)
    try:
        return await cascade.commit_progress(user_id, track, body.completed_modules)
    except SkillTrackError as e:
        logger.error("Progress commit failed", track_id=track_id, user_id=user_id, error=str(e))
        raise to_http_exception(e)


@router.post("/modules/{module_id}/submodules/{sub_module_id}/complete", response_model=UserProgress)
async def complete_submodule(
    track_id: str,
    user_id: str,
    module_id: str,
    sub_module_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
    cascade: CompletionCascade = Depends(get_cascade)
):
    """Record a finished sub-module; the module completes once all its work is done."""
    track = await _load_track(gateway, track_id)
    try:
        return await cascade.complete_submodule(user_id, track, module_id, sub_module_id)
    except SkillTrackError as e:
        raise to_http_exception(e)


@router.post("/sync", response_model=UserProgress)
async def sync_progress(
    track_id: str,
    user_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
    cascade: CompletionCascade = Depends(get_cascade)
):
    """Heal a progress record from recorded sub-modules and passing attempts."""
    track = await _load_track(gateway, track_id)
    try:
        return await cascade.sync_progress(user_id, track)
    except SkillTrackError as e:
        raise to_http_exception(e)
