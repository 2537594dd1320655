"""Exceptions raised by the track graph, cascade and persistence layers."""

from typing import List, Optional

from fastapi import HTTPException, status


class SkillTrackError(Exception):
    """Base class for all service errors."""


class TrackValidationError(SkillTrackError):
    """A track document or edit failed validation; nothing was applied."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class PrerequisiteError(TrackValidationError):
    """A prerequisite edit would leave a dangling or self-referencing edge."""


class CyclicPrerequisiteError(PrerequisiteError):
    """A prerequisite edit would introduce a cycle."""

    def __init__(self, message: str, cycle: Optional[List[str]] = None):
        super().__init__(message)
        self.cycle = cycle or []


class TrackNotFoundError(SkillTrackError):
    """The requested track does not exist."""


class TrackConflictError(SkillTrackError):
    """A track with the same id already exists."""


class PersistenceError(SkillTrackError):
    """The persistence backend failed; local state is left untouched so the caller may retry."""


def to_http_exception(error: SkillTrackError) -> HTTPException:
    """Translate a service error into the HTTP response routers raise."""
    if isinstance(error, TrackValidationError):
        detail = {"message": str(error), "errors": error.errors}
        if isinstance(error, CyclicPrerequisiteError):
            detail["cycle"] = error.cycle
        return HTTPException(status_code=422, detail=detail)
    if isinstance(error, TrackNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, TrackConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, PersistenceError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
