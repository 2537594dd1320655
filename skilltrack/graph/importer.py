"""JSON import of track documents."""

import json
from typing import Any, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from skilltrack.core.exceptions import TrackValidationError
from skilltrack.graph.layout import LayoutConfig, compute_layout
from skilltrack.graph.normalization import normalize_modules
from skilltrack.schemas.track import Track, TrackImport

logger = structlog.get_logger()


def parse_import(payload: Union[str, bytes, Mapping[str, Any]]) -> TrackImport:
    """Parse and validate an import document.

    Raises:
        TrackValidationError: the payload is not JSON, not an object, or does
            not describe a module list. Nothing is applied in that case.
    """
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TrackValidationError(f"Import is not valid JSON: {e}") from e

    if not isinstance(payload, Mapping):
        raise TrackValidationError("Import document must be a JSON object")

    try:
        return TrackImport.model_validate(payload)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise TrackValidationError("Import document is invalid", errors=errors) from e


def apply_import(
    document: TrackImport,
    current: Optional[Track] = None,
    subject_id: Optional[str] = None,
    config: Optional[LayoutConfig] = None
) -> Track:
    """Merge an import into the current track.

    Imported coordinates are never trusted: the modules are always laid out
    again. Partial track metadata from the document overrides the current
    track's fields.
    """
    modules = compute_layout(normalize_modules(document.modules), config)

    base = current or Track(track_id="", title="Imported Roadmap", subject_id=subject_id)
    updates = document.track.model_dump(exclude_unset=True) if document.track else {}
    track = base.model_copy(update={**updates, "modules": modules})

    logger.info(
        "Track imported",
        track_id=track.track_id or None,
        modules=len(modules),
        metadata_fields=sorted(updates)
    )
    return track
