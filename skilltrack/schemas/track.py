"""Track, module and sub-module schemas.

These are the canonical in-memory and wire representations of a skill track.
Attributes are snake_case in Python and camelCase on the wire
(``moduleId``, ``xpReward``, ``subModules`` ...).
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ModuleType(str, Enum):
    """Kinds of node in a track graph."""
    CORE = "core"
    OPTIONAL = "optional"
    ACHIEVEMENT = "achievement"


class ModuleStatus(str, Enum):
    """Node state shared by modules and sub-modules."""
    LOCKED = "locked"
    AVAILABLE = "available"
    COMPLETED = "completed"


# Values written by older tracks, mapped onto the closed variants
LEGACY_STATUS_ALIASES = {
    "in_progress": ModuleStatus.AVAILABLE.value,
    "skipped": ModuleStatus.COMPLETED.value,
}
LEGACY_TYPE_ALIASES = {
    "project": ModuleType.CORE.value,
    "quiz": ModuleType.CORE.value,
    "milestone": ModuleType.ACHIEVEMENT.value,
}


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


class CamelModel(BaseModel):
    """Base schema with camelCase aliases that also accepts field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        # Explicit nulls fall back to the field default
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class Coordinates(CamelModel):
    """Top-left corner of a node box on the canvas."""

    x: float = 0
    y: float = 0


class SubModule(CamelModel):
    """Checklist item inside a module."""

    id: str = Field(min_length=1)
    title: str = "Untitled Lesson"
    state: ModuleStatus = ModuleStatus.LOCKED
    xp: int = Field(default=0, ge=0)
    quiz_id: Optional[str] = None
    video_url: Optional[str] = None

    @field_validator("state", mode="before")
    @classmethod
    def map_legacy_state(cls, v):
        return LEGACY_STATUS_ALIASES.get(v, v) if isinstance(v, str) else v


class Module(CamelModel):
    """A node in the track graph."""

    module_id: str = Field(min_length=1)
    title: str = "Untitled Module"
    description: str = ""
    level: int = 0
    type: ModuleType = ModuleType.CORE
    status: ModuleStatus = ModuleStatus.LOCKED
    xp_reward: int = Field(default=100, ge=0)
    coordinates: Coordinates = Field(default_factory=Coordinates)
    prerequisites: List[str] = Field(default_factory=list)
    quiz_ids: List[str] = Field(default_factory=list)
    sub_modules: List[SubModule] = Field(default_factory=list)
    badge_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def map_legacy_status(cls, v):
        return LEGACY_STATUS_ALIASES.get(v, v) if isinstance(v, str) else v

    @field_validator("type", mode="before")
    @classmethod
    def map_legacy_type(cls, v):
        return LEGACY_TYPE_ALIASES.get(v, v) if isinstance(v, str) else v

    @field_validator("prerequisites", "quiz_ids")
    @classmethod
    def dedupe(cls, v: List[str]) -> List[str]:
        return _unique(v)


class TrackMetadata(CamelModel):
    """Partial track fields, as carried by an import document."""

    track_id: Optional[str] = None
    title: Optional[str] = None
    icon: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    subject_id: Optional[str] = None


class Track(CamelModel):
    """One subject's progression graph."""

    track_id: str = ""
    title: str = "Learning Path"
    icon: str = "🗺️"
    description: str = ""
    category: str = "General"
    subject_id: Optional[str] = None
    modules: List[Module] = Field(default_factory=list)

    def find_module(self, module_id: str) -> Optional[Module]:
        """Return the module with the given id, if any."""
        for module in self.modules:
            if module.module_id == module_id:
                return module
        return None


class TrackImport(CamelModel):
    """Import document: ``{track?: Partial<Track>, modules: Module[]}``."""

    track: Optional[TrackMetadata] = None
    modules: List[Module]


class ModuleList(CamelModel):
    """Request body for the stateless layout operations."""

    modules: List[Module]
