"""Skill track records."""

from sqlalchemy import Column, String, DateTime, JSON

from skilltrack.core.database import Base
from skilltrack.models.progress import utcnow


class TrackRecord(Base):
    """Stored track; modules are kept as their JSON document."""
    __tablename__ = "skill_tracks"

    track_id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    icon = Column(String, nullable=False, default="🗺️")
    description = Column(String, nullable=False, default="")
    category = Column(String, nullable=False, default="General")
    subject_id = Column(String, index=True)
    modules = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
