"""
ArtShelf database models

Architecture:
- Artist: the owner of artworks, keyed upstream by `user_id`
- Artwork: a cataloged item with a stable upstream `external_id`
- Image: one file of an artwork, `path` relative to the content root
- SystemJob: persisted record of long-running jobs (layout migration)
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum
from datetime import datetime, timezone


class JobType(str, enum.Enum):
    migration = "migration"


class JobStatus(str, enum.Enum):
    pending = "pending"
    running = "running"
    paused = "paused"
    cancelling = "cancelling"  # Cancel requested, runner has not stopped yet
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


ACTIVE_JOB_STATUSES = (JobStatus.pending, JobStatus.running, JobStatus.paused, JobStatus.cancelling)
TERMINAL_JOB_STATUSES = (JobStatus.completed, JobStatus.failed, JobStatus.cancelled)


class Artist(Base):
    """Owner of artworks"""
    __tablename__ = "artists"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)  # Upstream user id, first path segment
    name = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    artworks = relationship("Artwork", back_populates="artist")


class Artwork(Base):
    """Cataloged item owning one or more image files"""
    __tablename__ = "artworks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(500), nullable=False, default="")
    description = Column(Text, nullable=True)
    external_id = Column(String(64), nullable=True, index=True)  # Stable upstream id, file name prefix
    source_date = Column(DateTime(timezone=True), nullable=True, index=True)  # Upstream publish date (UTC)
    artist_id = Column(Integer, ForeignKey("artists.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    artist = relationship("Artist", back_populates="artworks")
    images = relationship(
        "Image",
        back_populates="artwork",
        cascade="all, delete-orphan",
        order_by="Image.sort_order"
    )


class Image(Base):
    """One file of an artwork, stored relative to the content root"""
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, index=True)
    artwork_id = Column(Integer, ForeignKey("artworks.id", ondelete="CASCADE"), nullable=False, index=True)
    path = Column(Text, nullable=False)  # Forward-slash path relative to the content root, e.g. /u1/a1/a1_p0.jpg
    size = Column(Integer, nullable=True)  # Bytes
    sort_order = Column(Integer, default=0)

    # Relationships
    artwork = relationship("Artwork", back_populates="images")


class SystemJob(Base):
    """Persisted state of a long-running job"""
    __tablename__ = "system_jobs"

    id = Column(String(32), primary_key=True)  # uuid4 hex
    job_type = Column(Enum(JobType), nullable=False, index=True)
    status = Column(Enum(JobStatus), default=JobStatus.pending, nullable=False, index=True)
    progress = Column(Integer, default=0)  # 0-100
    message = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    result = Column(Text, nullable=True)  # JSON payload written on completion
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)  # Sub-second, orders jobs
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
