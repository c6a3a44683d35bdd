"""SQLAlchemy models for the guest tagging service."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class GuestRecord(Base):
    """Guest account and its verified selfie embedding."""

    __tablename__ = "guests"
    __table_args__ = (
        Index("idx_guests_gallery", "user_type", "is_verified"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    user_type: Mapped[str] = mapped_column(
        String(32),
        default="guest",
        nullable=False,
        comment="guest or bride/groom"
    )
    selfie_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    face_encoding: Mapped[Optional[List[float]]] = mapped_column(
        JSON(none_as_null=True),
        nullable=True,
        comment="Selfie face embedding"
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow
    )


class PhotoRecord(Base):
    """Uploaded wedding photo and the faces detected on it."""

    __tablename__ = "photos"
    __table_args__ = (
        Index("idx_photos_processed", "is_processed"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    image_ref: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        comment="URL or s3:// URI of the image"
    )
    detected_faces: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
        comment="Serialized DetectedFace list"
    )
    is_processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow
    )
