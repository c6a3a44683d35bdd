"""Database repositories for the guest tagging service."""
from typing import List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import GalleryLoadError, GuestNotFoundError, PersistError
from guest_tagger.core.logging import get_logger
from guest_tagger.domain.entities.face import DetectedFace
from guest_tagger.domain.entities.guest import GalleryEntry, Guest, UserType
from guest_tagger.domain.entities.photo import Photo
from guest_tagger.domain.interfaces.storage.repositories import GuestRepository, PhotoRepository
from guest_tagger.infrastructure.database.models import GuestRecord, PhotoRecord
from guest_tagger.infrastructure.database.session import get_db_session

logger = get_logger(__name__)


def _to_photo(record: PhotoRecord) -> Photo:
    return Photo(
        id=record.id,
        image_ref=record.image_ref,
        detected_faces=[DetectedFace.model_validate(face) for face in record.detected_faces or []],
        is_processed=record.is_processed
    )


def _to_guest(record: GuestRecord) -> Guest:
    return Guest(
        id=record.id,
        name=record.name or "",
        user_type=UserType(record.user_type),
        selfie_url=record.selfie_url,
        face_encoding=record.face_encoding,
        is_verified=record.is_verified
    )


class SqlAlchemyPhotoRepository(PhotoRepository):
    """Photo repository over SQLAlchemy.

    Each operation runs in its own session so concurrent photo tasks never
    share one.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize repository.

        Args:
            session_factory: Factory for database sessions
        """
        self._session_factory = session_factory

    async def get_photo_by_id(self, photo_id: str) -> Optional[Photo]:
        async with get_db_session(self._session_factory) as session:
            record = await session.get(PhotoRecord, photo_id)
            return _to_photo(record) if record else None

    async def list_photos(self, unprocessed_only: bool = False) -> List[Photo]:
        stmt = select(PhotoRecord).order_by(PhotoRecord.created_at, PhotoRecord.id)
        if unprocessed_only:
            stmt = stmt.where(PhotoRecord.is_processed.is_(False))
        async with get_db_session(self._session_factory) as session:
            result = await session.execute(stmt)
            return [_to_photo(record) for record in result.scalars().all()]

    async def save_photo(self, photo: Photo) -> None:
        """Replace the detected faces and processed flag of a stored photo.

        Raises:
            PersistError: If the photo does not exist or the write fails
        """
        try:
            async with get_db_session(self._session_factory) as session:
                record = await session.get(PhotoRecord, photo.id)
                if record is None:
                    raise PersistError(f"Photo not found: {photo.id}", details={"photo_id": photo.id})
                record.detected_faces = [face.model_dump() for face in photo.detected_faces]
                record.is_processed = photo.is_processed
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistError(
                f"Failed to save photo: {str(e)}",
                details={"photo_id": photo.id}
            ) from e

    async def add_photo(self, photo: Photo) -> None:
        """Store a newly uploaded photo.

        Raises:
            PersistError: If the write fails
        """
        try:
            async with get_db_session(self._session_factory) as session:
                session.add(PhotoRecord(
                    id=photo.id,
                    image_ref=photo.image_ref,
                    detected_faces=[face.model_dump() for face in photo.detected_faces],
                    is_processed=photo.is_processed
                ))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistError(
                f"Failed to add photo: {str(e)}",
                details={"photo_id": photo.id}
            ) from e


class SqlAlchemyGuestRepository(GuestRepository):
    """Guest repository over SQLAlchemy."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_dimension: int = settings.EMBEDDING_DIMENSION,
    ) -> None:
        """Initialize repository.

        Args:
            session_factory: Factory for database sessions
            embedding_dimension: Expected length of stored selfie embeddings
        """
        self._session_factory = session_factory
        self._embedding_dimension = embedding_dimension

    async def get_guest(self, guest_id: str) -> Optional[Guest]:
        async with get_db_session(self._session_factory) as session:
            record = await session.get(GuestRecord, guest_id)
            return _to_guest(record) if record else None

    async def list_gallery_eligible_guests(self) -> List[GalleryEntry]:
        """List gallery entries of verified guests with a selfie embedding.

        Encodings of the wrong dimension are skipped, not fatal.

        Raises:
            GalleryLoadError: If the guests cannot be read
        """
        stmt = (
            select(GuestRecord)
            .where(
                GuestRecord.user_type == UserType.GUEST.value,
                GuestRecord.is_verified.is_(True),
                GuestRecord.face_encoding.is_not(None)
            )
            .order_by(GuestRecord.id)
        )
        try:
            async with get_db_session(self._session_factory) as session:
                result = await session.execute(stmt)
                records = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise GalleryLoadError(f"Failed to load guest gallery: {str(e)}") from e

        entries = []
        for record in records:
            encoding = record.face_encoding
            if not encoding or len(encoding) != self._embedding_dimension:
                logger.warning(
                    "Skipping guest with unusable face encoding",
                    guest_id=record.id,
                    dimension=len(encoding) if encoding else 0,
                    expected=self._embedding_dimension
                )
                continue
            try:
                entries.append(GalleryEntry(guest_id=record.id, name=record.name, embeddings=[encoding]))
            except ValidationError as e:
                logger.warning("Skipping guest with invalid face encoding", guest_id=record.id, error=str(e))
        return entries

    async def save_selfie(
        self,
        guest_id: str,
        selfie_url: str,
        face_encoding: Sequence[float],
    ) -> Guest:
        """Store a verified selfie embedding on a guest.

        Raises:
            GuestNotFoundError: If the guest does not exist
            PersistError: If the write fails
        """
        try:
            async with get_db_session(self._session_factory) as session:
                record = await session.get(GuestRecord, guest_id)
                if record is None:
                    raise GuestNotFoundError(f"Guest not found: {guest_id}")
                record.selfie_url = selfie_url
                record.face_encoding = [float(v) for v in face_encoding]
                record.is_verified = True
                await session.commit()
                return _to_guest(record)
        except SQLAlchemyError as e:
            raise PersistError(
                f"Failed to save selfie: {str(e)}",
                details={"guest_id": guest_id}
            ) from e

    async def add_guest(self, guest: Guest) -> None:
        """Store a new guest.

        Raises:
            PersistError: If the write fails
        """
        try:
            async with get_db_session(self._session_factory) as session:
                session.add(GuestRecord(
                    id=guest.id,
                    name=guest.name,
                    user_type=guest.user_type.value,
                    selfie_url=guest.selfie_url,
                    face_encoding=guest.face_encoding,
                    is_verified=guest.is_verified
                ))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistError(
                f"Failed to add guest: {str(e)}",
                details={"guest_id": guest.id}
            ) from e
