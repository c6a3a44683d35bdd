"""Persistence interfaces for photos and guests."""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ...entities.guest import GalleryEntry, Guest
from ...entities.photo import Photo


class PhotoRepository(ABC):
    """Interface for storing photos and their detected faces."""

    @abstractmethod
    async def get_photo_by_id(self, photo_id: str) -> Optional[Photo]:
        """
        Get a photo by id.

        Returns:
            The photo, or None if it does not exist
        """
        pass

    @abstractmethod
    async def list_photos(self, unprocessed_only: bool = False) -> List[Photo]:
        """
        List the photo corpus.

        Args:
            unprocessed_only: Only return photos that were never processed
        """
        pass

    @abstractmethod
    async def save_photo(self, photo: Photo) -> None:
        """
        Replace the stored detected faces and processed flag of a photo.

        Raises:
            PersistError: If the write fails
        """
        pass

    @abstractmethod
    async def add_photo(self, photo: Photo) -> None:
        """Store a newly uploaded photo."""
        pass


class GuestRepository(ABC):
    """Interface for guests and their selfie embeddings."""

    @abstractmethod
    async def get_guest(self, guest_id: str) -> Optional[Guest]:
        """Get a guest by id, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_gallery_eligible_guests(self) -> List[GalleryEntry]:
        """
        List gallery entries of guests with a verified selfie embedding.

        Raises:
            GalleryLoadError: If the guests cannot be read
        """
        pass

    @abstractmethod
    async def save_selfie(
        self,
        guest_id: str,
        selfie_url: str,
        face_encoding: Sequence[float],
    ) -> Guest:
        """
        Store a verified selfie embedding on a guest.

        Raises:
            GuestNotFoundError: If the guest does not exist
            PersistError: If the write fails
        """
        pass

    @abstractmethod
    async def add_guest(self, guest: Guest) -> None:
        """Store a new guest."""
        pass
