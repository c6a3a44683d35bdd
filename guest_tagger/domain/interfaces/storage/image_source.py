"""Image source interface."""
from abc import ABC, abstractmethod


class ImageSource(ABC):
    """Interface for retrieving uploaded image bytes."""

    @abstractmethod
    async def fetch(self, image_ref: str) -> bytes:
        """
        Retrieve the bytes of an uploaded image.

        Args:
            image_ref: Fetchable reference returned by the blob store

        Returns:
            Raw image bytes

        Raises:
            FetchError: If the image is unavailable for any reason
        """
        pass
