"""Custom exceptions for the guest tagging service."""
from typing import Optional


class GuestTaggerError(Exception):
    """Base exception for guest tagging operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize guest tagging error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.details = details or {}


class FetchError(GuestTaggerError):
    """Raised when the bytes of an image cannot be retrieved."""
    pass


class DecodeError(GuestTaggerError):
    """Raised when image bytes are not a recognizable or recoverable image."""
    pass


class DetectionError(GuestTaggerError):
    """Raised when the face detection backend fails on an image."""
    pass


class PersistError(GuestTaggerError):
    """Raised when a photo or guest cannot be written to the database."""
    pass


class ModelLoadError(GuestTaggerError):
    """Raised when the face recognition models fail to load."""
    pass


class GalleryLoadError(GuestTaggerError):
    """Raised when the guest gallery cannot be loaded."""
    pass


class StorageError(GuestTaggerError):
    """Raised when an object cannot be read from blob storage."""
    pass


class GuestNotFoundError(GuestTaggerError):
    """Raised when a guest does not exist or has no usable selfie embedding."""
    pass


class NoFaceDetectedError(GuestTaggerError):
    """Raised when no face is detected in a selfie."""
    pass


class SelfieQualityError(GuestTaggerError):
    """Raised when a selfie face is too small or too close to the image edge."""
    pass


class ScanAlreadyRunningError(GuestTaggerError):
    """Raised when a guest scan is requested while one is already streaming."""
    pass


class SubscriberAlreadyAttachedError(GuestTaggerError):
    """Raised when a second client subscribes to the same guest's progress."""
    pass


class ServiceNotInitializedError(GuestTaggerError):
    """Raised when a service is requested before the container is ready."""
    pass
