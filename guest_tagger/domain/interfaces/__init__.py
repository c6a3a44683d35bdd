"""Service interfaces package."""
from .recognition.face_recognition import FaceExtractor
from .storage.image_source import ImageSource
from .storage.repositories import GuestRepository, PhotoRepository

__all__ = ["FaceExtractor", "GuestRepository", "ImageSource", "PhotoRepository"]
