"""In-memory stand-ins for the face backend, blob store and database."""
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from guest_tagger.core.exceptions import DetectionError, FetchError, GuestNotFoundError, PersistError
from guest_tagger.domain.entities.face import BoundingBox, ExtractedFace
from guest_tagger.domain.entities.guest import GalleryEntry, Guest
from guest_tagger.domain.entities.photo import Photo
from guest_tagger.domain.interfaces import FaceExtractor, GuestRepository, ImageSource, PhotoRepository
from guest_tagger.domain.value_objects.recognition import DetectionAttempt

DEFAULT_BOX = BoundingBox(left=0.3, top=0.3, width=0.4, height=0.4)

ALICE = [1.0, 0.0, 0.0, 0.0]
BOB = [0.0, 1.0, 0.0, 0.0]
STRANGER = [0.0, 0.0, 0.0, 1.0]
MATCH_THRESHOLD = 0.6
EMBEDDING_DIMENSION = 4


def photo_ref(marker: int) -> str:
    return f"https://photos.example.com/{marker}.jpg"


def make_photos(count: int, start: int = 1) -> List[Photo]:
    return [Photo(id=f"photo-{i}", image_ref=photo_ref(i)) for i in range(start, start + count)]


def make_image(marker: int, size: int = 8) -> bytes:
    """PNG whose pixels all hold ``marker``, so a stub extractor can tell photos apart."""
    raster = np.full((size, size, 3), marker, dtype=np.uint8)
    ok, buffer = cv2.imencode(".png", raster)
    assert ok
    return buffer.tobytes()


def make_face(
    embedding: Sequence[float],
    confidence: float = 0.9,
    box: BoundingBox = DEFAULT_BOX,
) -> ExtractedFace:
    return ExtractedFace(confidence=confidence, bounding_box=box, embedding=list(embedding))


class StubExtractor(FaceExtractor):
    """Returns canned faces per image marker, filtered by the attempt's confidence."""

    def __init__(
        self,
        faces: Optional[Dict[int, List[ExtractedFace]]] = None,
        failing_markers: Iterable[int] = (),
    ) -> None:
        self.faces = faces or {}
        self.failing_markers = set(failing_markers)
        self.calls: List[Tuple[int, DetectionAttempt]] = []

    async def detect(self, raster: np.ndarray, attempt: DetectionAttempt) -> List[ExtractedFace]:
        marker = int(raster[0, 0, 0])
        self.calls.append((marker, attempt))
        if marker in self.failing_markers:
            raise DetectionError(f"detector crashed on image {marker}")
        return [
            face for face in self.faces.get(marker, [])
            if face.confidence >= attempt.min_confidence
        ]


class FakeImageSource(ImageSource):
    def __init__(self, images: Optional[Dict[str, bytes]] = None, failing: Iterable[str] = ()) -> None:
        self.images = images or {}
        self.failing = set(failing)
        self.fetched: List[str] = []

    async def fetch(self, image_ref: str) -> bytes:
        self.fetched.append(image_ref)
        if image_ref in self.failing or image_ref not in self.images:
            raise FetchError(f"Failed to fetch image: {image_ref}")
        return self.images[image_ref]


class InMemoryPhotoRepository(PhotoRepository):
    def __init__(self, photos: Iterable[Photo] = (), failing_saves: Iterable[str] = ()) -> None:
        self._photos: Dict[str, Photo] = {photo.id: photo for photo in photos}
        self.failing_saves = set(failing_saves)
        self.saves: List[str] = []

    def __getitem__(self, photo_id: str) -> Photo:
        return self._photos[photo_id]

    async def get_photo_by_id(self, photo_id: str) -> Optional[Photo]:
        photo = self._photos.get(photo_id)
        return photo.model_copy(deep=True) if photo else None

    async def list_photos(self, unprocessed_only: bool = False) -> List[Photo]:
        return [
            photo.model_copy(deep=True) for photo in self._photos.values()
            if not (unprocessed_only and photo.is_processed)
        ]

    async def save_photo(self, photo: Photo) -> None:
        if photo.id in self.failing_saves:
            raise PersistError(f"Failed to save photo: {photo.id}")
        self.saves.append(photo.id)
        self._photos[photo.id] = photo.model_copy(deep=True)

    async def add_photo(self, photo: Photo) -> None:
        self._photos[photo.id] = photo


class InMemoryGuestRepository(GuestRepository):
    def __init__(self, guests: Iterable[Guest] = ()) -> None:
        self._guests: Dict[str, Guest] = {guest.id: guest for guest in guests}

    def __getitem__(self, guest_id: str) -> Guest:
        return self._guests[guest_id]

    async def get_guest(self, guest_id: str) -> Optional[Guest]:
        return self._guests.get(guest_id)

    async def list_gallery_eligible_guests(self) -> List[GalleryEntry]:
        return [
            GalleryEntry.from_guest(guest) for guest in self._guests.values()
            if guest.is_gallery_eligible
        ]

    async def save_selfie(self, guest_id: str, selfie_url: str, face_encoding: Sequence[float]) -> Guest:
        guest = self._guests.get(guest_id)
        if guest is None:
            raise GuestNotFoundError(f"Guest not found: {guest_id}")
        guest = guest.model_copy(update={
            "selfie_url": selfie_url,
            "face_encoding": list(face_encoding),
            "is_verified": True,
        })
        self._guests[guest_id] = guest
        return guest

    async def add_guest(self, guest: Guest) -> None:
        self._guests[guest.id] = guest
