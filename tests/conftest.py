"""Shared fixtures: a photo corpus, a small gallery and an engine wired to fakes."""
import pytest

from guest_tagger.core.utils.image import ImageDecoder
from guest_tagger.domain.entities.guest import Guest, UserType
from guest_tagger.services.photo_matching import PhotoMatchEngine
from guest_tagger.services.recognition.face_detection import CascadingFaceDetector

from fakes import (
    ALICE,
    BOB,
    MATCH_THRESHOLD,
    STRANGER,
    FakeImageSource,
    InMemoryGuestRepository,
    InMemoryPhotoRepository,
    StubExtractor,
    make_image,
    make_photos,
    photo_ref,
)


@pytest.fixture
def guests() -> InMemoryGuestRepository:
    return InMemoryGuestRepository([
        Guest(id="alice", name="Alice", face_encoding=ALICE, is_verified=True),
        Guest(id="bob", name="Bob", face_encoding=BOB, is_verified=True),
        Guest(id="carol", name="Carol"),
        Guest(id="couple", name="Dana & Eli", user_type=UserType.COUPLE,
              face_encoding=STRANGER, is_verified=True),
    ])


@pytest.fixture
def extractor() -> StubExtractor:
    return StubExtractor()


@pytest.fixture
def image_source() -> FakeImageSource:
    return FakeImageSource({photo_ref(i): make_image(i) for i in range(1, 21)})


@pytest.fixture
def photos() -> InMemoryPhotoRepository:
    return InMemoryPhotoRepository(make_photos(3))


@pytest.fixture
def engine(extractor, image_source, photos, guests) -> PhotoMatchEngine:
    return PhotoMatchEngine(
        detector=CascadingFaceDetector(extractor),
        image_source=image_source,
        decoder=ImageDecoder(),
        photo_repository=photos,
        guest_repository=guests,
        match_threshold=MATCH_THRESHOLD,
        batch_size=10,
    )
