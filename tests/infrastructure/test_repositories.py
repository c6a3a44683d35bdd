"""Tests for the SQLAlchemy repositories on an in-memory SQLite database."""
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from guest_tagger.core.exceptions import GuestNotFoundError, PersistError
from guest_tagger.domain.entities.face import BoundingBox, DetectedFace
from guest_tagger.domain.entities.guest import Guest, UserType
from guest_tagger.domain.entities.photo import Photo
from guest_tagger.infrastructure.database.repositories import (
    SqlAlchemyGuestRepository,
    SqlAlchemyPhotoRepository,
)
from guest_tagger.infrastructure.database.session import create_session_factory, create_tables

BOX = BoundingBox(left=0.1, top=0.2, width=0.3, height=0.4)


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def photo_repository(session_factory) -> SqlAlchemyPhotoRepository:
    return SqlAlchemyPhotoRepository(session_factory)


@pytest.fixture
def guest_repository(session_factory) -> SqlAlchemyGuestRepository:
    return SqlAlchemyGuestRepository(session_factory, embedding_dimension=4)


class TestPhotoRepository:

    async def test_add_and_list_photos(self, photo_repository):
        await photo_repository.add_photo(Photo(id="photo-1", image_ref="https://cdn/1.jpg"))
        await photo_repository.add_photo(Photo(id="photo-2", image_ref="https://cdn/2.jpg", is_processed=True))

        all_photos = await photo_repository.list_photos()
        unprocessed = await photo_repository.list_photos(unprocessed_only=True)

        assert [p.id for p in all_photos] == ["photo-1", "photo-2"]
        assert [p.id for p in unprocessed] == ["photo-1"]
        assert await photo_repository.get_photo_by_id("missing") is None

    async def test_save_photo_replaces_detected_faces(self, photo_repository):
        await photo_repository.add_photo(Photo(id="photo-1", image_ref="https://cdn/1.jpg"))
        face = DetectedFace(bounding_box=BOX, embedding=[0.5, 0.5, 0.0, 0.0],
                            matched_guest_id="alice", match_confidence=0.8)

        await photo_repository.save_photo(
            Photo(id="photo-1", image_ref="https://cdn/1.jpg", detected_faces=[face], is_processed=True)
        )
        stored = await photo_repository.get_photo_by_id("photo-1")

        assert stored.is_processed
        assert stored.detected_faces == [face]

        await photo_repository.save_photo(stored.model_copy(update={"detected_faces": []}))
        assert (await photo_repository.get_photo_by_id("photo-1")).detected_faces == []

    async def test_saving_unknown_photo_fails(self, photo_repository):
        with pytest.raises(PersistError):
            await photo_repository.save_photo(Photo(id="ghost", image_ref="https://cdn/ghost.jpg"))

    async def test_duplicate_photo_fails(self, photo_repository):
        await photo_repository.add_photo(Photo(id="photo-1", image_ref="https://cdn/1.jpg"))

        with pytest.raises(PersistError):
            await photo_repository.add_photo(Photo(id="photo-1", image_ref="https://cdn/1.jpg"))


class TestGuestRepository:

    async def test_gallery_contains_only_eligible_guests(self, guest_repository):
        await guest_repository.add_guest(Guest(id="alice", name="Alice",
                                               face_encoding=[1.0, 0.0, 0.0, 0.0], is_verified=True))
        await guest_repository.add_guest(Guest(id="bob", name="Bob", face_encoding=[0.0, 1.0, 0.0, 0.0]))
        await guest_repository.add_guest(Guest(id="carol", name="Carol", is_verified=True))
        await guest_repository.add_guest(Guest(id="couple", user_type=UserType.COUPLE,
                                               face_encoding=[0.0, 0.0, 1.0, 0.0], is_verified=True))
        await guest_repository.add_guest(Guest(id="legacy", face_encoding=[1.0] * 128, is_verified=True))

        gallery = await guest_repository.list_gallery_eligible_guests()

        assert [entry.guest_id for entry in gallery] == ["alice"]
        assert gallery[0].name == "Alice"
        assert gallery[0].embeddings[0].tolist() == [1.0, 0.0, 0.0, 0.0]

    async def test_save_selfie_verifies_guest(self, guest_repository):
        await guest_repository.add_guest(Guest(id="carol", name="Carol"))

        guest = await guest_repository.save_selfie("carol", "https://cdn/selfie.jpg", [0.0, 0.0, 0.0, 1.0])

        assert guest.is_verified
        assert guest.face_encoding == [0.0, 0.0, 0.0, 1.0]
        assert (await guest_repository.get_guest("carol")).selfie_url == "https://cdn/selfie.jpg"
        assert [e.guest_id for e in await guest_repository.list_gallery_eligible_guests()] == ["carol"]

    async def test_save_selfie_for_unknown_guest_fails(self, guest_repository):
        with pytest.raises(GuestNotFoundError):
            await guest_repository.save_selfie("nobody", "https://cdn/selfie.jpg", [1.0, 0.0, 0.0, 0.0])
