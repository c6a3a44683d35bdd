"""Tests for detached single-guest scans."""
import asyncio

import pytest

from guest_tagger.core.exceptions import GuestNotFoundError, ScanAlreadyRunningError
from guest_tagger.domain.entities.guest import Guest
from guest_tagger.domain.value_objects.progress import KEEPALIVE_FRAME, ProgressEventType
from guest_tagger.services.guest_scan import GuestScanCoordinator
from guest_tagger.services.progress import ProgressRegistry, ScanState

from fakes import ALICE, BOB, EMBEDDING_DIMENSION, make_face, photo_ref


@pytest.fixture
def registry() -> ProgressRegistry:
    return ProgressRegistry()


@pytest.fixture
def coordinator(engine, registry, photos, guests) -> GuestScanCoordinator:
    return GuestScanCoordinator(engine, registry, photos, guests, embedding_dimension=EMBEDDING_DIMENSION)


async def drain(session):
    events = []
    while True:
        event = await session.next_event()
        events.append(event)
        if event.is_terminal:
            return events


class TestGuestScanCoordinator:

    async def test_scan_streams_progress_and_tags_photos(self, coordinator, registry, extractor, photos):
        extractor.faces[1] = [make_face(ALICE)]
        extractor.faces[3] = [make_face(BOB), make_face(ALICE)]

        session = await coordinator.start_for_guest("alice")
        events = await drain(session)
        await coordinator.wait("alice")

        assert [e.type for e in events] == [
            ProgressEventType.CONNECTED,
            ProgressEventType.PHOTO_PROCESSED,
            ProgressEventType.PHOTO_PROCESSED,
            ProgressEventType.PHOTO_PROCESSED,
            ProgressEventType.COMPLETE,
        ]
        assert [e.current for e in events[1:4]] == [1, 2, 3]
        assert [e.matched for e in events[1:4]] == [True, False, True]
        assert events[-1].matched_photos == 2
        assert photos["photo-3"].detected_faces[0].matched_guest_id == "alice"
        assert registry.get("alice") is session
        assert session.state == ScanState.COMPLETE

    async def test_concurrent_scan_for_same_guest_is_rejected(self, coordinator):
        first = await coordinator.start_for_guest("alice")

        with pytest.raises(ScanAlreadyRunningError):
            await coordinator.start_for_guest("alice")

        events = await drain(first)
        assert events[-1].type == ProgressEventType.COMPLETE

    async def test_guest_without_verified_selfie_is_rejected(self, coordinator):
        with pytest.raises(GuestNotFoundError):
            await coordinator.start_for_guest("carol")
        with pytest.raises(GuestNotFoundError):
            await coordinator.start_for_guest("nobody")

    async def test_failed_photo_advances_progress(self, coordinator, image_source):
        image_source.failing.add(photo_ref(2))

        events = await drain(await coordinator.start_for_guest("bob"))

        processed = [e for e in events if e.type == ProgressEventType.PHOTO_PROCESSED]
        assert [e.current for e in processed] == [1, 2, 3]
        assert processed[1].error is not None
        assert events[-1].type == ProgressEventType.COMPLETE

    async def test_cancelled_scan_ends_with_error_event(self, coordinator, image_source):
        session = await coordinator.start_for_guest("alice")
        assert coordinator.cancel("alice")

        events = await drain(session)

        assert events[-1].type == ProgressEventType.ERROR
        assert image_source.fetched == []

    async def test_cancel_without_running_scan(self, coordinator):
        assert not coordinator.cancel("alice")

    async def test_repository_failure_ends_with_error_event(self, engine, registry, guests):
        class BrokenPhotos:
            async def list_photos(self, unprocessed_only=False):
                raise RuntimeError("database unavailable")

        coordinator = GuestScanCoordinator(
            engine, registry, BrokenPhotos(), guests, embedding_dimension=EMBEDDING_DIMENSION
        )

        events = await drain(await coordinator.start_for_guest("alice"))

        assert [e.type for e in events] == [ProgressEventType.ERROR]
        assert events[0].error == "database unavailable"

    async def test_shutdown_stops_running_scans(self, coordinator, registry):
        session = await coordinator.start_for_guest("alice")
        await asyncio.sleep(0)

        await coordinator.shutdown()

        assert session.is_terminal
        assert registry.get("alice").state == ScanState.ERRORED

    async def test_subscriber_attaching_after_scan_finished_gets_replay(self, coordinator, registry, extractor):
        extractor.faces[2] = [make_face(ALICE)]
        await coordinator.start_for_guest("alice")
        await coordinator.wait("alice")

        session = registry.subscribe("alice")
        frames = [frame async for frame in session.stream(keepalive_interval=0.05)]
        registry.unsubscribe(session)

        assert KEEPALIVE_FRAME not in frames
        assert len(frames) == 5
        assert frames[-1].startswith('data: {"type": "complete"')
        assert registry.get("alice") is None

    async def test_finished_scan_can_be_restarted(self, coordinator, registry):
        first = await coordinator.start_for_guest("alice")
        await coordinator.wait("alice")

        second = await coordinator.start_for_guest("alice")
        await coordinator.wait("alice")

        assert second is not first
        assert registry.get("alice") is second

    async def test_retained_scan_expires(self, engine, photos, guests):
        registry = ProgressRegistry(retention_seconds=0)
        coordinator = GuestScanCoordinator(engine, registry, photos, guests, embedding_dimension=EMBEDDING_DIMENSION)

        await coordinator.start_for_guest("alice")
        await coordinator.wait("alice")

        assert registry.get("alice") is None

    async def test_stored_embedding_of_wrong_dimension_is_rejected(self, coordinator, registry, guests):
        await guests.add_guest(Guest(id="dave", name="Dave", face_encoding=[1.0, 0.0], is_verified=True))

        with pytest.raises(GuestNotFoundError):
            await coordinator.start_for_guest("dave")
        assert registry.get("dave") is None
