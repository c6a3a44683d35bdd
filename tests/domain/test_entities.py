"""Tests for domain entities and value objects."""
import json

import numpy as np
import pytest
from pydantic import ValidationError

from guest_tagger.domain.entities.face import BoundingBox, DetectedFace, as_embedding
from guest_tagger.domain.entities.guest import GalleryEntry, Guest, UserType
from guest_tagger.domain.value_objects import (
    BatchReport,
    FailureStage,
    MatchResult,
    PhotoFailure,
    PhotoOutcome,
    ProgressEvent,
    ProgressEventType,
)
from guest_tagger.domain.value_objects.scan import NOTHING_TO_MATCH_MESSAGE

BOX = BoundingBox(left=0.1, top=0.1, width=0.2, height=0.2)


class TestEmbeddings:

    def test_embedding_becomes_float32_vector(self):
        vector = as_embedding([1, 2, 3])

        assert vector.dtype == np.float32
        assert vector.shape == (3,)

    @pytest.mark.parametrize("values", [[], [[1.0, 2.0]], [1.0, float("nan")]])
    def test_invalid_embedding_is_rejected(self, values):
        with pytest.raises(ValueError):
            as_embedding(values)


class TestDetectedFace:

    def test_unmatched_face_must_have_zero_confidence(self):
        with pytest.raises(ValidationError):
            DetectedFace(bounding_box=BOX, embedding=[1.0, 0.0], match_confidence=0.4)

    def test_confidence_is_bounded(self):
        with pytest.raises(ValidationError):
            DetectedFace(bounding_box=BOX, embedding=[1.0, 0.0], matched_guest_id="alice", match_confidence=1.2)

    def test_round_trips_through_json_storage(self):
        face = DetectedFace(bounding_box=BOX, embedding=np.array([0.5, 0.25]),
                            matched_guest_id="alice", match_confidence=0.7)

        restored = DetectedFace.model_validate(json.loads(json.dumps(face.model_dump())))

        assert restored == face
        assert restored.is_matched


class TestGuest:

    def test_only_verified_guests_with_encoding_are_eligible(self):
        assert Guest(id="a", face_encoding=[1.0], is_verified=True).is_gallery_eligible
        assert not Guest(id="b", face_encoding=[1.0]).is_gallery_eligible
        assert not Guest(id="c", is_verified=True).is_gallery_eligible
        assert not Guest(id="d", face_encoding=[1.0], is_verified=True,
                         user_type=UserType.COUPLE).is_gallery_eligible

    def test_gallery_entry_requires_embeddings_of_one_dimension(self):
        with pytest.raises(ValidationError):
            GalleryEntry(guest_id="a", embeddings=[])
        with pytest.raises(ValidationError):
            GalleryEntry(guest_id="a", embeddings=[[1.0, 0.0], [1.0, 0.0, 0.0]])


class TestMatchResult:

    def test_confidence_is_clamped(self):
        assert MatchResult(guest_id="alice", distance=0.25).confidence == pytest.approx(0.75)
        assert MatchResult(guest_id="alice", distance=1.4).confidence == 0.0
        assert MatchResult(guest_id="unknown", distance=0.1).confidence == 0.0


class TestBatchReport:

    def test_counts_and_message(self):
        report = BatchReport(total_photos=3)
        report.add(PhotoOutcome(photo_id="p1", faces_detected=2))
        report.add(PhotoOutcome(photo_id="p2", failure=PhotoFailure(
            photo_id="p2", stage=FailureStage.FETCH, error="timeout")))
        report.add(PhotoOutcome(photo_id="p3", skipped=True))

        assert report.photos_processed == 1
        assert report.photos_failed == 1
        assert report.photos_skipped == 1
        assert report.faces_detected == 2
        assert "1 photos processed successfully" in report.message

    def test_empty_gallery_message(self):
        assert BatchReport.empty_gallery().message == NOTHING_TO_MATCH_MESSAGE


class TestProgressEvent:

    def test_sse_frame_uses_camel_case_and_skips_empty_fields(self):
        event = ProgressEvent(type=ProgressEventType.PHOTO_PROCESSED, guest_id="alice",
                              photo_id="p1", matched=True, current=1, total=3)

        frame = event.to_sse()

        assert frame.startswith("data: ") and frame.endswith("\n\n")
        payload = json.loads(frame[len("data: "):])
        assert payload == {
            "type": "photoProcessed",
            "guestId": "alice",
            "photoId": "p1",
            "matched": True,
            "current": 1,
            "total": 3,
        }
        assert not event.is_terminal
