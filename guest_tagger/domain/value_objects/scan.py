"""Value objects describing the outcome of photo scans."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

NOTHING_TO_MATCH_MESSAGE = "No gallery-eligible guests to match against."


class FailureStage(str, Enum):
    """Pipeline stage at which a photo failed."""
    FETCH = "fetch"
    DECODE = "decode"
    DETECT = "detect"
    PERSIST = "persist"
    UNEXPECTED = "unexpected"


class PhotoFailure(BaseModel):
    """A photo that could not be processed."""
    photo_id: str
    stage: FailureStage
    error: str


class MatchDetail(BaseModel):
    """A face in a photo matched to a guest."""
    photo_id: str
    guest_id: str
    guest_name: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    distance: float = Field(..., ge=0.0)


class PhotoOutcome(BaseModel):
    """Result of running the pipeline on one photo of a corpus rescan."""
    photo_id: str
    faces_detected: int = 0
    matches: List[MatchDetail] = Field(default_factory=list)
    failure: Optional[PhotoFailure] = None
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.failure is None and not self.skipped


class BatchReport(BaseModel):
    """Aggregated result of a full corpus rescan."""
    total_photos: int = 0
    photos_processed: int = 0
    photos_skipped: int = 0
    faces_detected: int = 0
    faces_matched: int = 0
    matches: List[MatchDetail] = Field(default_factory=list)
    failures: List[PhotoFailure] = Field(default_factory=list)
    nothing_to_match: bool = False
    cancelled: bool = False

    @classmethod
    def empty_gallery(cls, total_photos: int = 0) -> "BatchReport":
        return cls(total_photos=total_photos, nothing_to_match=True)

    @property
    def photos_failed(self) -> int:
        return len(self.failures)

    @property
    def message(self) -> str:
        if self.nothing_to_match:
            return NOTHING_TO_MATCH_MESSAGE
        text = (
            f"Processing complete. {self.photos_processed} photos processed successfully. "
            f"{self.faces_matched} faces matched out of {self.faces_detected} detected faces."
        )
        if self.failures:
            text += f" {self.photos_failed} photos failed."
        if self.cancelled:
            text += f" Rescan cancelled, {self.photos_skipped} photos skipped."
        return text

    def add(self, outcome: PhotoOutcome) -> None:
        """Fold one photo's outcome into the report."""
        if outcome.skipped:
            self.photos_skipped += 1
            return
        if outcome.failure is not None:
            self.failures.append(outcome.failure)
            return
        self.photos_processed += 1
        self.faces_detected += outcome.faces_detected
        self.faces_matched += len(outcome.matches)
        self.matches.extend(outcome.matches)


class GuestScanResult(BaseModel):
    """Result of scanning one photo for a single guest."""
    photo_id: str
    matched: bool = False
    added: bool = False
    distance: Optional[float] = None
    failure: Optional[PhotoFailure] = None
