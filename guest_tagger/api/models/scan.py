"""API models for photo rescans, selfie enrollment and guest scans."""
from typing import List, Optional

from pydantic import BaseModel, Field

from guest_tagger.domain.value_objects.scan import BatchReport, MatchDetail, PhotoFailure
from guest_tagger.services.progress import ScanSession, ScanState
from guest_tagger.services.selfie_enrollment import EnrollmentResult


class RescanRequest(BaseModel):
    """Request model for the /photos/rescan endpoint."""
    rescan_all: Optional[bool] = Field(
        None,
        description="Revisit already processed photos too (defaults to the RESCAN_ALL setting)"
    )


class RescanResponse(BaseModel):
    """Response model for the /photos/rescan endpoint."""
    message: str = Field(..., description="Human-readable summary")
    total_photos: int = Field(..., description="Photos in the rescan")
    photos_processed: int = Field(..., description="Photos that completed processing")
    photos_failed: int = Field(..., description="Photos that failed at some stage")
    photos_skipped: int = Field(0, description="Photos not started because the rescan was cancelled")
    faces_detected: int = Field(..., description="Faces found across processed photos")
    faces_matched: int = Field(..., description="Faces matched to a guest")
    nothing_to_match: bool = Field(False, description="True when no guest has a verified selfie")
    details: List[MatchDetail] = Field(default_factory=list, description="One entry per matched face")
    failures: List[PhotoFailure] = Field(default_factory=list, description="One entry per failed photo")

    @classmethod
    def from_report(cls, report: BatchReport) -> "RescanResponse":
        """Convert the engine's BatchReport to the API response model."""
        return cls(
            message=report.message,
            total_photos=report.total_photos,
            photos_processed=report.photos_processed,
            photos_failed=report.photos_failed,
            photos_skipped=report.photos_skipped,
            faces_detected=report.faces_detected,
            faces_matched=report.faces_matched,
            nothing_to_match=report.nothing_to_match,
            details=report.matches,
            failures=report.failures,
        )


class SelfieRequest(BaseModel):
    """Request model for the selfie enrollment endpoint."""
    selfie_url: str = Field(
        ...,
        description="URL or s3:// URI of the uploaded selfie",
        min_length=1, max_length=1024
    )


class SelfieResponse(BaseModel):
    """Response model for the selfie enrollment endpoint."""
    guest_id: str
    is_verified: bool
    scan_started: bool = Field(..., description="Whether a scan of existing photos was started")

    @classmethod
    def from_result(cls, result: EnrollmentResult) -> "SelfieResponse":
        return cls(
            guest_id=result.guest.id,
            is_verified=result.guest.is_verified,
            scan_started=result.scan_started,
        )


class ScanStartedResponse(BaseModel):
    """Response model when a guest scan was accepted."""
    guest_id: str
    status: str = "started"


class ScanProgressResponse(BaseModel):
    """Polling snapshot of a guest scan."""
    processing: bool
    current: int = 0
    total: int = 0

    @classmethod
    def from_session(cls, session: Optional[ScanSession]) -> "ScanProgressResponse":
        if session is None:
            return cls(processing=False)
        return cls(
            processing=session.state == ScanState.STREAMING,
            current=session.current,
            total=session.total,
        )
