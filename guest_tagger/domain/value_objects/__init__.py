"""Value objects package."""
from .progress import ProgressEvent, ProgressEventType
from .recognition import UNKNOWN_GUEST, DetectionAttempt, DetectorBackend, MatchResult
from .scan import BatchReport, FailureStage, GuestScanResult, MatchDetail, PhotoFailure, PhotoOutcome

__all__ = [
    "BatchReport",
    "DetectionAttempt",
    "DetectorBackend",
    "FailureStage",
    "GuestScanResult",
    "MatchDetail",
    "MatchResult",
    "PhotoFailure",
    "PhotoOutcome",
    "ProgressEvent",
    "ProgressEventType",
    "UNKNOWN_GUEST",
]
