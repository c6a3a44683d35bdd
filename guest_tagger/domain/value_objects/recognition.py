"""Face recognition value objects."""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Label returned when no gallery guest is close enough to a face
UNKNOWN_GUEST = "unknown"


class DetectorBackend(str, Enum):
    """Face detectors available to the extractor."""
    ACCURATE = "accurate"
    FAST = "fast"


class DetectionAttempt(BaseModel):
    """One detector configuration tried by the detection cascade."""
    backend: DetectorBackend = Field(..., description="Detector to run")
    min_confidence: float = Field(..., ge=0.0, le=1.0, description="Minimum detector score kept")
    max_faces: int = Field(20, ge=0, description="Maximum faces returned (0 for no limit)")

    model_config = ConfigDict(frozen=True)


class MatchResult(BaseModel):
    """Nearest gallery guest for a query embedding."""
    guest_id: str = Field(..., description=f"Matched guest id, or '{UNKNOWN_GUEST}'")
    distance: float = Field(..., ge=0.0, description="Euclidean distance to the nearest reference")

    model_config = ConfigDict(frozen=True)

    @property
    def is_match(self) -> bool:
        return self.guest_id != UNKNOWN_GUEST

    @property
    def confidence(self) -> float:
        """clamp(1 - distance, 0, 1) for matches, 0 otherwise."""
        if not self.is_match:
            return 0.0
        return max(0.0, min(1.0, 1.0 - self.distance))
