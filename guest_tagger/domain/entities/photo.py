"""Photo domain entity."""
from typing import List

from pydantic import BaseModel, Field

from guest_tagger.domain.entities.face import DetectedFace


class Photo(BaseModel):
    """An uploaded wedding photo and the faces found in it."""
    id: str = Field(..., description="Photo identifier")
    image_ref: str = Field(..., description="Fetchable reference (URL or s3:// URI) of the image")
    detected_faces: List[DetectedFace] = Field(default_factory=list, description="Faces found in the photo")
    is_processed: bool = Field(False, description="Whether a face detection pass has completed")

    def has_match_for(self, guest_id: str) -> bool:
        """Whether any face on this photo is already matched to the guest."""
        return any(face.matched_guest_id == guest_id for face in self.detected_faces)
