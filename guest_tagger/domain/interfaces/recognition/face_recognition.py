"""Face extraction interface."""
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ...entities.face import ExtractedFace
from ...value_objects.recognition import DetectionAttempt


class FaceExtractor(ABC):
    """Interface for face detection and embedding extraction."""

    @abstractmethod
    async def detect(
        self,
        raster: np.ndarray,
        attempt: DetectionAttempt,
    ) -> List[ExtractedFace]:
        """
        Detect faces in a decoded image and extract their embeddings.

        Args:
            raster: Decoded BGR image
            attempt: Detector backend and confidence setting to use

        Returns:
            List of faces with relative bounding boxes and embeddings.
            Returns an empty list if no face meets the attempt's confidence.

        Raises:
            DetectionError: If the inference backend fails
        """
        pass
