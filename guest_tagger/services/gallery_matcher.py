"""Nearest-neighbour matching of face embeddings against the guest gallery."""
from typing import Dict, List, Optional, Sequence

import numpy as np

from guest_tagger.core.config import settings
from guest_tagger.core.logging import get_logger
from guest_tagger.domain.entities.guest import GalleryEntry
from guest_tagger.domain.value_objects.recognition import UNKNOWN_GUEST, MatchResult

logger = get_logger(__name__)


class GalleryMatcher:
    """Find the nearest gallery guest for a face embedding.

    All reference embeddings are stacked into one matrix when the matcher is
    built, so a query is a single vectorised distance computation. The matcher
    is read-only after construction and is shared by concurrent photo tasks.

    Example:
        ```python
        matcher = GalleryMatcher(gallery, threshold=1.0)
        result = matcher.find_best_match(face.embedding)
        if result.is_match:
            ...
        ```
    """

    def __init__(
        self,
        gallery: Sequence[GalleryEntry],
        threshold: float = settings.MATCH_DISTANCE_THRESHOLD,
    ) -> None:
        """Build the matcher.

        Args:
            gallery: Guests and their reference embeddings
            threshold: Maximum distance accepted as a match

        Raises:
            ValueError: If the gallery is empty or embeddings differ in dimension
        """
        if not gallery:
            raise ValueError("Cannot build a matcher from an empty gallery")
        if threshold < 0:
            raise ValueError("threshold must not be negative")

        labels: List[str] = []
        references: List[np.ndarray] = []
        for entry in gallery:
            for embedding in entry.embeddings:
                labels.append(entry.guest_id)
                references.append(embedding)

        dimensions = {reference.shape[0] for reference in references}
        if len(dimensions) != 1:
            raise ValueError(f"Gallery embeddings have mixed dimensions: {sorted(dimensions)}")

        self.threshold = threshold
        self.dimension = dimensions.pop()
        self._labels = labels
        self._references = np.stack(references).astype(np.float32)
        self._names: Dict[str, Optional[str]] = {entry.guest_id: entry.name for entry in gallery}

        logger.debug(
            "Built gallery matcher",
            guests=len(self._names),
            references=len(labels),
            threshold=threshold
        )

    def __len__(self) -> int:
        return len(self._names)

    def guest_name(self, guest_id: str) -> Optional[str]:
        return self._names.get(guest_id)

    def find_best_match(self, embedding: np.ndarray) -> MatchResult:
        """Match a query embedding against every reference embedding.

        The nearest reference's guest is the candidate; it is accepted only if
        its distance does not exceed the threshold.

        Raises:
            ValueError: If the query dimension differs from the gallery's
        """
        query = np.asarray(embedding, dtype=np.float32)
        if query.shape != (self.dimension,):
            raise ValueError(
                f"Query embedding has shape {query.shape}, expected ({self.dimension},)"
            )

        distances = np.linalg.norm(self._references - query, axis=1)
        nearest = int(np.argmin(distances))
        distance = float(distances[nearest])

        if distance > self.threshold:
            return MatchResult(guest_id=UNKNOWN_GUEST, distance=distance)
        return MatchResult(guest_id=self._labels[nearest], distance=distance)
