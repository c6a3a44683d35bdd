"""
Image decoding utilities.

Turns arbitrary uploaded image bytes into a BGR raster the face detector can
consume. OpenCV is tried first; buffers it rejects are re-encoded through
Pillow (which understands more container formats and EXIF orientation) and
decoded once more.
"""
import io
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from guest_tagger.core.config import settings
from guest_tagger.core.exceptions import DecodeError
from guest_tagger.core.logging import get_logger

logger = get_logger(__name__)


def bytes_to_numpy_array(image_bytes: bytes, flags: int = cv2.IMREAD_COLOR) -> Optional[np.ndarray]:
    """Convert image bytes to a numpy array.

    Args:
        image_bytes: Raw image bytes
        flags: OpenCV imread flags (default: COLOR)

    Returns:
        numpy.ndarray: Image as a numpy array, or None if OpenCV cannot decode it
    """
    np_array = np.frombuffer(image_bytes, np.uint8)
    return cv2.imdecode(np_array, flags)


class ImageDecoder:
    """Decode image buffers into size-bounded BGR rasters.

    Example:
        ```python
        decoder = ImageDecoder(max_dimension=1600)
        raster = decoder.decode(image_bytes)
        ```
    """

    def __init__(self, max_dimension: int = settings.MAX_IMAGE_DIMENSION) -> None:
        """Initialize the decoder.

        Args:
            max_dimension: Maximum length of the longest side of a decoded raster
        """
        if max_dimension <= 0:
            raise ValueError("max_dimension must be positive")
        self.max_dimension = max_dimension

    def decode(self, image_bytes: bytes) -> np.ndarray:
        """Decode image bytes into a BGR raster.

        Args:
            image_bytes: Raw image bytes in any format OpenCV or Pillow understands

        Returns:
            np.ndarray: HxWx3 uint8 BGR image whose longest side is at most max_dimension

        Raises:
            DecodeError: If neither direct decoding nor the Pillow conversion succeeds
        """
        if not image_bytes:
            raise DecodeError("Empty image buffer")

        img = bytes_to_numpy_array(image_bytes)
        if img is None:
            logger.info(
                "Direct decode failed, converting with Pillow",
                size_bytes=len(image_bytes)
            )
            converted = self._convert_with_pillow(image_bytes)
            img = bytes_to_numpy_array(converted)
            if img is None:
                raise DecodeError("Failed to decode image after conversion")

        return self._limit_dimensions(img)

    def _convert_with_pillow(self, image_bytes: bytes) -> bytes:
        """Re-encode an image as PNG using Pillow."""
        try:
            with Image.open(io.BytesIO(image_bytes)) as pil_image:
                pil_image = ImageOps.exif_transpose(pil_image)
                if pil_image.mode != "RGB":
                    pil_image = pil_image.convert("RGB")
                buffer = io.BytesIO()
                pil_image.save(buffer, format="PNG")
                return buffer.getvalue()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            logger.warning("Pillow conversion failed", error=str(e))
            raise DecodeError(f"Unrecognized image format: {str(e)}") from e

    def _limit_dimensions(self, img: np.ndarray) -> np.ndarray:
        """Downscale so the longest side fits max_dimension. Never upsamples."""
        height, width = img.shape[:2]
        longest = max(height, width)
        if longest <= self.max_dimension:
            return img

        scale = self.max_dimension / longest
        new_width = max(1, int(round(width * scale)))
        new_height = max(1, int(round(height * scale)))

        logger.debug(
            "Resizing large image",
            original_size=(width, height),
            new_size=(new_width, new_height)
        )

        return cv2.resize(img, (new_width, new_height), interpolation=cv2.INTER_AREA)
