"""Tests for image decoding."""
import io

import cv2
import numpy as np
import pytest
from PIL import Image

from guest_tagger.core.exceptions import DecodeError
from guest_tagger.core.utils.image import ImageDecoder, bytes_to_numpy_array


def encode(raster: np.ndarray, ext: str = ".jpg") -> bytes:
    ok, buffer = cv2.imencode(ext, raster)
    assert ok
    return buffer.tobytes()


class TestImageDecoder:

    def test_decodes_jpeg(self):
        raster = ImageDecoder().decode(encode(np.zeros((40, 60, 3), dtype=np.uint8)))

        assert raster.shape == (40, 60, 3)
        assert raster.dtype == np.uint8

    def test_large_image_is_downscaled_keeping_aspect_ratio(self):
        decoder = ImageDecoder(max_dimension=100)

        raster = decoder.decode(encode(np.zeros((200, 400, 3), dtype=np.uint8)))

        assert raster.shape[:2] == (50, 100)

    def test_small_image_is_never_upsampled(self):
        raster = ImageDecoder(max_dimension=1000).decode(encode(np.zeros((10, 20, 3), dtype=np.uint8), ".png"))

        assert raster.shape[:2] == (10, 20)

    def test_falls_back_to_pillow_for_formats_opencv_rejects(self):
        buffer = io.BytesIO()
        Image.new("RGB", (30, 20), color=(255, 0, 0)).save(buffer, format="PCX")
        image_bytes = buffer.getvalue()
        assert bytes_to_numpy_array(image_bytes) is None

        raster = ImageDecoder().decode(image_bytes)

        assert raster.shape == (20, 30, 3)
        # Pillow red becomes OpenCV BGR
        assert raster[0, 0, 2] > 200

    def test_empty_buffer_is_rejected(self):
        with pytest.raises(DecodeError):
            ImageDecoder().decode(b"")

    def test_garbage_is_rejected(self):
        with pytest.raises(DecodeError):
            ImageDecoder().decode(b"\x00\x01not-an-image" * 10)

    def test_max_dimension_must_be_positive(self):
        with pytest.raises(ValueError):
            ImageDecoder(max_dimension=0)
