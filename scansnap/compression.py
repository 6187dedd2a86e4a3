"""
compression.py - Per-page JPEG compression.

Each resampled page becomes one baseline JPEG with its output DPI written
into the JFIF header, so the PDF writer can size the page image from the
stream alone.
"""

import io
import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image
import cv2

from .acquisition import RasterPage
from .errors import EncodeError

logger = logging.getLogger(__name__)

# Saturation threshold for grayscale conversion
# Only convert to grayscale if mean saturation is below this
GRAYSCALE_SATURATION_THRESHOLD = 10  # Out of 255


@dataclass
class CompressedPage:
    """Compressed page data ready for PDF embedding."""
    page_num: int
    image_data: bytes
    width: int
    height: int
    dpi: int
    is_color: bool

    @property
    def total_size(self) -> int:
        return len(self.image_data)


def is_grayscale_image(image: np.ndarray) -> bool:
    """
    Check if image is effectively grayscale based on saturation.

    Only returns True if the entire page has very low saturation.
    """
    if len(image.shape) != 3 or image.shape[2] != 3:
        return True  # Already grayscale

    hsv = cv2.cvtColor(image, cv2.COLOR_RGB2HSV)
    mean_saturation = np.mean(hsv[:, :, 1])

    is_gray = mean_saturation < GRAYSCALE_SATURATION_THRESHOLD
    logger.debug(f"Mean saturation: {mean_saturation:.1f}, is_grayscale: {is_gray}")

    return is_gray


def _to_pil(image: np.ndarray, detect_grayscale: bool) -> Image.Image:
    if image.ndim == 2:
        return Image.fromarray(image)

    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise ValueError(f"Unsupported pixel buffer shape {image.shape}")
    if image.shape[2] == 4:
        image = np.ascontiguousarray(image[:, :, :3])

    if detect_grayscale and is_grayscale_image(image):
        return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_RGB2GRAY))
    return Image.fromarray(image)


def encode_page(
    page: RasterPage,
    quality: int = 95,
    detect_grayscale: bool = False
) -> CompressedPage:
    """
    Compress a page as JPEG.

    Args:
        page: Resampled page (uint8 RGB or grayscale array)
        quality: JPEG quality (0-100)
        detect_grayscale: Store effectively-gray color pages as one channel

    Raises:
        EncodeError: the pixel buffer cannot be turned into a JPEG
    """
    try:
        if page.image.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {page.image.dtype}")
        img = _to_pil(page.image, detect_grayscale)

        buffer = io.BytesIO()
        img.save(
            buffer,
            format="JPEG",
            quality=quality,
            dpi=(page.dpi, page.dpi)
        )
    except (ValueError, TypeError, OSError, cv2.error) as e:
        raise EncodeError(page.index, e)

    data = buffer.getvalue()
    width, height = img.size
    is_color = img.mode == "RGB"

    logger.debug(
        f"Page {page.index}: {len(data):,} bytes | "
        f"{width}x{height} | color={is_color} | q={quality}"
    )

    return CompressedPage(
        page_num=page.index,
        image_data=data,
        width=width,
        height=height,
        dpi=page.dpi,
        is_color=is_color
    )
