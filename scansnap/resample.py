"""
resample.py - Scan-resolution to output-resolution downsampling.

Pages are acquired at a high DPI for a clean scan and shrunk by an integer
ratio before compression. Lanczos keeps text edges sharp without aliasing.
"""

import logging
from typing import Tuple

import numpy as np
from PIL import Image

from .acquisition import RasterPage

logger = logging.getLogger(__name__)


def fit_size(width: int, height: int, max_width: int, max_height: int) -> Tuple[int, int]:
    """
    Largest size with the source aspect ratio that fits inside the box.

    The constrained side takes the box size exactly, the other side is
    rounded to nearest and never drops below one pixel.
    """
    src_aspect = width / height
    box_aspect = max_width / max_height

    if src_aspect > box_aspect:
        new_width = max_width
        new_height = int(new_width / src_aspect + 0.5)
    else:
        new_height = max_height
        new_width = int(new_height * src_aspect + 0.5)

    return max(1, new_width), max(1, new_height)


def resample_page(page: RasterPage, ratio: int) -> RasterPage:
    """
    Shrink a page by an integer DPI ratio.

    Caller guarantees ratio >= 1. A side shorter than `ratio` pixels ends up
    one pixel long. Returns a new page; the input is left untouched.
    """
    # Strips shorter than the ratio (short-page detection) keep one pixel
    box_width = max(1, page.width // ratio)
    box_height = max(1, page.height // ratio)
    new_width, new_height = fit_size(page.width, page.height, box_width, box_height)

    img = Image.fromarray(page.image)
    if (new_width, new_height) != img.size:
        img = img.resize((new_width, new_height), Image.LANCZOS)

    logger.debug(
        f"Resampled page {page.index}: {page.width}x{page.height} -> "
        f"{new_width}x{new_height} (1/{ratio})"
    )

    return RasterPage(
        index=page.index,
        image=np.array(img),
        dpi=page.dpi // ratio
    )
