"""
pdf_writer.py - PDF assembly from JPEG pages.

Each page is a fixed-size blank page (A4 by default) carrying exactly one
JPEG, anchored at the top-left corner, spanning the full page width. The
image height follows from the resolution stored in the JPEG itself.
"""

import io
import logging
from typing import List, Tuple

import pikepdf
from pikepdf import Pdf, Stream, Dictionary, Name, Array
from PIL import Image

from .config import A4_HEIGHT_MM, A4_WIDTH_MM
from .errors import EmptyDocumentError, RenderError

logger = logging.getLogger(__name__)

POINTS_PER_MM = 72 / 25.4

# Resolution assumed for JPEGs without density information
DEFAULT_IMAGE_DPI = 72.0

COLORSPACES = {
    "L": Name.DeviceGray,
    "RGB": Name.DeviceRGB,
    "CMYK": Name.DeviceCMYK,
}


def mm_to_pt(mm: float) -> float:
    return mm * POINTS_PER_MM


def read_jpeg_info(data: bytes) -> Tuple[int, int, str, Tuple[float, float]]:
    """Return (width, height, mode, (xdpi, ydpi)) from a JPEG stream."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format != "JPEG":
                raise RenderError(f"Expected JPEG data, got {img.format}")
            width, height = img.size
            mode = img.mode
            dpi = img.info.get("dpi")
    except RenderError:
        raise
    except (OSError, ValueError) as e:
        raise RenderError("Unreadable page image", e)

    if mode not in COLORSPACES:
        raise RenderError(f"Unsupported JPEG color mode {mode}")

    if not dpi or not dpi[0] or not dpi[1]:
        dpi = (DEFAULT_IMAGE_DPI, DEFAULT_IMAGE_DPI)
    return width, height, mode, (float(dpi[0]), float(dpi[1]))


class PDFWriter:
    """
    Assembles JPEG pages into a minimal PDF.

    Pages are appended in call order and never reordered. Serialize with
    to_bytes() once every page has been added.
    """

    def __init__(
        self,
        page_width_mm: float = A4_WIDTH_MM,
        page_height_mm: float = A4_HEIGHT_MM
    ):
        self.pdf = Pdf.new()
        self.page_width_pts = mm_to_pt(page_width_mm)
        self.page_height_pts = mm_to_pt(page_height_mm)
        self.page_sizes: List[int] = []

    @property
    def page_count(self) -> int:
        return len(self.page_sizes)

    def add_page(self, jpeg_data: bytes) -> "PDFWriter":
        """Add one page holding the given JPEG."""
        width, height, mode, (xdpi, ydpi) = read_jpeg_info(jpeg_data)

        # Full page width, height scaled by the physical aspect ratio
        draw_width = self.page_width_pts
        draw_height = draw_width * (height / ydpi) / (width / xdpi)
        top = self.page_height_pts - draw_height

        image_dict = Dictionary({
            '/Type': Name.XObject,
            '/Subtype': Name.Image,
            '/Width': width,
            '/Height': height,
            '/ColorSpace': COLORSPACES[mode],
            '/BitsPerComponent': 8,
            '/Filter': Name.DCTDecode,
        })
        if mode == "CMYK":
            # Adobe writes inverted CMYK
            image_dict['/Decode'] = Array([1, 0, 1, 0, 1, 0, 1, 0])
        img_stream = Stream(self.pdf, jpeg_data, image_dict)

        self.pdf.add_blank_page(
            page_size=(self.page_width_pts, self.page_height_pts)
        )
        page = self.pdf.pages[-1]

        xobjects = Dictionary({})
        xobjects['/Im0'] = self.pdf.make_indirect(img_stream)
        page.Resources = Dictionary({'/XObject': xobjects})

        # PDF origin is bottom-left, so shift the image down from the top edge
        content = f"""
q
{draw_width:.4f} 0 0 {draw_height:.4f} 0 {top:.4f} cm
/Im0 Do
Q
"""
        page.Contents = self.pdf.make_indirect(
            Stream(self.pdf, content.strip().encode("ascii"))
        )

        self.page_sizes.append(len(jpeg_data))

        logger.debug(
            f"Added page {self.page_count - 1}: {len(jpeg_data):,} bytes, "
            f"{width}x{height} @ {xdpi:.0f}x{ydpi:.0f} DPI ({mode})"
        )
        return self

    def to_bytes(self) -> bytes:
        """Serialize the whole document."""
        if not self.page_sizes:
            raise EmptyDocumentError()

        buffer = io.BytesIO()
        try:
            self.pdf.save(
                buffer,
                compress_streams=True,
                object_stream_mode=pikepdf.ObjectStreamMode.generate
            )
        except (pikepdf.PdfError, OSError, ValueError) as e:
            raise RenderError("Unable to render PDF", e)

        data = buffer.getvalue()
        logger.info(f"Rendered {self.page_count} pages, {len(data):,} bytes")
        return data

    def get_total_size(self) -> int:
        """Get total image size (before PDF overhead)."""
        return sum(self.page_sizes)

    def close(self):
        self.pdf.close()
