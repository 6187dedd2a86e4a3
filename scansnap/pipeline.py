"""
pipeline.py - Scan-to-PDF pipeline.

Pipeline:
1. Acquire every page from the scanner
2. Resample each page from scan DPI to output DPI
3. Compress each page as JPEG
4. Wrap all pages into one PDF

Pages are processed strictly in order, one at a time. Any failure aborts the
whole job; a partial document is never produced.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from .acquisition import RasterPage, acquire
from .compression import CompressedPage, encode_page
from .config import PipelineSettings, ScanConfiguration
from .pdf_writer import PDFWriter
from .resample import resample_page

logger = logging.getLogger(__name__)

# Stage names passed to on_stage callbacks
STAGE_ACQUIRING = "acquiring"
STAGE_RESAMPLING = "resampling"
STAGE_ASSEMBLING = "assembling"

StageCallback = Callable[[str], None]


def _no_stage(stage: str):
    pass


@dataclass
class PageStats:
    """Statistics for a processed page."""
    page_num: int
    width: int
    height: int
    compressed_size: int
    process_time: float
    is_color: bool


@dataclass
class ScanResult:
    """Finished document plus statistics."""
    document: bytes = b""
    page_count: int = 0
    scan_time: float = 0.0
    process_time: float = 0.0
    page_stats: List[PageStats] = field(default_factory=list)

    @property
    def output_size(self) -> int:
        return len(self.document)

    @property
    def avg_page_size(self) -> float:
        if self.page_count == 0:
            return 0
        return self.output_size / self.page_count

    @property
    def total_time(self) -> float:
        return self.scan_time + self.process_time

    def summary(self) -> str:
        return (
            f"Pages: {self.page_count} | "
            f"Output: {self.output_size:,} bytes | "
            f"Avg page size: {self.avg_page_size:,.0f} bytes | "
            f"Scan: {self.scan_time:.1f}s | Processing: {self.process_time:.1f}s"
        )


def process_page(page: RasterPage, settings: PipelineSettings) -> CompressedPage:
    """Resample then compress a single page."""
    reduced = resample_page(page, settings.dpi_ratio)
    return encode_page(
        reduced,
        quality=settings.jpeg_quality,
        detect_grayscale=settings.detect_grayscale
    )


def compress_pages(
    pages: List[RasterPage],
    settings: PipelineSettings
) -> Tuple[List[CompressedPage], List[PageStats]]:
    """Resample and compress every page, in order."""
    compressed_pages = []
    page_stats = []
    for page in pages:
        start = time.time()
        compressed = process_page(page, settings)
        compressed_pages.append(compressed)
        page_stats.append(PageStats(
            page_num=compressed.page_num,
            width=compressed.width,
            height=compressed.height,
            compressed_size=compressed.total_size,
            process_time=time.time() - start,
            is_color=compressed.is_color
        ))
    return compressed_pages, page_stats


def assemble(
    compressed_pages: List[CompressedPage],
    settings: PipelineSettings
) -> bytes:
    """Write compressed pages into a PDF in the order given."""
    writer = PDFWriter(settings.page_width_mm, settings.page_height_mm)
    try:
        for compressed in compressed_pages:
            writer.add_page(compressed.image_data)
        return writer.to_bytes()
    finally:
        writer.close()


def build_document(
    pages: List[RasterPage],
    settings: Optional[PipelineSettings] = None,
    on_stage: StageCallback = _no_stage
) -> ScanResult:
    """
    Turn scanned pages into a PDF.

    All pages are compressed before the writer sees any of them, so an
    encoding failure leaves nothing half-built.
    """
    settings = settings or PipelineSettings()
    start_time = time.time()

    on_stage(STAGE_RESAMPLING)
    compressed_pages, page_stats = compress_pages(pages, settings)

    on_stage(STAGE_ASSEMBLING)
    result = ScanResult(
        document=assemble(compressed_pages, settings),
        page_count=len(compressed_pages),
        page_stats=page_stats
    )

    result.process_time = time.time() - start_time
    return result


def scan_to_pdf(
    config: ScanConfiguration,
    settings: Optional[PipelineSettings] = None,
    backend: Optional[Any] = None,
    on_stage: StageCallback = _no_stage
) -> ScanResult:
    """
    Scan everything in the feeder and return it as one PDF.

    on_stage is called with each stage name as the job enters it.
    """
    settings = settings or PipelineSettings()

    on_stage(STAGE_ACQUIRING)
    start = time.time()
    pages = acquire(config, backend, scan_dpi=settings.scan_dpi)
    scan_time = time.time() - start

    result = build_document(pages, settings, on_stage)
    result.scan_time = scan_time

    logger.info(result.summary())
    return result
