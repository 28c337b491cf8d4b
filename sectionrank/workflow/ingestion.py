from __future__ import annotations

import mimetypes
import os
from pathlib import Path
from typing import Callable, Generator, Optional, Tuple

from pdf2image import convert_from_path, pdfinfo_from_path
from PIL import Image

from sectionrank.logging_config import get_logger

logger = get_logger(__name__)

MAX_FILE_SIZE_MB = float(os.getenv("MAX_PDF_SIZE_MB", "150"))


class PdfIngestion:
    """Validate local PDFs and rasterize them one page at a time."""

    max_file_size_mb = MAX_FILE_SIZE_MB

    @classmethod
    def validate_pdf(cls, pdf_path: Path) -> Path:
        """Basic sanity checks before layout detection and OCR."""
        if not pdf_path.exists():
            raise FileNotFoundError(f"PDF not found: {pdf_path}")
        if not pdf_path.is_file():
            raise ValueError(f"Expected a file: {pdf_path}")

        mime, _ = mimetypes.guess_type(pdf_path)
        if mime not in {"application/pdf", None}:
            raise ValueError(f"Unsupported MIME type '{mime}' for {pdf_path}")

        size_mb = os.path.getsize(pdf_path) / (1024 * 1024)
        if size_mb > cls.max_file_size_mb:
            raise ValueError(f"{pdf_path.name} is {size_mb:.1f} MB, which exceeds the {cls.max_file_size_mb} MB limit")

        logger.info("Validated PDF %s (%.1f MB)", pdf_path, size_mb)
        return pdf_path

    @classmethod
    def count_pages(cls, pdf_path: Path) -> int:
        """Return total number of pages for a PDF without rendering them."""
        local_path = cls.validate_pdf(pdf_path)
        info = pdfinfo_from_path(local_path.as_posix(), userpw=None, poppler_path=None)
        return int(info.get("Pages", 0) or 0)

    @classmethod
    def stream_pdf_pages(
        cls,
        pdf_path: Path,
        dpi: int = 200,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> Generator[Tuple[int, Image.Image], None, None]:
        """Yield ``(page_number, image)`` pairs without holding every page in memory."""
        local_path = cls.validate_pdf(pdf_path)
        total_pages = cls.count_pages(local_path)
        for page in range(1, total_pages + 1):
            images = convert_from_path(local_path.as_posix(), dpi=dpi, first_page=page, last_page=page)
            if not images:
                continue
            if on_progress:
                on_progress(page, total_pages)
            logger.debug("Rasterized page %s/%s at %s dpi | file=%s", page, total_pages, dpi, local_path.name)
            yield page, images[0]


__all__ = ["MAX_FILE_SIZE_MB", "PdfIngestion"]
