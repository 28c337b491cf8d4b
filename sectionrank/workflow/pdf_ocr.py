from __future__ import annotations

import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import pytesseract
from PIL.Image import Image

from sectionrank.logging_config import get_logger
from sectionrank.utils.types import Detection, PageDetections
from sectionrank.workflow.ingestion import PdfIngestion
from sectionrank.workflow.layout import LayoutDetector, TesseractLayoutDetector

logger = get_logger(__name__)

_requested_workers = int(os.getenv("OCR_MAX_WORKERS", "4"))
_cpu_count = os.cpu_count() or 1
OCR_MAX_WORKERS = max(1, min(_requested_workers, _cpu_count))

# Labels worth reading when a detector returns boxes without text.
OCR_LABELS = ("Text", "Title", "Section-header", "List-item")


def _basic_cleanup(text: str) -> str:
    return text.replace("\x0c", "").strip()


class Ocr:
    """Layout detection plus region OCR over rasterized PDF pages."""

    def __init__(
        self,
        detector: Optional[LayoutDetector] = None,
        lang: str = "eng",
        dpi: int = 200,
        max_workers: int = OCR_MAX_WORKERS,
    ) -> None:
        self.lang = lang
        self.dpi = dpi
        self.max_workers = max_workers
        self.detector = detector or TesseractLayoutDetector(lang=lang)

    def read_region(self, image: Image, detection: Detection) -> str:
        """OCR the detection's box; failures come back as a marker the structure pass skips."""
        x1, y1, x2, y2 = (int(round(v)) for v in detection.bbox)
        if x2 <= x1 or y2 <= y1:
            return ""
        try:
            return _basic_cleanup(pytesseract.image_to_string(image.crop((x1, y1, x2, y2)), lang=self.lang))
        except (pytesseract.TesseractError, OSError) as exc:
            logger.warning("Region OCR failed | page=%s label=%s error=%s", detection.page, detection.label, exc)
            return "Text extraction failed"

    def process_page(self, page: int, image: Image) -> PageDetections:
        started = time.perf_counter()
        detections: List[Detection] = []
        try:
            found = self.detector.detect(image, page)
        except (pytesseract.TesseractError, OSError) as exc:
            elapsed = round(time.perf_counter() - started, 2)
            logger.warning("Layout detection failed, page left empty | page=%s error=%s", page, exc)
            return PageDetections(page=page, detections=[], processing_time=elapsed)
        for detection in found:
            if not detection.text and detection.label in OCR_LABELS:
                detection = replace(detection, text=self.read_region(image, detection))
            detections.append(detection)
        elapsed = round(time.perf_counter() - started, 2)
        logger.info("Page processed | page=%s elements=%s seconds=%s", page, len(detections), elapsed)
        return PageDetections(page=page, detections=detections, processing_time=elapsed)

    def process_images(self, images: Sequence[Tuple[int, Image]]) -> List[PageDetections]:
        """Process pages on a thread pool; results are returned in page order."""
        results: List[PageDetections] = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self.process_page, page, image) for page, image in images]
            for future in as_completed(futures):
                results.append(future.result())
        return sorted(results, key=lambda result: result.page)

    def process_pdf(self, pdf_path: Path, on_progress: Optional[Callable[[int, int], None]] = None) -> List[PageDetections]:
        pages = list(PdfIngestion.stream_pdf_pages(pdf_path, dpi=self.dpi, on_progress=on_progress))
        results = self.process_images(pages)
        logger.info(
            "PDF processed | file=%s pages=%s elements=%s",
            pdf_path.name,
            len(results),
            sum(len(result.detections) for result in results),
        )
        return results


__all__ = ["OCR_LABELS", "OCR_MAX_WORKERS", "Ocr"]
