"""
Reading order and the layout collaborator.

Layout detectors return detections in no particular order; everything
downstream goes through :func:`sort_reading_order` first. The Tesseract
detector below is a lightweight stand-in for a trained layout model: it
groups OCR words into paragraphs and labels them from relative line height
and position on the page.
"""

from __future__ import annotations

import re
from collections import Counter, defaultdict
from functools import cmp_to_key
from statistics import median
from typing import Dict, Iterable, List, Protocol, Sequence, Tuple

import pytesseract
from PIL.Image import Image
from pytesseract import Output

from sectionrank.logging_config import get_logger
from sectionrank.utils.types import Detection

logger = get_logger(__name__)

READING_ORDER_TOLERANCE = 20.0


class LayoutDetector(Protocol):
    def detect(self, image: Image, page: int) -> List[Detection]:
        """Return labeled regions for one page image."""


def sort_reading_order(detections: Iterable[Detection], tolerance: float = READING_ORDER_TOLERANCE) -> List[Detection]:
    """Top-to-bottom, then left-to-right for detections whose centers sit within the tolerance band."""

    def compare(a: Detection, b: Detection) -> float:
        y_diff = a.center[1] - b.center[1]
        if abs(y_diff) > tolerance:
            return y_diff
        return a.center[0] - b.center[0]

    return sorted(detections, key=cmp_to_key(compare))


class TesseractLayoutDetector:
    """Paragraph-level detections from pytesseract word boxes."""

    TITLE_HEIGHT_RATIO = 1.8
    HEADING_HEIGHT_RATIO = 1.25
    MAX_HEADING_WORDS = 14
    MARGIN_BAND = 0.06
    LIST_MARKER = re.compile(r"^([•●\-*]|\d+[.)]|[a-z][.)])\s+", re.IGNORECASE)

    def __init__(self, lang: str = "eng") -> None:
        self.lang = lang

    def detect(self, image: Image, page: int) -> List[Detection]:
        data = pytesseract.image_to_data(image, lang=self.lang, output_type=Output.DICT)
        width, height = image.size
        paragraphs = self._group_words(data)
        if not paragraphs:
            logger.info("Layout empty | page=%s", page)
            return []

        body_height = self._body_line_height(paragraphs)
        tallest = max(p["line_height"] for p in paragraphs)
        detections: List[Detection] = []
        title_taken = False
        for paragraph in paragraphs:
            label = self._label(paragraph, page, body_height, tallest, height, title_taken)
            title_taken = title_taken or label == "Title"
            x1, y1, x2, y2 = paragraph["bbox"]
            detections.append(
                Detection(
                    bbox=(x1, y1, x2, y2),
                    label=label,
                    confidence=paragraph["confidence"],
                    text=paragraph["text"],
                    page=page,
                    center=((x1 + x2) / 2, (y1 + y2) / 2),
                    normalized_bbox=(x1 / width, y1 / height, x2 / width, y2 / height) if width and height else None,
                )
            )
        logger.info("Layout detected | page=%s regions=%s body_height=%.1f", page, len(detections), body_height)
        return detections

    @staticmethod
    def _group_words(data: Dict[str, Sequence]) -> List[dict]:
        groups: Dict[Tuple[int, int], List[dict]] = defaultdict(list)
        for i, raw_text in enumerate(data.get("text", [])):
            text = str(raw_text or "").strip()
            if not text:
                continue
            try:
                conf = float(data["conf"][i])
            except (TypeError, ValueError):
                conf = -1.0
            key = (int(data["block_num"][i]), int(data["par_num"][i]))
            groups[key].append(
                {
                    "text": text,
                    "left": float(data["left"][i]),
                    "top": float(data["top"][i]),
                    "right": float(data["left"][i]) + float(data["width"][i]),
                    "bottom": float(data["top"][i]) + float(data["height"][i]),
                    "height": float(data["height"][i]),
                    "conf": conf,
                }
            )

        paragraphs: List[dict] = []
        for key in sorted(groups):
            words = groups[key]
            confidences = [w["conf"] for w in words if w["conf"] >= 0]
            paragraphs.append(
                {
                    "text": " ".join(w["text"] for w in words),
                    "bbox": (
                        min(w["left"] for w in words),
                        min(w["top"] for w in words),
                        max(w["right"] for w in words),
                        max(w["bottom"] for w in words),
                    ),
                    "line_height": median(w["height"] for w in words),
                    "words": len(words),
                    "confidence": round(sum(confidences) / len(confidences) / 100, 3) if confidences else 0.0,
                }
            )
        return paragraphs

    @staticmethod
    def _body_line_height(paragraphs: Sequence[dict]) -> float:
        counter: Counter = Counter()
        for paragraph in paragraphs:
            counter[round(paragraph["line_height"])] += paragraph["words"]
        return float(counter.most_common(1)[0][0]) or 1.0

    def _label(self, paragraph: dict, page: int, body_height: float, tallest: float, page_height: int, title_taken: bool) -> str:
        _, y1, _, y2 = paragraph["bbox"]
        ratio = paragraph["line_height"] / body_height
        short = paragraph["words"] <= self.MAX_HEADING_WORDS

        if page_height and short:
            if y2 < page_height * self.MARGIN_BAND:
                return "Page-header"
            if y1 > page_height * (1 - self.MARGIN_BAND):
                return "Page-footer"
        if page == 1 and not title_taken and short and ratio >= self.TITLE_HEIGHT_RATIO and paragraph["line_height"] >= tallest:
            return "Title"
        if short and ratio >= self.HEADING_HEIGHT_RATIO:
            return "Section-header"
        if self.LIST_MARKER.match(paragraph["text"]):
            return "List-item"
        return "Text"


__all__ = ["LayoutDetector", "READING_ORDER_TOLERANCE", "TesseractLayoutDetector", "sort_reading_order"]
