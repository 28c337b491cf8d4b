"""
Structure assembly: per-page detections to a document tree and a flat search index.

Detections are re-sorted into reading order per page, then scanned once with
an explicit section cursor. The cursor has two states, ``NoOpenSection`` and
``OpenSection``; Title, Section-header, content and end-of-input events move
between them. Nothing in here raises on malformed detections: anything that
does not qualify is counted and otherwise ignored.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from sectionrank.logging_config import get_logger
from sectionrank.utils.settings import MatchingConfig
from sectionrank.utils.types import (
    CONTENT_LABELS,
    ContentItem,
    Detection,
    DocumentStatistics,
    DocumentStructure,
    Element,
    PageDetections,
    PageSummary,
    QualityReport,
    Section,
    StructureAnalysis,
)
from sectionrank.workflow.layout import sort_reading_order
from sectionrank.workflow.normalization import TextNormalizer

logger = get_logger(__name__)

ELEMENT_IMPORTANCE = {
    "Title": 1.0,
    "Section-header": 0.8,
    "Text": 0.6,
    "List-item": 0.5,
    "Caption": 0.4,
    "Table": 0.7,
    "Formula": 0.3,
}
DEFAULT_IMPORTANCE = 0.4
MAX_SECTION_TITLE_CHARS = 3
MIN_INFERRED_TITLE_CHARS = 5


def element_type(label: str) -> str:
    """Layout label to search-index element type, e.g. ``Section-header`` -> ``section_header``."""
    return label.lower().replace("-", "_")


def element_importance(label: str) -> float:
    return ELEMENT_IMPORTANCE.get(label, DEFAULT_IMPORTANCE)


def round_half_up(value: float) -> int:
    """Nearest integer, halves rounded up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class NoOpenSection:
    pass


@dataclass(frozen=True)
class OpenSection:
    section: Section


CursorState = Union[NoOpenSection, OpenSection]


@dataclass
class SectionCursor:
    """Two-state cursor deciding where content goes and when sections close."""

    state: CursorState = field(default_factory=NoOpenSection)
    closed: List[Section] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return isinstance(self.state, OpenSection)

    def on_section_header(self, section: Section) -> None:
        self._close()
        self.state = OpenSection(section)

    def on_content(self, item: ContentItem, words: int) -> bool:
        if not isinstance(self.state, OpenSection):
            return False
        self.state.section.content.append(item)
        self.state.section.word_count += words
        return True

    def on_end_of_input(self) -> List[Section]:
        self._close()
        return self.closed

    def _close(self) -> None:
        if isinstance(self.state, OpenSection) and self.state.section.content:
            self.closed.append(self.state.section)
        self.state = NoOpenSection()


class StructureBuilder:
    """Builds DocumentStructure, search index, statistics and a quality report."""

    def __init__(self, config: Optional[MatchingConfig] = None, normalizer: Optional[TextNormalizer] = None) -> None:
        self.config = config or MatchingConfig()
        self.normalizer = normalizer or TextNormalizer()

    def analyze(self, pages: Sequence[PageDetections]) -> StructureAnalysis:
        structure, all_text = self.build(pages)
        statistics = self.statistics(structure, all_text)
        return StructureAnalysis(
            structure=structure,
            search_index=self.create_search_index(structure),
            all_text=all_text,
            statistics=statistics,
            quality=self.assess_quality(structure, statistics),
        )

    def build(self, pages: Sequence[PageDetections]) -> Tuple[DocumentStructure, str]:
        structure = DocumentStructure()
        cursor = SectionCursor()
        text_parts: List[str] = []

        for page in pages:
            ordered = sort_reading_order(page.detections, self.config.reading_order_tolerance)
            structure.pages.append(PageSummary(page=page.page, total_elements=len(ordered), processing_time=page.processing_time))
            for detection in ordered:
                self._count(structure, detection)
                self._apply(structure, cursor, page.page, detection)
                accumulated = self._all_text_entry(detection)
                if accumulated:
                    text_parts.append(accumulated)

        structure.sections = cursor.on_end_of_input()
        self._post_process(structure)
        logger.info(
            "Structure built | pages=%s sections=%s elements=%s title=%s",
            len(structure.pages),
            len(structure.sections),
            structure.total_elements,
            bool(structure.title),
        )
        return structure, "\n".join(text_parts)

    @staticmethod
    def _count(structure: DocumentStructure, detection: Detection) -> None:
        structure.total_elements += 1
        if detection.label == "Title":
            structure.titles += 1
        elif detection.label == "Section-header":
            structure.section_headers += 1
        elif detection.label in ("Text", "List-item"):
            structure.text_elements += 1

    def _apply(self, structure: DocumentStructure, cursor: SectionCursor, page: int, detection: Detection) -> None:
        text = detection.text if isinstance(detection.text, str) else ""
        confidence = self._confidence(detection)
        if confidence is None or not text:
            return

        if detection.label == "Title":
            cleaned = self.normalizer.clean_text(text)
            # Titles that clean to nothing leave the slot open for a later one.
            if not structure.title and cleaned and confidence >= self.config.title_threshold:
                structure.title = cleaned
                logger.debug("Title found | text=%s", structure.title)
            return

        if detection.label == "Section-header" and confidence >= self.config.section_threshold:
            cursor.on_section_header(
                Section(
                    title=self.normalizer.clean_text(text),
                    page=page,
                    confidence=confidence,
                    bbox=detection.bbox,
                )
            )
            return

        if detection.label in CONTENT_LABELS and cursor.is_open:
            cleaned = self.normalizer.clean_text(text)
            if len(cleaned) < self.config.min_text_length:
                return
            item = ContentItem(type=detection.label, text=cleaned, page=page, confidence=confidence, bbox=detection.bbox)
            cursor.on_content(item, self.normalizer.count_words(cleaned))

    @staticmethod
    def _confidence(detection: Detection) -> Optional[float]:
        try:
            value = float(detection.confidence)
        except (TypeError, ValueError):
            return None
        if math.isnan(value) or value < 0.0 or value > 1.0:
            return None
        return value

    def _all_text_entry(self, detection: Detection) -> Optional[str]:
        text = detection.text if isinstance(detection.text, str) else ""
        if len(text) < self.config.min_text_length or self.normalizer.is_extraction_failure(text):
            return None
        cleaned = self.normalizer.clean_text(text)
        return cleaned if len(cleaned) >= self.config.min_text_length else None

    @staticmethod
    def _post_process(structure: DocumentStructure) -> None:
        kept = [s for s in structure.sections if s.content or len(s.title) > MAX_SECTION_TITLE_CHARS]
        kept.sort(key=lambda s: s.page)
        if not structure.title and kept and len(kept[0].title) > MIN_INFERRED_TITLE_CHARS:
            structure.title = kept[0].title
            logger.info("Title inferred from first section | text=%s", structure.title)
        for index, section in enumerate(kept, start=1):
            section.index = index
        structure.sections = kept

    @staticmethod
    def create_search_index(structure: DocumentStructure) -> List[Element]:
        """Title first, then every section header followed by its content."""
        index: List[Element] = []
        if structure.title:
            index.append(
                Element(type=element_type("Title"), text=structure.title, page=1, section=None, importance=element_importance("Title"))
            )
        for section in structure.sections:
            index.append(
                Element(
                    type=element_type("Section-header"),
                    text=section.title,
                    page=section.page,
                    section=section.index,
                    importance=element_importance("Section-header"),
                    bbox=section.bbox,
                )
            )
            for item in section.content:
                index.append(
                    Element(
                        type=element_type(item.type),
                        text=item.text,
                        page=item.page,
                        section=section.index,
                        importance=element_importance(item.type),
                        bbox=item.bbox,
                    )
                )
        return index

    @staticmethod
    def extract_section_text(structure: DocumentStructure, types: Iterable[str] = ("Text", "List-item")) -> str:
        wanted = set(types)
        lines: List[str] = []
        for section in structure.sections:
            lines.append(f"--- {section.title} ---")
            lines.extend(item.text for item in section.content if item.type in wanted)
        return "\n".join(lines).strip()

    def statistics(self, structure: DocumentStructure, all_text: str) -> DocumentStatistics:
        words = self.normalizer.count_words(all_text)
        sentences = len(self.normalizer.split_sentences(all_text))
        sections = structure.sections
        content_items = sum(len(s.content) for s in sections)
        return DocumentStatistics(
            total_pages=len(structure.pages),
            total_sections=len(sections),
            total_elements=structure.total_elements,
            text_elements=structure.text_elements,
            section_headers=structure.section_headers,
            titles=structure.titles,
            word_count=words,
            sentence_count=sentences,
            average_words_per_sentence=round_half_up(words / sentences) if sentences else 0,
            sections_with_content=sum(1 for s in sections if s.content),
            average_content_per_section=round_half_up(content_items / len(sections)) if sections else 0,
        )

    @staticmethod
    def assess_quality(structure: DocumentStructure, statistics: DocumentStatistics) -> QualityReport:
        report = QualityReport()

        if not structure.sections:
            report.issues.append("No sections detected - document may lack clear structure")
            report.scores["structure"] = 0.2
        elif len(structure.sections) < 3:
            report.suggestions.append("Consider adding more section headers for better organization")
            report.scores["structure"] = 0.6
        else:
            report.scores["structure"] = 0.9

        if statistics.word_count < 100:
            report.issues.append("Very low word count - document may be incomplete")
            report.scores["content"] = 0.3
        elif statistics.word_count < 500:
            report.scores["content"] = 0.6
        else:
            report.scores["content"] = 0.9

        if not structure.title:
            report.issues.append("No document title detected")
            report.scores["title"] = 0.0
        elif len(structure.title) < 5:
            report.suggestions.append("Document title seems very short")
            report.scores["title"] = 0.5
        else:
            report.scores["title"] = 1.0

        overall = sum(report.scores.values()) / len(report.scores)
        if overall >= 0.8:
            report.overall = "excellent"
        elif overall >= 0.6:
            report.overall = "good"
        elif overall >= 0.4:
            report.overall = "fair"
        else:
            report.overall = "poor"
        report.scores["overall"] = overall
        return report


__all__ = [
    "DEFAULT_IMPORTANCE",
    "ELEMENT_IMPORTANCE",
    "NoOpenSection",
    "OpenSection",
    "SectionCursor",
    "StructureBuilder",
    "element_importance",
    "element_type",
    "round_half_up",
]
