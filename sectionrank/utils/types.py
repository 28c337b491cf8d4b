from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

BBox = Tuple[float, float, float, float]

LAYOUT_LABELS = (
    "Caption",
    "Footnote",
    "Formula",
    "List-item",
    "Page-footer",
    "Page-header",
    "Picture",
    "Section-header",
    "Table",
    "Text",
    "Title",
)
CONTENT_LABELS = ("Text", "List-item", "Caption")


@dataclass(frozen=True)
class Detection:
    """A labeled region found on a page image, with any text OCR produced for it."""

    bbox: BBox
    label: str
    confidence: float
    text: str
    page: int
    center: Tuple[float, float]
    normalized_bbox: Optional[BBox] = None

    @property
    def area(self) -> float:
        x1, y1, x2, y2 = self.bbox
        return max(0.0, x2 - x1) * max(0.0, y2 - y1)


@dataclass
class PageDetections:
    """Layout + OCR output for a single page, in whatever order the collaborator produced it."""

    page: int
    detections: List[Detection] = field(default_factory=list)
    processing_time: float = 0.0


@dataclass(frozen=True)
class ContentItem:
    """Cleaned text unit attached to a section."""

    type: str
    text: str
    page: int
    confidence: float
    bbox: Optional[BBox] = None


@dataclass
class Section:
    title: str
    page: int
    confidence: float
    bbox: Optional[BBox] = None
    content: List[ContentItem] = field(default_factory=list)
    word_count: int = 0
    index: int = 0


@dataclass(frozen=True)
class PageSummary:
    page: int
    total_elements: int
    processing_time: float = 0.0


@dataclass
class DocumentStructure:
    """Hierarchical view of a document: optional title plus ordered sections."""

    title: Optional[str] = None
    sections: List[Section] = field(default_factory=list)
    pages: List[PageSummary] = field(default_factory=list)
    total_elements: int = 0
    text_elements: int = 0
    section_headers: int = 0
    titles: int = 0


@dataclass(frozen=True)
class Element:
    """Scoreable unit of the flat search index."""

    type: str
    text: str
    page: int
    section: Optional[int]
    importance: float
    bbox: Optional[BBox] = None


@dataclass(frozen=True)
class DocumentStatistics:
    total_pages: int
    total_sections: int
    total_elements: int
    text_elements: int
    section_headers: int
    titles: int
    word_count: int
    sentence_count: int
    average_words_per_sentence: int
    sections_with_content: int
    average_content_per_section: int


@dataclass
class QualityReport:
    overall: str = "good"
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    scores: dict = field(default_factory=dict)


@dataclass
class StructureAnalysis:
    """Everything the structure pass produces for one document."""

    structure: DocumentStructure
    search_index: List[Element]
    all_text: str
    statistics: DocumentStatistics
    quality: QualityReport


@dataclass
class Candidate:
    """An (element, topic) pairing; ai_score stays 0.0 unless the judge scored it."""

    element: Element
    traditional_score: float
    ai_score: float = 0.0


@dataclass(frozen=True)
class Match:
    document: str
    topic: str
    section_title: str
    page_number: int
    importance_rank: int
    match_score: float
    match_type: str
    traditional_score: float
    ai_score: float
    element_importance: float
    bbox: Optional[BBox] = None


@dataclass(frozen=True)
class RefinedMatch:
    document: str
    page_number: int
    refined_text: str
    topic_matched: str
    match_score: float
    importance_rank: int
    traditional_score: float
    ai_enhanced: bool
    ai_score: float
    confidence_level: str


@dataclass(frozen=True)
class MatchStats:
    """Counters for one matching pass; combine passes with ``+``."""

    total_matches: int = 0
    ai_enhanced_matches: int = 0
    traditional_matches: int = 0
    failed_ai_matches: int = 0

    def __add__(self, other: "MatchStats") -> "MatchStats":
        return MatchStats(
            total_matches=self.total_matches + other.total_matches,
            ai_enhanced_matches=self.ai_enhanced_matches + other.ai_enhanced_matches,
            traditional_matches=self.traditional_matches + other.traditional_matches,
            failed_ai_matches=self.failed_ai_matches + other.failed_ai_matches,
        )


@dataclass
class MatchResult:
    matches: List[Match] = field(default_factory=list)
    stats: MatchStats = field(default_factory=MatchStats)


@dataclass(frozen=True)
class DocumentSummary:
    pdf_name: str
    pdf_summary: str
