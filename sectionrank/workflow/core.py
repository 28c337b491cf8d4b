from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, Sequence

from sectionrank.logging_config import get_logger
from sectionrank.utils.settings import MatchingConfig, PipelinePaths
from sectionrank.utils.types import DocumentSummary, Match, MatchStats, PageDetections, StructureAnalysis
from sectionrank.workflow.llm import FALLBACK_TOPICS, RelevanceJudge
from sectionrank.workflow.matcher import SemanticMatcher
from sectionrank.workflow.persistence import save_structure, save_summaries, utc_timestamp, write_json
from sectionrank.workflow.request_models import PipelineInput
from sectionrank.workflow.scoring import ScoringEngine, VectorSimilarity
from sectionrank.workflow.structure import StructureBuilder

logger = get_logger(__name__)

PIPELINE_VERSION = "sectionrank-2.0"


class PageSource(Protocol):
    def process_pdf(self, pdf_path: Path, on_progress: Optional[Callable[[int, int], None]] = None) -> List[PageDetections]: ...


@dataclass
class AnalyzedDocument:
    filename: str
    title: Optional[str]
    analysis: StructureAnalysis


class RankingPipeline:
    """Coordinates OCR, structure assembly, summaries, topic ranking and matching."""

    def __init__(
        self,
        page_source: PageSource,
        judge: Optional[RelevanceJudge] = None,
        config: Optional[MatchingConfig] = None,
        paths: Optional[PipelinePaths] = None,
        vector: Optional[VectorSimilarity] = None,
    ) -> None:
        self.page_source = page_source
        self.judge = judge
        self.config = config or MatchingConfig()
        self.paths = paths or PipelinePaths()
        self.vector = vector
        self.builder = StructureBuilder(self.config)

    async def run(self, request: PipelineInput, on_progress: Optional[Callable[[dict], None]] = None) -> dict:
        started = time.perf_counter()
        logger.info(
            "Pipeline started | documents=%s persona=%s task=%s",
            len(request.documents),
            request.persona.role,
            request.job_to_be_done.task,
        )

        def progress(stage: str, **fields: Any) -> None:
            if on_progress:
                on_progress({"stage": stage, **fields})

        config = await self._effective_config()
        judge_ready = config.ai_enhanced_mode and self.judge is not None and self.judge.is_active

        progress("ocr", documents=len(request.documents))
        page_sets = await asyncio.gather(
            *(asyncio.to_thread(self.page_source.process_pdf, self.paths.pdf_dir / doc.filename) for doc in request.documents)
        )

        progress("structure")
        documents = [
            self.analyze_pages(doc.filename, doc.title, pages) for doc, pages in zip(request.documents, page_sets)
        ]

        progress("summaries")
        summaries = list(await asyncio.gather(*(self._summarize(doc, judge_ready) for doc in documents)))

        progress("topics")
        if judge_ready:
            topics = await self.judge.rank_topics(summaries, request.persona.role, request.job_to_be_done.task)
        else:
            topics = list(FALLBACK_TOPICS)
        logger.info("Ranked topics | count=%s topics=%s", len(topics), topics)

        progress("matching", topics=len(topics))
        matches, stats = await self.match_documents(topics, documents, config)

        output = {
            "metadata": {
                "input_documents": [doc.filename for doc in request.documents],
                "persona": request.persona.role,
                "job_to_be_done": request.job_to_be_done.task,
                "processing_timestamp": utc_timestamp(),
                "total_matches": len(matches),
                "ranked_topics": topics,
                "processing_time_seconds": round(time.perf_counter() - started, 2),
                "pipeline_version": PIPELINE_VERSION,
                "ai_model": self.judge.model if self.judge is not None else None,
                "statistics": {
                    "documents_processed": len(documents),
                    "semantic_matcher_stats": asdict(stats),
                    "quality": {
                        doc.filename: {
                            "overall": doc.analysis.quality.overall,
                            "issues": doc.analysis.quality.issues,
                            "suggestions": doc.analysis.quality.suggestions,
                        }
                        for doc in documents
                    },
                },
            },
            "extracted_sections": [asdict(match) for match in matches],
            "subsection_analysis": [asdict(refined) for refined in SemanticMatcher.generate_refined_analysis(matches)],
        }

        write_json(self.paths.final_output, output)
        save_summaries(self.paths.summaries, summaries)
        progress("done", matches=len(matches))
        logger.info(
            "Pipeline finished | documents=%s matches=%s failed_ai=%s seconds=%s",
            len(documents),
            len(matches),
            stats.failed_ai_matches,
            output["metadata"]["processing_time_seconds"],
        )
        return output

    async def _effective_config(self) -> MatchingConfig:
        """Disable judge enhancement for the run when the judge does not answer."""
        if not self.config.ai_enhanced_mode or self.judge is None or not self.judge.is_active:
            return self.config
        if await self.judge.test_connection():
            return self.config
        logger.warning("Judge not available, falling back to traditional matching | model=%s", self.judge.model)
        return self.config.model_copy(update={"ai_enhanced_mode": False})

    def analyze_pages(self, filename: str, title: Optional[str], pages: Sequence[PageDetections]) -> AnalyzedDocument:
        analysis = self.builder.analyze(pages)
        save_structure(self.paths.parsed_dir, filename, analysis.structure, analysis.search_index)
        logger.info(
            "Analysis complete | doc=%s words=%s sections=%s quality=%s",
            filename,
            analysis.statistics.word_count,
            analysis.statistics.total_sections,
            analysis.quality.overall,
        )
        return AnalyzedDocument(filename=filename, title=title, analysis=analysis)

    async def _summarize(self, document: AnalyzedDocument, judge_ready: bool) -> DocumentSummary:
        statistics = document.analysis.statistics
        if judge_ready:
            return await self.judge.summarize(document.analysis.all_text, document.filename)
        return DocumentSummary(
            pdf_name=document.filename,
            pdf_summary=f"Document analysis for {document.filename} - {statistics.word_count} words across {statistics.total_sections} sections",
        )

    async def match_documents(
        self,
        topics: Sequence[str],
        documents: Sequence[AnalyzedDocument],
        config: Optional[MatchingConfig] = None,
    ) -> tuple[List[Match], MatchStats]:
        """Match every document in turn and merge the per-document results."""
        config = config or self.config
        matcher = SemanticMatcher(ScoringEngine(config, self.vector), self.judge, config)
        matches: List[Match] = []
        stats = MatchStats()
        for document in documents:
            result = await matcher.find_best_matches(topics, document.analysis.search_index, document.filename)
            matches.extend(result.matches)
            stats = stats + result.stats
        matches.sort(key=lambda m: (m.importance_rank, -m.match_score))
        return matches, stats


__all__ = ["AnalyzedDocument", "PIPELINE_VERSION", "PageSource", "RankingPipeline"]
