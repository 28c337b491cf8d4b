"""
Hybrid topic-to-element matching.

Every topic scores every search-index element with the traditional signal;
the best ``judge_top_k`` positive candidates per topic are also sent to the
relevance judge. Topics run in batches of ``max_concurrent_ai_requests``
through :class:`BatchScheduler`, so at most one batch of topics has judge
calls in flight. A judge failure only zeroes that candidate's AI score and is
counted in :class:`MatchStats`.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

from sectionrank.logging_config import get_logger
from sectionrank.utils.settings import MatchingConfig
from sectionrank.utils.types import Candidate, Element, Match, MatchResult, MatchStats, RefinedMatch
from sectionrank.workflow.batching import BatchScheduler
from sectionrank.workflow.llm import RelevanceJudge
from sectionrank.workflow.scoring import ScoringEngine

logger = get_logger(__name__)

SECTION_TITLE_CHARS = 100
SCORE_DECIMALS = 3

MATCH_TYPE_LABELS = {
    "title": "Document Title",
    "section_header": "Section Header",
    "text": "Content",
    "list_item": "List Item",
    "caption": "Caption",
    "table": "Table",
    "formula": "Formula",
}


def truncate_text(text: str, max_length: int = SECTION_TITLE_CHARS) -> str:
    if not text or len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def match_type_label(match_type: str) -> str:
    return MATCH_TYPE_LABELS.get(match_type.replace("-", "_"), "Content")


def confidence_level(score: float) -> str:
    if score >= 0.8:
        return "High"
    if score >= 0.5:
        return "Medium"
    if score >= 0.3:
        return "Low"
    return "Very Low"


class SemanticMatcher:
    def __init__(
        self,
        scoring: Optional[ScoringEngine] = None,
        judge: Optional[RelevanceJudge] = None,
        config: Optional[MatchingConfig] = None,
    ) -> None:
        self.config = config or (scoring.config if scoring else MatchingConfig())
        self.scoring = scoring or ScoringEngine(self.config)
        self.judge = judge

    @property
    def judge_active(self) -> bool:
        return self.judge is not None and self.judge.is_active and self.config.ai_enhanced_mode

    async def find_best_matches(self, topics: Sequence[str], search_index: Sequence[Element], document: str) -> MatchResult:
        """Matches for every topic, ordered by importance rank then descending score."""
        scheduler = BatchScheduler(self.config.max_concurrent_ai_requests)

        async def worker(topic: str, rank: int) -> Tuple[List[Match], MatchStats]:
            return await self._topic_matches(topic, rank, search_index, document)

        per_topic = await scheduler.run(list(topics), worker)

        matches: List[Match] = []
        stats = MatchStats()
        for topic_matches, topic_stats in per_topic:
            matches.extend(topic_matches)
            stats = stats + topic_stats
        matches.sort(key=lambda m: (m.importance_rank, -m.match_score))

        logger.info(
            "Matching finished | document=%s topics=%s matches=%s ai_enhanced=%s traditional=%s failed_ai=%s",
            document,
            len(topics),
            stats.total_matches,
            stats.ai_enhanced_matches,
            stats.traditional_matches,
            stats.failed_ai_matches,
        )
        return MatchResult(matches=matches, stats=stats)

    async def _topic_matches(self, topic: str, rank: int, search_index: Sequence[Element], document: str) -> Tuple[List[Match], MatchStats]:
        candidates: List[Candidate] = []
        for element in search_index:
            score = self.scoring.traditional_score(topic, element.text)
            if score > 0:
                candidates.append(Candidate(element=element, traditional_score=score))
        candidates.sort(key=lambda c: c.traditional_score, reverse=True)

        enhanced, failed = 0, 0
        judge_active = self.judge_active
        if judge_active and candidates and self.config.judge_top_k:
            enhanced, failed = await self._judge_candidates(topic, candidates[: self.config.judge_top_k])

        matches: List[Match] = []
        for candidate in candidates:
            final = round(self.scoring.final_score(candidate.traditional_score, candidate.ai_score, judge_active), SCORE_DECIMALS)
            if final < self.config.min_match_score:
                continue
            matches.append(
                Match(
                    document=document,
                    topic=topic,
                    section_title=truncate_text(candidate.element.text),
                    page_number=candidate.element.page,
                    importance_rank=rank,
                    match_score=final,
                    match_type=candidate.element.type,
                    traditional_score=round(candidate.traditional_score, SCORE_DECIMALS),
                    ai_score=round(candidate.ai_score, SCORE_DECIMALS),
                    element_importance=candidate.element.importance,
                    bbox=candidate.element.bbox,
                )
            )

        stats = MatchStats(
            total_matches=len(matches),
            ai_enhanced_matches=enhanced,
            traditional_matches=0 if judge_active else len(matches),
            failed_ai_matches=failed,
        )
        return matches, stats

    async def _judge_candidates(self, topic: str, candidates: Sequence[Candidate]) -> Tuple[int, int]:
        results = await asyncio.gather(
            *(self.judge.judge(topic, candidate.element.text) for candidate in candidates),
            return_exceptions=True,
        )
        enhanced, failed = 0, 0
        for candidate, result in zip(candidates, results):
            if isinstance(result, Exception):
                logger.warning("AI scoring failed | topic=%s error=%s", topic, result)
                failed += 1
                continue
            candidate.ai_score = min(1.0, max(0.0, float(result)))
            enhanced += 1
        return enhanced, failed

    @staticmethod
    def generate_refined_analysis(matches: Sequence[Match]) -> List[RefinedMatch]:
        return [
            RefinedMatch(
                document=match.document,
                page_number=match.page_number,
                refined_text=f"{match_type_label(match.match_type)}: {match.section_title}",
                topic_matched=match.topic,
                match_score=match.match_score,
                importance_rank=match.importance_rank,
                traditional_score=match.traditional_score,
                ai_enhanced=match.ai_score > 0,
                ai_score=match.ai_score,
                confidence_level=confidence_level(match.match_score),
            )
            for match in matches
        ]

    async def test_matching(self, topic: str, text: str) -> Dict[str, object]:
        """Score a single topic/text pair and report every component."""
        breakdown = self.scoring.breakdown(topic, text)
        ai_score = 0.0
        if self.judge_active:
            try:
                ai_score = await self.judge.judge(topic, text)
            except Exception as exc:
                logger.warning("AI scoring test failed | error=%s", exc)
        final = self.scoring.final_score(breakdown.traditional, ai_score, self.judge_active)
        return {
            "topic": topic,
            "text": truncate_text(text),
            "fuzzy_score": round(breakdown.fuzzy, SCORE_DECIMALS),
            "cosine_score": round(breakdown.cosine, SCORE_DECIMALS),
            "traditional_score": round(breakdown.traditional, SCORE_DECIMALS),
            "ai_score": round(ai_score, SCORE_DECIMALS),
            "final_score": round(final, SCORE_DECIMALS),
            "confidence_level": confidence_level(final),
            "ai_enhanced": ai_score > 0,
        }


__all__ = ["SemanticMatcher", "confidence_level", "match_type_label", "truncate_text"]
