import asyncio
import pathlib
import sys

import pytest

# Ensure the repository root is on the path for direct test runs.
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from sectionrank.utils.settings import JudgeSettings, MatchingConfig
from sectionrank.utils.types import Element, Match
from sectionrank.workflow.llm import RelevanceJudge
from sectionrank.workflow.matcher import SemanticMatcher, confidence_level, match_type_label, truncate_text

INDEX = [
    Element(type="title", text="Form Design Guide", page=1, section=None, importance=1.0),
    Element(type="section_header", text="Create Fillable PDFs", page=3, section=1, importance=0.8),
    Element(type="text", text="Use the Prepare Form tool to add fields.", page=3, section=1, importance=0.6, bbox=(1.0, 2.0, 3.0, 4.0)),
    Element(type="list_item", text="Request e-signatures from recipients.", page=4, section=2, importance=0.5),
    Element(type="text", text="Export forms to share with colleagues.", page=5, section=2, importance=0.6),
]
TOPICS = ["Form Creation", "Sending documents for signature", "Exporting forms"]


class HangingBackend:
    def __init__(self):
        self.calls = 0

    @property
    def is_active(self):
        return True

    async def complete(self, prompt):
        self.calls += 1
        await asyncio.sleep(10)


class ConstantBackend:
    def __init__(self, reply):
        self.reply = reply

    @property
    def is_active(self):
        return True

    async def complete(self, prompt):
        return self.reply


def run_matcher(matcher, topics=TOPICS, index=INDEX):
    return asyncio.run(matcher.find_best_matches(topics, index, "guide.pdf"))


def test_matches_are_sorted_and_bounded():
    result = run_matcher(SemanticMatcher())

    assert result.matches
    keys = [(m.importance_rank, -m.match_score) for m in result.matches]
    assert keys == sorted(keys)
    for match in result.matches:
        assert 0.0 <= match.match_score <= 1.0
        assert 0.0 <= match.traditional_score <= 1.0
        assert 0.0 <= match.ai_score <= 1.0
        assert match.match_score >= 0.1
        assert match.importance_rank == TOPICS.index(match.topic) + 1


def test_best_match_for_form_creation_is_the_heading():
    result = run_matcher(SemanticMatcher(), topics=["Form Creation"])

    best = result.matches[0]
    assert best.section_title == "Create Fillable PDFs"
    assert best.match_type == "section_header"
    assert best.page_number == 3
    assert best.document == "guide.pdf"


def test_traditional_stats_without_judge():
    result = run_matcher(SemanticMatcher())

    assert result.stats.total_matches == len(result.matches)
    assert result.stats.traditional_matches == len(result.matches)
    assert result.stats.ai_enhanced_matches == 0
    assert result.stats.failed_ai_matches == 0


def test_judge_timeouts_leave_ai_score_zero_and_run_completes():
    backend = HangingBackend()
    judge = RelevanceJudge(backend, JudgeSettings(max_retries=2, backoff_s=0.0, relevance_timeout_s=0.01))
    matcher = SemanticMatcher(judge=judge)

    result = run_matcher(matcher, topics=["Form Creation"])

    assert result.matches
    assert all(match.ai_score == 0.0 for match in result.matches)
    assert result.stats.failed_ai_matches == 5
    assert result.stats.ai_enhanced_matches == 0
    assert backend.calls == 5 * 2


def test_judge_scores_only_top_candidates():
    judge = RelevanceJudge(ConstantBackend("0.9"), JudgeSettings(backoff_s=0.0))
    config = MatchingConfig(judge_top_k=2)

    result = run_matcher(SemanticMatcher(judge=judge, config=config), topics=["Form Creation"])

    enhanced = [m for m in result.matches if m.ai_score > 0]
    assert len(enhanced) == 2
    assert all(m.ai_score == pytest.approx(0.9) for m in enhanced)
    assert result.stats.ai_enhanced_matches == 2
    assert result.stats.traditional_matches == 0


def test_high_min_score_yields_no_matches():
    config = MatchingConfig(min_match_score=0.9)

    result = run_matcher(SemanticMatcher(config=config), topics=["Quarterly budget forecast"])

    assert result.matches == []
    assert result.stats.total_matches == 0


def test_disabled_ai_mode_never_calls_judge():
    backend = HangingBackend()
    judge = RelevanceJudge(backend, JudgeSettings())

    result = run_matcher(SemanticMatcher(judge=judge, config=MatchingConfig(ai_enhanced_mode=False)))

    assert backend.calls == 0
    assert result.stats.traditional_matches == result.stats.total_matches


def test_refined_analysis_view():
    matches = [
        Match(
            document="guide.pdf",
            topic="Form Creation",
            section_title="Create Fillable PDFs",
            page_number=3,
            importance_rank=1,
            match_score=0.85,
            match_type="section_header",
            traditional_score=0.6,
            ai_score=0.7,
            element_importance=0.8,
        ),
        Match(
            document="guide.pdf",
            topic="Form Creation",
            section_title="Some table",
            page_number=4,
            importance_rank=1,
            match_score=0.2,
            match_type="picture",
            traditional_score=0.14,
            ai_score=0.0,
            element_importance=0.4,
        ),
    ]

    refined = SemanticMatcher.generate_refined_analysis(matches)

    assert refined[0].refined_text == "Section Header: Create Fillable PDFs"
    assert refined[0].confidence_level == "High"
    assert refined[0].ai_enhanced is True
    assert refined[1].refined_text == "Content: Some table"
    assert refined[1].confidence_level == "Very Low"
    assert refined[1].ai_enhanced is False


@pytest.mark.parametrize("score,level", [(0.8, "High"), (0.79, "Medium"), (0.5, "Medium"), (0.3, "Low"), (0.29, "Very Low")])
def test_confidence_buckets(score, level):
    assert confidence_level(score) == level


def test_labels_and_truncation():
    assert match_type_label("list_item") == "List Item"
    assert match_type_label("section-header") == "Section Header"
    assert match_type_label("title") == "Document Title"

    long_text = "word " * 40
    truncated = truncate_text(long_text)
    assert len(truncated) == 100
    assert truncated.endswith("...")
    assert truncate_text("short") == "short"


def test_test_matching_reports_components():
    matcher = SemanticMatcher(judge=RelevanceJudge(ConstantBackend("0.75"), JudgeSettings(backoff_s=0.0)))

    report = asyncio.run(matcher.test_matching("Form Creation", "Create Fillable PDFs"))

    assert report["ai_score"] == pytest.approx(0.75)
    assert report["ai_enhanced"] is True
    assert report["fuzzy_score"] > 0.5
    assert report["cosine_score"] > 0.5
    assert 0.0 <= report["final_score"] <= 1.0
