from .structure import StructureBuilder
from .scoring import ScoringEngine
from .llm import RelevanceJudge, RetryPolicy
from .batching import BatchScheduler
from .matcher import SemanticMatcher
from .ingestion import PdfIngestion
from .pdf_ocr import Ocr
from .core import RankingPipeline

__all__ = ["StructureBuilder", "ScoringEngine", "RelevanceJudge", "RetryPolicy", "BatchScheduler", "SemanticMatcher", "PdfIngestion", "Ocr", "RankingPipeline"]
