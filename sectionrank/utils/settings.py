from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_JUDGE_MODEL = "gbenson/qwen2.5-0.5b-instruct"

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")

# Short names accepted in addition to the camelCase spellings.
_ALIASES = {
    "max_concurrent": "max_concurrent_ai_requests",
    "ai_workers": "max_concurrent_ai_requests",
    "top_k": "judge_top_k",
}


def _snake_case(key: str) -> str:
    key = _ACRONYM_BOUNDARY.sub(r"\1_\2", key)
    return _CAMEL_BOUNDARY.sub(r"\1_\2", key).lower()


def normalize_settings(settings: Dict[str, Any] | None) -> Dict[str, Any]:
    """Normalize camelCase option names and short aliases to config field names."""
    if settings is None:
        return {}
    normalized: Dict[str, Any] = {}
    for key, value in settings.items():
        name = _snake_case(str(key))
        name = _ALIASES.get(name, name)
        # An explicit snake_case key wins over its alias.
        if name in normalized and str(key) != name:
            continue
        normalized[name] = value
    return normalized


class MatchingConfig(BaseModel):
    """Thresholds and weights shared by structure assembly and matching."""

    model_config = ConfigDict(frozen=True)

    min_match_score: float = Field(0.1, ge=0.0, le=1.0, description="Matches scoring below this are dropped")
    fuzzy_weight: float = Field(0.3, ge=0.0, le=1.0, description="Weight of the fuzzy lexical signal")
    cosine_weight: float = Field(0.4, ge=0.0, le=1.0, description="Weight of the vector similarity signal")
    ai_weight: float = Field(0.3, ge=0.0, le=1.0, description="Share of the judge score in the blended score")
    ai_enhanced_mode: bool = Field(True, description="Ask the relevance judge for top candidates")
    max_concurrent_ai_requests: int = Field(3, ge=1, description="Topics processed concurrently per batch")
    judge_top_k: int = Field(5, ge=0, description="Candidates per topic sent to the judge")
    min_text_length: int = Field(10, ge=0, description="Minimum cleaned length for section content")
    section_threshold: float = Field(0.7, ge=0.0, le=1.0, description="Confidence floor for section headers")
    title_threshold: float = Field(0.8, ge=0.0, le=1.0, description="Confidence floor for the document title")
    reading_order_tolerance: float = Field(20.0, ge=0.0, description="Vertical band treated as the same line")

    @model_validator(mode="after")
    def _check_weights(self) -> "MatchingConfig":
        if self.fuzzy_weight + self.cosine_weight <= 0:
            raise ValueError("fuzzy_weight + cosine_weight must be positive")
        if self.fuzzy_weight + self.cosine_weight > 1.0 + 1e-9:
            raise ValueError("fuzzy_weight + cosine_weight must not exceed 1")
        return self

    @classmethod
    def from_settings(cls, settings: Dict[str, Any] | None = None) -> "MatchingConfig":
        return cls(**normalize_settings(settings))

    @property
    def traditional_weight(self) -> float:
        return self.fuzzy_weight + self.cosine_weight


class JudgeSettings(BaseModel):
    """Transport and retry settings for the relevance judge."""

    model_config = ConfigDict(frozen=True)

    backend: Literal["openai", "ollama-cli"] = Field("openai", description="Completion transport")
    model: str = Field(DEFAULT_JUDGE_MODEL, description="Model name passed to the backend")
    base_url: str | None = Field(None, description="OpenAI-compatible endpoint, e.g. Ollama's /v1")
    api_key: str | None = Field(None, description="API key for the OpenAI backend")
    max_retries: int = Field(3, ge=1, description="Attempts per judge call")
    timeout_s: float = Field(60.0, gt=0, description="Default per-attempt timeout")
    relevance_timeout_s: float = Field(30.0, gt=0, description="Per-attempt timeout for relevance scoring")
    summary_timeout_s: float = Field(45.0, gt=0, description="Per-attempt timeout for summaries")
    backoff_s: float = Field(1.0, ge=0, description="Sleep unit between attempts (attempt * backoff)")


def judge_settings_from_env(override: Dict[str, Any] | None = None) -> JudgeSettings:
    values: Dict[str, Any] = {
        "backend": os.getenv("JUDGE_BACKEND", "openai"),
        "model": os.getenv("JUDGE_MODEL", DEFAULT_JUDGE_MODEL),
        "base_url": os.getenv("OLLAMA_BASE_URL") or None,
        "api_key": os.getenv("OPENAI_API_KEY") or None,
        "max_retries": int(os.getenv("JUDGE_MAX_RETRIES", 3)),
        "timeout_s": float(os.getenv("JUDGE_TIMEOUT_S", 60)),
    }
    if override:
        values.update(normalize_settings(override))
    return JudgeSettings(**values)


class PipelinePaths(BaseModel):
    input: Path = Path("./challenge1b_input.json")
    pdf_dir: Path = Path("./PDFs")
    final_output: Path = Path("./output.json")
    summaries: Path = Path("./summaries.json")
    parsed_dir: Path = Path("./parsed_jsons")


__all__ = [
    "DEFAULT_JUDGE_MODEL",
    "JudgeSettings",
    "MatchingConfig",
    "PipelinePaths",
    "judge_settings_from_env",
    "normalize_settings",
]
