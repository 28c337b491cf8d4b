import os
import pathlib
import sys

import pytest
from pydantic import ValidationError

# Ensure the repository root is on the path for direct test runs.
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from sectionrank.utils.env import load_env
from sectionrank.utils.settings import DEFAULT_JUDGE_MODEL, MatchingConfig, judge_settings_from_env, normalize_settings


def test_defaults():
    config = MatchingConfig()

    assert config.min_match_score == 0.1
    assert (config.fuzzy_weight, config.cosine_weight, config.ai_weight) == (0.3, 0.4, 0.3)
    assert config.max_concurrent_ai_requests == 3
    assert config.judge_top_k == 5
    assert (config.min_text_length, config.section_threshold, config.title_threshold) == (10, 0.7, 0.8)
    assert config.traditional_weight == pytest.approx(0.7)


def test_camel_case_options_are_accepted():
    config = MatchingConfig.from_settings(
        {
            "minMatchScore": 0.2,
            "fuzzyWeight": 0.5,
            "cosineWeight": 0.5,
            "aiWeight": 0.1,
            "maxConcurrentAIRequests": 2,
            "minTextLength": 5,
            "sectionThreshold": 0.6,
            "titleThreshold": 0.9,
        }
    )

    assert config.min_match_score == 0.2
    assert config.traditional_weight == pytest.approx(1.0)
    assert config.ai_weight == 0.1
    assert config.max_concurrent_ai_requests == 2
    assert config.min_text_length == 5
    assert config.section_threshold == 0.6
    assert config.title_threshold == 0.9


def test_aliases_and_explicit_names():
    assert normalize_settings({"top_k": 3, "ai_workers": 4}) == {"judge_top_k": 3, "max_concurrent_ai_requests": 4}
    assert normalize_settings({"max_concurrent_ai_requests": 2, "maxConcurrent": 9}) == {"max_concurrent_ai_requests": 2}
    assert normalize_settings(None) == {}


def test_explicit_zero_is_respected():
    config = MatchingConfig.from_settings({"minMatchScore": 0, "aiWeight": 0})

    assert config.min_match_score == 0.0
    assert config.ai_weight == 0.0


@pytest.mark.parametrize(
    "options",
    [
        {"fuzzyWeight": 0, "cosineWeight": 0},
        {"minMatchScore": 1.5},
        {"maxConcurrentAIRequests": 0},
        {"fuzzyWeight": 1.0, "cosineWeight": 1.0},
        {"fuzzyWeight": 1.5, "cosineWeight": 0.0},
        {"cosineWeight": 0.8},
    ],
)
def test_invalid_options_are_rejected(options):
    with pytest.raises(ValidationError):
        MatchingConfig.from_settings(options)


def test_config_is_frozen():
    with pytest.raises(ValidationError):
        MatchingConfig().min_match_score = 0.5


def test_judge_settings_from_env(monkeypatch):
    monkeypatch.setenv("JUDGE_BACKEND", "ollama-cli")
    monkeypatch.setenv("JUDGE_MAX_RETRIES", "5")
    monkeypatch.delenv("JUDGE_MODEL", raising=False)
    monkeypatch.delenv("OLLAMA_BASE_URL", raising=False)

    settings = judge_settings_from_env({"relevanceTimeoutS": 10})

    assert settings.backend == "ollama-cli"
    assert settings.model == DEFAULT_JUDGE_MODEL
    assert settings.max_retries == 5
    assert settings.relevance_timeout_s == 10
    assert settings.base_url is None


def test_load_env_respects_existing_values(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("# comment\nJUDGE_MODEL=llama3\nJUDGE_BACKEND='ollama-cli'\nnot a pair\n")
    monkeypatch.setenv("JUDGE_MODEL", "kept")
    monkeypatch.delenv("JUDGE_BACKEND", raising=False)

    loaded = load_env(env_file)

    assert loaded == 1
    assert os.environ["JUDGE_MODEL"] == "kept"
    assert os.environ["JUDGE_BACKEND"] == "ollama-cli"
