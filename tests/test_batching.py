import asyncio
import pathlib
import re
import sys

import pytest

# Ensure the repository root is on the path for direct test runs.
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from sectionrank.utils.settings import JudgeSettings, MatchingConfig
from sectionrank.utils.types import Element
from sectionrank.workflow.batching import BatchScheduler, make_batches
from sectionrank.workflow.llm import RelevanceJudge
from sectionrank.workflow.matcher import SemanticMatcher

TOPIC_IN_PROMPT = re.compile(r'Topic: "(.*?)"')


def test_make_batches_splits_in_order():
    assert make_batches(["a", "b", "c", "d", "e"], 3) == [["a", "b", "c"], ["d", "e"]]
    assert make_batches([], 3) == []
    with pytest.raises(ValueError):
        make_batches(["a"], 0)


def test_scheduler_waits_for_each_batch_before_the_next():
    events = []

    async def worker(item, rank):
        events.append(("start", item))
        # Later items finish first inside a batch.
        await asyncio.sleep(0.01 * (4 - rank % 3))
        events.append(("end", item))
        return item, rank

    results = asyncio.run(BatchScheduler(width=3).run(["t1", "t2", "t3", "t4", "t5"], worker))

    assert results == [("t1", 1), ("t2", 2), ("t3", 3), ("t4", 4), ("t5", 5)]
    last_first_batch_end = max(i for i, (kind, item) in enumerate(events) if kind == "end" and item in {"t1", "t2", "t3"})
    first_second_batch_start = min(i for i, (kind, item) in enumerate(events) if kind == "start" and item in {"t4", "t5"})
    assert last_first_batch_end < first_second_batch_start


class RecordingBackend:
    def __init__(self):
        self.events = []
        self.in_flight = 0
        self.peak = 0

    @property
    def is_active(self):
        return True

    async def complete(self, prompt):
        topic = TOPIC_IN_PROMPT.search(prompt).group(1)
        self.events.append(("start", topic))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0.005)
        self.in_flight -= 1
        self.events.append(("end", topic))
        return "0.5"


def test_judge_calls_for_second_batch_start_after_first_batch_resolves():
    topics = ["alpha", "bravo", "charlie", "delta", "echo"]
    index = [
        Element(type="text", text=f"{topic} procedures and overview notes", page=1, section=1, importance=0.6)
        for topic in topics
    ]
    backend = RecordingBackend()
    judge = RelevanceJudge(backend, JudgeSettings(backoff_s=0.0))
    matcher = SemanticMatcher(judge=judge, config=MatchingConfig(max_concurrent_ai_requests=3))

    result = asyncio.run(matcher.find_best_matches(topics, index, "doc.pdf"))

    first_batch, second_batch = set(topics[:3]), set(topics[3:])
    last_first_end = max(i for i, (kind, topic) in enumerate(backend.events) if kind == "end" and topic in first_batch)
    first_second_start = min(i for i, (kind, topic) in enumerate(backend.events) if kind == "start" and topic in second_batch)
    assert last_first_end < first_second_start
    assert backend.peak <= 3 * 5
    assert result.stats.failed_ai_matches == 0
    assert result.stats.ai_enhanced_matches == len([e for e in backend.events if e[0] == "end"])
