from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from openai import AsyncOpenAI

from sectionrank.logging_config import get_logger
from sectionrank.utils.settings import JudgeSettings
from sectionrank.utils.types import DocumentSummary

logger = get_logger(__name__)

DUMMY_API_KEY = "sk-dummy"
MIN_JUDGE_TEXT_CHARS = 10
JUDGE_TEXT_CHARS = 500
MIN_SUMMARY_TEXT_CHARS = 50
SUMMARY_TEXT_CHARS = 4000
SUMMARY_FALLBACK_WORDS = 50
MAX_TOPICS = 7
TOPICS_TIMEOUT_S = 60.0
CONNECTION_TIMEOUT_S = 15.0
FALLBACK_TOPICS = (
    "Introduction and Overview",
    "Main Content and Procedures",
    "Requirements and Guidelines",
    "Implementation Steps",
    "Best Practices and Standards",
)

_SCORE_PATTERN = re.compile(r"\d*\.?\d+")


class JudgeError(RuntimeError):
    """Raised when a judge call fails on every attempt."""


class JudgeTimeoutError(JudgeError):
    """Raised when the last attempt of a judge call timed out."""


class CompletionBackend(Protocol):
    @property
    def is_active(self) -> bool: ...

    async def complete(self, prompt: str) -> str: ...


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt count, per-attempt timeout and linear backoff for one external call site."""

    max_attempts: int = 3
    timeout_s: float = 60.0
    backoff_s: float = 1.0

    def with_timeout(self, timeout_s: float) -> "RetryPolicy":
        return replace(self, timeout_s=timeout_s)

    def backoff(self, attempt: int) -> float:
        return attempt * self.backoff_s

    async def run(self, call: Callable[[], Awaitable[str]], *, label: str = "call") -> str:
        """Run ``call`` until it returns non-empty text; cancel attempts that exceed the timeout."""
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await asyncio.wait_for(call(), timeout=self.timeout_s)
                if response and response.strip():
                    return response.strip()
                last_error = JudgeError("Empty response from judge")
            except asyncio.TimeoutError as exc:
                last_error = exc
            except Exception as exc:
                last_error = exc
            logger.warning("Judge attempt failed | call=%s attempt=%s/%s error=%s", label, attempt, self.max_attempts, str(last_error) or type(last_error).__name__)
            if attempt < self.max_attempts:
                await asyncio.sleep(self.backoff(attempt))

        if isinstance(last_error, asyncio.TimeoutError):
            raise JudgeTimeoutError(f"{label} timed out after {self.max_attempts} attempts ({self.timeout_s}s each)") from last_error
        raise JudgeError(f"{label} failed after {self.max_attempts} attempts: {last_error}") from last_error


class OpenAICompletionBackend:
    """Chat completions over the OpenAI API or any compatible endpoint such as Ollama's ``/v1``.

    Without a real API key and without a base URL the backend stays inactive.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        dummy_key: str = DUMMY_API_KEY,
    ) -> None:
        self.model = model
        self.base_url = base_url
        self.api_key = api_key or dummy_key
        self._client: Optional[AsyncOpenAI] = None
        if base_url:
            # Local OpenAI-compatible servers accept any key.
            key = self.api_key if self.api_key != dummy_key else "ollama"
            self._client = AsyncOpenAI(api_key=key, base_url=base_url)
        elif self.api_key != dummy_key:
            self._client = AsyncOpenAI(api_key=self.api_key)

    @property
    def is_active(self) -> bool:
        return self._client is not None

    async def complete(self, prompt: str) -> str:
        if not self.is_active:
            raise RuntimeError("LLM client is not configured with a valid API key or base URL.")
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                temperature=0.1,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as exc:
            raise RuntimeError(f"OpenAI request failed: {exc}") from exc
        return response.choices[0].message.content or ""


class OllamaCliBackend:
    """Runs ``ollama run <model>`` per prompt; a cancelled call kills the child process."""

    def __init__(self, model: str, executable: str = "ollama") -> None:
        self.model = model
        self.executable = executable

    @property
    def is_active(self) -> bool:
        return True

    async def complete(self, prompt: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                "run",
                self.model,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RuntimeError(f"Failed to start Ollama process: {exc}") from exc

        try:
            stdout, stderr = await process.communicate(prompt.encode("utf-8"))
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            raise RuntimeError(f"Ollama process exited with code {process.returncode}: {stderr.decode('utf-8', 'replace')}")
        return stdout.decode("utf-8", "replace")


def build_backend(settings: JudgeSettings) -> CompletionBackend:
    if settings.backend == "ollama-cli":
        return OllamaCliBackend(settings.model)
    return OpenAICompletionBackend(api_key=settings.api_key, model=settings.model, base_url=settings.base_url)


class RelevanceJudge:
    """Relevance scores, summaries and topic ranking from a completion backend.

    ``judge`` raises :class:`JudgeError` once retries are exhausted so callers can
    count the failure; ``summarize`` and ``rank_topics`` fall back locally.
    """

    def __init__(self, backend: CompletionBackend, settings: Optional[JudgeSettings] = None) -> None:
        self.backend = backend
        self.settings = settings or JudgeSettings()
        self.policy = RetryPolicy(
            max_attempts=self.settings.max_retries,
            timeout_s=self.settings.timeout_s,
            backoff_s=self.settings.backoff_s,
        )

    @classmethod
    def from_settings(cls, settings: JudgeSettings) -> "RelevanceJudge":
        return cls(build_backend(settings), settings)

    @property
    def is_active(self) -> bool:
        return self.backend.is_active

    @property
    def model(self) -> str:
        return self.settings.model

    async def judge(self, topic: str, text: str) -> float:
        if not text or len(text) < MIN_JUDGE_TEXT_CHARS:
            return 0.0

        excerpt = text[:JUDGE_TEXT_CHARS] + ("..." if len(text) > JUDGE_TEXT_CHARS else "")
        prompt = (
            "Analyze how relevant the following text content is to the given topic. "
            "Rate the relevance on a scale from 0.0 to 1.0.\n\n"
            f'Topic: "{topic}"\n\n'
            f"Text Content:\n{excerpt}\n\n"
            "Instructions:\n"
            "- Consider semantic meaning, not just keyword matching\n"
            "- 0.0 = Not relevant at all\n"
            "- 0.5 = Somewhat relevant\n"
            "- 1.0 = Very relevant and directly related\n"
            "- Provide ONLY the numeric score (e.g., 0.75)\n\n"
            "Relevance Score:"
        )
        policy = self.policy.with_timeout(self.settings.relevance_timeout_s)
        response = await policy.run(lambda: self.backend.complete(prompt), label="relevance")
        return self.parse_score(response)

    @staticmethod
    def parse_score(response: str) -> float:
        """First number in the reply, clamped to [0, 1]; 0.0 when there is none."""
        match = _SCORE_PATTERN.search(response or "")
        if not match:
            return 0.0
        try:
            value = float(match.group(0))
        except ValueError:
            return 0.0
        return max(0.0, min(1.0, value))

    async def summarize(self, text: str, name: str) -> DocumentSummary:
        if not text or len(text.strip()) < MIN_SUMMARY_TEXT_CHARS:
            return DocumentSummary(pdf_name=name, pdf_summary=f"Brief document: {name} - insufficient content for meaningful summarization")

        truncated = " ...(truncated)" if len(text) > SUMMARY_TEXT_CHARS else ""
        prompt = (
            "Please provide a concise summary of the following document content. "
            "Focus on the main topics, key information, and important sections.\n\n"
            f"Document: {name}\n"
            f"Content:\n{text[:SUMMARY_TEXT_CHARS]}{truncated}\n\n"
            "Instructions:\n"
            "- Provide a clear, informative summary in 2-4 sentences\n"
            "- Focus on actionable content and main themes\n"
            "- Avoid repetitive information\n"
            "- Keep the summary professional and concise\n\n"
            "Summary:"
        )
        try:
            summary = await self.policy.with_timeout(self.settings.summary_timeout_s).run(
                lambda: self.backend.complete(prompt), label="summary"
            )
        except JudgeError as exc:
            logger.warning("Summarization failed, using leading words | document=%s error=%s", name, exc)
            words = " ".join(text.split(" ")[:SUMMARY_FALLBACK_WORDS])
            return DocumentSummary(pdf_name=name, pdf_summary=f"Document {name}: {words}...")
        return DocumentSummary(pdf_name=name, pdf_summary=summary)

    async def rank_topics(self, summaries: Sequence[DocumentSummary], persona: str, task: str) -> List[str]:
        listing = "\n".join(f"{i}. {s.pdf_name}: {s.pdf_summary}" for i, s in enumerate(summaries, start=1))
        example = "\n".join(FALLBACK_TOPICS)
        prompt = (
            f"You are helping a {persona} with the following task: {task}\n\n"
            "Based on the following document summaries, identify and rank the 5-7 most important "
            "section topics that would be most relevant for this persona and task.\n\n"
            f"Document Summaries:\n{listing}\n\n"
            "Instructions:\n"
            f"- Consider what would be most actionable and relevant for a {persona}\n"
            f"- Focus on topics that directly support the task: {task}\n"
            "- Rank topics by importance (most important first)\n"
            "- Each topic should be a concise phrase or title (2-8 words)\n"
            "- Provide ONLY the topics as a simple list, one per line\n"
            "- Do not include numbers, bullets, or explanations\n\n"
            f"Example format:\n{example}\n\n"
            "Topics:"
        )
        try:
            response = await self.policy.with_timeout(TOPICS_TIMEOUT_S).run(lambda: self.backend.complete(prompt), label="topics")
        except JudgeError as exc:
            logger.warning("Topic generation failed, using fallback topics | error=%s", exc)
            return list(FALLBACK_TOPICS)

        topics = self.parse_topics(response)
        if not topics:
            logger.warning("Topic generation returned no usable lines, using fallback topics")
            return list(FALLBACK_TOPICS)
        logger.info("Ranked topics generated | count=%s", len(topics))
        return topics

    @staticmethod
    def parse_topics(response: str) -> List[str]:
        lines = [line.strip() for line in (response or "").splitlines()]
        return [line for line in lines if line and "topics:" not in line.lower()][:MAX_TOPICS]

    async def test_connection(self) -> bool:
        if not self.is_active:
            return False
        policy = RetryPolicy(max_attempts=1, timeout_s=CONNECTION_TIMEOUT_S, backoff_s=0.0)
        try:
            response = await policy.run(lambda: self.backend.complete('Say "Hello" if you can hear me.'), label="connection")
        except JudgeError as exc:
            logger.warning("Judge connection test failed | error=%s", exc)
            return False
        working = "hello" in response.lower()
        if working:
            logger.info("Judge connection test passed | model=%s", self.model)
        else:
            logger.warning("Judge connection test failed | unexpected response")
        return working


__all__ = [
    "CompletionBackend",
    "FALLBACK_TOPICS",
    "JudgeError",
    "JudgeTimeoutError",
    "OllamaCliBackend",
    "OpenAICompletionBackend",
    "RelevanceJudge",
    "RetryPolicy",
    "build_backend",
]
