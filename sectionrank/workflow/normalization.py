from __future__ import annotations

import re
import unicodedata
from typing import List

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "how", "in", "into",
        "is", "it", "its", "of", "on", "or", "that", "the", "this", "to", "was", "what",
        "when", "where", "which", "with", "your", "you",
    }
)

EXTRACTION_FAILURE_MARKERS = ("OCR not available", "extraction failed")


class TextNormalizer:
    """Text cleaning, tokenization and light stemming shared by structure assembly and scoring."""

    DISALLOWED_CHARS = re.compile(r"[^\w\s\-.,!?:;()]", re.ASCII)
    WHITESPACE = re.compile(r"\s+")
    SENTENCE_SPLIT = re.compile(r"[.!?]+")
    TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

    @staticmethod
    def normalize_unicode(text: str) -> str:
        normalized = unicodedata.normalize("NFKC", text)
        return normalized.replace("\ufeff", "").replace("\u00ad", "")

    def clean_text(self, text: object) -> str:
        """Collapse whitespace, strip characters outside the allow-list, trim."""
        if not text or not isinstance(text, str):
            return ""
        collapsed = self.WHITESPACE.sub(" ", self.normalize_unicode(text))
        return self.DISALLOWED_CHARS.sub("", collapsed).strip()

    @staticmethod
    def is_extraction_failure(text: str) -> bool:
        return any(marker in text for marker in EXTRACTION_FAILURE_MARKERS)

    @staticmethod
    def count_words(text: str) -> int:
        return len([word for word in text.split() if word])

    def split_sentences(self, text: str) -> List[str]:
        return [sentence for sentence in self.SENTENCE_SPLIT.split(text) if sentence.strip()]

    def tokenize(self, text: str) -> List[str]:
        """Lowercase alphanumeric tokens with stop words and single characters removed."""
        tokens = self.TOKEN_PATTERN.findall(text.lower())
        return [token for token in tokens if len(token) >= 2 and token not in STOP_WORDS]

    @staticmethod
    def stem(word: str) -> str:
        """Suffix-stripping stemmer; stems are matched by shared prefix, not equality."""
        word = word.lower()
        for suffix, min_len in (("tion", 7), ("ment", 7), ("ness", 7), ("ible", 7), ("able", 7)):
            if len(word) > min_len and word.endswith(suffix):
                return word[: -len(suffix)]
        if len(word) > 6 and word.endswith("ing"):
            return word[:-3]
        if len(word) > 6 and word.endswith("ies"):
            return word[:-3]
        if len(word) > 5 and word.endswith("ed") and not word.endswith("eed"):
            return word[:-2]
        for suffix in ("er", "ly", "es"):
            if len(word) > 5 and word.endswith(suffix):
                return word[:-2]
        if len(word) > 4 and word.endswith("s") and not word.endswith("ss"):
            return word[:-1]
        if len(word) > 4 and word.endswith("e") and not word.endswith("ee"):
            return word[:-1]
        return word


__all__ = ["EXTRACTION_FAILURE_MARKERS", "STOP_WORDS", "TextNormalizer"]
