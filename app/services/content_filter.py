"""
Child-safety content checks and input sanitising.

The filter is deliberately simple: word lists and regexes, no external
moderation API. Anything it flags goes to a human moderator.
"""

import re
from dataclasses import dataclass, field
from typing import List

MAX_STORY_CHARS = 5000

INAPPROPRIATE_WORDS = ("violence", "hate", "discrimination", "bullying", "inappropriate")

SUSPICIOUS_PATTERNS = (
    re.compile(r"\b(?:password|hack|exploit)\b", re.IGNORECASE),
    re.compile(r"<\s*/?\s*script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
)

PERSONAL_INFO_PATTERNS = {
    "phone number": re.compile(r"\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b"),
    "email address": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "street address": re.compile(
        r"\b\d{1,5}\s[A-Za-z\s]+(?:Street|St|Avenue|Ave|Road|Rd|Lane|Ln|Drive|Dr)\b",
        re.IGNORECASE,
    ),
}

REPEATED_CHAR_RE = re.compile(r"(.)\1{4,}")
CAPS_RATIO_LIMIT = 0.7

_SCRIPT_BLOCK_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JS_URL_RE = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_TAG_RE = re.compile(r"</?[a-zA-Z][^>]*>")


@dataclass
class FilterResult:
    """Outcome of :meth:`ContentFilter.filter_content`."""

    is_clean: bool
    violations: List[str] = field(default_factory=list)
    cleaned_content: str = ""

    def to_dict(self) -> dict:
        return {
            "is_clean": self.is_clean,
            "violations": self.violations,
            "cleaned_content": self.cleaned_content,
        }


class ContentFilter:
    """Word-list and pattern checks for text written by or shown to children."""

    @staticmethod
    def detect_personal_info(content: str) -> List[str]:
        """Names of the kinds of personal information found in ``content``."""
        return [kind for kind, pattern in PERSONAL_INFO_PATTERNS.items() if pattern.search(content)]

    @classmethod
    def filter_content(cls, content: str) -> FilterResult:
        """
        Check text and return a masked copy.

        Args:
            content: Story, comment or reply text.

        Returns:
            FilterResult. Inappropriate words and suspicious patterns are
            replaced with ``***`` in ``cleaned_content``.
        """
        violations: List[str] = []
        cleaned = content

        for word in INAPPROPRIATE_WORDS:
            word_re = re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)
            if word_re.search(content):
                violations.append(f"Inappropriate word: {word}")
                cleaned = word_re.sub("***", cleaned)

        for pattern in SUSPICIOUS_PATTERNS:
            if pattern.search(content):
                violations.append("Suspicious pattern detected")
                cleaned = pattern.sub("***", cleaned)

        letters = sum(1 for ch in content if ch.isalpha())
        upper = sum(1 for ch in content if ch.isupper())
        if len(content) > 10 and letters and upper / len(content) > CAPS_RATIO_LIMIT:
            violations.append("Excessive capitalization")

        if REPEATED_CHAR_RE.search(content):
            violations.append("Repeated character spam")

        for kind in cls.detect_personal_info(content):
            violations.append(f"Personal information: {kind}")

        return FilterResult(is_clean=not violations, violations=violations, cleaned_content=cleaned)


class InputSanitizer:
    """Strip markup from user input before it is stored."""

    @staticmethod
    def sanitize_story_content(content: str) -> str:
        """Remove scripts, ``javascript:`` links and event handlers; cap the length."""
        sanitized = _SCRIPT_BLOCK_RE.sub("", content)
        sanitized = _JS_URL_RE.sub("", sanitized)
        sanitized = _EVENT_HANDLER_RE.sub("", sanitized)
        sanitized = _TAG_RE.sub("", sanitized).strip()
        return sanitized[:MAX_STORY_CHARS]

    @staticmethod
    def sanitize_text(value: str, max_length: int = 1000) -> str:
        return _TAG_RE.sub("", value).strip()[:max_length]

    @staticmethod
    def sanitize_filename(name: str, max_length: int = 100) -> str:
        """Safe download filename derived from a story title."""
        cleaned = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "", name)
        cleaned = re.sub(r"\s+", "_", cleaned.strip().strip("."))
        cleaned = cleaned.encode("ascii", "ignore").decode("ascii")
        return cleaned[:max_length] or "story"
