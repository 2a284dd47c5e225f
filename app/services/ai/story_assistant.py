"""
AI story assistant.

Openings, mid-story help and assessments. Providers are tried in order:
stored AI keys (best priority first), then keys from settings. When none
is configured or every call fails, deterministic template content is
returned so the writing flow never blocks on the AI.
"""

import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Tuple

from app.config import get_settings
from app.crud.ai_keys import AIKeyCRUD
from app.models.ai_keys import AIKeyModel
from app.models.story import AIAssessment, AIResponseType, StoryElements, StoryModel
from app.services.ai.cache_service import AssessmentCache
from app.services.ai.llm_client import SUPPORTED_PROVIDERS, LLMClient
from app.services.ai import prompts
from app.utils.exceptions import ContentGenerationError
from app.utils.logger import get_logger

logger = get_logger(__name__)

FALLBACK_PROMPTS: Dict[str, List[str]] = {
    "continue": ["What happens next in your story?"],
    "twist": ["Add an unexpected surprise!"],
    "character": ["Introduce a new character!"],
    "challenge": ["Create a challenge for your character!"],
}

FALLBACK_RESPONSES: Dict[str, str] = {
    "continue": "Just then, something unexpected caught their eye. What could it be?",
    "twist": "But nothing was quite what it seemed. A hidden secret was about to change everything!",
    "character": "A friendly new face appeared, someone who knew a secret that could help.",
    "challenge": "Suddenly the path ahead was blocked. How will your hero find a way through?",
}

FALLBACK_ASSESSMENT = {
    "grammar_score": 75,
    "creativity_score": 80,
    "overall_score": 78,
    "feedback": "Great job on your story! You showed wonderful creativity.",
    "suggestions": ["Keep practicing your writing!", "Try adding more descriptive words."],
    "strengths": ["Creative imagination", "Good story structure"],
    "improvements": ["Sentence variety", "Spelling practice"],
    "reading_level": "Grade appropriate",
}

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")

Candidate = Tuple[LLMClient, Optional[AIKeyModel]]


def _parse_json(raw: str) -> Optional[Dict[str, Any]]:
    """Pull the first JSON object out of a completion."""
    match = _JSON_BLOCK_RE.search(raw)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _clamp_score(value: Any, default: int) -> int:
    try:
        return max(0, min(100, int(round(float(value)))))
    except (TypeError, ValueError):
        return default


def _string_list(value: Any, limit: int = 5) -> List[str]:
    """Model output lists; a bare string counts as a single item."""
    if isinstance(value, str):
        value = [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item][:limit]


def fallback_opening(elements: StoryElements) -> str:
    described = elements.describe()
    return f"Once upon a time, in a {described['setting']}, there lived a {described['character']}..."


def fallback_assessment() -> AIAssessment:
    return AIAssessment(**FALLBACK_ASSESSMENT, is_fallback=True)


class StoryAssistant:
    """Generates openings, collaboration prompts and assessments for stories."""

    def __init__(self, db: Any, cache: Optional[AssessmentCache] = None):
        self.db = db
        self.keys = AIKeyCRUD(db)
        self.cache = cache or AssessmentCache()
        self.settings = get_settings()

    # ── Providers ────────────────────────────────────────────────────

    def _candidates(self) -> List[Candidate]:
        candidates: List[Candidate] = []
        for key in self.keys.get_usable_keys(list(SUPPORTED_PROVIDERS)):
            try:
                candidates.append((LLMClient(key.provider, key.get_api_key()), key))
            except ValueError as e:
                logger.warning(f"Skipping AI key '{key.key_name}': {e}")

        if self.settings.anthropic_api_key:
            candidates.append((LLMClient("anthropic", self.settings.anthropic_api_key), None))
        if self.settings.groq_api_key:
            candidates.append((LLMClient("groq", self.settings.groq_api_key), None))
        return candidates

    def _record_usage(self, key: AIKeyModel, cost: float) -> None:
        # Re-read so concurrent requests don't overwrite each other's counts
        current = self.keys.get_model(key.id) or key
        current.increment_usage(cost)
        self.keys.save_model(current)

    async def _generate(self, system: str, prompt: str, max_tokens: int, temperature: float) -> Optional[str]:
        """Try each configured provider; None when none succeeds."""
        for client, key in self._candidates():
            try:
                text = await asyncio.to_thread(client.generate_text, system, prompt, max_tokens, temperature)
            except ContentGenerationError as e:
                logger.warning(f"AI provider {client.provider} failed: {e.message}")
                continue
            if key is not None:
                self._record_usage(key, client.estimated_cost())
            return text
        return None

    # ── Operations ───────────────────────────────────────────────────

    async def generate_opening(self, elements: StoryElements, age: Optional[int] = None) -> Dict[str, Any]:
        """
        Write the first lines of a story from its elements.

        Args:
            elements: The six chosen story elements.
            age: Writer's age, used to pitch vocabulary.

        Returns:
            Dict with ``opening``, ``prompts`` (per help type) and ``is_fallback``.
        """
        raw = await self._generate(
            prompts.writing_system_prompt(age),
            prompts.build_opening_prompt(elements.describe(), age),
            max_tokens=800,
            temperature=0.8,
        )
        parsed = _parse_json(raw) if raw else None
        if parsed and isinstance(parsed.get("opening"), str) and parsed["opening"].strip():
            suggested = parsed.get("prompts") or {}
            merged = {
                kind: [str(p) for p in suggested.get(kind, [])][:3] or default
                for kind, default in FALLBACK_PROMPTS.items()
            }
            return {"opening": parsed["opening"].strip(), "prompts": merged, "is_fallback": False}

        if raw:
            logger.warning("AI opening was not valid JSON, using template opening")
        return {"opening": fallback_opening(elements), "prompts": FALLBACK_PROMPTS, "is_fallback": True}

    async def collaborate(
        self,
        story: StoryModel,
        response_type: AIResponseType,
        user_input: str = "",
    ) -> Dict[str, Any]:
        """
        Produce one piece of mid-story help.

        Args:
            story: Story being written.
            response_type: continue, twist, character or challenge.
            user_input: Optional question from the child.

        Returns:
            Dict with ``response_type``, ``response`` and ``is_fallback``.
        """
        kind = AIResponseType(response_type).value
        raw = await self._generate(
            prompts.writing_system_prompt(story.author_age),
            prompts.build_collaboration_prompt(kind, story.content, story.elements.describe(), user_input),
            max_tokens=400,
            temperature=0.8,
        )
        if raw:
            parsed = _parse_json(raw)
            text = parsed.get("response") if parsed else raw
            if isinstance(text, str) and text.strip():
                return {"response_type": kind, "response": text.strip(), "is_fallback": False}
        return {"response_type": kind, "response": FALLBACK_RESPONSES[kind], "is_fallback": True}

    async def assess_story(
        self,
        content: str,
        age: Optional[int] = None,
        elements: Optional[StoryElements] = None,
    ) -> AIAssessment:
        """
        Score a story for grammar, creativity and overall quality.

        Results are cached by content hash. Fallback scores are never cached.

        Args:
            content: Story text.
            age: Writer's age.
            elements: Story elements, if known.

        Returns:
            AIAssessment; ``is_fallback`` is set when no provider answered.
        """
        described = elements.describe() if elements else None
        cache_key = self.cache.cache_key(content, age, described)
        cached = self.cache.get_cached(cache_key)
        if cached is not None:
            return AIAssessment(**cached)

        raw = await self._generate(
            prompts.assessment_system_prompt(age),
            prompts.build_assessment_prompt(content, described, age),
            max_tokens=600,
            temperature=0.3,
        )
        parsed = _parse_json(raw) if raw else None
        if not parsed:
            if raw:
                logger.warning("AI assessment was not valid JSON, using fallback scores")
            return fallback_assessment()

        assessment = AIAssessment(
            grammar_score=_clamp_score(parsed.get("grammar_score"), FALLBACK_ASSESSMENT["grammar_score"]),
            creativity_score=_clamp_score(parsed.get("creativity_score"), FALLBACK_ASSESSMENT["creativity_score"]),
            overall_score=_clamp_score(parsed.get("overall_score"), FALLBACK_ASSESSMENT["overall_score"]),
            feedback=str(parsed.get("feedback") or FALLBACK_ASSESSMENT["feedback"]),
            suggestions=_string_list(parsed.get("suggestions")),
            strengths=_string_list(parsed.get("strengths")),
            improvements=_string_list(parsed.get("improvements")),
            reading_level=str(parsed.get("reading_level") or ""),
        )
        self.cache.set_cached(cache_key, assessment.model_dump(mode="python"))
        return assessment


_story_assistant: Optional[StoryAssistant] = None


def get_story_assistant(db: Any) -> StoryAssistant:
    """Shared assistant so the assessment cache survives across requests."""
    global _story_assistant
    if _story_assistant is None or _story_assistant.db is not db:
        _story_assistant = StoryAssistant(db)
    return _story_assistant
