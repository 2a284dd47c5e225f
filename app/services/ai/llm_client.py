"""Chat-completion client over the Anthropic and Groq SDKs."""

import time
from datetime import datetime, timedelta
from typing import Dict, List

from anthropic import Anthropic
from groq import Groq

from app.utils.exceptions import ContentGenerationError
from app.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_PROVIDERS = ("anthropic", "groq")

# USD per 1K tokens, blended prompt/completion
COST_PER_1K_TOKENS = {
    "anthropic": 0.004,
    "groq": 0.0001,
}


class RateLimitTracker:
    """Track requests made in the last minute for one provider key."""

    def __init__(self, requests_per_minute: int = 30):
        self.requests_per_minute = requests_per_minute
        self.request_times: List[datetime] = []

    def _prune(self, now: datetime) -> None:
        self.request_times = [t for t in self.request_times if now - t < timedelta(minutes=1)]

    def record_request(self) -> None:
        self.request_times.append(datetime.utcnow())

    def get_wait_time(self) -> float:
        """
        Get seconds to wait before next request.

        Returns:
            Seconds to wait, or 0 if no wait needed
        """
        now = datetime.utcnow()
        self._prune(now)
        if len(self.request_times) < self.requests_per_minute:
            return 0.0
        oldest_request = self.request_times[0]
        return max(0.0, (oldest_request + timedelta(minutes=1) - now).total_seconds())


class LLMClient:
    """One provider + key, with retry and a per-minute request budget."""

    DEFAULT_MODELS = {
        "anthropic": "claude-3-5-haiku-latest",
        "groq": "llama-3.1-8b-instant",
    }

    DEFAULT_TIMEOUT = 30  # seconds
    DEFAULT_RETRIES = 3

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str = "",
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_RETRIES,
    ):
        """
        Initialize the client.

        Args:
            provider: ``anthropic`` or ``groq``
            api_key: Provider API key
            model: Model name, defaults per provider
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts

        Raises:
            ValueError: If the provider is unsupported or the key is empty
        """
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported AI provider: {provider}")
        if not api_key:
            raise ValueError("API key cannot be empty")

        self.provider = provider
        self.model = model or self.DEFAULT_MODELS[provider]
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limiter = RateLimitTracker()
        if provider == "anthropic":
            self.client = Anthropic(api_key=api_key, timeout=timeout)
        else:
            self.client = Groq(api_key=api_key, timeout=timeout)

        self.last_tokens_used = 0

    def _complete(self, system: str, prompt: str, max_tokens: int, temperature: float) -> str:
        if self.provider == "anthropic":
            response = self.client.messages.create(
                model=self.model,
                system=system,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
            self.last_tokens_used = response.usage.input_tokens + response.usage.output_tokens
            return "".join(block.text for block in response.content if block.type == "text").strip()

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        self.last_tokens_used = response.usage.total_tokens if response.usage else 0
        return (response.choices[0].message.content or "").strip()

    def generate_text(
        self,
        system: str,
        prompt: str,
        max_tokens: int = 800,
        temperature: float = 0.8,
    ) -> str:
        """
        Generate text with retry logic and rate limiting.

        Args:
            system: System instructions
            prompt: User prompt
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature (0.0-1.0)

        Returns:
            Generated text

        Raises:
            ValueError: If the prompt is empty
            ContentGenerationError: If every attempt fails
        """
        if not prompt:
            raise ValueError("Prompt cannot be empty")

        wait_time = self.rate_limiter.get_wait_time()
        if wait_time > 0:
            logger.warning("Rate limit reached for %s, waiting %.2f seconds", self.provider, wait_time)
            time.sleep(wait_time)

        last_error = None
        for attempt in range(self.max_retries):
            try:
                text = self._complete(system, prompt, max_tokens, temperature)
                self.rate_limiter.record_request()
                if not text:
                    raise ValueError("Empty completion")
                logger.info(
                    "Text generated with %s/%s, tokens_used=%s",
                    self.provider, self.model, self.last_tokens_used,
                )
                return text
            except Exception as e:
                last_error = e
                logger.warning(
                    "Generation attempt %d/%d via %s failed: %s",
                    attempt + 1, self.max_retries, self.provider, e,
                )
                # Exponential backoff: 1s, 2s, 4s
                if attempt < self.max_retries - 1:
                    time.sleep(2 ** attempt)

        raise ContentGenerationError(
            f"Text generation failed after {self.max_retries} attempts",
            details={"provider": self.provider, "last_error": str(last_error)},
        ) from last_error

    def estimated_cost(self) -> float:
        """Cost of the last call, from its token count."""
        return round(self.last_tokens_used / 1000 * COST_PER_1K_TOKENS[self.provider], 6)

    def get_rate_limit_status(self) -> Dict[str, float]:
        wait = self.rate_limiter.get_wait_time()
        used = len(self.rate_limiter.request_times)
        return {
            "requests_in_last_minute": used,
            "limit_per_minute": self.rate_limiter.requests_per_minute,
            "remaining_requests": max(0, self.rate_limiter.requests_per_minute - used),
            "seconds_until_reset": wait,
        }
