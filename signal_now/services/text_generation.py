"""Text-generation service backed by hosted LLM APIs"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Optional

import google.generativeai as genai
from anthropic import APITimeoutError as AnthropicTimeoutError
from anthropic import AsyncAnthropic
from anthropic import RateLimitError as AnthropicRateLimitError
from google.api_core import exceptions as google_exceptions
from openai import APITimeoutError as OpenAITimeoutError
from openai import AsyncOpenAI
from openai import RateLimitError as OpenAIRateLimitError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from signal_now.config.settings import settings
from signal_now.errors import MalformedModelOutputError, MissingConfigurationError
from signal_now.sources.github_client import sanitize_log_extra

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    OpenAIRateLimitError,
    OpenAITimeoutError,
    AnthropicRateLimitError,
    AnthropicTimeoutError,
    google_exceptions.ResourceExhausted,
    google_exceptions.DeadlineExceeded,
    google_exceptions.ServiceUnavailable,
)

_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code fence if present."""

    text = (content or "").strip()
    match = _FENCE.match(text)
    if match:
        return match.group(1).strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    return text.strip()


def parse_json_payload(content: str, *, stage: Optional[str] = None) -> dict[str, Any]:
    """Parse a JSON object from model output, tolerating code fences."""

    cleaned = strip_code_fences(content)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedModelOutputError(
            f"Model output is not valid JSON: {exc}",
            stage=stage,
            raw=content,
        ) from exc

    if not isinstance(data, dict):
        raise MalformedModelOutputError(
            f"Model output is a JSON {type(data).__name__}, expected an object",
            stage=stage,
            raw=content,
        )
    return data


class LLMTextGenerator:
    """Provider-agnostic `generate(prompt) -> text` with timeout and bounded retry."""

    def __init__(
        self,
        *,
        provider: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
    ) -> None:
        self.provider = (provider or settings.LLM_PROVIDER).lower()
        self._timeout_seconds = timeout_seconds or settings.LLM_TIMEOUT_SECONDS
        self._max_attempts = max_attempts or settings.LLM_MAX_ATTEMPTS
        self._backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.LLM_BACKOFF_BASE_SECONDS
        )
        self._backoff_max_seconds = (
            backoff_max_seconds if backoff_max_seconds is not None else settings.LLM_BACKOFF_MAX_SECONDS
        )

        if self.provider == "openai":
            if not settings.OPENAI_API_KEY:
                raise MissingConfigurationError("OPENAI_API_KEY is required when LLM_PROVIDER is 'openai'")
            self.openai_client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=self._timeout_seconds)
        elif self.provider == "anthropic":
            if not settings.ANTHROPIC_API_KEY:
                raise MissingConfigurationError("ANTHROPIC_API_KEY is required when LLM_PROVIDER is 'anthropic'")
            self.anthropic_client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY, timeout=self._timeout_seconds)
        elif self.provider == "gemini":
            if not settings.GEMINI_API_KEY:
                raise MissingConfigurationError("GEMINI_API_KEY is required when LLM_PROVIDER is 'gemini'")
            genai.configure(api_key=settings.GEMINI_API_KEY)
        else:
            raise MissingConfigurationError(f"Unsupported LLM provider: {self.provider}")

    async def generate(self, prompt: str, *, expect_json: bool = False, system: Optional[str] = None) -> str:
        """Return raw model text. JSON callers run `parse_json_payload` on it."""

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "Retrying text generation call",
                        extra=sanitize_log_extra(
                            provider=self.provider,
                            attempt=attempt.retry_state.attempt_number,
                        ),
                    )
                return await asyncio.wait_for(
                    self._dispatch(prompt, expect_json=expect_json, system=system),
                    timeout=self._timeout_seconds,
                )
        raise RuntimeError("unreachable: tenacity exhausted without raising")

    async def _dispatch(self, prompt: str, *, expect_json: bool, system: Optional[str]) -> str:
        if self.provider == "openai":
            return await self._generate_openai(prompt, expect_json=expect_json, system=system)
        if self.provider == "anthropic":
            return await self._generate_anthropic(prompt, system=system)
        return await self._generate_gemini(prompt, expect_json=expect_json, system=system)

    async def _generate_openai(self, prompt: str, *, expect_json: bool, system: Optional[str]) -> str:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {}
        if expect_json:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self.openai_client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=messages,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
            **kwargs,
        )
        return (response.choices[0].message.content or "").strip()

    async def _generate_anthropic(self, prompt: str, *, system: Optional[str]) -> str:
        kwargs: dict[str, Any] = {}
        if system:
            kwargs["system"] = system

        response = await self.anthropic_client.messages.create(
            model=settings.ANTHROPIC_MODEL,
            max_tokens=settings.LLM_MAX_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )
        return "".join(block.text for block in response.content if getattr(block, "type", "") == "text").strip()

    async def _generate_gemini(self, prompt: str, *, expect_json: bool, system: Optional[str]) -> str:
        model = genai.GenerativeModel(settings.GEMINI_MODEL, system_instruction=system)
        config_kwargs: dict[str, Any] = {
            "temperature": settings.LLM_TEMPERATURE,
            "max_output_tokens": settings.LLM_MAX_TOKENS,
        }
        if expect_json:
            config_kwargs["response_mime_type"] = "application/json"

        # Gemini SDK call is sync, so run it in executor
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(
            None,
            lambda: model.generate_content(
                prompt,
                generation_config=genai.types.GenerationConfig(**config_kwargs),
            ),
        )
        return (response.text or "").strip()
