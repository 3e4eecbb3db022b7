"""
Content generator client for an OpenAI-compatible chat-completions API.

Produces practice scenarios for target phrases, scores answers, and
extracts expressions from free text. Every call carries a timeout and
goes through the shared RetryPolicy; transport and HTTP failures are
translated into GenerationError at this boundary.
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol

import httpx
from loguru import logger
from pydantic import ValidationError

from yuliao.core.content import (
    AnswerEvaluation,
    ContextScenario,
    ExtractedPhrase,
    ReviewFeedback,
    normalize_highlights,
)
from yuliao.core.errors import GenerationError, GenerationErrorKind
from yuliao.generation.prompts import (
    get_evaluation_prompt,
    get_extraction_prompt,
    get_review_feedback_prompt,
    get_scenario_prompt,
)

from .retry import RetryPolicy

_CODE_FENCE_OPEN = re.compile(r"^```(?:json)?\s*")
_CODE_FENCE_CLOSE = re.compile(r"\s*```$")


class ContentGenerator(Protocol):
    """What the scheduler core needs from a generator."""

    async def generate_content(
        self,
        target_phrases: list[str],
        topic: str,
        fresh: bool = False,
    ) -> ContextScenario: ...


def clean_json_string(text: str | None) -> str:
    """Strip markdown code fences the model sometimes wraps JSON in."""
    if not text:
        return "{}"
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _CODE_FENCE_CLOSE.sub("", _CODE_FENCE_OPEN.sub("", cleaned))
    return cleaned


def parse_json_object(text: str | None) -> dict[str, Any]:
    """Parse model output into a JSON object, raising GenerationError(PARSE) otherwise."""
    try:
        data = json.loads(clean_json_string(text))
    except json.JSONDecodeError as e:
        raise GenerationError(GenerationErrorKind.PARSE, f"Invalid JSON from model: {e}") from e
    if not isinstance(data, dict):
        raise GenerationError(GenerationErrorKind.PARSE, "Model returned a non-object JSON value")
    return data


class GenerationClient:
    """HTTP client for practice content generation."""

    def __init__(
        self,
        api_key: str,
        api_base: str,
        model: str,
        timeout_seconds: float = 60.0,
        scenario_timeout_seconds: float = 120.0,
        evaluation_timeout_seconds: float = 30.0,
        retry_policy: RetryPolicy | None = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Bearer token for the API
            api_base: Base URL (``/chat/completions`` is appended)
            model: Chat model name
            timeout_seconds: Default request timeout
            scenario_timeout_seconds: Timeout for multi-phrase scenarios
            evaluation_timeout_seconds: Timeout for answer scoring
            retry_policy: Backoff policy shared by all calls
        """
        self.api_key = api_key
        self.api_url = api_base.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.scenario_timeout_seconds = scenario_timeout_seconds
        self.evaluation_timeout_seconds = evaluation_timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=True,
        )

        if not self.api_key:
            logger.warning("No LLM API key configured - generation requests will fail")

    @classmethod
    def from_settings(cls) -> GenerationClient:
        from config import get_settings

        from .retry import retry_policy_from_settings

        settings = get_settings()
        return cls(
            api_key=settings.llm_api_key,
            api_base=settings.llm_api_base,
            model=settings.llm_model,
            timeout_seconds=settings.generation_timeout_seconds,
            scenario_timeout_seconds=settings.scenario_timeout_seconds,
            evaluation_timeout_seconds=settings.evaluation_timeout_seconds,
            retry_policy=retry_policy_from_settings(),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _chat_completion(
        self,
        prompt: str,
        timeout: float | None = None,
        temperature: float = 0.7,
    ) -> str:
        """Send one chat-completions request and return the message text."""
        if not self.api_key:
            raise GenerationError(GenerationErrorKind.AUTH, "LLM API key is not set")

        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }

        try:
            response = await self.client.post(
                f"{self.api_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=timeout or self.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise GenerationError(GenerationErrorKind.NETWORK, "Request timeout") from e
        except httpx.RequestError as e:
            raise GenerationError(GenerationErrorKind.NETWORK, f"Request failed: {e}") from e

        if response.status_code in (401, 403):
            raise GenerationError(
                GenerationErrorKind.AUTH,
                f"API key rejected ({response.status_code})",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise GenerationError(
                GenerationErrorKind.API,
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationError(
                GenerationErrorKind.PARSE, f"Unexpected response shape: {e}"
            ) from e

    async def _request_json(self, prompt: str, label: str, timeout: float | None) -> dict[str, Any]:
        async def attempt() -> dict[str, Any]:
            text = await self._chat_completion(prompt, timeout=timeout)
            return parse_json_object(text)

        return await self.retry_policy.run(attempt, label=label)

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate_content(
        self,
        target_phrases: list[str],
        topic: str,
        fresh: bool = False,
    ) -> ContextScenario:
        """
        Generate a practice scenario for one or more target phrases.

        Args:
            target_phrases: English phrases the scenario must use
            topic: Session topic
            fresh: Ask for a new situation (used when the learner retries)

        Returns:
            Validated ContextScenario

        Raises:
            GenerationError: On network/timeout/auth/malformed-response failures
        """
        prompt = get_scenario_prompt(target_phrases, topic, fresh=fresh)
        timeout = self.timeout_seconds if len(target_phrases) <= 1 else self.scenario_timeout_seconds

        data = await self._request_json(prompt, label="Scenario generation", timeout=timeout)
        data["highlights"] = normalize_highlights(data.get("highlights") or [])
        data["topic"] = data.get("topic") or topic

        try:
            scenario = ContextScenario.model_validate(data)
        except ValidationError as e:
            raise GenerationError(GenerationErrorKind.PARSE, f"Scenario schema mismatch: {e}") from e

        if not scenario.english_reference:
            raise GenerationError(GenerationErrorKind.PARSE, "Scenario has no English reference")

        logger.debug(f"Generated scenario for {target_phrases} ({topic})")
        return scenario

    async def evaluate_answer(self, answer: str, reference: str) -> AnswerEvaluation:
        """Score a translation attempt; degrades to a zero score on failure."""
        try:
            data = await self._request_json(
                get_evaluation_prompt(answer, reference),
                label="Answer evaluation",
                timeout=self.evaluation_timeout_seconds,
            )
            return AnswerEvaluation.model_validate(data)
        except (GenerationError, ValidationError) as e:
            logger.error(f"Answer evaluation failed: {e}")
            return AnswerEvaluation(score=0, feedback="评估异常。")

    async def review_feedback(self, answer: str, reference: str) -> ReviewFeedback:
        """Detailed feedback for a scenario answer; degrades to a placeholder on failure."""
        try:
            data = await self._request_json(
                get_review_feedback_prompt(answer, reference),
                label="Review feedback",
                timeout=self.scenario_timeout_seconds,
            )
            return ReviewFeedback.model_validate(data)
        except (GenerationError, ValidationError) as e:
            logger.error(f"Review feedback failed: {e}")
            return ReviewFeedback(score=0, feedback="分析生成延迟。", punctuated_transcript=answer)

    async def extract_corpus(self, text: str) -> list[ExtractedPhrase]:
        """Extract expressions from free text; returns an empty list on failure."""
        try:
            data = await self._request_json(
                get_extraction_prompt(text),
                label="Corpus extraction",
                timeout=self.timeout_seconds,
            )
        except GenerationError as e:
            logger.error(f"Corpus extraction failed: {e}")
            return []

        phrases = []
        for raw in data.get("items") or []:
            try:
                phrases.append(ExtractedPhrase.model_validate(raw))
            except ValidationError as e:
                logger.debug(f"Skipping malformed extracted item {raw!r}: {e}")
        return phrases
