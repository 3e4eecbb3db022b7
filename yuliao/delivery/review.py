"""
Review Session: multi-phrase scenario drill.

Each level picks ``target`` phrases with the SchedulingPolicy and asks the
generator for one scenario using all of them. The current scenario is
cached under the ``review`` key so re-entering review mode within the
expiry window resumes it; the following level is prefetched in the
background while the learner works on this one.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from yuliao.core.content import (
    ContextScenario,
    ReviewFeedback,
    scenario_from_cache,
    scenario_to_cache,
)
from yuliao.core.errors import EmptyCorpus, GenerationError, YuliaoError
from yuliao.core.models import Clock, now_ms
from yuliao.integrations.generation_client import ContentGenerator

from .content_cache import ContentCache, review_cache_key
from .prefetch import SingleFlight
from .scheduler import DEFAULT_SELECTION_COUNT, SchedulingPolicy
from .session import CorpusRepository, SessionState


class FeedbackProvider(Protocol):
    async def review_feedback(self, answer: str, reference: str) -> ReviewFeedback: ...


@dataclass
class PrefetchedLevel:
    """A generated scenario waiting to become the next level."""

    scenario: ContextScenario
    phrases: list[str]
    topic: str


class ReviewSession:
    """Scenario review with one level of lookahead."""

    def __init__(
        self,
        store: CorpusRepository,
        generator: ContentGenerator,
        cache: ContentCache,
        topic: str = "General Daily Conversation",
        target: int = 5,
        policy: SchedulingPolicy | None = None,
        feedback_provider: FeedbackProvider | None = None,
        clock: Clock = now_ms,
    ):
        self.store = store
        self.generator = generator
        self.cache = cache
        self.topic = topic
        self.target = target
        self.policy = policy or SchedulingPolicy()
        self.feedback_provider = feedback_provider
        self.clock = clock

        self.state = SessionState.INITIALIZING
        self.scenario: ContextScenario | None = None
        self.phrases: list[str] = []
        self.level = 0
        self.last_error: YuliaoError | None = None

        self.guard = SingleFlight()
        self.next_level_cache: PrefetchedLevel | None = None
        self._prefetch_task: asyncio.Task | None = None

    @property
    def phrase_count(self) -> int:
        return self.target if self.target > 0 else DEFAULT_SELECTION_COUNT

    # =========================================================================
    # Levels
    # =========================================================================

    async def start(self) -> SessionState:
        """Resume the cached scenario if it still fits, otherwise generate a new one."""
        self.state = SessionState.INITIALIZING
        self.last_error = None

        cached = scenario_from_cache(self.cache.get(review_cache_key(), self.topic))
        if cached is not None and len(cached.highlights) == self.phrase_count:
            logger.info(f"Resumed cached review scenario for {self.topic!r}")
            self.scenario = cached
            self.phrases = cached.target_phrases
            self.state = SessionState.ACTIVE
            return self.state

        self.cache.invalidate(review_cache_key())
        return await self._generate_level()

    async def _generate_level(self) -> SessionState:
        self.state = SessionState.INITIALIZING
        self.next_level_cache = None

        try:
            phrases = self._select_phrases()
            scenario = await self.generator.generate_content(phrases, self.topic)
        except (EmptyCorpus, GenerationError) as e:
            self.last_error = e
            self.state = SessionState.ERROR
            logger.error(f"Review scenario failed: {e}")
            return self.state

        self._activate(scenario, phrases)
        return self.state

    def _select_phrases(self) -> list[str]:
        items = self.policy.select_items(self.store.load(), self.phrase_count, self.clock())
        return [item.english for item in items]

    def _activate(self, scenario: ContextScenario, phrases: list[str]) -> None:
        self.scenario = scenario
        self.phrases = phrases
        self.cache.put(review_cache_key(), self.topic, scenario_to_cache(scenario))
        self.state = SessionState.ACTIVE
        self.schedule_prefetch()

    async def next_level(self) -> SessionState:
        """Advance to the next scenario, using the prefetched one when its topic matches."""
        self.cache.invalidate(review_cache_key())
        self.level += 1

        prefetched = self.next_level_cache
        if prefetched is not None and prefetched.topic == self.topic:
            logger.info("Using prefetched review level")
            self.next_level_cache = None
            self._activate(prefetched.scenario, prefetched.phrases)
            return self.state

        return await self._generate_level()

    async def change_settings(self, topic: str | None = None, target: int | None = None) -> SessionState:
        """Apply new settings; regenerates when the topic or target changed."""
        new_topic = topic or self.topic
        new_target = self.target if target is None else target
        if new_topic == self.topic and new_target == self.target:
            return self.state

        self.topic = new_topic
        self.target = new_target
        await self._stop_prefetch()
        self.cache.invalidate(review_cache_key())
        return await self._generate_level()

    # =========================================================================
    # Prefetch
    # =========================================================================

    async def prefetch_next_level(self) -> bool:
        """Generate the next level in advance. Returns True if one was stored."""
        if not self.guard.try_claim():
            return False

        topic = self.topic
        try:
            phrases = self._select_phrases()
            scenario = await self.generator.generate_content(phrases, topic)
        except (EmptyCorpus, GenerationError) as e:
            logger.warning(f"Review prefetch failed: {e}")
            return False
        finally:
            self.guard.release()

        self.next_level_cache = PrefetchedLevel(scenario=scenario, phrases=phrases, topic=topic)
        logger.debug("Next review level ready")
        return True

    def schedule_prefetch(self) -> asyncio.Task | None:
        if self.guard.in_flight:
            return None
        self._prefetch_task = asyncio.create_task(self.prefetch_next_level())
        return self._prefetch_task

    async def wait_for_prefetch(self) -> None:
        if self._prefetch_task is not None:
            await asyncio.gather(self._prefetch_task, return_exceptions=True)

    async def _stop_prefetch(self) -> None:
        task = self._prefetch_task
        self.cancel_prefetch()
        if task is not None:
            # Let the cancelled task run its cleanup so the guard is released
            await asyncio.gather(task, return_exceptions=True)

    def cancel_prefetch(self) -> None:
        if self._prefetch_task is not None and not self._prefetch_task.done():
            self._prefetch_task.cancel()
        self._prefetch_task = None
        self.next_level_cache = None

    # =========================================================================
    # Feedback
    # =========================================================================

    async def feedback(self, answer: str) -> ReviewFeedback:
        """Score a full answer against the scenario's English reference."""
        if self.scenario is None:
            raise RuntimeError("No active review scenario")
        if self.feedback_provider is None:
            raise RuntimeError("No feedback provider configured")

        result = await self.feedback_provider.review_feedback(answer, self.scenario.english_reference)
        self.state = SessionState.REVIEWING
        return result

    def close(self) -> None:
        self.cancel_prefetch()
