"""
Learn Session: state machine for one practice session.

Flow:
    INITIALIZING -> ACTIVE -> REVIEWING (result shown) -> ACTIVE (next item) -> COMPLETE
    INITIALIZING -> ERROR (empty corpus, or no content could be generated)

The session owns its queue and cursor. Generated content lives in the
shared ContentCache; a PrefetchPipeline fills it ahead of the cursor.
Every practice result is written through to the corpus store.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from loguru import logger

from yuliao.core.content import (
    AnswerEvaluation,
    ContextScenario,
    scenario_from_cache,
    scenario_to_cache,
)
from yuliao.core.errors import EmptyCorpus, GenerationError, YuliaoError
from yuliao.core.models import Clock, CorpusItem, now_ms
from yuliao.integrations.generation_client import ContentGenerator

from .content_cache import ContentCache, item_cache_key, session_cache_key
from .prefetch import PrefetchPipeline
from .scheduler import MasteryScheduler, SchedulingPolicy


class SessionState(str, Enum):
    """Where the session is in its lifecycle."""

    INITIALIZING = "initializing"
    ACTIVE = "active"
    REVIEWING = "reviewing"
    COMPLETE = "complete"
    ERROR = "error"


class CorpusRepository(Protocol):
    """The slice of CorpusStore a session uses."""

    def load(self) -> list[CorpusItem]: ...

    def update_items(self, updated: list[CorpusItem]) -> None: ...


class AnswerScorer(Protocol):
    async def evaluate_answer(self, answer: str, reference: str) -> AnswerEvaluation: ...


@dataclass
class SessionConfig:
    """Configuration for a learn session."""

    topic: str = "General Daily Conversation"
    target: int = 10  # Successes needed to complete; 0 means run through the queue
    initial_batch_size: int = 3  # Generated in the foreground before going interactive
    prefetch_target: int = 10  # Queue holds at least prefetch_target * 2 items
    background_batch_size: int = 3
    prefetch_horizon: int = 3
    pass_score: int = 70

    @classmethod
    def from_settings(cls, topic: str | None = None, target: int | None = None) -> SessionConfig:
        from config import get_settings

        settings = get_settings()
        return cls(
            topic=topic or settings.default_topic,
            target=settings.default_session_target if target is None else target,
            initial_batch_size=settings.initial_batch_size,
            prefetch_target=settings.prefetch_target,
            background_batch_size=settings.background_batch_size,
            prefetch_horizon=settings.prefetch_horizon,
            pass_score=settings.pass_score,
        )


class SessionController:
    """
    Drives one learn session.

    Key behaviours:
    1. Start picks the queue with SchedulingPolicy and reuses a cached
       session snapshot when one matches the topic and target
    2. The first few items are generated in the foreground; the rest are
       prefetched in the background
    3. Success raises mastery, invalidates the item's content and advances;
       failure lowers mastery and regenerates fresh content for the same item
    """

    def __init__(
        self,
        store: CorpusRepository,
        generator: ContentGenerator,
        cache: ContentCache,
        config: SessionConfig | None = None,
        policy: SchedulingPolicy | None = None,
        mastery: MasteryScheduler | None = None,
        scorer: AnswerScorer | None = None,
        clock: Clock = now_ms,
    ):
        """
        Initialize the controller.

        Args:
            store: Corpus persistence
            generator: Content generator for foreground and prefetch requests
            cache: Shared content cache
            config: Session configuration (uses defaults if None)
            policy: Item selection policy
            mastery: Interval table scheduler
            scorer: Optional AI answer scorer
            clock: Returns current epoch ms
        """
        self.store = store
        self.generator = generator
        self.cache = cache
        self.config = config or SessionConfig()
        self.policy = policy or SchedulingPolicy()
        self.mastery = mastery or MasteryScheduler()
        self.scorer = scorer
        self.clock = clock

        self.topic = self.config.topic
        self.target = self.config.target
        self.initial_target = self.config.target

        self.state = SessionState.INITIALIZING
        self.queue: list[CorpusItem] = []
        self.cursor = 0
        self.progress = 0
        self.retry_count = 0
        self.last_error: YuliaoError | None = None
        self.pipeline = PrefetchPipeline(generator)
        self._closed = False

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def current_item(self) -> CorpusItem | None:
        if self.state not in (SessionState.ACTIVE, SessionState.REVIEWING):
            return None
        if self.cursor >= len(self.queue):
            return None
        return self.queue[self.cursor]

    @property
    def is_complete(self) -> bool:
        return self.state == SessionState.COMPLETE

    def progress_summary(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "topic": self.topic,
            "progress": self.progress,
            "target": self.target,
            "position": self.cursor,
            "queue_length": len(self.queue),
            "retry_count": self.retry_count,
        }

    # =========================================================================
    # Initialization
    # =========================================================================

    async def start(self) -> SessionState:
        """Start the session, resuming a cached one when it still fits."""
        self.progress = 0
        return await self._initialize()

    async def _initialize(self) -> SessionState:
        self.pipeline.cancel()
        self.pipeline = PrefetchPipeline(self.generator)
        self._closed = False

        self.state = SessionState.INITIALIZING
        self.queue = []
        self.cursor = 0
        self.retry_count = 0
        self.last_error = None

        corpus = self.store.load()
        if not corpus:
            self.last_error = EmptyCorpus()
            self.state = SessionState.ERROR
            logger.warning("Cannot start session: corpus is empty")
            return self.state

        if self._restore_snapshot(corpus):
            logger.info(f"Resumed cached session ({len(self.queue)} items, topic {self.topic!r})")
            self._activate()
            return self.state

        queue_size = max(self.target, self.config.prefetch_target * 2)
        self.queue = self.policy.select_items(corpus, queue_size, self.clock())

        first_batch = self.queue[: self.config.initial_batch_size]
        ready = await self._generate_first_batch(first_batch)
        if ready == 0:
            self.state = SessionState.ERROR
            logger.error(f"Session start failed: {self.last_error}")
            return self.state

        self.cache.put(
            session_cache_key(),
            self.topic,
            {"item_ids": [item.id for item in self.queue], "target": self.target},
        )
        self._activate()
        return self.state

    def _restore_snapshot(self, corpus: list[CorpusItem]) -> bool:
        """Reuse the cached session when topic, target and first-batch content all match."""
        snapshot = self.cache.get(session_cache_key(), self.topic)
        if not isinstance(snapshot, dict) or snapshot.get("target") != self.target:
            return False

        by_id = {item.id: item for item in corpus}
        item_ids = snapshot.get("item_ids")
        if not isinstance(item_ids, list) or not item_ids:
            return False
        if any(not isinstance(i, str) or i not in by_id for i in item_ids):
            return False

        first_batch = item_ids[: self.config.initial_batch_size]
        if not all(self.cache.contains(item_cache_key(i), self.topic) for i in first_batch):
            return False

        self.queue = [by_id[item_id] for item_id in item_ids]
        return True

    async def _generate_first_batch(self, items: list[CorpusItem]) -> int:
        """Generate content for the first items concurrently. Returns how many have content."""
        missing = [i for i in items if not self.cache.contains(item_cache_key(i.id), self.topic)]
        ready = len(items) - len(missing)

        results = await asyncio.gather(
            *(self.generator.generate_content([item.english], self.topic) for item in missing),
            return_exceptions=True,
        )
        for item, result in zip(missing, results):
            if isinstance(result, GenerationError):
                logger.error(f"Generating content for {item.english!r} failed: {result}")
                self.last_error = result
                continue
            if isinstance(result, BaseException):
                raise result
            self.cache.put(item_cache_key(item.id), self.topic, scenario_to_cache(result))
            ready += 1
        return ready

    def _activate(self) -> None:
        self.state = SessionState.ACTIVE
        self._schedule_prefetch()

    def _schedule_prefetch(self) -> None:
        self.pipeline.schedule(
            self.queue,
            self.cursor,
            self.cache,
            self.topic,
            horizon=self.config.prefetch_horizon,
            batch_size=self.config.background_batch_size,
        )

    # =========================================================================
    # Content
    # =========================================================================

    async def current_content(self) -> ContextScenario | None:
        """
        Content for the current item: cached if possible, else generated now.

        Raises:
            GenerationError: If foreground generation fails (progress is kept)
        """
        item = self.current_item
        if item is None:
            return None

        key = item_cache_key(item.id)
        cached = self.cache.get(key, self.topic)
        if cached is not None:
            scenario = scenario_from_cache(cached)
            if scenario is not None:
                return scenario
            self.cache.invalidate(key)

        return await self._generate_foreground(item)

    async def _generate_foreground(self, item: CorpusItem, fresh: bool = False) -> ContextScenario:
        try:
            scenario = await self.generator.generate_content([item.english], self.topic, fresh=fresh)
        except GenerationError as e:
            self.last_error = e
            logger.error(f"Generation failed for {item.english!r}: {e}")
            raise

        self.last_error = None
        if not self._closed:
            self.cache.put(item_cache_key(item.id), self.topic, scenario_to_cache(scenario))
        return scenario

    # =========================================================================
    # Results
    # =========================================================================

    def show_result(self) -> None:
        """Mark the current answer as revealed."""
        if self.state == SessionState.ACTIVE:
            self.state = SessionState.REVIEWING

    reveal = show_result

    async def evaluate(self, answer: str, content: ContextScenario) -> AnswerEvaluation:
        """Score an answer against the English reference of the scenario that was shown."""
        if self.scorer is None:
            raise RuntimeError("No answer scorer configured")
        if self.current_item is None:
            raise RuntimeError("No current item to evaluate")
        evaluation = await self.scorer.evaluate_answer(answer, content.english_reference)
        self.show_result()
        return evaluation

    def passed(self, evaluation: AnswerEvaluation) -> bool:
        return evaluation.score >= self.config.pass_score

    async def submit_result(self, success: bool) -> bool:
        """
        Record the learner's result for the current item.

        Returns:
            True if the result was processed, False if the session is not
            accepting results (complete, failed, or not started)
        """
        item = self.current_item
        if item is None:
            logger.warning(f"Result ignored in state {self.state.value}")
            return False

        updated = self.mastery.apply_result(item, success, self.clock())
        self.queue[self.cursor] = updated
        self.store.update_items([updated])

        if success:
            self._advance(item)
        else:
            await self._retry_current(item)
        return True

    def _advance(self, item: CorpusItem) -> None:
        self.progress += 1
        self.retry_count = 0
        self.cache.invalidate(item_cache_key(item.id))

        if self.target > 0 and self.progress >= self.target:
            self._complete()
            return

        self.cursor += 1
        if self.cursor >= len(self.queue):
            self._complete()
            return

        self.state = SessionState.ACTIVE
        self._schedule_prefetch()

    async def _retry_current(self, item: CorpusItem) -> None:
        self.retry_count += 1
        self.state = SessionState.ACTIVE
        self.cache.invalidate(item_cache_key(item.id))
        try:
            await self._generate_foreground(item, fresh=True)
        except GenerationError:
            # Surfaced through last_error; current_content() will try again
            pass

    def _complete(self) -> None:
        self.state = SessionState.COMPLETE
        self.pipeline.cancel()
        self.cache.invalidate(session_cache_key())
        logger.info(f"Session complete: {self.progress} items mastered")

    # =========================================================================
    # Session Control
    # =========================================================================

    async def next_batch(self) -> SessionState:
        """After completion, raise the target by one more set and continue."""
        if self.state != SessionState.COMPLETE:
            return self.state
        self.target += self.initial_target
        return await self._initialize()

    async def restart(self) -> SessionState:
        """Discard all cached content and start over."""
        self.cache.invalidate_all()
        return await self.start()

    async def change_settings(self, topic: str | None = None, target: int | None = None) -> SessionState:
        """Apply new topic/target; restarts the session when either changes."""
        new_topic = topic or self.topic
        new_target = self.target if target is None else target
        if new_topic == self.topic and new_target == self.target:
            return self.state

        self.topic = new_topic
        self.target = new_target
        self.initial_target = new_target
        return await self.restart()

    async def change_topic(self, topic: str) -> SessionState:
        return await self.change_settings(topic=topic)

    def close(self) -> None:
        """Leave the session; persisted per-item content is kept until it expires."""
        self._closed = True
        self.pipeline.cancel()
        self.queue = []
        self.cursor = 0
