"""
Background prefetch of upcoming session content.

While the learner works on the current item, the pipeline generates
content for the next few queue items so they are ready on arrival.

Rules:
- Only items within the lookahead horizon that miss the cache are fetched
- At most one batch is in flight (single-flight guard)
- Items in a batch are generated concurrently; failures are logged and
  left as cache misses, never retried here
- Once cancelled, late results are dropped instead of written
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

from yuliao.core.content import scenario_to_cache
from yuliao.core.errors import PrefetchFailure
from yuliao.core.models import CorpusItem
from yuliao.integrations.generation_client import ContentGenerator

from .content_cache import ContentCache, item_cache_key


class SingleFlight:
    """A claim/release guard allowing one holder at a time."""

    def __init__(self) -> None:
        self._claimed = False

    @property
    def in_flight(self) -> bool:
        return self._claimed

    def try_claim(self) -> bool:
        """Claim the guard; False if someone already holds it."""
        if self._claimed:
            return False
        self._claimed = True
        return True

    def release(self) -> None:
        self._claimed = False


class PrefetchPipeline:
    """
    Keeps a lookahead buffer of generated content for a session queue.

    One pipeline belongs to one session; ``cancel`` detaches it when the
    session ends so in-flight results never reach the cache.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        key_for: Callable[[str], str] = item_cache_key,
    ):
        """
        Initialize the pipeline.

        Args:
            generator: Content generator used for every prefetch request
            key_for: Maps an item id to its cache key
        """
        self.generator = generator
        self.key_for = key_for
        self.guard = SingleFlight()
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def missing_items(
        self,
        queue: list[CorpusItem],
        cursor: int,
        cache: ContentCache,
        topic: str,
        horizon: int,
    ) -> list[CorpusItem]:
        """Items in ``queue[cursor+1 : cursor+1+horizon]`` without valid cached content."""
        upcoming = queue[cursor + 1 : cursor + 1 + horizon]
        return [item for item in upcoming if not cache.contains(self.key_for(item.id), topic)]

    async def ensure_prefetched(
        self,
        queue: list[CorpusItem],
        cursor: int,
        cache: ContentCache,
        topic: str,
        horizon: int,
        batch_size: int,
    ) -> int:
        """
        Generate content for the next missing items, one batch at a time.

        Args:
            queue: Session queue
            cursor: Index of the item currently on screen
            cache: Cache to fill
            topic: Session topic
            horizon: How many items ahead of the cursor to keep ready
            batch_size: Maximum items generated in this batch

        Returns:
            Number of items successfully generated and cached
        """
        if self._closed:
            return 0

        missing = self.missing_items(queue, cursor, cache, topic, horizon)
        if not missing:
            return 0

        if not self.guard.try_claim():
            logger.debug("Prefetch already in flight - skipping")
            return 0

        batch = missing[:batch_size]
        stored = 0
        try:
            logger.info(f"[Prefetch] Generating {len(batch)} upcoming items...")
            results = await asyncio.gather(
                *(self.generator.generate_content([item.english], topic) for item in batch),
                return_exceptions=True,
            )

            if self._closed:
                logger.debug("Prefetch finished after session closed - results dropped")
                return 0

            for item, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning(str(PrefetchFailure(item.id, result)))
                    continue
                cache.put(self.key_for(item.id), topic, scenario_to_cache(result))
                stored += 1
        except asyncio.CancelledError:
            logger.debug("Prefetch cancelled")
            raise
        except Exception as e:
            logger.warning(f"Prefetch batch failed: {e}")
        finally:
            self.guard.release()

        return stored

    def schedule(
        self,
        queue: list[CorpusItem],
        cursor: int,
        cache: ContentCache,
        topic: str,
        horizon: int,
        batch_size: int,
    ) -> asyncio.Task | None:
        """
        Start ``ensure_prefetched`` in the background without waiting for it.

        Returns:
            The background task, or None if nothing was started
        """
        if self._closed or self.guard.in_flight:
            return None
        if self._task is not None and not self._task.done():
            return None
        self._task = asyncio.create_task(
            self.ensure_prefetched(queue, cursor, cache, topic, horizon, batch_size)
        )
        return self._task

    async def wait(self) -> None:
        """Wait for the current background batch to settle."""
        task = self._task
        if task is None or task.done():
            return
        await asyncio.gather(task, return_exceptions=True)

    def cancel(self) -> None:
        """Detach from the session and cancel any in-flight batch."""
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
