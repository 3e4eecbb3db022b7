"""
Review Scheduler: item selection and mastery intervals.

Implements:
- Due-first ranking: overdue items precede not-yet-due items,
  least-mastered first within each group
- Randomized selection from the front of the ranking so sessions
  do not repeat in a fixed order
- Fixed interval table keyed by mastery level

Mastery Scale:
0 - New or forgotten
1..4 - Increasingly stable
5 - Mastered (30-day interval)
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from loguru import logger

from yuliao.core.errors import EmptyCorpus
from yuliao.core.models import MAX_MASTERY, MIN_MASTERY, MS_PER_DAY, CorpusItem

DEFAULT_SELECTION_COUNT = 5

# Days until next review, indexed by the new mastery level
INTERVAL_DAYS = (0, 1, 3, 7, 14, 30)


# =============================================================================
# Selection
# =============================================================================


@dataclass
class SchedulingConfig:
    """Configuration for item selection."""

    default_count: int = DEFAULT_SELECTION_COUNT
    pool_factor: int = 2  # Shuffle pool is at least count * pool_factor
    pool_cap: int | None = None  # Upper bound on the pool; None keeps the whole ranking


class SchedulingPolicy:
    """
    Picks the items for a practice session.

    Key principles:
    1. Due items always rank ahead of items that are not yet due
    2. Within each group, the least-mastered items come first
    3. The final pick is shuffled so repeat sessions vary
    """

    def __init__(
        self,
        config: SchedulingConfig | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the policy.

        Args:
            config: Selection configuration (uses defaults if None)
            rng: Random source for the shuffle step (seed it for deterministic tests)
        """
        self.config = config or SchedulingConfig()
        self.rng = rng or random.Random()

    def rank_items(self, corpus: list[CorpusItem], now: int) -> list[CorpusItem]:
        """Deterministic ranking: due items then the rest, each by ascending mastery."""
        due = sorted((i for i in corpus if i.is_due(now)), key=lambda i: i.mastery_level)
        not_due = sorted((i for i in corpus if not i.is_due(now)), key=lambda i: i.mastery_level)
        return due + not_due

    def pool_size(self, count: int, ranked_length: int) -> int:
        size = max(count * self.config.pool_factor, ranked_length)
        if self.config.pool_cap is not None:
            size = max(count, min(size, self.config.pool_cap))
        return size

    def select_items(
        self,
        corpus: list[CorpusItem],
        count: int,
        now: int,
    ) -> list[CorpusItem]:
        """
        Select items for a session.

        Args:
            corpus: All corpus items
            count: Items wanted (<= 0 means the default)
            now: Current time in epoch ms

        Returns:
            Up to ``count`` distinct items

        Raises:
            EmptyCorpus: If the corpus has no items
        """
        if not corpus:
            raise EmptyCorpus()

        if count <= 0:
            count = self.config.default_count

        ranked = self.rank_items(corpus, now)
        pool = ranked[: self.pool_size(count, len(ranked))]

        # Shuffle within each partition so due items still fill the pick first
        due = [i for i in pool if i.is_due(now)]
        not_due = [i for i in pool if not i.is_due(now)]
        self.rng.shuffle(due)
        self.rng.shuffle(not_due)
        selected = (due + not_due)[:count]

        logger.debug(
            f"Selected {len(selected)} of {len(corpus)} items "
            f"({due_count(corpus, now)} due, pool {len(pool)})"
        )
        return selected


def select_items(
    corpus: list[CorpusItem],
    count: int,
    now: int,
    rng: random.Random | None = None,
) -> list[CorpusItem]:
    """Quick access to SchedulingPolicy.select_items with default configuration."""
    return SchedulingPolicy(rng=rng).select_items(corpus, count, now)


def due_count(corpus: list[CorpusItem], now: int) -> int:
    """Count items due for review."""
    return sum(1 for item in corpus if item.is_due(now))


@dataclass
class CorpusStats:
    """Dashboard summary of the corpus."""

    total: int
    due: int
    mastered: int
    average_mastery: float


def corpus_stats(corpus: list[CorpusItem], now: int) -> CorpusStats:
    total = len(corpus)
    return CorpusStats(
        total=total,
        due=due_count(corpus, now),
        mastered=sum(1 for i in corpus if i.mastery_level >= MAX_MASTERY),
        average_mastery=(sum(i.mastery_level for i in corpus) / total) if total else 0.0,
    )


# =============================================================================
# Mastery Intervals
# =============================================================================


class MasteryScheduler:
    """
    Applies a practice result to an item.

    Success raises mastery by one (capped at 5) and schedules the next
    review from the interval table. Failure lowers mastery by one
    (floored at 0) and makes the item due immediately.
    """

    def __init__(self, intervals: tuple[int, ...] = INTERVAL_DAYS):
        if len(intervals) != MAX_MASTERY + 1:
            raise ValueError(f"Interval table needs {MAX_MASTERY + 1} entries")
        self.intervals = intervals

    def apply_result(self, item: CorpusItem, success: bool, now: int) -> CorpusItem:
        """
        Calculate the item's new mastery state.

        Args:
            item: Item that was practiced
            success: Whether the learner got it right
            now: Current time in epoch ms

        Returns:
            New CorpusItem (the input is not modified)
        """
        if success:
            new_level = min(item.mastery_level + 1, MAX_MASTERY)
            next_review = now + self.intervals[new_level] * MS_PER_DAY
        else:
            new_level = max(item.mastery_level - 1, MIN_MASTERY)
            next_review = now

        updated = item.with_progress(
            mastery_level=new_level,
            next_review_date=next_review,
            practice_count=item.practice_count + 1,
        )

        logger.debug(
            f"Recorded {'success' if success else 'failure'} for {item.id}: "
            f"level {item.mastery_level} -> {new_level}, interval={self.intervals[new_level] if success else 0}d"
        )
        return updated
