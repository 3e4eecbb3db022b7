"""
Yuliao delivery: the adaptive phrase drill.

Components:
- SchedulingPolicy: Due-first randomized item selection
- MasteryScheduler: Interval table for practice results
- ContentCache: Topic-aware expiring cache of generated content
- PrefetchPipeline: Background lookahead generation
- SessionController: Learn session state machine
- ReviewSession: Multi-phrase scenario review
- CorpusStore: JSON corpus persistence
"""

from .content_cache import (
    CacheEntry,
    ContentCache,
    JsonFileCacheBackend,
    MemoryCacheBackend,
    item_cache_key,
    review_cache_key,
    session_cache_key,
)
from .corpus_store import CorpusStore
from .prefetch import PrefetchPipeline, SingleFlight
from .review import ReviewSession
from .scheduler import (
    MasteryScheduler,
    SchedulingConfig,
    SchedulingPolicy,
    corpus_stats,
    select_items,
)
from .session import SessionConfig, SessionController, SessionState

__all__ = [
    # Scheduling
    "SchedulingPolicy",
    "SchedulingConfig",
    "MasteryScheduler",
    "select_items",
    "corpus_stats",
    # Caching
    "ContentCache",
    "CacheEntry",
    "MemoryCacheBackend",
    "JsonFileCacheBackend",
    "item_cache_key",
    "session_cache_key",
    "review_cache_key",
    # Prefetch
    "PrefetchPipeline",
    "SingleFlight",
    # Sessions
    "SessionController",
    "SessionConfig",
    "SessionState",
    "ReviewSession",
    # Persistence
    "CorpusStore",
]
