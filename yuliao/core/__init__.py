"""
Core Module - Shared domain models and errors.

Components:
- models: CorpusItem and time helpers
- content: Generated practice content (scenarios, evaluations)
- errors: Error taxonomy shared by scheduling, caching and generation
"""

from yuliao.core.content import (
    AnswerEvaluation,
    ContextScenario,
    ExtractedPhrase,
    ReviewFeedback,
    ScenarioHighlight,
)
from yuliao.core.errors import (
    CacheCorrupt,
    EmptyCorpus,
    GenerationError,
    GenerationErrorKind,
    PrefetchFailure,
    YuliaoError,
)
from yuliao.core.models import (
    MAX_MASTERY,
    MS_PER_DAY,
    Clock,
    CorpusItem,
    new_corpus_item,
    now_ms,
)

__all__ = [
    # Models
    "CorpusItem",
    "Clock",
    "new_corpus_item",
    "now_ms",
    "MAX_MASTERY",
    "MS_PER_DAY",
    # Content
    "ContextScenario",
    "ScenarioHighlight",
    "AnswerEvaluation",
    "ReviewFeedback",
    "ExtractedPhrase",
    # Errors
    "YuliaoError",
    "EmptyCorpus",
    "GenerationError",
    "GenerationErrorKind",
    "CacheCorrupt",
    "PrefetchFailure",
]
