"""
Corpus domain model.

A CorpusItem is one English expression the learner is drilling, with its
Chinese meaning and spaced-repetition state. Timestamps are epoch
milliseconds so stores written by the browser build load unchanged.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

MIN_MASTERY = 0
MAX_MASTERY = 5

MS_PER_DAY = 24 * 60 * 60 * 1000

# Returns the current time in epoch milliseconds
Clock = Callable[[], int]


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def clamp_mastery(level: int) -> int:
    return max(MIN_MASTERY, min(MAX_MASTERY, int(level)))


@dataclass(frozen=True)
class CorpusItem:
    """
    A single vocabulary item in the learner's corpus.

    Items are immutable; progress updates produce a new item via
    ``with_progress`` so a session never mutates the store's copy.
    """

    id: str
    english: str
    chinese: str
    mastery_level: int = 0
    next_review_date: int = 0
    practice_count: int = 0
    added_at: int = 0

    item_type: str = "phrase"  # phrase | word | sentence
    tags: tuple[str, ...] = field(default_factory=tuple)
    synonyms: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not MIN_MASTERY <= self.mastery_level <= MAX_MASTERY:
            object.__setattr__(self, "mastery_level", clamp_mastery(self.mastery_level))

    def is_due(self, now: int) -> bool:
        return self.next_review_date <= now

    def with_progress(
        self,
        mastery_level: int,
        next_review_date: int,
        practice_count: int,
    ) -> CorpusItem:
        return replace(
            self,
            mastery_level=clamp_mastery(mastery_level),
            next_review_date=next_review_date,
            practice_count=practice_count,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase keys of the corpus file."""
        return {
            "id": self.id,
            "english": self.english,
            "chinese": self.chinese,
            "type": self.item_type,
            "tags": list(self.tags),
            "masteryLevel": self.mastery_level,
            "practiceCount": self.practice_count,
            "synonyms": list(self.synonyms),
            "nextReviewDate": self.next_review_date,
            "addedAt": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CorpusItem:
        """Create from a corpus file record (missing counters default to zero)."""
        return cls(
            id=str(data["id"]),
            english=data.get("english", ""),
            chinese=data.get("chinese", ""),
            mastery_level=clamp_mastery(data.get("masteryLevel", 0) or 0),
            next_review_date=int(data.get("nextReviewDate", 0) or 0),
            practice_count=int(data.get("practiceCount", 0) or 0),
            added_at=int(data.get("addedAt", 0) or 0),
            item_type=data.get("type", "phrase") or "phrase",
            tags=tuple(data.get("tags") or ()),
            synonyms=tuple(data.get("synonyms") or ()),
        )


def new_corpus_item(
    english: str,
    chinese: str,
    now: int | None = None,
    item_type: str = "phrase",
    tags: list[str] | None = None,
    synonyms: list[str] | None = None,
) -> CorpusItem:
    """Create a fresh item, due immediately."""
    timestamp = now if now is not None else now_ms()
    return CorpusItem(
        id=uuid.uuid4().hex[:12],
        english=english.strip(),
        chinese=chinese.strip(),
        mastery_level=0,
        next_review_date=timestamp,
        practice_count=0,
        added_at=timestamp,
        item_type=item_type,
        tags=tuple(tags or ()),
        synonyms=tuple(synonyms or ()),
    )
