"""
Error taxonomy for the phrase drill.

- EmptyCorpus: nothing to schedule, fatal to session start
- GenerationError: remote generation failed (retryable or not, see ``retryable``)
- CacheCorrupt: a persisted cache entry could not be decoded, always treated as a miss
- PrefetchFailure: a background prefetch failed, downgraded to a cache miss
"""

from __future__ import annotations

from enum import Enum


class YuliaoError(Exception):
    """Base class for all drill errors."""


class EmptyCorpus(YuliaoError):
    """Raised when there are no corpus items to schedule."""

    def __init__(self, message: str = "Corpus is empty - add some phrases first"):
        super().__init__(message)


class GenerationErrorKind(str, Enum):
    """Why a generation request failed."""

    NETWORK = "network"
    AUTH = "auth"
    API = "api"
    PARSE = "parse"


class GenerationError(YuliaoError):
    """A request to the content generator failed."""

    def __init__(
        self,
        kind: GenerationErrorKind,
        message: str,
        status_code: int | None = None,
    ):
        super().__init__(f"[{kind.value}] {message}")
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Network failures and 5xx responses are worth another attempt."""
        if self.kind == GenerationErrorKind.NETWORK:
            return True
        if self.kind == GenerationErrorKind.API:
            return self.status_code is not None and self.status_code >= 500
        return False


class CacheCorrupt(YuliaoError):
    """A persisted cache entry is malformed."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Corrupt cache entry {key!r}: {reason}")
        self.key = key


class PrefetchFailure(YuliaoError):
    """Background generation for an upcoming item failed."""

    def __init__(self, item_id: str, cause: BaseException):
        super().__init__(f"Prefetch failed for {item_id}: {cause}")
        self.item_id = item_id
        self.cause = cause
