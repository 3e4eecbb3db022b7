"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import asyncio
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from yuliao.core.content import ContextScenario, ScenarioHighlight  # noqa: E402
from yuliao.core.errors import GenerationError, GenerationErrorKind  # noqa: E402
from yuliao.core.models import MS_PER_DAY, CorpusItem  # noqa: E402
from yuliao.delivery.content_cache import ContentCache  # noqa: E402
from yuliao.delivery.corpus_store import CorpusStore  # noqa: E402

NOW = 1_700_000_000_000


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (file-backed stores)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Test Doubles
# =============================================================================

class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, start: int = NOW):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeGenerator:
    """
    In-memory ContentGenerator.

    Records every call; phrases listed in ``fail_phrases`` raise a
    GenerationError. When ``gate`` is set, calls wait on it before
    returning so tests can hold requests in flight.
    """

    def __init__(self):
        self.calls: list[tuple[tuple[str, ...], str, bool]] = []
        self.fail_phrases: set[str] = set()
        self.gate: asyncio.Event | None = None

    async def generate_content(self, target_phrases, topic, fresh=False):
        self.calls.append((tuple(target_phrases), topic, fresh))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_phrases.intersection(target_phrases):
            raise GenerationError(GenerationErrorKind.NETWORK, "Request timeout")

        variant = "fresh" if fresh else "first"
        return ContextScenario(
            topic=topic,
            chinese_script=f"[{variant}] 场景: " + " / ".join(target_phrases),
            english_reference=" ".join(f"I {p} today." for p in target_phrases),
            highlights=[ScenarioHighlight(text=p, original=p) for p in target_phrases],
        )

    def calls_for(self, phrase: str) -> int:
        return sum(1 for phrases, _, _ in self.calls if phrase in phrases)


def make_item(
    item_id: str,
    mastery: int = 0,
    due_in_days: float = 0,
    english: str | None = None,
) -> CorpusItem:
    """Corpus item relative to NOW (negative ``due_in_days`` means overdue)."""
    return CorpusItem(
        id=item_id,
        english=english or f"phrase {item_id}",
        chinese=f"短语 {item_id}",
        mastery_level=mastery,
        next_review_date=NOW + int(due_in_days * MS_PER_DAY),
        added_at=NOW - MS_PER_DAY,
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    """Seeded random source for deterministic selection."""
    return random.Random(42)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def cache(clock):
    return ContentCache(clock=clock)


@pytest.fixture
def corpus_store(tmp_path):
    return CorpusStore(tmp_path / "corpus.json")


@pytest.fixture
def sample_corpus():
    """Five items: two due (levels 1 and 3), three scheduled later."""
    return [
        make_item("due-1", mastery=1, due_in_days=-1),
        make_item("due-3", mastery=3, due_in_days=0),
        make_item("later-0", mastery=0, due_in_days=2),
        make_item("later-2", mastery=2, due_in_days=5),
        make_item("later-4", mastery=4, due_in_days=10),
    ]
