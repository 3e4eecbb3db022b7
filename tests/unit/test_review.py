"""
Unit tests for multi-phrase scenario review.
"""

import asyncio
import random

import pytest
import pytest_asyncio

from conftest import make_item
from yuliao.core.content import ReviewFeedback, scenario_from_cache
from yuliao.delivery.content_cache import review_cache_key
from yuliao.delivery.review import ReviewSession
from yuliao.delivery.scheduler import SchedulingPolicy
from yuliao.delivery.session import SessionState

TOPIC = "Hotel Check-in"


class FakeFeedback:
    async def review_feedback(self, answer, reference):
        return ReviewFeedback(score=90, feedback="Nice", punctuated_transcript=answer)


@pytest.fixture
def corpus(corpus_store):
    items = [make_item(f"r{n}", due_in_days=-1) for n in range(8)]
    corpus_store.save(items)
    return items


def build_review(corpus_store, generator, cache, clock, target=3, topic=TOPIC):
    return ReviewSession(
        store=corpus_store,
        generator=generator,
        cache=cache,
        topic=topic,
        target=target,
        policy=SchedulingPolicy(rng=random.Random(11)),
        feedback_provider=FakeFeedback(),
        clock=clock,
    )


@pytest_asyncio.fixture
async def review(corpus, corpus_store, generator, cache, clock):
    session = build_review(corpus_store, generator, cache, clock)
    yield session
    session.close()


class TestStart:
    @pytest.mark.asyncio
    async def test_generates_scenario_with_target_phrases(self, review, generator, cache):
        state = await review.start()

        assert state == SessionState.ACTIVE
        assert len(review.phrases) == 3
        assert generator.calls[0] == (tuple(review.phrases), TOPIC, False)
        cached = scenario_from_cache(cache.get(review_cache_key(), TOPIC))
        assert cached.english_reference == review.scenario.english_reference

    @pytest.mark.asyncio
    async def test_resumes_cached_scenario(self, review, corpus_store, generator, cache, clock):
        await review.start()
        await review.wait_for_prefetch()
        review.close()
        generator.calls.clear()

        resumed = build_review(corpus_store, generator, cache, clock)
        state = await resumed.start()

        assert state == SessionState.ACTIVE
        assert resumed.phrases == review.phrases
        assert generator.calls == []
        resumed.close()

    @pytest.mark.asyncio
    async def test_cached_scenario_with_other_size_regenerates(self, review, corpus_store, generator, cache, clock):
        await review.start()
        review.close()
        generator.calls.clear()

        bigger = build_review(corpus_store, generator, cache, clock, target=4)
        await bigger.start()

        assert len(generator.calls[0][0]) == 4
        bigger.close()

    @pytest.mark.asyncio
    async def test_resumes_cached_scenario_with_default_count(self, corpus, corpus_store, generator, cache, clock):
        first = build_review(corpus_store, generator, cache, clock, target=0)
        await first.start()
        await first.wait_for_prefetch()
        first.close()
        generator.calls.clear()

        resumed = build_review(corpus_store, generator, cache, clock, target=0)
        state = await resumed.start()

        assert state == SessionState.ACTIVE
        assert len(resumed.phrases) == 5
        assert generator.calls == []
        resumed.close()

    @pytest.mark.asyncio
    async def test_empty_corpus_is_error(self, corpus_store, generator, cache, clock):
        session = build_review(corpus_store, generator, cache, clock)

        assert await session.start() == SessionState.ERROR
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_generation_failure_is_error(self, review, generator, corpus):
        generator.fail_phrases = {item.english for item in corpus}

        assert await review.start() == SessionState.ERROR
        assert review.last_error is not None


class TestNextLevel:
    @pytest.mark.asyncio
    async def test_uses_prefetched_level(self, review, generator):
        await review.start()
        await review.wait_for_prefetch()
        prefetched = review.next_level_cache
        calls = len(generator.calls)

        await review.next_level()

        assert review.scenario == prefetched.scenario
        assert review.level == 1
        # Only the prefetch for the following level was requested
        await review.wait_for_prefetch()
        assert len(generator.calls) == calls + 1

    @pytest.mark.asyncio
    async def test_prefetch_for_old_topic_is_ignored(self, review, generator):
        await review.start()
        await review.wait_for_prefetch()
        review.topic = "Restaurant"

        await review.next_level()

        assert review.scenario.topic == "Restaurant"

    @pytest.mark.asyncio
    async def test_single_flight_prefetch(self, review, generator):
        await review.start()
        await review.wait_for_prefetch()
        generator.gate = asyncio.Event()

        first = asyncio.create_task(review.prefetch_next_level())
        await asyncio.sleep(0)
        second = await review.prefetch_next_level()
        generator.gate.set()

        assert second is False
        assert await first is True


class TestSettings:
    @pytest.mark.asyncio
    async def test_change_settings_regenerates(self, review, generator, cache):
        await review.start()

        await review.change_settings(topic="Airport", target=2)

        assert review.topic == "Airport"
        assert len(review.phrases) == 2
        assert cache.get(review_cache_key(), "Airport") is not None
        assert cache.get(review_cache_key(), TOPIC) is None

    @pytest.mark.asyncio
    async def test_change_settings_prefetches_for_new_topic(self, review, generator):
        await review.start()
        generator.gate = asyncio.Event()
        await asyncio.sleep(0)
        assert review.guard.in_flight
        generator.gate = None

        await review.change_settings(topic="Airport")
        await review.wait_for_prefetch()

        assert not review.guard.in_flight
        assert review.next_level_cache is not None
        assert review.next_level_cache.topic == "Airport"

    @pytest.mark.asyncio
    async def test_unchanged_settings_keep_scenario(self, review, generator):
        await review.start()
        calls = len(generator.calls)

        await review.change_settings(topic=TOPIC, target=3)

        assert len(generator.calls) == calls


class TestFeedback:
    @pytest.mark.asyncio
    async def test_feedback(self, review):
        await review.start()

        feedback = await review.feedback("I checked in.")

        assert feedback.score == 90
        assert feedback.punctuated_transcript == "I checked in."
        assert review.state == SessionState.REVIEWING

    @pytest.mark.asyncio
    async def test_feedback_without_scenario(self, review):
        with pytest.raises(RuntimeError):
            await review.feedback("hello")
