import asyncio
from datetime import date, timedelta

import pytest

from conftest import DIMENSION, TODAY, FailingStore, FakeEmbeddingProvider
from ensemble_router.domain.collaborators import MemoryStore
from ensemble_router.domain.context.context_retriever import (
    MemoryRetriever,
    build_context_summary,
    memory_reference,
    time_reference,
)
from ensemble_router.domain.context.memory.cache_memory_store import TTLCache
from ensemble_router.domain.context.memory.embedding import SafeEmbeddingProvider
from ensemble_router.domain.context.memory.vector_memory_store import InMemoryMemoryStore
from ensemble_router.domain.errors import EmbeddingDimensionMismatch

QUERY = "how is my health going"
QUERY_VECTOR = [1.0, 0.0, 0.0, 0.0]


class StaticStore(MemoryStore):
    def __init__(self, memories):
        self.memories = memories

    async def list_by_user(self, user_id, deadline=None):
        return list(self.memories)

    async def append(self, memory):
        self.memories.append(memory)


def make_retriever(store, provider=None, cache=None, **kwargs):
    provider = provider or FakeEmbeddingProvider(vectors={QUERY: QUERY_VECTOR})
    return MemoryRetriever(store, SafeEmbeddingProvider(provider, DIMENSION), cache=cache, **kwargs)


def fill_store(memories):
    store = InMemoryMemoryStore(dimension=DIMENSION)

    async def append_all():
        for memory in memories:
            await store.append(memory)

    asyncio.run(append_all())
    return store


def test_empty_store_returns_empty_result():
    result = asyncio.run(make_retriever(InMemoryMemoryStore(DIMENSION)).retrieve("new-user", QUERY, today=TODAY))

    assert result.memories == []
    assert result.references == []
    assert result.patterns == []
    assert result.context_summary == ""
    assert result.confidence == 0.0
    assert result.is_empty


def test_ranks_by_blended_similarity_and_importance(memory_factory):
    similar = memory_factory("health is improving", embedding=[1.0, 0.0, 0.0, 0.0], importance=0.2)
    important = memory_factory("big career change", embedding=[0.0, 1.0, 0.0, 0.0], importance=1.0)
    partial = memory_factory("sleep and energy", embedding=[1.0, 1.0, 0.0, 0.0], importance=0.5)
    store = fill_store([important, partial, similar])

    result = asyncio.run(make_retriever(store).retrieve("user-1", QUERY, today=TODAY))

    # 0.7 * 1.0 + 0.06, 0.7 * 0.707 + 0.15, 0.0 + 0.3
    assert [m.content for m in result.memories] == [
        "health is improving", "sleep and energy", "big career change"
    ]


def test_truncates_to_max_results(memory_factory):
    store = fill_store([memory_factory(f"m{i}") for i in range(8)])

    retriever = make_retriever(store, max_results=5)
    assert len(asyncio.run(retriever.retrieve("user-1", QUERY, today=TODAY)).memories) == 5
    assert len(asyncio.run(retriever.retrieve("user-1", QUERY, max_results=2, today=TODAY)).memories) == 2


@pytest.mark.parametrize("prior", [
    [],
    [dict(embedding=[0.0, 1.0, 0.0, 0.0], importance=1.0)],
    [dict(embedding=[0.9, 0.1, 0.0, 0.0], importance=1.0), dict(embedding=[0.5, 0.5, 0.5, 0.5], importance=0.9)],
    # A twin with the same perfect score from the past
    [dict(embedding=[1.0, 0.0, 0.0, 0.0], importance=1.0, occurred_on=date(2024, 1, 1))],
])
def test_perfect_new_memory_ranks_first(memory_factory, prior):
    memories = [memory_factory(f"prior {i}", **fields) for i, fields in enumerate(prior)]
    newest = memory_factory("the perfect match", embedding=list(QUERY_VECTOR), importance=1.0, occurred_on=TODAY)
    store = fill_store(memories + [newest])

    result = asyncio.run(make_retriever(store).retrieve("user-1", QUERY, today=TODAY))

    assert result.memories[0].id == newest.id


@pytest.mark.parametrize("days,expected", [
    (0, "earlier today"),
    (-3, "earlier today"),
    (1, "yesterday"),
    (2, "2 days ago"),
    (6, "6 days ago"),
    (7, "1 week ago"),
    (20, "2 weeks ago"),
    (29, "4 weeks ago"),
    (30, "1 month ago"),
    (75, "2 months ago"),
])
def test_time_reference_buckets(days, expected):
    assert time_reference(TODAY - timedelta(days=days), TODAY) == expected


def test_memory_reference_truncates_long_content(memory_factory):
    long_memory = memory_factory("x" * 80, occurred_on=TODAY - timedelta(days=1))
    short_memory = memory_factory("short note", occurred_on=TODAY)

    assert memory_reference(long_memory, TODAY) == f'yesterday you mentioned: "{"x" * 60}..."'
    assert memory_reference(short_memory, TODAY) == 'earlier today you mentioned: "short note"'


def test_confidence_is_mean_importance_with_recency_bonus(memory_factory):
    old = TODAY - timedelta(days=30)
    stale = fill_store([
        memory_factory("a", occurred_on=old, importance=0.4),
        memory_factory("b", occurred_on=old, importance=0.6),
    ])
    recent = fill_store([
        memory_factory("a", occurred_on=old, importance=0.4),
        memory_factory("b", occurred_on=TODAY - timedelta(days=7), importance=0.6),
    ])
    capped = fill_store([memory_factory("a", occurred_on=TODAY, importance=0.95)])

    assert asyncio.run(make_retriever(stale).retrieve("user-1", QUERY, today=TODAY)).confidence == pytest.approx(0.5)
    assert asyncio.run(make_retriever(recent).retrieve("user-1", QUERY, today=TODAY)).confidence == pytest.approx(0.7)
    assert asyncio.run(make_retriever(capped).retrieve("user-1", QUERY, today=TODAY)).confidence == 1.0


def test_patterns_are_deduplicated_and_bounded(memory_factory):
    store = fill_store([
        memory_factory("a", embedding=[1.0, 0.0, 0.0, 0.0], patterns_mentioned=["avoidance", "control", "doubt"]),
        memory_factory("b", embedding=[0.9, 0.1, 0.0, 0.0], patterns_mentioned=["control", "rushing", "people pleasing"]),
        memory_factory("c", embedding=[0.5, 0.5, 0.0, 0.0], patterns_mentioned=["numbing", "avoidance"]),
    ])

    result = asyncio.run(make_retriever(store).retrieve("user-1", QUERY, today=TODAY))

    assert result.patterns == ["avoidance", "control", "doubt", "rushing", "people pleasing"]


def test_context_summary_lists_themes_patterns_and_insights(memory_factory):
    memories = [
        memory_factory("a", context_tags=["work", "sleep"], breakthrough_indicators=["clarity"]),
        memory_factory("b", context_tags=["sleep", "family", "money"]),
    ]

    summary = build_context_summary(memories, ["avoidance"])

    assert summary == (
        "Recent conversation themes: work, sleep, family. "
        "Recurring patterns: avoidance. Recent insights: clarity."
    )


def test_query_embeddings_are_cached(memory_factory):
    provider = FakeEmbeddingProvider(vectors={QUERY: QUERY_VECTOR})
    retriever = make_retriever(fill_store([memory_factory("a")]), provider=provider, cache=TTLCache())

    async def scenario():
        await retriever.retrieve("user-1", QUERY, today=TODAY)
        await retriever.retrieve("user-1", QUERY, today=TODAY)

    asyncio.run(scenario())
    assert provider.calls == 1


def test_degraded_embedding_is_not_cached_and_ranks_by_importance(memory_factory):
    provider = FakeEmbeddingProvider(error=RuntimeError("embedding service down"))
    store = fill_store([
        memory_factory("minor", embedding=[1.0, 0.0, 0.0, 0.0], importance=0.2),
        memory_factory("major", embedding=[0.0, 1.0, 0.0, 0.0], importance=0.9),
    ])
    retriever = make_retriever(store, provider=provider, cache=TTLCache())

    async def scenario():
        first = await retriever.retrieve("user-1", QUERY, today=TODAY)
        await retriever.retrieve("user-1", QUERY, today=TODAY)
        return first

    result = asyncio.run(scenario())

    assert [m.content for m in result.memories] == ["major", "minor"]
    assert provider.calls == 2


def test_store_failure_degrades_to_empty_result():
    result = asyncio.run(make_retriever(FailingStore()).retrieve("user-1", QUERY, today=TODAY))

    assert result.memories == []
    assert result.confidence == 0.0


def test_stored_embedding_of_wrong_dimension_is_fatal(memory_factory):
    store = StaticStore([memory_factory("corrupt", embedding=[1.0, 0.0])])

    with pytest.raises(EmbeddingDimensionMismatch):
        asyncio.run(make_retriever(store).retrieve("user-1", QUERY, today=TODAY))
