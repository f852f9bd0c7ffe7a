import pytest

from ensemble_router.domain.context.context_ranker import (
    MemoryRanker,
    cosine_similarity,
    jaccard_similarity,
    keyword_overlap,
)
from ensemble_router.domain.errors import ConfigurationFault, EmbeddingDimensionMismatch


VECTORS = [
    [1.0, 2.0, 3.0],
    [-0.5, 0.25, 4.0],
    [1e-3, 7.0, -2.0],
    [0.1, 0.1, 0.1],
]


@pytest.mark.parametrize("a", VECTORS)
@pytest.mark.parametrize("b", VECTORS)
def test_cosine_is_symmetric(a, b):
    assert cosine_similarity(a, b) == cosine_similarity(b, a)


@pytest.mark.parametrize("a", VECTORS)
def test_cosine_of_vector_with_itself_is_one(a):
    assert cosine_similarity(a, a) == pytest.approx(1.0)


def test_cosine_of_empty_or_zero_vectors_is_zero():
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([], [1.0, 2.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


def test_cosine_opposite_and_orthogonal():
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == 0.0


def test_cosine_dimension_mismatch_is_a_configuration_fault():
    with pytest.raises(EmbeddingDimensionMismatch) as exc_info:
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])
    assert isinstance(exc_info.value, ConfigurationFault)


def test_ranker_blends_similarity_and_importance(memory_factory):
    ranker = MemoryRanker(similarity_weight=0.7, importance_weight=0.3)
    memory = memory_factory(embedding=[1.0, 0.0, 0.0, 0.0], importance=0.5)

    scored = ranker.score([1.0, 0.0, 0.0, 0.0], memory)

    assert scored.similarity == pytest.approx(1.0)
    assert scored.score == pytest.approx(0.7 + 0.15)


def test_ranker_names_the_memory_on_dimension_mismatch(memory_factory):
    memory = memory_factory(id="mem_bad", embedding=[1.0, 0.0, 0.0, 0.0])

    with pytest.raises(EmbeddingDimensionMismatch) as exc_info:
        MemoryRanker().score([1.0, 0.0], memory)
    assert exc_info.value.memory_id == "mem_bad"


def test_ranker_orders_ties_by_date_then_creation_then_id(memory_factory):
    from datetime import date, datetime, timezone

    same = dict(embedding=[0.0, 1.0, 0.0, 0.0], importance=0.5)
    older = memory_factory(id="mem_c", occurred_on=date(2024, 6, 1), **same)
    newer = memory_factory(id="mem_d", occurred_on=date(2024, 6, 10), **same)
    created = datetime(2024, 6, 10, 9, 0, tzinfo=timezone.utc)
    twin_b = memory_factory(id="mem_b", occurred_on=date(2024, 6, 5), created_at=created, **same)
    twin_a = memory_factory(id="mem_a", occurred_on=date(2024, 6, 5), created_at=created, **same)

    ranked = MemoryRanker().rank([1.0, 0.0, 0.0, 0.0], [older, twin_b, newer, twin_a])

    assert [s.memory.id for s in ranked] == ["mem_d", "mem_a", "mem_b", "mem_c"]


def test_keyword_overlap_and_jaccard():
    assert keyword_overlap("", "anything") == 0.0
    assert keyword_overlap("health", "my health matters") == pytest.approx(1.0)
    assert keyword_overlap("sleep health", "health only") == pytest.approx(0.5)
    assert jaccard_similarity(set(), set()) == 0.0
    assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
