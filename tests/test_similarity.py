import math

import pytest

from core.schemas import VectorRecord
from infra.utils.similarity import cosine_similarity, search


def _record(text, vector):
    return VectorRecord(project_id="p", chapter_id="c", paragraph_index=0, text=text, vector=vector)


def test_cosine_similarity_basic_values():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
    assert cosine_similarity([1, 1], [1, 0]) == pytest.approx(1 / math.sqrt(2))


@pytest.mark.parametrize("a,b", [
    ([], []),
    ([1, 2], [1, 2, 3]),
    ([0, 0], [1, 1]),
    ([1, 1], [0, 0]),
])
def test_cosine_similarity_degenerate_inputs_are_zero(a, b):
    assert cosine_similarity(a, b) == 0.0


def test_search_filters_sorts_and_truncates():
    candidates = [
        _record("A", [1, 0]),
        _record("B", [0.6, 0.8]),
        _record("C", [0, 1]),
    ]

    results = search([1, 0], candidates, top_k=2, threshold=0.5)

    assert [r.text for r in results] == ["A", "B"]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[1].similarity == pytest.approx(0.6)


def test_search_keeps_original_order_for_ties_and_skips_empty_vectors():
    candidates = [
        _record("first", [2, 0]),
        _record("empty", []),
        _record("second", [1, 0]),
    ]

    results = search([1, 0], candidates, top_k=5, threshold=0.0)

    assert [r.text for r in results] == ["first", "second"]


def test_search_with_no_query_or_candidates_returns_nothing():
    assert search([], [_record("A", [1, 0])]) == []
    assert search([1, 0], []) == []


def test_search_top_k_zero_returns_nothing():
    assert search([1, 0], [_record("A", [1, 0])], top_k=0) == []


def test_search_two_dimensional_scenario():
    candidates = [_record("same", [1, 0]), _record("orthogonal", [0, 1]), _record("close", [0.9, 0.1])]

    results = search([1, 0], candidates, top_k=2, threshold=0.5)

    assert [r.record.text for r in results] == ["same", "close"]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[1].similarity == pytest.approx(0.994, abs=1e-3)
