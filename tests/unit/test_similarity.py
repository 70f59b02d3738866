"""Unit tests for cosine similarity and top-k ranking."""

from __future__ import annotations

import math

import pytest

from src.utils.similarity import cosine_scores, cosine_similarity, rank_top_k


class TestCosineSimilarity:
    def test_identical_vectors(self) -> None:
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self) -> None:
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_zero_norm_scores_zero(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_length_mismatch_is_nan(self) -> None:
        assert math.isnan(cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]))


class TestCosineScores:
    def test_scores_in_input_order(self) -> None:
        scores = cosine_scores([1.0, 0.0], [[0.0, 1.0], [1.0, 0.0], [0.0, 0.0]])
        assert scores == pytest.approx([0.0, 1.0, 0.0])

    def test_empty_vectors(self) -> None:
        assert cosine_scores([1.0], []) == []

    def test_ragged_vectors_fall_back_per_vector(self) -> None:
        scores = cosine_scores([1.0, 0.0], [[1.0, 0.0], [1.0, 0.0, 0.0]])
        assert scores[0] == pytest.approx(1.0)
        assert math.isnan(scores[1])


class TestRankTopK:
    def test_best_first(self) -> None:
        vectors = [[0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]
        ranked = rank_top_k([1.0, 0.0], vectors, 3)
        assert [index for index, _ in ranked] == [1, 2, 0]

    def test_truncates_to_k(self) -> None:
        vectors = [[1.0, 0.0]] * 5
        assert len(rank_top_k([1.0, 0.0], vectors, 2)) == 2

    def test_ties_keep_ingestion_order(self) -> None:
        vectors = [[1.0, 0.0], [2.0, 0.0], [3.0, 0.0]]
        ranked = rank_top_k([1.0, 0.0], vectors, 3)
        assert [index for index, _ in ranked] == [0, 1, 2]

    def test_k_larger_than_population(self) -> None:
        assert len(rank_top_k([1.0], [[1.0], [2.0]], 10)) == 2

    @pytest.mark.parametrize("k", [0, -1])
    def test_non_positive_k(self, k: int) -> None:
        assert rank_top_k([1.0], [[1.0]], k) == []

    def test_nan_scores_dropped(self) -> None:
        ranked = rank_top_k([1.0, 0.0], [[1.0, 0.0, 0.0], [0.5, 0.5]], 5)
        assert [index for index, _ in ranked] == [1]
