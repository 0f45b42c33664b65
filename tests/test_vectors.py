"""Tests for vector helpers."""

from __future__ import annotations

import pytest

from callsight.vectors import (
    content_hash_id,
    cosine_similarity,
    fit_vector_dimension,
    placeholder_vector,
)


class TestFitVectorDimension:
    def test_truncates_long_embedding_to_index_dimension(self):
        vector = [float(index) for index in range(3072)]
        fitted = fit_vector_dimension(vector, 1024)
        assert len(fitted) == 1024
        assert fitted == vector[:1024]

    def test_pads_short_vector_with_zeros(self):
        assert fit_vector_dimension([1.0, 2.0], 5) == [1.0, 2.0, 0.0, 0.0, 0.0]

    def test_matching_length_is_unchanged(self):
        vector = [0.1, 0.2, 0.3]
        assert fit_vector_dimension(vector, len(vector)) == vector

    @pytest.mark.parametrize("dimension", [None, 0, -4])
    def test_unknown_dimension_leaves_vector_unchanged(self, dimension):
        assert fit_vector_dimension([1.0, 2.0, 3.0], dimension) == [1.0, 2.0, 3.0]

    @pytest.mark.parametrize("dimension", [1, 2, 3, 7, 64])
    def test_result_always_has_requested_length(self, dimension):
        vector = [0.5, -0.5, 0.25]
        fitted = fit_vector_dimension(vector, dimension)
        assert len(fitted) == dimension
        shared = min(dimension, len(vector))
        assert fitted[:shared] == vector[:shared]
        assert all(value == 0.0 for value in fitted[shared:])

    def test_does_not_mutate_input(self):
        vector = [1.0, 2.0, 3.0]
        fit_vector_dimension(vector, 1)
        fit_vector_dimension(vector, 6)
        assert vector == [1.0, 2.0, 3.0]


class TestCosineSimilarity:
    def test_parallel_vectors(self):
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)

    def test_zero_vector_is_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_shape_mismatch_is_zero(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0


def test_content_hash_id_is_stable_sha1():
    first = content_hash_id("Hello, I need help with my order.")
    assert first == content_hash_id("Hello, I need help with my order.")
    assert first != content_hash_id("Hello, I need help with my refund.")
    assert len(first) == 40


def test_placeholder_vector_matches_dimension():
    assert placeholder_vector(4) == [0.0, 0.0, 0.0, 0.0]
