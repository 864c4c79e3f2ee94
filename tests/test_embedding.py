"""
Tests for the UMAP embedding wrapper.
"""

import pytest
import numpy as np
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exprmath.math.embedding import umap_embedding
from exprmath.math.errors import InvalidInputError, InvalidParameterError


@pytest.fixture
def two_groups():
    rng = np.random.RandomState(5)
    return np.vstack([
        rng.randn(20, 6),
        rng.randn(20, 6) + 8.0
    ])


class TestValidation:
    """Input checks run before UMAP is called."""

    def test_too_few_samples(self):
        with pytest.raises(InvalidInputError):
            umap_embedding(np.random.RandomState(0).randn(3, 4), n_components=2)

    def test_non_finite(self):
        data = np.ones((10, 3))
        data[2, 1] = np.inf
        with pytest.raises(InvalidInputError):
            umap_embedding(data)

    def test_invalid_parameters(self, two_groups):
        with pytest.raises(InvalidParameterError):
            umap_embedding(two_groups, n_components=0)

        with pytest.raises(InvalidParameterError):
            umap_embedding(two_groups, n_neighbors=1.5)

    def test_seed_range(self, two_groups):
        with pytest.raises(InvalidParameterError):
            umap_embedding(two_groups, seed=-1)

        with pytest.raises(InvalidParameterError):
            umap_embedding(two_groups, seed=2 ** 32)

        with pytest.raises(InvalidParameterError):
            umap_embedding(two_groups, seed=True)


class TestUMAP:
    """Tests that run umap-learn."""

    def test_shape(self, two_groups):
        embedding = umap_embedding(two_groups, n_components=2, seed=42)

        assert embedding.shape == (40, 2)
        assert np.all(np.isfinite(embedding))

    def test_seeded_runs_repeat(self, two_groups):
        first = umap_embedding(two_groups, seed=42)
        second = umap_embedding(two_groups, seed=42)

        assert np.allclose(first, second)

    def test_small_input_shrinks_neighborhood(self, two_groups):
        """Fewer samples than n_neighbors still embeds."""
        embedding = umap_embedding(two_groups[:8], n_neighbors=15, seed=1)

        assert embedding.shape == (8, 2)
