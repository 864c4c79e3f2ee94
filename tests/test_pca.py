"""
Tests for the PCA module.
"""

import pytest
import numpy as np
import sys
import os
from sklearn.decomposition import PCA as SklearnPCA

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exprmath.math.pca import PCAResult, fix_signs, pca, pca_project_expression_matrix
from exprmath.math.named_matrix import ExpressionMatrix
from exprmath.math.errors import (
    DegenerateInputError, InvalidInputError, InvalidParameterError
)


@pytest.fixture
def random_data():
    """A 30 x 5 matrix with correlated columns."""
    rng = np.random.RandomState(7)
    base = rng.randn(30, 5)
    mixing = np.array([
        [3.0, 0.5, 0.0, 0.0, 0.0],
        [0.0, 2.0, 0.3, 0.0, 0.0],
        [0.0, 0.0, 1.0, 0.2, 0.0],
        [0.0, 0.0, 0.0, 0.5, 0.1],
        [0.0, 0.0, 0.0, 0.0, 0.2],
    ])
    return base @ mixing + 10.0


class TestFixSigns:
    """Tests for the sign normalization helper."""

    def test_largest_entry_positive(self):
        """The entry of largest magnitude in each column ends up positive."""
        vectors = np.array([
            [0.6, -0.1],
            [-0.8, 0.2],
        ])
        fixed = fix_signs(vectors)

        assert np.allclose(fixed[:, 0], [-0.6, 0.8])
        assert np.allclose(fixed[:, 1], [-0.1, 0.2])

        # Input is left untouched
        assert vectors[1, 0] == -0.8


class TestPCA:
    """Tests for the pca function."""

    def test_result_shapes(self, random_data):
        """Test the shapes of the result arrays."""
        result = pca(random_data)

        assert isinstance(result, PCAResult)
        assert result.scores.shape == (30, 5)
        assert result.rotation.shape == (5, 5)
        assert result.variances.shape == (5,)
        assert result.center.shape == (5,)
        assert result.n_components == 5

    def test_rotation_orthonormal(self, random_data):
        """Rotation columns are unit length and mutually orthogonal."""
        result = pca(random_data)
        gram = result.rotation.T @ result.rotation

        assert np.allclose(gram, np.eye(5), atol=1e-10)

    def test_variances_descending(self, random_data):
        """Component variances come out sorted, largest first."""
        result = pca(random_data)
        assert np.all(np.diff(result.variances) <= 0)

    def test_variances_sum_to_trace(self, random_data):
        """Variances sum to the trace of the covariance matrix."""
        result = pca(random_data)
        cov = np.cov(random_data, rowvar=False)

        assert np.isclose(np.sum(result.variances), np.trace(cov))
        assert np.isclose(result.total_variance, np.trace(cov))
        assert np.isclose(np.sum(result.explained_variance_ratio), 1.0)

    def test_center_is_column_mean(self, random_data):
        """The stored center is the per-column mean."""
        result = pca(random_data)
        assert np.allclose(result.center, np.mean(random_data, axis=0))

    def test_deterministic(self, random_data):
        """Re-running PCA gives bit-identical output."""
        first = pca(random_data)
        second = pca(random_data)

        assert np.array_equal(first.variances, second.variances)
        assert np.array_equal(first.rotation, second.rotation)
        assert np.array_equal(first.scores, second.scores)

    def test_eigh_and_svd_agree(self, random_data):
        """Both decomposition methods give the same components."""
        by_eigh = pca(random_data, method='eigh')
        by_svd = pca(random_data, method='svd')

        assert np.allclose(by_eigh.variances, by_svd.variances)
        assert np.allclose(by_eigh.rotation, by_svd.rotation, atol=1e-8)
        assert np.allclose(by_eigh.scores, by_svd.scores, atol=1e-8)

    def test_reconstruction(self, random_data):
        """Keeping every component reconstructs the centered input."""
        result = pca(random_data)
        centered = random_data - np.mean(random_data, axis=0)

        assert np.allclose(result.scores @ result.rotation.T, centered)
        assert np.allclose(result.inverse_transform(result.scores), random_data)

    def test_transform_matches_scores(self, random_data):
        """Projecting the training data reproduces the scores."""
        result = pca(random_data, n_components=2)
        assert np.allclose(result.transform(random_data), result.scores)

    def test_matches_sklearn(self, random_data):
        """Explained variance agrees with scikit-learn."""
        ours = pca(random_data, n_components=3)
        theirs = SklearnPCA(n_components=3).fit(random_data)

        assert np.allclose(ours.variances, theirs.explained_variance_)
        assert np.allclose(ours.explained_variance_ratio, theirs.explained_variance_ratio_)
        # Components agree up to sign
        for i in range(3):
            assert np.isclose(abs(np.dot(ours.rotation[:, i], theirs.components_[i])), 1.0)

    def test_truncated_ratio_uses_total_variance(self, random_data):
        """Ratios of a truncated fit are fractions of the full variance."""
        full = pca(random_data)
        truncated = pca(random_data, n_components=2)

        assert np.allclose(truncated.explained_variance_ratio,
                           full.explained_variance_ratio[:2])
        assert np.sum(truncated.explained_variance_ratio) < 1.0

    def test_zero_variance_column(self):
        """A constant column contributes nothing; the informative one gets everything."""
        data = np.array([
            [1.0, 0.0],
            [1.0, 1.0],
            [1.0, 2.0],
            [1.0, 5.0]
        ])
        result = pca(data)

        assert np.isclose(result.explained_variance_ratio[0], 1.0)
        assert np.isclose(result.explained_variance_ratio[1], 0.0, atol=1e-12)
        assert np.allclose(np.abs(result.rotation[:, 0]), [0.0, 1.0])

    def test_more_features_than_samples(self):
        """With p > n at most n components are returned."""
        rng = np.random.RandomState(3)
        data = rng.randn(4, 10)
        result = pca(data)

        assert result.n_components == 4
        assert np.allclose(result.rotation.T @ result.rotation, np.eye(4), atol=1e-10)
        # Centered data has rank n - 1, so the last component carries no variance
        assert np.isclose(result.variances[-1], 0.0, atol=1e-10)

    def test_input_not_mutated(self, random_data):
        """PCA leaves the input untouched and does not alias it."""
        original = random_data.copy()
        result = pca(random_data)
        random_data[0, 0] = 1e6

        assert np.array_equal(original[1:], random_data[1:])
        assert np.allclose(result.center, np.mean(original, axis=0))

    def test_degenerate_input(self):
        """All-constant data has no variance to explain."""
        data = np.ones((5, 3))
        with pytest.raises(DegenerateInputError):
            pca(data)

    def test_underflowing_variance(self):
        """Rows that differ but whose variance underflows to zero are degenerate."""
        data = np.array([[0.0], [1e-170]])
        with pytest.raises(DegenerateInputError):
            pca(data)

        with pytest.raises(DegenerateInputError):
            pca(data, method='eigh')

    def test_wide_matrix_default(self):
        """Wide n << p data is decomposed without a p x p covariance."""
        rng = np.random.RandomState(21)
        data = rng.randn(20, 3000)
        result = pca(data)

        assert result.n_components == 20
        assert result.rotation.shape == (3000, 20)
        assert np.allclose(result.rotation.T @ result.rotation, np.eye(20), atol=1e-10)
        assert np.isclose(np.sum(result.variances), np.sum(np.var(data, axis=0, ddof=1)))
        assert np.allclose(result.scores @ result.rotation.T, data - np.mean(data, axis=0))

    def test_invalid_input(self):
        """Malformed matrices are rejected."""
        with pytest.raises(InvalidInputError):
            pca(np.array([[1.0, 2.0]]))

        with pytest.raises(InvalidInputError):
            pca(np.array([[1.0, np.nan], [2.0, 3.0]]))

        with pytest.raises(InvalidInputError):
            pca(np.array([[1.0, np.inf], [2.0, 3.0]]))

        with pytest.raises(InvalidInputError):
            pca([[1.0, 2.0], [3.0]])

        with pytest.raises(InvalidInputError):
            pca(np.array([1.0, 2.0, 3.0]))

    def test_invalid_parameters(self, random_data):
        """Out-of-range component counts and unknown methods are rejected."""
        with pytest.raises(InvalidParameterError):
            pca(random_data, n_components=0)

        with pytest.raises(InvalidParameterError):
            pca(random_data, n_components=6)

        with pytest.raises(InvalidParameterError):
            pca(random_data, method='power')

    def test_to_dict(self, random_data):
        """Serialized results hold plain lists."""
        result = pca(random_data, n_components=2).to_dict()

        assert len(result['scores']) == 30
        assert len(result['rotation']) == 5
        assert len(result['variances']) == 2
        assert isinstance(result['total_variance'], float)


class TestProjection:
    """Tests for PCA on an ExpressionMatrix."""

    def test_pca_project_expression_matrix(self):
        """Projections are keyed by sample id."""
        data = np.array([
            [1.0, 2.0, 3.0],
            [4.0, 5.0, 7.0],
            [7.0, 8.0, 8.0]
        ])
        emat = ExpressionMatrix(data, ['s1', 's2', 's3'], ['g1', 'g2', 'g3'])

        result, proj_dict = pca_project_expression_matrix(emat)

        assert result.n_components == 2
        assert set(proj_dict.keys()) == {'s1', 's2', 's3'}
        for sample_id, row in zip(['s1', 's2', 's3'], result.scores):
            assert np.allclose(proj_dict[sample_id], row)
