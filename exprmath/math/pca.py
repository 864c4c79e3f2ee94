"""
PCA (Principal Component Analysis) implementation for exprmath.

This module centers the expression matrix and decomposes it through the SVD
of the centered data (the default, cheap for wide n << p expression data) or
through the eigendecomposition of the p x p feature covariance matrix.
Components are ordered by explained variance and their signs are fixed, so
repeated runs on the same data give identical output.
"""

import logging
import numpy as np
from typing import Any, Dict, Optional, Tuple

from exprmath.math.errors import DegenerateInputError, InvalidParameterError
from exprmath.math.named_matrix import ExpressionMatrix
from exprmath.utils.general import as_matrix, check_positive_int

logger = logging.getLogger(__name__)

PCA_METHODS = ('svd', 'eigh')


class PCAResult:
    """
    Result of a PCA fit.

    Attributes:
        scores: Projected samples, shape (n, k)
        rotation: Loadings with orthonormal columns, shape (p, k)
        variances: Variance of each component, descending, shape (k,)
        center: Column means used for centering, shape (p,)
        total_variance: Total variance of the centered input
    """

    def __init__(self,
                 scores: np.ndarray,
                 rotation: np.ndarray,
                 variances: np.ndarray,
                 center: np.ndarray,
                 total_variance: float):
        self.scores = np.array(scores, dtype=float)
        self.rotation = np.array(rotation, dtype=float)
        self.variances = np.array(variances, dtype=float)
        self.center = np.array(center, dtype=float)
        self.total_variance = float(total_variance)

    @property
    def n_components(self) -> int:
        return self.rotation.shape[1]

    @property
    def explained_variance_ratio(self) -> np.ndarray:
        """Fraction of the total variance captured by each component."""
        return self.variances / self.total_variance

    def transform(self, data: Any) -> np.ndarray:
        """
        Project new samples onto the fitted components.

        Args:
            data: Matrix with the same number of columns as the fitted data

        Returns:
            Scores for the new samples, shape (m, k)
        """
        matrix = as_matrix(data)
        if matrix.shape[1] != self.center.shape[0]:
            raise InvalidParameterError(
                f"Expected {self.center.shape[0]} features, got {matrix.shape[1]}")
        return (matrix - self.center) @ self.rotation

    def inverse_transform(self, scores: Any) -> np.ndarray:
        """
        Map scores back into feature space (uncentered).

        Args:
            scores: Scores matrix, shape (m, k)

        Returns:
            Reconstructed samples, shape (m, p)
        """
        scores = as_matrix(scores)
        if scores.shape[1] != self.n_components:
            raise InvalidParameterError(
                f"Expected {self.n_components} components, got {scores.shape[1]}")
        return scores @ self.rotation.T + self.center

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the result to plain lists for serialization.

        Returns:
            Dictionary with scores, rotation, variances, center and ratios
        """
        return {
            'scores': self.scores.tolist(),
            'rotation': self.rotation.tolist(),
            'variances': self.variances.tolist(),
            'explained_variance_ratio': self.explained_variance_ratio.tolist(),
            'center': self.center.tolist(),
            'total_variance': self.total_variance
        }

    def __repr__(self) -> str:
        return f"PCAResult(n_components={self.n_components}, samples={self.scores.shape[0]})"


def fix_signs(vectors: np.ndarray) -> np.ndarray:
    """
    Flip each column so its entry of largest magnitude is positive.

    Eigenvectors are only defined up to sign; this makes the choice
    deterministic and independent of the decomposition routine.

    Args:
        vectors: Matrix whose columns are eigenvectors

    Returns:
        Sign-normalized copy of the matrix
    """
    vectors = vectors.copy()
    for j in range(vectors.shape[1]):
        pivot = np.argmax(np.abs(vectors[:, j]))
        if vectors[pivot, j] < 0:
            vectors[:, j] = -vectors[:, j]
    return vectors


def _eigh_components(centered: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    n_rows = centered.shape[0]
    cov = centered.T @ centered / (n_rows - 1)
    eigvals, eigvecs = np.linalg.eigh(cov)
    return eigvals, eigvecs


def _svd_components(centered: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    n_rows = centered.shape[0]
    _, singular, vt = np.linalg.svd(centered, full_matrices=False)
    return singular ** 2 / (n_rows - 1), vt.T


def pca(data: Any,
        n_components: Optional[int] = None,
        method: str = 'svd') -> PCAResult:
    """
    Fit PCA to a samples x features matrix.

    Args:
        data: Matrix with at least 2 rows and 1 column, no NaN/inf values
        n_components: Number of components to keep (defaults to min(n, p))
        method: 'svd' (SVD of the centered data) or 'eigh' (eigendecomposition
            of the p x p covariance, only sensible when p is small)

    Returns:
        PCAResult with components sorted by descending variance

    Raises:
        InvalidInputError: if the matrix is malformed or too small
        InvalidParameterError: if n_components or method is out of range
        DegenerateInputError: if the total variance is zero
    """
    matrix = as_matrix(data, min_rows=2)
    n_rows, n_cols = matrix.shape
    max_comps = min(n_rows, n_cols)

    if n_components is None:
        n_components = max_comps
    n_components = check_positive_int(n_components, 'n_components', maximum=max_comps)

    if method not in PCA_METHODS:
        raise InvalidParameterError(f"Unknown PCA method: {method}")

    if np.all(matrix == matrix[0]):
        raise DegenerateInputError("Total variance is zero: every column is constant")

    center = np.mean(matrix, axis=0)
    centered = matrix - center
    total_variance = float(np.sum(np.var(centered, axis=0, ddof=1)))

    # Rows can differ by less than the squares can resolve
    if not total_variance > 0:
        raise DegenerateInputError(f"Total variance is not positive: {total_variance}")

    if method == 'eigh':
        eigvals, eigvecs = _eigh_components(centered)
    else:
        eigvals, eigvecs = _svd_components(centered)

    # Round-off can push zero eigenvalues slightly negative
    eigvals = np.clip(eigvals, 0.0, None)

    # Stable sort keeps equal eigenvalues in their original index order
    order = np.argsort(-eigvals, kind='stable')[:n_components]
    variances = eigvals[order]
    rotation = fix_signs(eigvecs[:, order])
    scores = centered @ rotation

    logger.debug(f"PCA ({method}) on {n_rows}x{n_cols} matrix: "
                 f"top variance ratio {variances[0] / total_variance:.4f}")

    return PCAResult(scores, rotation, variances, center, total_variance)


def pca_project_expression_matrix(emat: ExpressionMatrix,
                                  n_components: int = 2,
                                  method: str = 'svd') -> Tuple[PCAResult, Dict[Any, np.ndarray]]:
    """
    Perform PCA on an ExpressionMatrix and key the projections by sample id.

    Args:
        emat: ExpressionMatrix containing the data
        n_components: Number of components to find (capped at min(n, p))
        method: Decomposition method

    Returns:
        Tuple of (pca_result, projections by sample id)
    """
    n_components = min(n_components, min(emat.shape))
    result = pca(emat.values, n_components, method)
    return result, emat.attach(list(result.scores))
