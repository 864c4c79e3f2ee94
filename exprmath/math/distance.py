"""
Pairwise distance matrices for exprmath.

Distances between the rows of a samples x features matrix, computed with
scipy and stored in square form for the hierarchical clustering code.
"""

import numpy as np
from typing import Any, Dict
from scipy.spatial.distance import pdist, squareform

from exprmath.math.errors import InvalidInputError, UnsupportedMetricError
from exprmath.utils.general import as_matrix

# Metric names accepted by distance_matrix, mapped to scipy's names
METRICS = {
    'euclidean': 'euclidean',
    'manhattan': 'cityblock',
}


class DistanceMatrix:
    """
    A symmetric, non-negative n x n distance matrix with a zero diagonal.
    """

    def __init__(self, values: Any, metric: str = 'precomputed', atol: float = 1e-12):
        """
        Validate a square array of pairwise distances.

        Args:
            values: Square array of pairwise distances
            metric: Name recorded alongside the matrix
            atol: Tolerance for the symmetry check

        Raises:
            InvalidInputError: if the array is not square, finite, non-negative
                and symmetric
        """
        matrix = as_matrix(values)
        n_rows, n_cols = matrix.shape
        if n_rows != n_cols:
            raise InvalidInputError(f"Distance matrix must be square, got {n_rows}x{n_cols}")
        if np.any(matrix < 0):
            raise InvalidInputError("Distance matrix contains negative distances")
        if not np.allclose(matrix, matrix.T, rtol=0.0, atol=atol):
            raise InvalidInputError("Distance matrix is not symmetric")

        matrix = (matrix + matrix.T) / 2.0
        np.fill_diagonal(matrix, 0.0)

        self._values = matrix
        self.metric = metric

    @classmethod
    def from_array(cls, values: Any, metric: str = 'precomputed',
                   atol: float = 1e-12) -> 'DistanceMatrix':
        """
        Wrap a raw square array as a DistanceMatrix.

        Returns:
            A new DistanceMatrix (symmetrized, zero diagonal)
        """
        return cls(values, metric, atol)

    @property
    def values(self) -> np.ndarray:
        """Get a copy of the square distance matrix."""
        return self._values.copy()

    @property
    def n(self) -> int:
        return self._values.shape[0]

    def condensed(self) -> np.ndarray:
        """Upper-triangle distances in scipy's condensed layout."""
        return squareform(self._values, checks=False)

    def to_dict(self) -> Dict[str, Any]:
        return {'metric': self.metric, 'values': self._values.tolist()}

    def __getitem__(self, key):
        return self._values[key]

    def __repr__(self) -> str:
        return f"DistanceMatrix(n={self.n}, metric={self.metric})"


def distance_matrix(data: Any, metric: str = 'euclidean') -> DistanceMatrix:
    """
    Calculate the distance matrix for the rows of a matrix.

    Args:
        data: Samples x features matrix
        metric: 'euclidean' or 'manhattan'

    Returns:
        DistanceMatrix with an exactly zero diagonal

    Raises:
        UnsupportedMetricError: for unknown metric names
        InvalidInputError: for malformed input
    """
    if metric not in METRICS:
        raise UnsupportedMetricError(
            f"Unsupported metric: {metric} (expected one of {sorted(METRICS)})")

    matrix = as_matrix(data)

    if matrix.shape[0] == 1:
        return DistanceMatrix(np.zeros((1, 1)), metric)

    square = squareform(pdist(matrix, metric=METRICS[metric]))
    np.fill_diagonal(square, 0.0)

    return DistanceMatrix(square, metric)
