"""
UMAP embedding for exprmath.

UMAP itself is an external collaborator: this module only validates the
matrix, adapts the neighborhood size to small inputs and threads the seed
through to umap-learn.
"""

import logging
import time
import numpy as np
import umap
from typing import Any, Optional

from exprmath.utils.general import as_matrix, check_positive_int, check_seed

logger = logging.getLogger(__name__)


def umap_embedding(data: Any,
                   n_components: int = 2,
                   n_neighbors: int = 15,
                   min_dist: float = 0.1,
                   metric: str = 'euclidean',
                   seed: Optional[int] = None) -> np.ndarray:
    """
    Embed the rows of a matrix in a low-dimensional space using UMAP.

    Args:
        data: Samples x features matrix
        n_components: Dimension of the embedding
        n_neighbors: Size of the local neighborhood
        min_dist: Minimum distance between embedded points
        metric: Distance metric passed to UMAP
        seed: Random state for reproducible embeddings

    Returns:
        Embedding of shape (n, n_components)

    Raises:
        InvalidParameterError: for a non-positive size or an out-of-range seed
        InvalidInputError: if the matrix is malformed or has too few rows
    """
    n_components = check_positive_int(n_components, 'n_components')
    n_neighbors = check_positive_int(n_neighbors, 'n_neighbors')
    seed = check_seed(seed)
    matrix = as_matrix(data, min_rows=n_components + 2)
    n_rows = matrix.shape[0]

    if n_rows <= n_neighbors:
        adjusted = max(2, n_rows - 1)
        logger.info(f"Reducing UMAP n_neighbors from {n_neighbors} to {adjusted} "
                    f"due to small sample size")
        n_neighbors = adjusted

    logger.info(f"Projecting {n_rows} samples to {n_components}D using UMAP")
    start_time = time.time()

    reducer = umap.UMAP(
        n_components=n_components,
        n_neighbors=n_neighbors,
        min_dist=min_dist,
        metric=metric,
        random_state=seed
    )
    projection = reducer.fit_transform(matrix)

    logger.info(f"UMAP projection complete: {projection.shape}, "
                f"time: {time.time() - start_time:.2f}s")
    return np.asarray(projection, dtype=float)
