"""
Agglomerative hierarchical clustering implementation for exprmath.

This module builds a dendrogram bottom-up from a distance matrix by
repeatedly merging the closest pair of clusters and updating the remaining
inter-cluster distances with the Lance-Williams recurrence of the chosen
linkage. The tree can then be cut into a flat clustering by cluster count
or by merge height.
"""

import logging
import math
import numpy as np
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from scipy.cluster.hierarchy import DisjointSet

from exprmath.math.clusters import ClusterAssignment
from exprmath.math.distance import DistanceMatrix
from exprmath.math.errors import (
    DegenerateInputError, InvalidInputError, InvalidParameterError,
    UnsupportedLinkageError
)
from exprmath.utils.general import check_positive_int, lowest_index_order

logger = logging.getLogger(__name__)

LINKAGES = ('complete', 'average', 'ward', 'single', 'centroid', 'median')

# These linkages run their recurrence on squared Euclidean distances
SQUARED_LINKAGES = ('centroid', 'median')

# Relative tolerance below which a drop in merge height is round-off
INVERSION_RTOL = 1e-12


class DendrogramNode:
    """
    A node in the merge tree: either a leaf wrapping one sample index,
    or an internal node with two children and a merge height.
    """

    def __init__(self,
                 id: int,
                 left: Optional['DendrogramNode'] = None,
                 right: Optional['DendrogramNode'] = None,
                 height: float = 0.0):
        self.id = id
        self.left = left
        self.right = right
        self.height = float(height)
        if left is None:
            self.count = 1
        else:
            self.count = left.count + right.count

    @property
    def is_leaf(self) -> bool:
        return self.left is None

    @property
    def index(self) -> Optional[int]:
        """Sample index for a leaf, None for an internal node."""
        return self.id if self.is_leaf else None

    def leaves(self) -> List[int]:
        """Sample indices under this node, in left-to-right order."""
        result = []
        stack = [self]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                result.append(node.id)
            else:
                stack.append(node.right)
                stack.append(node.left)
        return result

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the subtree to nested dictionaries.

        Returns:
            {'index': i} for a leaf, otherwise
            {'id', 'height', 'count', 'left', 'right'}
        """
        if self.is_leaf:
            return {'index': self.id}
        return {
            'id': self.id,
            'height': self.height,
            'count': self.count,
            'left': self.left.to_dict(),
            'right': self.right.to_dict()
        }

    def __repr__(self) -> str:
        if self.is_leaf:
            return f"DendrogramNode(leaf={self.id})"
        return f"DendrogramNode(id={self.id}, height={self.height:.4g}, count={self.count})"


class Dendrogram:
    """
    Result of agglomerative clustering.

    Attributes:
        root: Root node of the merge tree
        merges: Internal nodes in the order they were created
        linkage: Name of the linkage rule used
        inversions: Merge steps whose height is below the previous merge's
    """

    def __init__(self,
                 root: DendrogramNode,
                 merges: List[DendrogramNode],
                 n_leaves: int,
                 linkage: str,
                 inversions: Sequence[int]):
        self.root = root
        self.merges = list(merges)
        self.n_leaves = n_leaves
        self.linkage = linkage
        self.inversions = list(inversions)

    @property
    def has_inversions(self) -> bool:
        return bool(self.inversions)

    @property
    def heights(self) -> np.ndarray:
        """Merge heights in merge order."""
        return np.array([node.height for node in self.merges])

    def leaf_order(self) -> List[int]:
        """Sample indices in dendrogram (plotting) order."""
        return self.root.leaves()

    def to_linkage_matrix(self) -> np.ndarray:
        """
        Convert the merges to a scipy-compatible linkage matrix.

        Returns:
            Array of shape (n-1, 4): [left id, right id, height, leaf count]
        """
        return np.array(
            [[node.left.id, node.right.id, node.height, node.count] for node in self.merges],
            dtype=float
        ).reshape(-1, 4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'linkage': self.linkage,
            'n_leaves': self.n_leaves,
            'merges': self.to_linkage_matrix().tolist(),
            'leaf_order': self.leaf_order(),
            'inversions': self.inversions
        }

    def __repr__(self) -> str:
        return (f"Dendrogram(n_leaves={self.n_leaves}, linkage={self.linkage}, "
                f"inversions={len(self.inversions)})")


def lance_williams(linkage: str,
                   d_ki: np.ndarray,
                   d_kj: np.ndarray,
                   d_ij: float,
                   n_i: int,
                   n_j: int,
                   n_k: np.ndarray) -> np.ndarray:
    """
    Distance from clusters k to the union of clusters i and j.

    Args:
        linkage: Linkage rule name
        d_ki: Distances from each cluster k to cluster i
        d_kj: Distances from each cluster k to cluster j
        d_ij: Distance between clusters i and j
        n_i: Size of cluster i
        n_j: Size of cluster j
        n_k: Sizes of the clusters k

    Returns:
        Updated distances, one per cluster k
    """
    if linkage == 'single':
        return np.minimum(d_ki, d_kj)

    if linkage == 'complete':
        return np.maximum(d_ki, d_kj)

    if linkage == 'average':
        return (n_i * d_ki + n_j * d_kj) / (n_i + n_j)

    if linkage == 'ward':
        total = n_i + n_j + n_k
        sq = ((n_i + n_k) * d_ki ** 2 + (n_j + n_k) * d_kj ** 2 - n_k * d_ij ** 2) / total
        return np.sqrt(np.maximum(sq, 0.0))

    if linkage == 'centroid':
        n_ij = n_i + n_j
        sq = (n_i * d_ki + n_j * d_kj) / n_ij - n_i * n_j * d_ij / (n_ij * n_ij)
        return np.maximum(sq, 0.0)

    if linkage == 'median':
        return np.maximum(d_ki / 2.0 + d_kj / 2.0 - d_ij / 4.0, 0.0)

    raise UnsupportedLinkageError(f"Unsupported linkage: {linkage}")


def _closest_pair(work: np.ndarray, min_leaf: np.ndarray) -> Tuple[int, int, float]:
    """
    Find the closest pair of active clusters.

    Ties are broken by the lowest (smaller, larger) pair of the clusters'
    minimum leaf indices.

    Args:
        work: Working distance matrix; inactive rows/cols and the diagonal are inf
        min_leaf: Smallest leaf index in each slot's cluster

    Returns:
        Tuple of (slot a, slot b, distance)
    """
    d_min = np.min(work)
    rows, cols = np.nonzero(work == d_min)

    best = None
    best_key = None
    for a, b in zip(rows, cols):
        if a >= b:
            continue
        key = tuple(sorted((min_leaf[a], min_leaf[b])))
        if best_key is None or key < best_key:
            best_key = key
            best = (int(a), int(b))

    return best[0], best[1], float(d_min)


def hierarchical_cluster(distances: Union[DistanceMatrix, Any],
                         linkage: str = 'complete') -> Dendrogram:
    """
    Build a dendrogram by agglomerative clustering.

    Args:
        distances: DistanceMatrix, or a square array of pairwise distances
        linkage: 'complete', 'average', 'ward', 'single', 'centroid' or 'median'

    Returns:
        Dendrogram with exactly n-1 merges

    Raises:
        UnsupportedLinkageError: for unknown linkage names
        InvalidInputError: if there are fewer than 2 samples or the matrix
            is not a valid distance matrix
        DegenerateInputError: if every pairwise distance is zero
    """
    if linkage not in LINKAGES:
        raise UnsupportedLinkageError(
            f"Unsupported linkage: {linkage} (expected one of {list(LINKAGES)})")

    if not isinstance(distances, DistanceMatrix):
        distances = DistanceMatrix.from_array(distances)

    n = distances.n
    if n < 2:
        raise InvalidInputError(f"Need at least 2 samples to cluster, got {n}")

    work = distances.values
    if not np.any(work > 0):
        raise DegenerateInputError("All pairwise distances are zero")

    squared = linkage in SQUARED_LINKAGES
    if squared:
        work = work ** 2

    np.fill_diagonal(work, np.inf)

    nodes: List[Optional[DendrogramNode]] = [DendrogramNode(i) for i in range(n)]
    sizes = np.ones(n, dtype=float)
    min_leaf = np.arange(n)
    active = np.ones(n, dtype=bool)

    merges = []
    inversions = []
    last_height = -np.inf

    for step in range(n - 1):
        a, b, d_ab = _closest_pair(work, min_leaf)
        height = math.sqrt(d_ab) if squared else d_ab

        if height < last_height - INVERSION_RTOL * max(1.0, abs(last_height)):
            inversions.append(step)
            logger.warning(f"Linkage inversion at merge {step} ({linkage}): "
                           f"height {height:.6g} < previous {last_height:.6g}")
        last_height = height

        left, right = sorted((nodes[a], nodes[b]), key=lambda node: node.id)
        node = DendrogramNode(n + step, left, right, height)
        merges.append(node)

        # Update distances from the other active clusters to the merged one (slot a)
        active[b] = False
        others = np.flatnonzero(active)
        others = others[others != a]
        if len(others):
            updated = lance_williams(linkage, work[others, a], work[others, b], d_ab,
                                     sizes[a], sizes[b], sizes[others])
            work[others, a] = updated
            work[a, others] = updated

        work[b, :] = np.inf
        work[:, b] = np.inf

        nodes[a] = node
        nodes[b] = None
        sizes[a] += sizes[b]
        min_leaf[a] = min(min_leaf[a], min_leaf[b])

        logger.debug(f"Merge {step}: {left.id} + {right.id} at height {height:.6g}")

    logger.info(f"Built {linkage} dendrogram over {n} samples "
                f"({len(inversions)} inversion(s))")

    return Dendrogram(merges[-1], merges, n, linkage, inversions)


def _assignment_from_merges(dendrogram: Dendrogram,
                            merges: Sequence[DendrogramNode]) -> ClusterAssignment:
    """
    Join the leaves under each given merge and label the components.

    Labels are 1..m, numbered by each component's smallest leaf index.
    """
    components = DisjointSet(range(dendrogram.n_leaves))
    for node in merges:
        leaves = node.leaves()
        for leaf in leaves[1:]:
            components.merge(leaves[0], leaf)

    roots = [components[i] for i in range(dendrogram.n_leaves)]
    return ClusterAssignment(lowest_index_order(roots))


def cut_by_count(dendrogram: Dendrogram, m: int) -> ClusterAssignment:
    """
    Cut the dendrogram into exactly m clusters.

    The last m-1 merges are undone; with monotone heights these are the
    m-1 highest merges.

    Args:
        dendrogram: Result of hierarchical_cluster
        m: Number of clusters (1 <= m <= n)

    Returns:
        ClusterAssignment with labels 1..m
    """
    m = check_positive_int(m, 'm', maximum=dendrogram.n_leaves)
    return _assignment_from_merges(dendrogram, dendrogram.merges[:dendrogram.n_leaves - m])


def cut_by_height(dendrogram: Dendrogram, h: float) -> ClusterAssignment:
    """
    Cut the dendrogram at height h.

    Clusters are the connected components of leaves joined by merges with
    height <= h.

    Args:
        dendrogram: Result of hierarchical_cluster
        h: Non-negative cut height

    Returns:
        ClusterAssignment with labels 1..m
    """
    try:
        h = float(h)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"Cut height must be a number, got {h!r}") from e

    if not np.isfinite(h) or h < 0:
        raise InvalidParameterError(f"Cut height must be finite and >= 0, got {h}")

    return _assignment_from_merges(
        dendrogram, [node for node in dendrogram.merges if node.height <= h])
