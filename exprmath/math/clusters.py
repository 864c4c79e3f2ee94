"""
K-means clustering implementation for exprmath.

This module provides Lloyd's algorithm with seeded random restarts,
deterministic recovery from empty clusters, and the silhouette coefficient
for judging the result. Restarts are independent and can run in parallel
through joblib; the best restart is picked by a deterministic reduction.
"""

import logging
import numpy as np
from typing import Any, Dict, List, Optional, Sequence
from joblib import Parallel, delayed

from exprmath.math.distance import DistanceMatrix, distance_matrix
from exprmath.math.errors import InvalidParameterError
from exprmath.math.named_matrix import ExpressionMatrix
from exprmath.utils.general import as_matrix, check_positive_int, check_seed

logger = logging.getLogger(__name__)

# Upper bound for per-restart seeds drawn from the master generator
RESTART_SEED_LIMIT = 2 ** 31 - 1


class Cluster:
    """
    Represents a cluster in K-means clustering.
    """

    def __init__(self,
                 center: np.ndarray,
                 members: Optional[List[int]] = None,
                 id: Optional[int] = None):
        """
        Initialize a cluster with a center and optional members.

        Args:
            center: The center of the cluster
            members: Indices of members belonging to the cluster
            id: Cluster label
        """
        self.center = np.array(center, dtype=float)
        self.members = [] if members is None else list(members)
        self.id = id

    def update_center(self, data: np.ndarray) -> bool:
        """
        Move the center to the mean of the cluster's members.

        Args:
            data: Data matrix containing all points

        Returns:
            False if the cluster has no members (center left unchanged)
        """
        if not self.members:
            return False
        self.center = np.mean(data[self.members], axis=0)
        return True

    def __repr__(self) -> str:
        return f"Cluster(id={self.id}, members={len(self.members)})"


class ClusterAssignment:
    """
    Mapping from sample index to a cluster label in 1..k.
    """

    def __init__(self, labels: Sequence[int]):
        self.labels = np.array(labels, dtype=int)

    @property
    def n_clusters(self) -> int:
        """Number of distinct labels in use."""
        return len(np.unique(self.labels))

    def members(self, label: int) -> List[int]:
        """Sample indices carrying the given label."""
        return np.flatnonzero(self.labels == label).tolist()

    def groups(self) -> Dict[int, List[int]]:
        """Sample indices grouped by label, in label order."""
        return {int(label): self.members(label) for label in np.unique(self.labels)}

    def partition(self) -> List[frozenset]:
        """Label-free view of the clustering: a set of frozensets of indices."""
        return sorted((frozenset(m) for m in self.groups().values()), key=min)

    def to_dict(self, sample_ids: Optional[Sequence[Any]] = None) -> Dict[Any, int]:
        """
        Convert the assignment to a dictionary.

        Args:
            sample_ids: Optional identifiers to key the labels by

        Returns:
            Dictionary mapping sample index (or id) to label
        """
        keys = range(len(self.labels)) if sample_ids is None else sample_ids
        return {key: int(label) for key, label in zip(keys, self.labels)}

    def __len__(self) -> int:
        return len(self.labels)

    def __repr__(self) -> str:
        return f"ClusterAssignment(samples={len(self.labels)}, clusters={self.n_clusters})"


class KMeansResult:
    """
    Result of a k-means fit: the best restart by inertia.
    """

    def __init__(self,
                 assignment: ClusterAssignment,
                 centroids: np.ndarray,
                 inertia: float,
                 n_iter: int,
                 converged: bool,
                 restart_inertias: Sequence[float]):
        self.assignment = assignment
        self.centroids = np.array(centroids, dtype=float)
        self.inertia = float(inertia)
        self.n_iter = n_iter
        self.converged = converged
        self.restart_inertias = list(restart_inertias)

    @property
    def labels(self) -> np.ndarray:
        return self.assignment.labels

    def clusters(self) -> List[Cluster]:
        """Build Cluster objects (label, centroid, members) from the result."""
        return [
            Cluster(self.centroids[i], self.assignment.members(i + 1), i + 1)
            for i in range(self.centroids.shape[0])
        ]

    def to_dict(self, sample_ids: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        """
        Convert the result to a dictionary format for serialization.

        Args:
            sample_ids: Optional mapping from row index to sample identifier

        Returns:
            Dictionary with clusters, assignment and fit statistics
        """
        clusters = []
        for cluster in self.clusters():
            members = cluster.members
            if sample_ids is not None:
                members = [sample_ids[idx] for idx in members]
            clusters.append({
                'id': cluster.id,
                'center': cluster.center.tolist(),
                'members': members
            })

        return {
            'clusters': clusters,
            'assignment': self.assignment.to_dict(sample_ids),
            'inertia': self.inertia,
            'n_iter': self.n_iter,
            'converged': self.converged
        }

    def __repr__(self) -> str:
        return f"KMeansResult(k={self.centroids.shape[0]}, inertia={self.inertia:.4g})"


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    """
    Calculate Euclidean distance between two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Euclidean distance
    """
    return float(np.linalg.norm(a - b))


def squared_distances(data: np.ndarray, centers: np.ndarray) -> np.ndarray:
    """
    Squared Euclidean distances from every point to every center.

    Args:
        data: Data matrix, shape (n, p)
        centers: Center matrix, shape (k, p)

    Returns:
        Matrix of squared distances, shape (n, k)
    """
    diff = data[:, np.newaxis, :] - centers[np.newaxis, :, :]
    return np.einsum('ijk,ijk->ij', diff, diff)


def init_clusters(data: np.ndarray, k: int, rng: np.random.RandomState) -> List[Cluster]:
    """
    Initialize k clusters centered on k distinct rows sampled without replacement.

    Args:
        data: Data matrix
        k: Number of clusters
        rng: Seeded random generator for this restart

    Returns:
        List of initialized clusters with ids 0..k-1
    """
    indices = rng.choice(data.shape[0], size=k, replace=False)
    return [Cluster(data[idx], [], i) for i, idx in enumerate(indices)]


def assign_points_to_clusters(data: np.ndarray, clusters: List[Cluster]) -> np.ndarray:
    """
    Assign each data point to the nearest cluster.

    Ties go to the cluster with the lowest id.

    Args:
        data: Data matrix
        clusters: List of clusters (ids 0..k-1 in list order)

    Returns:
        Array holding the index of the nearest cluster for every point
    """
    centers = np.array([cluster.center for cluster in clusters])
    nearest = np.argmin(squared_distances(data, centers), axis=1)

    for i, cluster in enumerate(clusters):
        cluster.members = np.flatnonzero(nearest == i).tolist()

    return nearest


def most_distal(data: np.ndarray,
                clusters: List[Cluster],
                exclude: Optional[set] = None) -> int:
    """
    Find the point farthest from its nearest cluster center.

    Args:
        data: Data matrix
        clusters: Clusters whose centers are considered
        exclude: Point indices that may not be chosen

    Returns:
        Index of the most distant point (lowest index on ties)
    """
    centers = np.array([cluster.center for cluster in clusters])
    min_dists = np.min(squared_distances(data, centers), axis=1)

    if exclude:
        min_dists[list(exclude)] = -1.0

    return int(np.argmax(min_dists))


def update_cluster_centers(data: np.ndarray, clusters: List[Cluster]) -> int:
    """
    Update cluster centers, re-seeding any empty cluster.

    An empty cluster's center is moved onto the data point farthest from its
    nearest non-empty center. Each point is used for at most one re-seed.

    Args:
        data: Data matrix
        clusters: List of clusters (modified in place)

    Returns:
        Number of clusters that were re-seeded
    """
    empty = [cluster for cluster in clusters if not cluster.update_center(data)]
    if not empty:
        return 0

    occupied = [cluster for cluster in clusters if cluster.members]
    used = set()
    for cluster in empty:
        idx = most_distal(data, occupied, used)
        used.add(idx)
        cluster.center = data[idx].copy()
        logger.warning(f"Re-seeded empty cluster {cluster.id} at point {idx}")

    return len(empty)


def inertia(data: np.ndarray, centers: np.ndarray, nearest: np.ndarray) -> float:
    """
    Sum of squared distances from each point to its assigned center.

    Args:
        data: Data matrix
        centers: Center matrix, shape (k, p)
        nearest: Index of the assigned center for each point

    Returns:
        Inertia value
    """
    diff = data - centers[nearest]
    return float(np.sum(diff * diff))


def kmeans_single(data: np.ndarray, k: int, max_iter: int, seed: int) -> Dict[str, Any]:
    """
    Run one restart of Lloyd's algorithm.

    Args:
        data: Data matrix
        k: Number of clusters
        max_iter: Maximum number of assignment/update iterations
        seed: Seed for this restart's initialization

    Returns:
        Dictionary with 'nearest', 'centers', 'inertia', 'n_iter' and 'converged'
    """
    rng = np.random.RandomState(seed)
    clusters = init_clusters(data, k, rng)

    nearest = None
    converged = False
    n_iter = 0

    for n_iter in range(1, max_iter + 1):
        new_nearest = assign_points_to_clusters(data, clusters)

        if nearest is not None and np.array_equal(new_nearest, nearest):
            converged = True
            break

        nearest = new_nearest
        update_cluster_centers(data, clusters)

    if not converged:
        # Centers moved after the last assignment; match points to them
        nearest = assign_points_to_clusters(data, clusters)

    centers = np.array([cluster.center for cluster in clusters])
    return {
        'nearest': nearest,
        'centers': centers,
        'inertia': inertia(data, centers, nearest),
        'n_iter': n_iter,
        'converged': converged
    }


def kmeans(data: Any,
           k: int,
           n_init: int = 10,
           max_iter: int = 300,
           seed: Optional[int] = None,
           n_jobs: Optional[int] = 1) -> KMeansResult:
    """
    Perform K-means clustering on the data.

    Args:
        data: Samples x features matrix
        k: Number of clusters (1 <= k <= n)
        n_init: Number of independent random restarts
        max_iter: Maximum number of iterations per restart
        seed: Optional seed; the same seed always gives the same result
        n_jobs: Number of joblib workers for the restarts

    Returns:
        KMeansResult for the restart with the lowest inertia

    Raises:
        InvalidParameterError: if k, n_init, max_iter or seed is out of range
        InvalidInputError: if the matrix is malformed
    """
    matrix = as_matrix(data)
    n_rows = matrix.shape[0]

    k = check_positive_int(k, 'k', maximum=n_rows)
    n_init = check_positive_int(n_init, 'n_init')
    max_iter = check_positive_int(max_iter, 'max_iter')

    seed = check_seed(seed)

    master = np.random.RandomState(seed)
    restart_seeds = master.randint(0, RESTART_SEED_LIMIT, size=n_init)

    runs = Parallel(n_jobs=n_jobs)(
        delayed(kmeans_single)(matrix, k, max_iter, int(s)) for s in restart_seeds
    )

    # min() keeps the earliest restart on ties, independent of worker order
    best_idx = min(range(n_init), key=lambda i: runs[i]['inertia'])
    best = runs[best_idx]

    logger.info(f"k-means (k={k}) best of {n_init} restart(s): inertia={best['inertia']:.6g}, "
                f"iterations={best['n_iter']}, converged={best['converged']}")

    return KMeansResult(
        assignment=ClusterAssignment(best['nearest'] + 1),
        centroids=best['centers'],
        inertia=best['inertia'],
        n_iter=best['n_iter'],
        converged=best['converged'],
        restart_inertias=[run['inertia'] for run in runs]
    )


def silhouette(data: Any,
               assignment: ClusterAssignment,
               metric: str = 'euclidean') -> float:
    """
    Calculate the mean silhouette coefficient for a clustering.

    Args:
        data: Samples x features matrix, or a precomputed DistanceMatrix
        assignment: Cluster labels for the samples
        metric: Distance metric used when data is a raw matrix

    Returns:
        Silhouette coefficient (between -1 and 1); 0.0 for a single cluster
    """
    if isinstance(data, DistanceMatrix):
        dist = data.values
    else:
        dist = distance_matrix(data, metric).values

    labels = assignment.labels
    if dist.shape[0] != len(labels):
        raise InvalidParameterError(
            f"Assignment has {len(labels)} labels for {dist.shape[0]} samples")

    groups = assignment.groups()
    if len(groups) <= 1:
        return 0.0

    silhouette_values = []
    for idx in range(len(labels)):
        own = groups[int(labels[idx])]
        if len(own) == 1:
            # Singleton cluster
            silhouette_values.append(0.0)
            continue

        a = np.sum(dist[idx, own]) / (len(own) - 1)
        b = min(np.mean(dist[idx, members])
                for label, members in groups.items() if label != labels[idx])

        if a == 0 and b == 0:
            silhouette_values.append(0.0)
        else:
            silhouette_values.append((b - a) / max(a, b))

    return float(np.mean(silhouette_values))


def cluster_expression_matrix(emat: ExpressionMatrix,
                              k: int,
                              n_init: int = 10,
                              max_iter: int = 300,
                              seed: Optional[int] = None,
                              n_jobs: Optional[int] = 1) -> Dict[str, Any]:
    """
    Cluster an ExpressionMatrix and return the result keyed by sample id.

    Args:
        emat: ExpressionMatrix to cluster
        k: Number of clusters
        n_init: Number of random restarts
        max_iter: Maximum number of iterations
        seed: Optional seed
        n_jobs: Number of joblib workers

    Returns:
        Dictionary from KMeansResult.to_dict with sample ids as keys
    """
    result = kmeans(emat.values, k, n_init, max_iter, seed, n_jobs)
    return result.to_dict(emat.sample_ids())
