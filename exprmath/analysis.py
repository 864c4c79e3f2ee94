"""
Exploratory analysis of an expression matrix.

This module ties the math components together the way an exploratory
notebook does: PCA, k-means on the leading components, a distance matrix
and dendrogram cut into flat clusters, and an optional UMAP embedding.
Sample identifiers and labels are re-attached only when results are exported.
"""

import logging
import time
import numpy as np
from copy import copy
from typing import Any, Dict, Optional, Tuple

from exprmath.components.config import Config, ConfigManager
from exprmath.math.clusters import ClusterAssignment, KMeansResult, kmeans, silhouette
from exprmath.math.distance import DistanceMatrix, distance_matrix
from exprmath.math.embedding import umap_embedding
from exprmath.math.hierarchy import Dendrogram, cut_by_count, hierarchical_cluster
from exprmath.math.named_matrix import ExpressionMatrix
from exprmath.math.pca import PCAResult, pca

logger = logging.getLogger(__name__)


class ExpressionAnalysis:
    """
    Holds an expression matrix, its configuration and derived results.
    """

    def __init__(self,
                 emat: ExpressionMatrix,
                 config: Optional[Config] = None):
        """
        Initialize an analysis.

        Args:
            emat: Validated samples x features matrix
            config: Analysis configuration (defaults to the shared config)
        """
        self.emat = emat
        self.config = config or ConfigManager.get_config()
        self.config.validate()

        # Package-wide log level from logging.level
        logging.getLogger('exprmath').setLevel(self.config.get('logging.python-level'))

        # Derived results
        self.pca: Optional[PCAResult] = None
        self.kmeans: Optional[KMeansResult] = None
        self.distances: Optional[DistanceMatrix] = None
        self.dendrogram: Optional[Dendrogram] = None
        self.hclusters: Optional[ClusterAssignment] = None
        self.embedding: Optional[np.ndarray] = None

    def run_pca(self) -> PCAResult:
        """
        Compute PCA on the full matrix.

        Returns:
            PCAResult
        """
        n_components = self.config.get('analysis.n-components')
        if n_components is not None:
            n_components = min(n_components, min(self.emat.shape))
        return pca(self.emat.values, n_components, self.config.get('analysis.pca-method'))

    def _kmeans_input(self, pca_result: Optional[PCAResult]) -> np.ndarray:
        n_pcs = self.config.get('analysis.kmeans-components')
        if n_pcs is None:
            return self.emat.values

        if pca_result is None:
            pca_result = self.run_pca()
        return pca_result.scores[:, :min(n_pcs, pca_result.n_components)]

    def run_kmeans(self, pca_result: Optional[PCAResult] = None) -> KMeansResult:
        """
        Run k-means on the leading principal components (or the raw matrix).

        Args:
            pca_result: Precomputed PCA to reuse

        Returns:
            KMeansResult
        """
        analysis = self.config.get('analysis')
        return kmeans(
            self._kmeans_input(pca_result),
            analysis['k'],
            n_init=analysis['n-init'],
            max_iter=analysis['max-iter'],
            seed=analysis['seed'],
            n_jobs=analysis['n-jobs']
        )

    def run_hierarchical(self) -> Tuple[DistanceMatrix, Dendrogram, ClusterAssignment]:
        """
        Build the dendrogram over the raw matrix and cut it.

        Returns:
            Tuple of (distances, dendrogram, flat clusters)
        """
        analysis = self.config.get('analysis')
        distances = distance_matrix(self.emat.values, analysis['metric'])
        dendrogram = hierarchical_cluster(distances, analysis['linkage'])
        n_clusters = min(analysis['n-clusters'], dendrogram.n_leaves)
        return distances, dendrogram, cut_by_count(dendrogram, n_clusters)

    def run_umap(self) -> np.ndarray:
        """
        Embed the samples with UMAP using the configured seed.

        Returns:
            Embedding of shape (n, n_components)
        """
        umap_conf = self.config.get('umap')
        return umap_embedding(
            self.emat.values,
            n_components=umap_conf['n-components'],
            n_neighbors=umap_conf['n-neighbors'],
            min_dist=umap_conf['min-dist'],
            metric=umap_conf['metric'],
            seed=self.config.get('analysis.seed')
        )

    def recompute(self, with_umap: bool = False) -> 'ExpressionAnalysis':
        """
        Recompute all derived data.

        Args:
            with_umap: Whether to also compute the UMAP embedding

        Returns:
            A new analysis holding the results
        """
        result = copy(self)
        start_time = time.time()
        n_samples, n_features = result.emat.shape

        logger.info(f"Analyzing {n_samples} samples x {n_features} features")

        result.pca = result.run_pca()
        result.kmeans = result.run_kmeans(result.pca)
        result.distances, result.dendrogram, result.hclusters = result.run_hierarchical()

        if with_umap:
            result.embedding = result.run_umap()

        logger.info(f"Analysis complete in {time.time() - start_time:.2f}s")
        return result

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the analysis.

        Returns:
            Dictionary with analysis summary
        """
        summary = {
            'n_samples': self.emat.shape[0],
            'n_features': self.emat.shape[1],
        }

        if self.pca is not None:
            summary['explained_variance_ratio'] = self.pca.explained_variance_ratio[:2].tolist()
        if self.kmeans is not None:
            summary['kmeans_inertia'] = self.kmeans.inertia
            if self.kmeans.assignment.n_clusters > 1:
                summary['kmeans_silhouette'] = silhouette(self.emat.values, self.kmeans.assignment)
        if self.dendrogram is not None:
            summary['linkage'] = self.dendrogram.linkage
            summary['linkage_inversions'] = len(self.dendrogram.inversions)

        return summary

    def to_dict(self) -> Dict[str, Any]:
        """
        Export results keyed by sample identifier, with labels joined back.

        Returns:
            Dictionary of plain, serializable values
        """
        sample_ids = self.emat.sample_ids()
        result = {
            'sample_ids': sample_ids,
            'labels': self.emat.attach(self.emat.label_table()['label'].tolist()),
            'config': self.config.get('analysis')
        }

        if self.pca is not None:
            result['pca'] = {
                'scores': self.emat.attach(self.pca.scores.tolist()),
                'variances': self.pca.variances.tolist(),
                'explained_variance_ratio': self.pca.explained_variance_ratio.tolist(),
                'rotation': self.pca.rotation.tolist(),
                'center': self.pca.center.tolist()
            }

        if self.kmeans is not None:
            result['kmeans'] = self.kmeans.to_dict(sample_ids)

        if self.dendrogram is not None:
            result['dendrogram'] = self.dendrogram.to_dict()
            result['dendrogram']['leaf_order'] = [sample_ids[i] for i in self.dendrogram.leaf_order()]

        if self.hclusters is not None:
            result['hierarchical_clusters'] = self.hclusters.to_dict(sample_ids)

        if self.embedding is not None:
            result['umap'] = self.emat.attach(self.embedding.tolist())

        return result
