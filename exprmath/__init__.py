"""
exprmath: dimensionality reduction and clustering for expression matrices.

PCA, k-means, pairwise distances and agglomerative clustering with
pluggable linkage, plus a thin UMAP wrapper.
"""

__version__ = '0.1.0'

from exprmath.math.errors import (
    ExprMathError, InvalidInputError, DegenerateInputError, InvalidParameterError,
    UnsupportedMetricError, UnsupportedLinkageError
)
from exprmath.math.named_matrix import ExpressionMatrix
from exprmath.math.pca import PCAResult, pca
from exprmath.math.clusters import ClusterAssignment, KMeansResult, kmeans, silhouette
from exprmath.math.distance import DistanceMatrix, distance_matrix
from exprmath.math.hierarchy import (
    Dendrogram, DendrogramNode, hierarchical_cluster, cut_by_count, cut_by_height
)
from exprmath.math.embedding import umap_embedding
from exprmath.components.config import Config, ConfigManager
from exprmath.analysis import ExpressionAnalysis
from exprmath.utils.general import setup_logging
