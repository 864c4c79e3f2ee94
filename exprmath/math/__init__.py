"""
Numeric core of exprmath: PCA, k-means, distances and hierarchical clustering.
"""
