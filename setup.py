"""
Setup script for exprmath package.
"""

from setuptools import setup, find_packages

setup(
    name="exprmath",
    version="0.1.0",
    packages=find_packages(include=["exprmath", "exprmath.*"]),
    install_requires=[
        # Core numerical dependencies
        "numpy>=1.20.0",
        "pandas>=1.3.0",
        "scipy>=1.7.0",
        "joblib>=1.1.0",

        # Embedding
        "umap-learn>=0.5.0",

        # Utilities
        "pyyaml>=6.0.0",
    ],
    extras_require={
        "tests": ["pytest>=6.0.0", "scikit-learn>=1.0.0"],
    },
    author="exprmath developers",
    description="Dimensionality reduction and clustering for gene-expression matrices",
    keywords="pca, kmeans, hierarchical clustering, gene expression",
    python_requires=">=3.8",
)
