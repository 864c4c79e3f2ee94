"""
Pytest configuration and fixtures for exprmath tests.
"""

import logging
import pytest
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exprmath.components.config import ConfigManager

CONFIG_ENV_VARS = (
    'EXPR_METRIC', 'EXPR_LINKAGE', 'EXPR_PCA_METHOD', 'EXPR_K', 'EXPR_N_INIT', 'EXPR_MAX_ITER',
    'EXPR_SEED', 'EXPR_N_COMPONENTS', 'EXPR_KMEANS_COMPONENTS', 'EXPR_N_CLUSTERS',
    'EXPR_N_JOBS', 'UMAP_N_NEIGHBORS', 'UMAP_MIN_DIST', 'UMAP_METRIC', 'LOG_LEVEL'
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Run every test against default configuration and log level."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()
    logging.getLogger('exprmath').setLevel(logging.NOTSET)
