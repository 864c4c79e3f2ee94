"""
Configuration management for exprmath.

This module provides functionality for managing analysis configuration,
including loading from environment variables, files and default values.
"""

import os
import json
import logging
import threading
from typing import Any, Dict, Optional
from copy import deepcopy
import yaml

from exprmath.math.distance import METRICS
from exprmath.math.errors import (
    InvalidParameterError, UnsupportedLinkageError, UnsupportedMetricError
)
from exprmath.math.hierarchy import LINKAGES
from exprmath.math.pca import PCA_METHODS
from exprmath.utils.general import check_seed

# Level names accepted for logging.level
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

# Set up logging
logger = logging.getLogger(__name__)


def to_int(value: Any) -> Optional[int]:
    """
    Convert a value to an integer.

    Args:
        value: Value to convert

    Returns:
        Integer value, or None if conversion failed
    """
    if value is None:
        return None

    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def to_float(value: Any) -> Optional[float]:
    """
    Convert a value to a float.

    Args:
        value: Value to convert

    Returns:
        Float value, or None if conversion failed
    """
    if value is None:
        return None

    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def deep_update(d: Dict[str, Any], u: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge u into d (in place) and return d."""
    for k, v in u.items():
        if isinstance(v, dict) and k in d and isinstance(d[k], dict):
            d[k] = deep_update(d[k], v)
        else:
            d[k] = v
    return d


class Config:
    """
    Configuration manager for exprmath analyses.
    """

    def __init__(self, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            overrides: Optional configuration overrides
        """
        self._lock = threading.RLock()
        self._config = {}
        self._initialized = False

        # Load configuration
        self.load_config(overrides)

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> None:
        """
        Load configuration from all sources.

        Args:
            overrides: Optional configuration overrides
        """
        with self._lock:
            config = self._get_defaults()
            config = self._apply_env_vars(config)

            if overrides:
                config = deep_update(deepcopy(config), overrides)

            config = self._apply_inferred_values(config)

            self._config = config
            self._initialized = True

            logger.info("Configuration loaded")

    def _get_defaults(self) -> Dict[str, Any]:
        """
        Get default configuration values.

        Returns:
            Default configuration
        """
        return {
            # Clustering and reduction
            'analysis': {
                'metric': 'euclidean',
                'linkage': 'complete',
                'k': 2,                   # k-means clusters
                'n-init': 10,             # k-means restarts
                'max-iter': 300,          # k-means iterations per restart
                'seed': None,
                'n-components': None,     # PCA components kept (None = all)
                'pca-method': 'svd',      # 'svd' or 'eigh'
                'kmeans-components': 2,   # leading PCs fed to k-means (None = raw matrix)
                'n-clusters': 2,          # dendrogram cut
                'n-jobs': 1
            },

            # UMAP
            'umap': {
                'n-components': 2,
                'n-neighbors': 15,
                'min-dist': 0.1,
                'metric': 'euclidean'
            },

            # Logging
            'logging': {
                'level': 'warn'
            }
        }

    def _apply_env_vars(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variables to configuration.

        Args:
            config: Current configuration

        Returns:
            Updated configuration
        """
        config = deepcopy(config)
        analysis = config['analysis']
        umap_conf = config['umap']

        analysis['metric'] = os.environ.get('EXPR_METRIC', analysis['metric']).lower()
        analysis['linkage'] = os.environ.get('EXPR_LINKAGE', analysis['linkage']).lower()
        analysis['pca-method'] = os.environ.get('EXPR_PCA_METHOD', analysis['pca-method']).lower()

        for key, env in (('k', 'EXPR_K'),
                         ('n-init', 'EXPR_N_INIT'),
                         ('max-iter', 'EXPR_MAX_ITER'),
                         ('seed', 'EXPR_SEED'),
                         ('n-components', 'EXPR_N_COMPONENTS'),
                         ('kmeans-components', 'EXPR_KMEANS_COMPONENTS'),
                         ('n-clusters', 'EXPR_N_CLUSTERS'),
                         ('n-jobs', 'EXPR_N_JOBS')):
            if env in os.environ:
                analysis[key] = to_int(os.environ[env])

        umap_conf['n-neighbors'] = to_int(os.environ.get('UMAP_N_NEIGHBORS', umap_conf['n-neighbors']))
        umap_conf['min-dist'] = to_float(os.environ.get('UMAP_MIN_DIST', umap_conf['min-dist']))
        umap_conf['metric'] = os.environ.get('UMAP_METRIC', umap_conf['metric'])

        config['logging']['level'] = os.environ.get('LOG_LEVEL', config['logging']['level']).lower()

        return config

    def _apply_inferred_values(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply inferred configuration values.

        Args:
            config: Current configuration

        Returns:
            Updated configuration
        """
        config = deepcopy(config)

        # Python logging has no 'warn' level name
        level = str(config['logging']['level']).upper()
        config['logging']['python-level'] = 'WARNING' if level == 'WARN' else level

        return config

    def validate(self) -> None:
        """
        Check the analysis settings.

        Raises:
            UnsupportedMetricError: for an unknown metric
            UnsupportedLinkageError: for an unknown linkage
            InvalidParameterError: for non-positive counts, an unknown PCA method,
                an out-of-range seed or an unknown logging level
        """
        analysis = self.get('analysis')

        if analysis['metric'] not in METRICS:
            raise UnsupportedMetricError(f"Unsupported metric: {analysis['metric']}")
        if analysis['linkage'] not in LINKAGES:
            raise UnsupportedLinkageError(f"Unsupported linkage: {analysis['linkage']}")

        for key in ('k', 'n-init', 'max-iter', 'n-clusters'):
            value = analysis[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidParameterError(f"analysis.{key} must be a positive integer, got {value!r}")

        for key in ('n-components', 'kmeans-components'):
            value = analysis[key]
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 1):
                raise InvalidParameterError(f"analysis.{key} must be a positive integer or null, got {value!r}")

        if analysis['pca-method'] not in PCA_METHODS:
            raise InvalidParameterError(f"Unknown PCA method: {analysis['pca-method']}")

        check_seed(analysis['seed'], 'analysis.seed')

        level = self.get('logging.python-level')
        if level not in LOG_LEVELS:
            raise InvalidParameterError(f"Unknown logging level: {self.get('logging.level')}")

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            path: Configuration path (dot-separated)
            default: Default value if not found

        Returns:
            Configuration value, or default if not found
        """
        if not self._initialized:
            self.load_config()

        value = self._config
        for component in path.split('.'):
            if isinstance(value, dict) and component in value:
                value = value[component]
            else:
                return default

        return deepcopy(value)

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            path: Configuration path (dot-separated)
            value: Configuration value
        """
        with self._lock:
            if not self._initialized:
                self.load_config()

            components = path.split('.')
            config = self._config
            for component in components[:-1]:
                if component not in config:
                    config[component] = {}
                config = config[component]

            config[components[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to a dictionary.

        Returns:
            Configuration dictionary
        """
        if not self._initialized:
            self.load_config()

        return deepcopy(self._config)

    def save_to_file(self, filepath: str) -> None:
        """
        Save configuration to a file.

        Args:
            filepath: Path to save configuration (.json, .yaml or .yml)
        """
        if not self._initialized:
            self.load_config()

        if filepath.endswith('.json'):
            with open(filepath, 'w') as f:
                json.dump(self._config, f, indent=2)
        elif filepath.endswith('.yaml') or filepath.endswith('.yml'):
            with open(filepath, 'w') as f:
                yaml.dump(self._config, f, default_flow_style=False)
        else:
            raise ValueError(f"Unsupported file format: {filepath}")

    def load_from_file(self, filepath: str) -> None:
        """
        Load configuration overrides from a file.

        Args:
            filepath: Path to load configuration from
        """
        if filepath.endswith('.json'):
            with open(filepath, 'r') as f:
                overrides = json.load(f)
        elif filepath.endswith('.yaml') or filepath.endswith('.yml'):
            with open(filepath, 'r') as f:
                overrides = yaml.safe_load(f)
        else:
            raise ValueError(f"Unsupported file format: {filepath}")

        self.load_config(overrides or {})


class ConfigManager:
    """
    Singleton manager for configuration.
    """

    _instance = None
    _lock = threading.RLock()

    @classmethod
    def get_config(cls, overrides: Optional[Dict[str, Any]] = None) -> Config:
        """
        Get the configuration instance.

        Args:
            overrides: Optional configuration overrides

        Returns:
            Config instance
        """
        with cls._lock:
            if cls._instance is None:
                cls._instance = Config(overrides)
            elif overrides:
                cls._instance.load_config(overrides)

            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the shared instance (used by tests)."""
        with cls._lock:
            cls._instance = None
