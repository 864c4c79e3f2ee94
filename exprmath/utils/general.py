"""
General utility functions for the exprmath package.

Logging setup and the validation helpers shared by the math modules. Every
validator returns a fresh array so callers never alias (or mutate) the data
they were given.
"""

import logging
import numbers
import numpy as np
import pandas as pd
from typing import Any, Optional, Sequence

from exprmath.math.errors import InvalidInputError, InvalidParameterError

# Largest seed numpy's RandomState accepts
MAX_SEED = 2 ** 32 - 1


def setup_logging(level: str = 'INFO') -> None:
    """
    Set up logging.

    Args:
        level: Logging level name (e.g. "DEBUG", "INFO", "WARNING")
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )


def as_matrix(data: Any, min_rows: int = 1, min_cols: int = 1) -> np.ndarray:
    """
    Convert input data to a validated 2D float matrix.

    Args:
        data: numpy array, pandas DataFrame or nested sequence of rows
        min_rows: Minimum number of rows required
        min_cols: Minimum number of columns required

    Returns:
        A new float64 array of shape (n, p)

    Raises:
        InvalidInputError: if the data is ragged, not 2D, too small or
            contains NaN/inf values
    """
    if isinstance(data, pd.DataFrame):
        data = data.values

    try:
        matrix = np.array(data, dtype=float)
    except (ValueError, TypeError) as e:
        raise InvalidInputError(f"Matrix is not numeric or is ragged: {e}") from e

    if matrix.ndim != 2:
        raise InvalidInputError(f"Matrix must be 2-dimensional, got {matrix.ndim} dimension(s)")

    n_rows, n_cols = matrix.shape
    if n_rows < min_rows:
        raise InvalidInputError(f"Matrix needs at least {min_rows} row(s), got {n_rows}")
    if n_cols < min_cols:
        raise InvalidInputError(f"Matrix needs at least {min_cols} column(s), got {n_cols}")

    if not np.all(np.isfinite(matrix)):
        bad = int(np.sum(~np.isfinite(matrix)))
        raise InvalidInputError(f"Matrix contains {bad} non-finite value(s)")

    return matrix


def check_positive_int(value: Any, name: str, maximum: Optional[int] = None) -> int:
    """
    Check that a parameter is an integer in 1..maximum.

    Args:
        value: Parameter value
        name: Parameter name used in the error message
        maximum: Optional inclusive upper bound

    Returns:
        The value as a plain int
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidParameterError(f"{name} must be an integer, got {value!r}")

    value = int(value)
    if value < 1:
        raise InvalidParameterError(f"{name} must be >= 1, got {value}")
    if maximum is not None and value > maximum:
        raise InvalidParameterError(f"{name} must be <= {maximum}, got {value}")

    return value


def check_seed(seed: Any, name: str = 'seed') -> Optional[int]:
    """
    Check that a random seed is None or an integer numpy can seed with.

    Args:
        seed: Seed value
        name: Parameter name used in the error message

    Returns:
        None, or the seed as a plain int in 0..2**32-1
    """
    if seed is None:
        return None

    if isinstance(seed, bool) or not isinstance(seed, numbers.Integral):
        raise InvalidParameterError(f"{name} must be an integer or None, got {seed!r}")

    seed = int(seed)
    if seed < 0 or seed > MAX_SEED:
        raise InvalidParameterError(f"{name} must be between 0 and {MAX_SEED}, got {seed}")

    return seed


def lowest_index_order(labels: Sequence[int]) -> np.ndarray:
    """
    Renumber arbitrary group labels as 1..m by first appearance.

    Args:
        labels: One group label per sample

    Returns:
        Array of labels in 1..m where label 1 holds sample 0
    """
    mapping = {}
    result = np.empty(len(labels), dtype=int)
    for i, label in enumerate(labels):
        if label not in mapping:
            mapping[label] = len(mapping) + 1
        result[i] = mapping[label]
    return result
