"""
Expression matrix implementation for the exprmath package.

This module provides a data structure for a samples x features matrix with
named rows (sample identifiers) and columns (feature names), plus an optional
side-table of categorical sample labels. The numeric routines only ever see
the plain values; names and labels are joined back onto results at the end.
"""

import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Sequence, Union

from exprmath.math.errors import InvalidInputError
from exprmath.utils.general import as_matrix


class IndexHash:
    """
    Maintains an ordered index of unique names with fast lookup.
    """

    def __init__(self, names: Optional[Sequence[Any]] = None):
        """
        Initialize an IndexHash with optional initial names.

        Args:
            names: Optional list of initial names (must be unique)
        """
        self._names = [] if names is None else list(names)
        self._index_hash = {name: idx for idx, name in enumerate(self._names)}

        if len(self._index_hash) != len(self._names):
            seen = set()
            dupes = [n for n in self._names if n in seen or seen.add(n)]
            raise InvalidInputError(f"Duplicate names: {sorted(set(map(str, dupes)))}")

    def get_names(self) -> List[Any]:
        """Return the ordered list of names."""
        return self._names.copy()

    def index(self, name: Any) -> Optional[int]:
        """
        Get the index for a given name, or None if not found.

        Args:
            name: The name to look up

        Returns:
            The index if found, None otherwise
        """
        return self._index_hash.get(name)

    def subset(self, names: Sequence[Any]) -> 'IndexHash':
        """
        Create a subset of the index with only the specified names.

        Args:
            names: List of names to include in the subset

        Returns:
            A new IndexHash containing only the specified names
        """
        valid_names = [name for name in names if name in self._index_hash]
        return IndexHash(valid_names)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: Any) -> bool:
        return name in self._index_hash


class ExpressionMatrix:
    """
    A samples x features matrix with sample identifiers and optional labels.

    Uses a pandas DataFrame as the underlying storage. Values are validated
    on construction: the matrix must be rectangular and finite.
    """

    def __init__(self,
                 matrix: Union[np.ndarray, pd.DataFrame, Sequence[Sequence[float]]],
                 sample_ids: Optional[Sequence[Any]] = None,
                 feature_names: Optional[Sequence[Any]] = None,
                 labels: Optional[Sequence[Any]] = None):
        """
        Initialize an ExpressionMatrix.

        Args:
            matrix: Matrix data (numpy array, DataFrame or nested rows)
            sample_ids: Unique sample identifiers, one per row
            feature_names: Feature (gene) names, one per column
            labels: Optional categorical label per sample, carried untouched
        """
        if isinstance(matrix, pd.DataFrame):
            if sample_ids is None:
                sample_ids = list(matrix.index)
            if feature_names is None:
                feature_names = list(matrix.columns)

        values = as_matrix(matrix)
        n_rows, n_cols = values.shape

        rows = list(sample_ids) if sample_ids is not None else list(range(n_rows))
        cols = list(feature_names) if feature_names is not None else list(range(n_cols))

        if len(rows) != n_rows:
            raise InvalidInputError(f"Got {len(rows)} sample ids for {n_rows} rows")
        if len(cols) != n_cols:
            raise InvalidInputError(f"Got {len(cols)} feature names for {n_cols} columns")

        self._row_index = IndexHash(rows)
        self._col_index = IndexHash(cols)
        self._matrix = pd.DataFrame(values, index=rows, columns=cols)

        if labels is not None:
            labels = list(labels)
            if len(labels) != n_rows:
                raise InvalidInputError(f"Got {len(labels)} labels for {n_rows} samples")
        self._labels = labels

    @property
    def matrix(self) -> pd.DataFrame:
        """Get a copy of the underlying DataFrame."""
        return self._matrix.copy()

    @property
    def values(self) -> np.ndarray:
        """Get the matrix as a new numpy array."""
        return self._matrix.values.copy()

    @property
    def shape(self):
        return self._matrix.shape

    @property
    def labels(self) -> Optional[List[Any]]:
        return None if self._labels is None else list(self._labels)

    def sample_ids(self) -> List[Any]:
        """Get the list of sample identifiers."""
        return self._row_index.get_names()

    def feature_names(self) -> List[Any]:
        """Get the list of feature names."""
        return self._col_index.get_names()

    def attach(self, values: Sequence[Any]) -> Dict[Any, Any]:
        """
        Re-attach per-sample results to sample identifiers.

        Args:
            values: One value per sample, in row order

        Returns:
            Dictionary mapping sample id to value
        """
        values = list(values)
        if len(values) != len(self._row_index):
            raise InvalidInputError(
                f"Got {len(values)} values for {len(self._row_index)} samples")
        return dict(zip(self.sample_ids(), values))

    def label_table(self) -> pd.DataFrame:
        """
        Build the sample side-table joined at the presentation boundary.

        Returns:
            DataFrame indexed by sample id with a 'label' column (None if
            no labels were given)
        """
        labels = self._labels if self._labels is not None else [None] * len(self._row_index)
        return pd.DataFrame({'label': labels}, index=self.sample_ids())

    def rowname_subset(self, sample_ids: Sequence[Any]) -> 'ExpressionMatrix':
        """
        Create a subset of the matrix with only the specified samples.

        Args:
            sample_ids: Sample identifiers to include (unknown ids are ignored)

        Returns:
            A new ExpressionMatrix with only the specified rows
        """
        valid_rows = [row for row in sample_ids if row in self._row_index]
        if not valid_rows:
            raise InvalidInputError("Row subset selects no samples")

        labels = None
        if self._labels is not None:
            labels = [self._labels[self._row_index.index(row)] for row in valid_rows]

        return ExpressionMatrix(
            self._matrix.loc[valid_rows].values,
            sample_ids=valid_rows,
            feature_names=self.feature_names(),
            labels=labels
        )

    def colname_subset(self, feature_names: Sequence[Any]) -> 'ExpressionMatrix':
        """
        Create a subset of the matrix with only the specified features.

        Args:
            feature_names: Feature names to include (unknown names are ignored)

        Returns:
            A new ExpressionMatrix with only the specified columns
        """
        valid_cols = [col for col in feature_names if col in self._col_index]
        if not valid_cols:
            raise InvalidInputError("Column subset selects no features")

        return ExpressionMatrix(
            self._matrix[valid_cols].values,
            sample_ids=self.sample_ids(),
            feature_names=valid_cols,
            labels=self._labels
        )

    def get_row_by_name(self, sample_id: Any) -> np.ndarray:
        """
        Get a row of the matrix by sample id.

        Args:
            sample_id: The sample identifier

        Returns:
            The row as a numpy array
        """
        if sample_id not in self._row_index:
            raise KeyError(f"Sample id '{sample_id}' not found")
        return self._matrix.loc[sample_id].values.copy()

    def __repr__(self) -> str:
        return f"ExpressionMatrix(samples={self.shape[0]}, features={self.shape[1]})"
