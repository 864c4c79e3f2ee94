"""
Tests for the named_matrix module.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exprmath.math.named_matrix import IndexHash, ExpressionMatrix
from exprmath.math.errors import InvalidInputError


class TestIndexHash:
    """Tests for the IndexHash class."""

    def test_init_empty(self):
        """Test creating an empty IndexHash."""
        idx = IndexHash()
        assert idx.get_names() == []
        assert len(idx) == 0

    def test_init_with_names(self):
        """Test creating an IndexHash with initial names."""
        idx = IndexHash(['a', 'b', 'c'])
        assert idx.get_names() == ['a', 'b', 'c']
        assert idx.index('a') == 0
        assert idx.index('c') == 2
        assert idx.index('d') is None
        assert len(idx) == 3

    def test_duplicates_rejected(self):
        with pytest.raises(InvalidInputError):
            IndexHash(['a', 'b', 'a'])

    def test_subset(self):
        """Test creating a subset of an IndexHash."""
        idx = IndexHash(['a', 'b', 'c', 'd'])
        idx2 = idx.subset(['b', 'd', 'e'])  # 'e' doesn't exist

        assert idx2.get_names() == ['b', 'd']
        assert idx2.index('d') == 1

    def test_contains(self):
        idx = IndexHash(['a', 'b'])
        assert 'a' in idx
        assert 'z' not in idx


class TestExpressionMatrix:
    """Tests for the ExpressionMatrix class."""

    @pytest.fixture
    def emat(self):
        data = np.array([
            [1.0, 2.0, 3.0],
            [4.0, 5.0, 6.0],
            [7.0, 8.0, 9.0]
        ])
        return ExpressionMatrix(data, ['s1', 's2', 's3'], ['g1', 'g2', 'g3'],
                                labels=['tumor', 'normal', 'tumor'])

    def test_init(self, emat):
        assert emat.shape == (3, 3)
        assert emat.sample_ids() == ['s1', 's2', 's3']
        assert emat.feature_names() == ['g1', 'g2', 'g3']
        assert emat.labels == ['tumor', 'normal', 'tumor']

    def test_default_names(self):
        """Without names, rows and columns are numbered."""
        emat = ExpressionMatrix([[1.0, 2.0], [3.0, 4.0]])

        assert emat.sample_ids() == [0, 1]
        assert emat.feature_names() == [0, 1]
        assert emat.labels is None

    def test_from_dataframe(self):
        """Names are taken from a DataFrame's index and columns."""
        df = pd.DataFrame([[1.0, 2.0], [3.0, 4.0]], index=['x', 'y'], columns=['g1', 'g2'])
        emat = ExpressionMatrix(df)

        assert emat.sample_ids() == ['x', 'y']
        assert emat.feature_names() == ['g1', 'g2']
        assert np.array_equal(emat.values, df.values)

    def test_values_are_copies(self, emat):
        values = emat.values
        values[0, 0] = 100.0
        assert emat.values[0, 0] == 1.0

    def test_input_not_aliased(self):
        data = np.array([[1.0, 2.0], [3.0, 4.0]])
        emat = ExpressionMatrix(data)
        data[0, 0] = 100.0
        assert emat.values[0, 0] == 1.0

    def test_invalid_input(self):
        with pytest.raises(InvalidInputError):
            ExpressionMatrix([[1.0, np.nan], [2.0, 3.0]])

        with pytest.raises(InvalidInputError):
            ExpressionMatrix([[1.0, 2.0], [3.0]])

    def test_length_mismatch(self):
        data = np.ones((2, 2))
        with pytest.raises(InvalidInputError):
            ExpressionMatrix(data, sample_ids=['a'])

        with pytest.raises(InvalidInputError):
            ExpressionMatrix(data, feature_names=['g1', 'g2', 'g3'])

        with pytest.raises(InvalidInputError):
            ExpressionMatrix(data, labels=['x'])

    def test_duplicate_sample_ids(self):
        with pytest.raises(InvalidInputError):
            ExpressionMatrix(np.ones((2, 2)), sample_ids=['a', 'a'])

    def test_attach(self, emat):
        assert emat.attach([1, 2, 1]) == {'s1': 1, 's2': 2, 's3': 1}

        with pytest.raises(InvalidInputError):
            emat.attach([1, 2])

    def test_label_table(self, emat):
        table = emat.label_table()

        assert list(table.index) == ['s1', 's2', 's3']
        assert table.loc['s2', 'label'] == 'normal'

    def test_label_table_without_labels(self):
        table = ExpressionMatrix(np.ones((2, 2))).label_table()
        assert table['label'].isna().all()

    def test_rowname_subset(self, emat):
        subset = emat.rowname_subset(['s3', 's1', 'missing'])

        assert subset.sample_ids() == ['s3', 's1']
        assert np.array_equal(subset.values, [[7.0, 8.0, 9.0], [1.0, 2.0, 3.0]])
        assert subset.labels == ['tumor', 'tumor']

        with pytest.raises(InvalidInputError):
            emat.rowname_subset(['missing'])

    def test_colname_subset(self, emat):
        subset = emat.colname_subset(['g2'])

        assert subset.feature_names() == ['g2']
        assert np.array_equal(subset.values, [[2.0], [5.0], [8.0]])
        assert subset.labels == emat.labels

        with pytest.raises(InvalidInputError):
            emat.colname_subset([])

    def test_get_row_by_name(self, emat):
        assert np.array_equal(emat.get_row_by_name('s2'), [4.0, 5.0, 6.0])

        with pytest.raises(KeyError):
            emat.get_row_by_name('s9')
