"""Tests for the CovariateData container."""

import numpy as np
import pandas as pd
import pytest

from cdmcovariates.data import CovariateData

from helpers import make_covariate_data


@pytest.fixture
def data() -> CovariateData:
    return make_covariate_data(
        [(1, 1001, 1.0), (2, 1001, 1.0), (2, 2001, 4.5), (5, 3001, -2.0)],
        analysis_id=1,
    )


class TestCovariateData:
    """Tests for CovariateData basics."""

    def test_empty(self) -> None:
        """Empty data has canonical columns and no rows."""
        data = CovariateData.empty({"sql": "x"})

        assert data.is_empty
        assert data.n_rows == 0
        assert data.n_covariates == 0
        assert data.metadata == {"sql": "x"}
        assert list(data.covariate_ref.columns) == [
            "covariate_id",
            "covariate_name",
            "analysis_id",
            "concept_id",
        ]

    def test_column_order_normalized(self) -> None:
        """Columns are reordered to the canonical layout."""
        data = CovariateData(
            covariates=pd.DataFrame(
                {"covariate_value": [1.0], "row_id": [1], "covariate_id": [1001]}
            )
        )
        assert list(data.covariates.columns) == ["row_id", "covariate_id", "covariate_value"]

    def test_counts(self, data: CovariateData) -> None:
        """Row and covariate counts."""
        assert data.n_rows == 3
        assert data.n_covariates == 3
        assert not data.is_empty

    def test_summary(self, data: CovariateData) -> None:
        """Summary reports counts per analysis."""
        assert data.summary() == {
            "n_rows": 3,
            "n_covariates": 3,
            "n_values": 4,
            "n_analyses": 1,
            "covariates_per_analysis": {"1": 3},
        }

    def test_filter_by_row_id(self, data: CovariateData) -> None:
        """Filtering keeps triples of the given rows and all references."""
        filtered = data.filter_by_row_id([2])

        assert set(filtered.covariates["row_id"]) == {2}
        assert len(filtered.covariates) == 2
        assert len(filtered.covariate_ref) == 3
        assert len(data.covariates) == 4


class TestSparseMatrix:
    """Tests for CovariateData.to_sparse_matrix."""

    def test_default_rows(self, data: CovariateData) -> None:
        """Rows default to the sorted row ids with covariates."""
        sparse = data.to_sparse_matrix()

        assert sparse.row_ids.tolist() == [1, 2, 5]
        assert sparse.covariate_ids.tolist() == [1001, 2001, 3001]
        assert sparse.matrix.shape == (3, 3)
        assert sparse.matrix.nnz == 4
        expected = np.array([[1.0, 0.0, 0.0], [1.0, 4.5, 0.0], [0.0, 0.0, -2.0]])
        np.testing.assert_array_equal(sparse.matrix.toarray(), expected)

    def test_explicit_rows(self, data: CovariateData) -> None:
        """Rows without covariates stay all-zero in the given order."""
        sparse = data.to_sparse_matrix(row_ids=[5, 4, 2, 1])

        dense = sparse.matrix.toarray()
        assert dense.shape == (4, 3)
        assert dense[1].tolist() == [0.0, 0.0, 0.0]
        assert dense[0].tolist() == [0.0, 0.0, -2.0]

    def test_missing_row(self, data: CovariateData) -> None:
        """Triples for rows outside row_ids are an error."""
        with pytest.raises(ValueError, match="not in row_ids"):
            data.to_sparse_matrix(row_ids=[1, 2])

    def test_reference_only_covariates_get_columns(self) -> None:
        """Covariates defined without values still get a column."""
        data = make_covariate_data([(1, 1001, 1.0)])
        data.covariate_ref = pd.concat(
            [
                data.covariate_ref,
                pd.DataFrame(
                    [
                        {
                            "covariate_id": 9001,
                            "covariate_name": "unused",
                            "analysis_id": 1,
                            "concept_id": 9,
                        }
                    ]
                ),
            ],
            ignore_index=True,
        )

        sparse = data.to_sparse_matrix()

        assert sparse.covariate_ids.tolist() == [1001, 9001]
        assert sparse.matrix.shape == (1, 2)
