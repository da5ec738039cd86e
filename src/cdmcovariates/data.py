"""
CovariateData container.

Holds the sparse covariate triples, covariate and analysis reference
tables, and free-form provenance metadata produced by one builder
invocation or by a whole merged run.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable

import numpy as np
import pandas as pd
import scipy.sparse as sp

from cdmcovariates.schemas.covariates import (
    ANALYSIS_REF_COLUMNS,
    COVARIATE_COLUMNS,
    COVARIATE_REF_COLUMNS,
)


def empty_covariates() -> pd.DataFrame:
    """Empty covariate triple table with the canonical dtypes."""
    return pd.DataFrame(
        {
            "row_id": pd.Series(dtype="int64"),
            "covariate_id": pd.Series(dtype="int64"),
            "covariate_value": pd.Series(dtype="float64"),
        }
    )


def empty_covariate_ref() -> pd.DataFrame:
    """Empty covariate reference table with the canonical dtypes."""
    return pd.DataFrame(
        {
            "covariate_id": pd.Series(dtype="int64"),
            "covariate_name": pd.Series(dtype="object"),
            "analysis_id": pd.Series(dtype="int64"),
            "concept_id": pd.Series(dtype="int64"),
        }
    )


def empty_analysis_ref() -> pd.DataFrame:
    """Empty analysis reference table with the canonical dtypes."""
    return pd.DataFrame(
        {
            "analysis_id": pd.Series(dtype="int64"),
            "analysis_name": pd.Series(dtype="object"),
            "domain_id": pd.Series(dtype="object"),
            "is_binary": pd.Series(dtype="bool"),
            "missing_means_zero": pd.Series(dtype="bool"),
        }
    )


@dataclass
class SparseCovariateMatrix:
    """
    CSR matrix view of covariate triples.

    Attributes:
        matrix: Matrix of shape (len(row_ids), len(covariate_ids)).
        row_ids: Cohort row id of each matrix row.
        covariate_ids: Covariate id of each matrix column.
    """

    matrix: sp.csr_matrix
    row_ids: np.ndarray
    covariate_ids: np.ndarray


@dataclass
class CovariateData:
    """
    Sparse covariates plus reference metadata.

    Attributes:
        covariates: Triples (row_id, covariate_id, covariate_value), non-zero only.
        covariate_ref: One row per covariate id.
        analysis_ref: One row per analysis id.
        metadata: Provenance (queries, settings, timings).
    """

    covariates: pd.DataFrame = field(default_factory=empty_covariates)
    covariate_ref: pd.DataFrame = field(default_factory=empty_covariate_ref)
    analysis_ref: pd.DataFrame = field(default_factory=empty_analysis_ref)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.covariates = self.covariates.reindex(columns=COVARIATE_COLUMNS)
        self.covariate_ref = self.covariate_ref.reindex(columns=COVARIATE_REF_COLUMNS)
        self.analysis_ref = self.analysis_ref.reindex(columns=ANALYSIS_REF_COLUMNS)

    @classmethod
    def empty(cls, metadata: dict[str, Any] | None = None) -> "CovariateData":
        """Create a CovariateData without any covariates."""
        return cls(metadata=dict(metadata or {}))

    @property
    def is_empty(self) -> bool:
        """True when there are neither triples nor covariate definitions."""
        return self.covariates.empty and self.covariate_ref.empty

    @property
    def n_rows(self) -> int:
        """Number of distinct cohort rows with at least one covariate."""
        return int(self.covariates["row_id"].nunique())

    @property
    def n_covariates(self) -> int:
        """Number of defined covariates."""
        return len(self.covariate_ref)

    def to_sparse_matrix(
        self,
        row_ids: Iterable[int] | None = None,
    ) -> SparseCovariateMatrix:
        """
        Convert triples to a CSR matrix.

        Args:
            row_ids: Optional row ordering; rows without covariates stay
                all-zero. Defaults to the sorted row ids present in the triples.

        Returns:
            SparseCovariateMatrix with row and column id orderings.

        Raises:
            ValueError: If a triple refers to a row not in row_ids.
        """
        if row_ids is None:
            rows = np.sort(self.covariates["row_id"].unique()).astype("int64")
        else:
            rows = np.asarray(list(row_ids), dtype="int64")

        columns = np.union1d(
            self.covariate_ref["covariate_id"].to_numpy(dtype="int64"),
            self.covariates["covariate_id"].to_numpy(dtype="int64"),
        ).astype("int64")

        row_index = pd.Index(rows).get_indexer(self.covariates["row_id"])
        if (row_index < 0).any():
            missing = sorted(set(self.covariates["row_id"][row_index < 0].tolist()))
            msg = f"Covariates reference rows not in row_ids: {missing[:10]}"
            raise ValueError(msg)
        col_index = pd.Index(columns).get_indexer(self.covariates["covariate_id"])

        matrix = sp.csr_matrix(
            (
                self.covariates["covariate_value"].to_numpy(dtype="float64"),
                (row_index, col_index),
            ),
            shape=(len(rows), len(columns)),
        )
        return SparseCovariateMatrix(matrix=matrix, row_ids=rows, covariate_ids=columns)

    def filter_by_row_id(self, row_ids: Iterable[int]) -> "CovariateData":
        """
        Keep only covariates belonging to the given rows.

        Reference tables are kept whole; metadata is copied.
        """
        keep = list(set(row_ids))
        covariates = self.covariates[self.covariates["row_id"].isin(keep)]
        return CovariateData(
            covariates=covariates.reset_index(drop=True),
            covariate_ref=self.covariate_ref.copy(),
            analysis_ref=self.analysis_ref.copy(),
            metadata=dict(self.metadata),
        )

    def summary(self) -> dict[str, Any]:
        """
        Summarize the covariate data.

        Returns:
            Dictionary with row, covariate and triple counts and the number
            of covariates per analysis id (keyed by the id as a string, so
            the summary survives a JSON round trip).
        """
        per_analysis = (
            self.covariate_ref.groupby("analysis_id")["covariate_id"].count().to_dict()
        )
        return {
            "n_rows": self.n_rows,
            "n_covariates": self.n_covariates,
            "n_values": len(self.covariates),
            "n_analyses": len(per_analysis),
            "covariates_per_analysis": {str(int(k)): int(v) for k, v in per_analysis.items()},
        }
