"""
Pandera schemas for builder output.

Covariates are stored sparsely: one row per non-zero
(row_id, covariate_id) cell. Zero values are never stored.
"""

import pandera.pandas as pa
from pandera.typing import Series

COVARIATE_COLUMNS = ["row_id", "covariate_id", "covariate_value"]
COVARIATE_REF_COLUMNS = ["covariate_id", "covariate_name", "analysis_id", "concept_id"]
ANALYSIS_REF_COLUMNS = [
    "analysis_id",
    "analysis_name",
    "domain_id",
    "is_binary",
    "missing_means_zero",
]


class CovariateSchema(pa.DataFrameModel):
    """
    Schema for sparse covariate triples.

    Each row is one non-zero feature value for one cohort row.
    """

    row_id: Series[int] = pa.Field(
        description="Cohort row identifier (cohort_person.row_id)",
    )
    covariate_id: Series[int] = pa.Field(
        description="Covariate identifier, unique per meaning within a run",
    )
    covariate_value: Series[float] = pa.Field(
        ne=0,
        description="Non-zero covariate value",
    )

    class Config:
        """Schema configuration."""

        name = "CovariateSchema"
        strict = False
        coerce = True


class CovariateRefSchema(pa.DataFrameModel):
    """Schema for covariate reference metadata (one row per covariate id)."""

    covariate_id: Series[int] = pa.Field(
        unique=True,
        description="Covariate identifier",
    )
    covariate_name: Series[str] = pa.Field(
        description="Human-readable covariate name",
    )
    analysis_id: Series[int] = pa.Field(
        ge=0,
        description="Analysis that produced the covariate",
    )
    concept_id: Series[int] = pa.Field(
        ge=0,
        description="OMOP concept the covariate refers to (0 if none)",
    )

    class Config:
        """Schema configuration."""

        name = "CovariateRefSchema"
        strict = False
        coerce = True


class AnalysisRefSchema(pa.DataFrameModel):
    """Schema for analysis reference metadata."""

    analysis_id: Series[int] = pa.Field(
        ge=0,
        description="Analysis identifier",
    )
    analysis_name: Series[str] = pa.Field(
        description="Human-readable analysis name",
    )
    domain_id: Series[str] = pa.Field(
        description="CDM domain (e.g., 'Demographics', 'Condition')",
    )
    is_binary: Series[bool] = pa.Field(
        description="Whether covariate values are 0/1 indicators",
    )
    missing_means_zero: Series[bool] = pa.Field(
        description="Whether a missing triple means the value is zero",
    )

    class Config:
        """Schema configuration."""

        name = "AnalysisRefSchema"
        strict = False
        coerce = True
