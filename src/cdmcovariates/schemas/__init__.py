"""
Schema definitions using Pandera for data validation.

Builder output and the cohort temp table are validated against these
contracts at the dispatcher boundary.
"""

from cdmcovariates.schemas.cohort import CohortSchema
from cdmcovariates.schemas.covariates import (
    ANALYSIS_REF_COLUMNS,
    COVARIATE_COLUMNS,
    COVARIATE_REF_COLUMNS,
    AnalysisRefSchema,
    CovariateRefSchema,
    CovariateSchema,
)
from cdmcovariates.schemas.registry import DataRole, SchemaRegistry

__all__ = [
    "ANALYSIS_REF_COLUMNS",
    "COVARIATE_COLUMNS",
    "COVARIATE_REF_COLUMNS",
    "AnalysisRefSchema",
    "CohortSchema",
    "CovariateRefSchema",
    "CovariateSchema",
    "DataRole",
    "SchemaRegistry",
]
