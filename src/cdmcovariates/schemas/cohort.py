"""
Pandera schema for the cohort temp table read by builders.

The CDM v5 cohort table carries cohort_definition_id, v4 carries
cohort_concept_id. The temp table normalizes both and adds row_id.
"""

import pandera.pandas as pa
from pandera.typing import Series


class CohortSchema(pa.DataFrameModel):
    """Schema for rows of the cohort_person temp table."""

    row_id: Series[int] = pa.Field(
        unique=True,
        description="Unique row identifier covariates are keyed by",
    )
    subject_id: Series[int] = pa.Field(
        description="Person identifier (person.person_id)",
    )
    cohort_start_date: Series[pa.DateTime] = pa.Field(
        description="Index date covariates are computed relative to",
    )

    class Config:
        """Schema configuration."""

        name = "CohortSchema"
        strict = False
        coerce = True
