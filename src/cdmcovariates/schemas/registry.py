"""
Schema registry for versioning and discovery.

Provides centralized access to the data contracts builders must honour.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, ClassVar

import pandera.pandas as pa

from cdmcovariates.schemas.cohort import CohortSchema
from cdmcovariates.schemas.covariates import (
    AnalysisRefSchema,
    CovariateRefSchema,
    CovariateSchema,
)

if TYPE_CHECKING:
    import pandas as pd


class DataRole(Enum):
    """Classification of tables by their role in an extraction run."""

    INPUT = "input"  # Read by builders
    OUTPUT = "output"  # Produced by builders
    REFERENCE = "reference"  # Metadata describing outputs


@dataclass(frozen=True)
class SchemaInfo:
    """Metadata about a registered schema."""

    name: str
    schema: type[pa.DataFrameModel]
    version: str
    role: DataRole
    description: str


class SchemaRegistry:
    """
    Centralized registry for all table schemas.

    Provides version tracking and schema discovery.
    """

    _version = "1.0.0"

    _schemas: ClassVar[dict[str, SchemaInfo]] = {
        "cohort": SchemaInfo(
            name="cohort",
            schema=CohortSchema,
            version="1.0.0",
            role=DataRole.INPUT,
            description="Cohort rows (row_id, subject_id, cohort_start_date)",
        ),
        "covariate": SchemaInfo(
            name="covariate",
            schema=CovariateSchema,
            version="1.0.0",
            role=DataRole.OUTPUT,
            description="Sparse covariate triples with non-zero values",
        ),
        "covariate_ref": SchemaInfo(
            name="covariate_ref",
            schema=CovariateRefSchema,
            version="1.0.0",
            role=DataRole.REFERENCE,
            description="Covariate id to name/analysis/concept mapping",
        ),
        "analysis_ref": SchemaInfo(
            name="analysis_ref",
            schema=AnalysisRefSchema,
            version="1.0.0",
            role=DataRole.REFERENCE,
            description="Analysis id to name/domain mapping",
        ),
    }

    @classmethod
    def registry_version(cls) -> str:
        """Get the registry version."""
        return cls._version

    @classmethod
    def get(cls, name: str) -> type[pa.DataFrameModel]:
        """
        Get a schema by name.

        Args:
            name: Schema identifier.

        Returns:
            The Pandera DataFrameModel class.

        Raises:
            KeyError: If schema not found.
        """
        return cls.get_info(name).schema

    @classmethod
    def get_info(cls, name: str) -> SchemaInfo:
        """
        Get full schema info by name.

        Args:
            name: Schema identifier.

        Returns:
            SchemaInfo with metadata.
        """
        if name not in cls._schemas:
            available = ", ".join(cls._schemas.keys())
            msg = f"Unknown schema '{name}'. Available: {available}"
            raise KeyError(msg)
        return cls._schemas[name]

    @classmethod
    def list_schemas(cls) -> list[str]:
        """List all registered schema names."""
        return list(cls._schemas.keys())

    @classmethod
    def list_by_role(cls, role: DataRole) -> list[str]:
        """List schemas filtered by their data role."""
        return [name for name, info in cls._schemas.items() if info.role == role]

    @classmethod
    def validate(cls, df: "pd.DataFrame", schema_name: str) -> "pd.DataFrame":
        """
        Validate a DataFrame against a registered schema.

        Args:
            df: DataFrame to validate.
            schema_name: Name of schema to validate against.

        Returns:
            Validated DataFrame.

        Raises:
            pandera.errors.SchemaError: If validation fails.
        """
        schema = cls.get(schema_name)
        return schema.validate(df)
