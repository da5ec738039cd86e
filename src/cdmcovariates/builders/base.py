"""
Base classes for covariate builders.

A builder is a pluggable unit that computes one family of covariates for
the rows of a cohort. It is paired with a settings type: the registry maps
each CovariateSettings subclass to exactly one builder instance.

Third-party builders subclass CovariateSettings (setting ``builder_id``)
and either subclass CovariateBuilder or register a plain function with
the signature ``(context, settings) -> CovariateData | None``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Literal

import pandas as pd
from pydantic import BaseModel, ConfigDict

from cdmcovariates.data import CovariateData
from cdmcovariates.sql import qualify, read_sql, render_sql

CdmVersionTag = Literal["4", "5"]


class CovariateSettings(BaseModel):
    """
    Immutable settings consumed by one covariate builder.

    Subclasses declare their target builder through the ``builder_id``
    class attribute and add their own options as fields. Two settings
    objects are equal when they have the same type and field values.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    builder_id: ClassVar[str] = ""
    settings_version: ClassVar[str] = "1.0.0"

    def describe(self) -> dict[str, Any]:
        """Settings as a plain mapping tagged with the builder id."""
        return {"builder": self.builder_id, **self.model_dump(mode="json")}


@dataclass(frozen=True)
class CohortReference:
    """
    Read-only handle to the cohort temp table.

    Attributes:
        table: Table name (possibly schema-qualified) holding the cohort rows.
        row_id_field: Column uniquely identifying a cohort row.
        cdm_version: CDM version the cohort table follows.
    """

    table: str
    row_id_field: str = "row_id"
    cdm_version: CdmVersionTag = "5"

    @property
    def definition_column(self) -> str:
        """Cohort id column: cohort_concept_id in CDM v4, cohort_definition_id in v5."""
        return "cohort_concept_id" if self.cdm_version == "4" else "cohort_definition_id"


@dataclass(frozen=True)
class BuildContext:
    """
    Everything a builder needs besides its settings.

    Attributes:
        connection: Open DB-API 2.0 connection.
        cdm_database_schema: Schema holding the CDM tables.
        cohort: Handle to the cohort temp table.
        temp_schema: Schema for emulated temp tables, or None for native ones.
    """

    connection: Any
    cdm_database_schema: str
    cohort: CohortReference
    temp_schema: str | None = None

    @property
    def cdm_version(self) -> CdmVersionTag:
        """CDM version tag of the cohort."""
        return self.cohort.cdm_version

    @property
    def row_id_field(self) -> str:
        """Name of the cohort row identifier column."""
        return self.cohort.row_id_field

    def cdm_table(self, name: str) -> str:
        """Schema-qualified CDM table name."""
        return qualify(self.cdm_database_schema, name)

    def render(self, sql: str, **params: Any) -> str:
        """
        Render SQL with the standard cohort and CDM parameters filled in.

        Provides ``@cohort_table``, ``@row_id_field``,
        ``@cdm_database_schema`` and ``@cohort_definition_column`` in
        addition to ``params``.
        """
        base = {
            "cohort_table": self.cohort.table,
            "row_id_field": self.cohort.row_id_field,
            "cdm_database_schema": self.cdm_database_schema,
            "cohort_definition_column": self.cohort.definition_column,
        }
        return render_sql(sql, **{**base, **params})

    def query(self, sql: str, **params: Any) -> tuple[pd.DataFrame, str]:
        """
        Render and run a query.

        Returns:
            Tuple of (result DataFrame, rendered SQL).
        """
        rendered = self.render(sql, **params)
        return read_sql(self.connection, rendered), rendered


class CovariateBuilder(ABC):
    """
    Abstract base class for covariate builders.

    ``build`` returns None (or an empty CovariateData) when its settings
    disable every covariate; that is a valid outcome, not an error.
    Builders must only read from the cohort table.
    """

    @property
    def name(self) -> str:
        """Human-readable name for logging."""
        return self.__class__.__name__

    @abstractmethod
    def build(
        self,
        context: BuildContext,
        settings: CovariateSettings,
    ) -> CovariateData | None:
        """
        Construct covariates for every row of the cohort.

        Args:
            context: Connection, schemas and cohort handle.
            settings: This builder's settings.

        Returns:
            CovariateData, or None when no covariates are requested.
        """
        ...


class FunctionBuilder(CovariateBuilder):
    """Adapts a plain function to the CovariateBuilder interface."""

    def __init__(
        self,
        func: Callable[[BuildContext, CovariateSettings], CovariateData | None],
    ) -> None:
        self.func = func

    @property
    def name(self) -> str:
        return getattr(self.func, "__name__", repr(self.func))

    def build(
        self,
        context: BuildContext,
        settings: CovariateSettings,
    ) -> CovariateData | None:
        return self.func(context, settings)


def covariate_id_for(concept_id: int, analysis_id: int) -> int:
    """
    Covariate id under the ``concept_id * 1000 + analysis_id`` convention.

    Raises:
        ValueError: If analysis_id does not fit in three digits.
    """
    if not 0 <= analysis_id <= 999:
        msg = f"analysis_id must be in [0, 999], got {analysis_id}"
        raise ValueError(msg)
    return int(concept_id) * 1000 + analysis_id
