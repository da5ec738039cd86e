"""
Typed configuration models using Pydantic.

All run parameters of an extraction (database, cohort, builders, output)
are defined here with explicit typing and validation.
"""

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from cdmcovariates.builders.base import CovariateSettings
    from cdmcovariates.builders.registry import BuilderRegistry


class CdmVersion(str, Enum):
    """Supported OMOP CDM versions."""

    V4 = "4"
    V5 = "5"


class DatabaseConfig(BaseModel):
    """Connection and schema configuration for the CDM database."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(description="Path to the SQLite CDM database file")
    cdm_database_schema: str = Field(
        default="main", description="Schema holding the CDM tables"
    )
    cohort_database_schema: str | None = Field(
        default=None,
        description="Schema holding the cohort table (default: CDM schema)",
    )
    cohort_table: str = Field(default="cohort", description="Name of the cohort table")
    cdm_version: CdmVersion = Field(default=CdmVersion.V5, description="CDM version")
    temp_schema: str | None = Field(
        default=None,
        description="Schema for emulated temp tables (None = native temp tables)",
    )


class CohortConfig(BaseModel):
    """Which cohort rows to extract covariates for."""

    model_config = ConfigDict(frozen=True)

    cohort_ids: list[int] | None = Field(
        default=None, description="Cohort definition ids to keep (None = all)"
    )
    row_id_field: str = Field(
        default="subject_id", description="Cohort column identifying each row"
    )


class DispatchConfig(BaseModel):
    """Builder execution configuration."""

    model_config = ConfigDict(frozen=True)

    max_workers: int = Field(default=1, ge=1, description="Builders running at once")
    timeout_seconds: float | None = Field(
        default=None, gt=0, description="Per-builder timeout (None = no limit)"
    )


class OutputConfig(BaseModel):
    """Output paths configuration.

    Results are written to {output_root}/{project}/{name}.covariates.*
    """

    model_config = ConfigDict(frozen=True)

    output_root: Path = Field(
        default=Path("./output"), description="Root directory for all outputs"
    )
    name: str = Field(default="covariates", description="Base name of saved results")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    level: str = Field(default="INFO", description="Log level")
    json_output: bool = Field(default=False, alias="json", description="Emit JSON lines")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Ensure level is a standard logging level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"Unknown log level: {v!r}"
            raise ValueError(msg)
        return level


class ExtractionConfig(BaseModel):
    """Complete covariate extraction configuration.

    Covariate settings are kept as raw mappings and turned into settings
    objects against a builder registry with build_settings().
    """

    model_config = ConfigDict(frozen=True)

    project: str = Field(description="Project name")
    database: DatabaseConfig
    cohort: CohortConfig = Field(default_factory=CohortConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    covariates: list[dict[str, Any]] = Field(
        min_length=1, description="Covariate settings, each with a 'builder' key"
    )
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("covariates")
    @classmethod
    def validate_covariates(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Ensure every covariate entry names its builder."""
        for i, entry in enumerate(v):
            if not entry.get("builder"):
                msg = f"covariates[{i}] must specify a 'builder'"
                raise ValueError(msg)
        return v

    def build_settings(
        self, registry: "BuilderRegistry | None" = None
    ) -> list["CovariateSettings"]:
        """Create settings objects for all configured covariates."""
        from cdmcovariates.builders.registry import get_registry

        registry = registry if registry is not None else get_registry()
        return [registry.settings_from_dict(entry) for entry in self.covariates]

    @property
    def output_dir(self) -> Path:
        """Directory for this project's results."""
        return self.output.output_root / self.project

    @property
    def output_path(self) -> Path:
        """Base path (without extension) of the saved result."""
        return self.output_dir / self.output.name
