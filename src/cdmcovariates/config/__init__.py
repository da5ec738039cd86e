"""
Configuration management with typed Pydantic models.

Provides YAML loading with environment interpolation and base-config
inheritance for extraction runs.
"""

from cdmcovariates.config.loader import load_config
from cdmcovariates.config.settings import (
    CdmVersion,
    CohortConfig,
    DatabaseConfig,
    DispatchConfig,
    ExtractionConfig,
    LoggingConfig,
    OutputConfig,
)

__all__ = [
    "CdmVersion",
    "CohortConfig",
    "DatabaseConfig",
    "DispatchConfig",
    "ExtractionConfig",
    "LoggingConfig",
    "OutputConfig",
    "load_config",
]
