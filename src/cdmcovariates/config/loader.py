"""
Configuration loading utilities.

Supports environment variable interpolation and config inheritance.
Minimal configs only need: project, database.path, covariates
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from cdmcovariates.config.settings import (
    CdmVersion,
    CohortConfig,
    DatabaseConfig,
    DispatchConfig,
    ExtractionConfig,
    LoggingConfig,
    OutputConfig,
)


def _interpolate_env_vars(value: str) -> str:
    """
    Interpolate environment variables in string values.

    Supports ${VAR} and ${VAR:default} syntax.
    """
    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        return os.environ.get(var_name, default if default is not None else "")

    return re.sub(pattern, replacer, value)


def _process_config_values(obj: Any) -> Any:
    """Recursively process config values for env var interpolation."""
    if isinstance(obj, str):
        return _interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _process_config_values(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_process_config_values(item) for item in obj]
    return obj


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and process environment variables."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return _process_config_values(data) if data else {}


def load_config(
    config_path: Path,
    base_path: Path | None = None,
) -> ExtractionConfig:
    """
    Load extraction configuration from YAML file(s).

    Minimal config requires only:
        - project: str
        - database.path: SQLite CDM file
        - covariates: list of mappings with a 'builder' key

    Relative database paths are resolved against the config file's directory.

    Args:
        config_path: Path to the main configuration file.
        base_path: Optional path to base configuration for inheritance.

    Returns:
        Fully validated ExtractionConfig instance.
    """
    config_path = Path(config_path)

    # Try base.yaml next to the config unless given explicitly
    if base_path is not None:
        base_data = load_yaml(base_path)
    else:
        potential_base = config_path.parent / "base.yaml"
        base_data = (
            load_yaml(potential_base)
            if potential_base.exists() and potential_base.resolve() != config_path.resolve()
            else {}
        )

    merged = _deep_merge(base_data, load_yaml(config_path))

    project = merged.get("project")
    if not project:
        msg = "Config must specify 'project' name"
        raise ValueError(msg)

    database_data = merged.get("database", {})
    db_path = database_data.get("path")
    if not db_path:
        msg = "Config must specify 'database.path'"
        raise ValueError(msg)
    db_path = Path(db_path)
    if not db_path.is_absolute():
        db_path = config_path.parent / db_path

    database = DatabaseConfig(
        path=db_path,
        cdm_database_schema=database_data.get("cdm_database_schema", "main"),
        cohort_database_schema=database_data.get("cohort_database_schema"),
        cohort_table=database_data.get("cohort_table", "cohort"),
        cdm_version=CdmVersion(str(database_data.get("cdm_version", "5"))),
        temp_schema=database_data.get("temp_schema"),
    )

    cohort_data = merged.get("cohort", {})
    cohort = CohortConfig(
        cohort_ids=cohort_data.get("cohort_ids"),
        row_id_field=cohort_data.get("row_id_field", "subject_id"),
    )

    dispatch_data = merged.get("dispatch", {})
    dispatch = DispatchConfig(
        max_workers=dispatch_data.get("max_workers", 1),
        timeout_seconds=dispatch_data.get("timeout_seconds"),
    )

    covariates = merged.get("covariates")
    if not covariates:
        msg = "Config must specify at least one entry under 'covariates'"
        raise ValueError(msg)

    output_data = merged.get("output", {})
    output = OutputConfig(
        output_root=Path(output_data.get("root", "./output")),
        name=output_data.get("name", "covariates"),
    )

    logging_data = merged.get("logging", {})
    logging = LoggingConfig(
        level=logging_data.get("level", "INFO"),
        json=logging_data.get("json", False),
    )

    return ExtractionConfig(
        project=project,
        database=database,
        cohort=cohort,
        dispatch=dispatch,
        covariates=covariates,
        output=output,
        logging=logging,
    )
