"""
Covariate data persistence (save/load).

Creates two files per saved object:
    - {path}.covariates.joblib: Pickled CovariateData
    - {path}.covariates.json: Human-readable summary and provenance
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import joblib

from cdmcovariates.data import CovariateData
from cdmcovariates.utils.hashing import hash_dataframe
from cdmcovariates.utils.logging import get_logger

log = get_logger(__name__)

DATA_SUFFIX = ".covariates.joblib"
METADATA_SUFFIX = ".covariates.json"


def _paths(path: Path) -> tuple[Path, Path]:
    """Resolve (data_path, metadata_path) from a base or data file path."""
    path = Path(path)
    if path.name.endswith(DATA_SUFFIX):
        base = path.with_name(path.name[: -len(DATA_SUFFIX)])
    elif path.name.endswith(METADATA_SUFFIX):
        base = path.with_name(path.name[: -len(METADATA_SUFFIX)])
    else:
        base = path
    return base.with_name(base.name + DATA_SUFFIX), base.with_name(base.name + METADATA_SUFFIX)


def save_covariate_data(data: CovariateData, output_path: Path) -> tuple[Path, Path]:
    """Save covariate data and its metadata to disk.

    Args:
        data: Covariate data to save.
        output_path: Base output path (without extension).

    Returns:
        Tuple of (data_path, metadata_path).
    """
    data_path, metadata_path = _paths(output_path)
    data_path.parent.mkdir(parents=True, exist_ok=True)

    joblib.dump(data, data_path)
    log.info("Saved covariate data", path=str(data_path))

    sidecar: dict[str, Any] = {
        "saved_at": datetime.now().isoformat(timespec="seconds"),
        "summary": data.summary(),
        "covariates_hash": hash_dataframe(data.covariates),
        "metadata": data.metadata,
    }
    with open(metadata_path, "w", encoding="utf-8") as f:
        json.dump(sidecar, f, indent=2, default=str)
    log.info("Saved covariate metadata", path=str(metadata_path))

    return data_path, metadata_path


def load_covariate_data(path: Path) -> tuple[CovariateData, dict[str, Any]]:
    """Load covariate data and its sidecar metadata from disk.

    Accepts either the base path or the path of the .covariates.joblib file.

    Args:
        path: Path to the data file or base path.

    Returns:
        Tuple of (covariate_data, sidecar_dict).

    Raises:
        FileNotFoundError: If the data file doesn't exist.
        TypeError: If the file does not hold CovariateData.
    """
    data_path, metadata_path = _paths(path)
    if not data_path.exists():
        msg = f"Covariate data file not found: {data_path}"
        raise FileNotFoundError(msg)

    data = joblib.load(data_path)
    if not isinstance(data, CovariateData):
        msg = f"{data_path} does not contain CovariateData (got {type(data).__name__})"
        raise TypeError(msg)
    log.info("Loaded covariate data", path=str(data_path))

    sidecar: dict[str, Any] = {}
    if metadata_path.exists():
        with open(metadata_path, encoding="utf-8") as f:
            sidecar = json.load(f)
        if sidecar.get("covariates_hash") not in (None, hash_dataframe(data.covariates)):
            log.warning("Covariate data does not match saved hash", path=str(data_path))
    else:
        log.warning("Covariate metadata not found", path=str(metadata_path))

    return data, sidecar
