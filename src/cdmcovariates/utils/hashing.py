"""
Deterministic hashing utilities.

Fingerprints settings and covariate tables for provenance records.
"""

import hashlib
import json
from typing import Any

import pandas as pd


def hash_dataframe(df: pd.DataFrame, columns: list[str] | None = None) -> str:
    """
    Compute deterministic hash of a DataFrame.

    Args:
        df: DataFrame to hash.
        columns: Optional subset of columns to include.

    Returns:
        Hex digest string.
    """
    if columns:
        df = df[columns]

    hasher = hashlib.md5()
    hasher.update(f"{df.shape}".encode())
    hasher.update(",".join(str(c) for c in df.columns).encode())
    hasher.update(pd.util.hash_pandas_object(df, index=False).to_numpy().tobytes())
    return hasher.hexdigest()


def hash_config(config: Any) -> str:
    """
    Compute hash of a configuration object.

    Pydantic models (and lists of them) are hashed by their JSON dump,
    so structurally equal settings hash equally.

    Args:
        config: Configuration object, or a list of them.

    Returns:
        12-character hex digest.
    """
    config_str = json.dumps(_to_plain(config), sort_keys=True, default=str)
    return hashlib.md5(config_str.encode()).hexdigest()[:12]


def _to_plain(obj: Any) -> Any:
    if hasattr(obj, "describe"):
        return obj.describe()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, (list, tuple)):
        return [_to_plain(o) for o in obj]
    if isinstance(obj, dict):
        return {str(k): _to_plain(v) for k, v in obj.items()}
    return obj
