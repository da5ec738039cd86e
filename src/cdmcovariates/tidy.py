"""
Post-extraction tidying of covariate data.

Removes binary covariates that are too rare or present in every row, and
scales continuous covariates into [-1, 1] by their maximum absolute value.
"""

import pandas as pd

from cdmcovariates.data import CovariateData
from cdmcovariates.utils.logging import get_logger

log = get_logger(__name__)


def _binary_covariate_ids(data: CovariateData) -> set[int]:
    """
    Covariate ids treated as binary.

    Uses analysis_ref.is_binary where available; covariates of analyses
    without a reference row count as binary when all their values are 1.
    """
    binary_analyses = set(
        data.analysis_ref.loc[data.analysis_ref["is_binary"].astype(bool), "analysis_id"]
        .astype("int64")
        .tolist()
    )
    known_analyses = set(data.analysis_ref["analysis_id"].astype("int64").tolist())

    ref = data.covariate_ref
    is_binary_ref = ref["analysis_id"].isin(sorted(binary_analyses))
    from_ref = set(ref.loc[is_binary_ref, "covariate_id"].astype("int64").tolist())
    unknown = ref.loc[~ref["analysis_id"].isin(sorted(known_analyses)), "covariate_id"]
    values = data.covariates[data.covariates["covariate_id"].isin(unknown)]
    all_ones = values.groupby("covariate_id")["covariate_value"].apply(lambda v: (v == 1).all())
    inferred = {int(cid) for cid, ok in all_ones.items() if ok}
    return from_ref | inferred


def tidy_covariate_data(
    data: CovariateData,
    min_fraction: float = 0.001,
    normalize: bool = True,
    remove_redundancy: bool = True,
    population_size: int | None = None,
) -> CovariateData:
    """
    Tidy covariate data for modelling.

    Args:
        data: Covariate data to tidy.
        min_fraction: Binary covariates present in a smaller fraction of
            rows are removed (0 disables).
        normalize: Divide each non-binary covariate by its maximum
            absolute value.
        remove_redundancy: Remove binary covariates present in every row.
        population_size: Number of cohort rows. Defaults to the extraction's
            recorded population size, else the rows with any covariate.

    Returns:
        New CovariateData; metadata["tidy"] records what changed, with
        normalization factors keyed by covariate id as a string.
    """
    if not 0 <= min_fraction <= 1:
        msg = f"min_fraction must be in [0, 1], got {min_fraction}"
        raise ValueError(msg)

    if population_size is None:
        population_size = data.metadata.get("run", {}).get("population_size") or data.n_rows

    covariates = data.covariates
    binary_ids = _binary_covariate_ids(data)
    counts = covariates.groupby("covariate_id")["row_id"].nunique()
    binary_counts = counts[counts.index.isin(sorted(binary_ids))]

    removed_infrequent: list[int] = []
    removed_redundant: list[int] = []
    if population_size > 0:
        if min_fraction > 0:
            removed_infrequent = sorted(
                int(c) for c in binary_counts[binary_counts / population_size < min_fraction].index
            )
        if remove_redundancy:
            removed_redundant = sorted(
                int(c) for c in binary_counts[binary_counts >= population_size].index
            )

    removed = set(removed_infrequent) | set(removed_redundant)
    covariates = covariates[~covariates["covariate_id"].isin(sorted(removed))].copy()
    ref = data.covariate_ref
    covariate_ref = ref[~ref["covariate_id"].isin(sorted(removed))]

    factors: dict[int, float] = {}
    if normalize and not covariates.empty:
        continuous = ~covariates["covariate_id"].isin(sorted(binary_ids))
        max_abs = covariates.loc[continuous].groupby("covariate_id")["covariate_value"].agg(
            lambda v: v.abs().max()
        )
        factors = {int(c): float(m) for c, m in max_abs.items() if m > 0}
        scale = covariates["covariate_id"].map(factors).fillna(1.0)
        covariates["covariate_value"] = covariates["covariate_value"] / scale

    log.info(
        "Tidied covariates",
        removed_infrequent=len(removed_infrequent),
        removed_redundant=len(removed_redundant),
        normalized=len(factors),
    )

    metadata = dict(data.metadata)
    metadata["tidy"] = {
        "min_fraction": min_fraction,
        "population_size": int(population_size),
        "removed_infrequent": removed_infrequent,
        "removed_redundant": removed_redundant,
        "normalization_factors": {str(c): f for c, f in factors.items()},
    }
    return CovariateData(
        covariates=covariates.reset_index(drop=True),
        covariate_ref=covariate_ref.reset_index(drop=True),
        analysis_ref=data.analysis_ref.copy(),
        metadata=metadata,
    )


def unique_covariate_values(data: CovariateData) -> pd.Series:
    """Number of distinct values per covariate id."""
    return data.covariates.groupby("covariate_id")["covariate_value"].nunique()
