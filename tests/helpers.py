"""Shared test helpers."""

from typing import Any

import pandas as pd

from cdmcovariates.data import CovariateData


class ExplodingConnection:
    """Connection stand-in that fails on any database access."""

    def cursor(self) -> Any:
        msg = "database accessed"
        raise AssertionError(msg)

    def commit(self) -> None:
        msg = "database accessed"
        raise AssertionError(msg)


def make_covariate_data(
    triples: list[tuple[int, int, float]],
    analysis_id: int = 1,
    is_binary: bool = True,
    metadata: dict[str, Any] | None = None,
) -> CovariateData:
    """Build CovariateData from triples, with one ref row per covariate id."""
    covariates = pd.DataFrame(triples, columns=["row_id", "covariate_id", "covariate_value"])
    covariate_ids = [int(c) for c in sorted(covariates["covariate_id"].unique())]
    return CovariateData(
        covariates=covariates,
        covariate_ref=pd.DataFrame(
            {
                "covariate_id": pd.Series(covariate_ids, dtype="int64"),
                "covariate_name": pd.Series(
                    [f"covariate {c}" for c in covariate_ids], dtype="object"
                ),
                "analysis_id": pd.Series([analysis_id] * len(covariate_ids), dtype="int64"),
                "concept_id": pd.Series([0] * len(covariate_ids), dtype="int64"),
            }
        ),
        analysis_ref=pd.DataFrame(
            [
                {
                    "analysis_id": analysis_id,
                    "analysis_name": f"analysis {analysis_id}",
                    "domain_id": "Test",
                    "is_binary": is_binary,
                    "missing_means_zero": True,
                }
            ]
        ),
        metadata=metadata or {},
    )
