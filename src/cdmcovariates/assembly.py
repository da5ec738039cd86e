"""
Sparse feature assembly.

Merges the per-builder CovariateData results of one run into a single
CovariateData, enforcing that no covariate id is claimed by two builders.
"""

from typing import Sequence

import pandas as pd

from cdmcovariates.data import (
    CovariateData,
    empty_analysis_ref,
    empty_covariate_ref,
    empty_covariates,
)
from cdmcovariates.dispatch import DispatchResult
from cdmcovariates.errors import CovariateIdCollisionError
from cdmcovariates.utils.logging import get_logger

log = get_logger(__name__)

BuilderOutput = tuple[str, CovariateData | None]


class SparseFeatureAssembler:
    """
    Merges builder outputs.

    Triples and reference rows are concatenated in input order. The merged
    metadata holds a ``builders`` mapping from builder id to that builder's
    own metadata, also in input order.
    """

    def merge(
        self,
        results: Sequence[DispatchResult | BuilderOutput],
    ) -> CovariateData:
        """
        Merge builder outputs into one CovariateData.

        Args:
            results: DispatchResults, or (builder_id, CovariateData | None) pairs.

        Returns:
            Merged CovariateData.

        Raises:
            CovariateIdCollisionError: If two builders emit the same covariate id.
        """
        outputs = [_as_output(r) for r in results]

        owners: dict[int, str] = {}
        covariate_parts: list[pd.DataFrame] = []
        ref_parts: list[pd.DataFrame] = []
        analysis_parts: list[pd.DataFrame] = []
        builder_metadata: dict[str, dict] = {}
        empty_builders: list[str] = []

        keys = builder_keys([builder_id for builder_id, _ in outputs])
        for key, (_, data) in zip(keys, outputs):
            if data is None or data.is_empty:
                empty_builders.append(key)
                builder_metadata[key] = dict(data.metadata) if data is not None else {}
                continue

            ids = pd.unique(
                pd.concat(
                    [data.covariate_ref["covariate_id"], data.covariates["covariate_id"]]
                )
            )
            for covariate_id in sorted(int(c) for c in ids):
                if covariate_id in owners:
                    raise CovariateIdCollisionError(covariate_id, owners[covariate_id], key)
            owners.update({int(c): key for c in ids})

            covariate_parts.append(data.covariates)
            ref_parts.append(data.covariate_ref)
            analysis_parts.append(data.analysis_ref)
            builder_metadata[key] = dict(data.metadata)

        merged = CovariateData(
            covariates=_concat(covariate_parts, empty_covariates()),
            covariate_ref=_concat(ref_parts, empty_covariate_ref()),
            analysis_ref=self._merge_analysis_ref(analysis_parts),
            metadata={"builders": builder_metadata, "empty_builders": empty_builders},
        )
        log.info(
            "Merged covariate data",
            builders=len(outputs),
            empty=len(empty_builders),
            values=len(merged.covariates),
            covariates=merged.n_covariates,
        )
        return merged

    def _merge_analysis_ref(self, parts: list[pd.DataFrame]) -> pd.DataFrame:
        """Concatenate analysis references, keeping the first row per analysis id."""
        analysis_ref = _concat(parts, empty_analysis_ref()).drop_duplicates()
        duplicated = analysis_ref["analysis_id"].duplicated(keep="first")
        if duplicated.any():
            log.warning(
                "Conflicting analysis_ref rows, keeping first",
                analysis_ids=sorted(int(a) for a in analysis_ref.loc[duplicated, "analysis_id"]),
            )
            analysis_ref = analysis_ref[~duplicated]
        return analysis_ref.reset_index(drop=True)


def merge_covariate_data(
    results: Sequence[DispatchResult | BuilderOutput],
) -> CovariateData:
    """Convenience function to merge builder outputs."""
    return SparseFeatureAssembler().merge(results)


def _as_output(result: DispatchResult | BuilderOutput) -> BuilderOutput:
    if isinstance(result, DispatchResult):
        return result.builder_id, result.data
    builder_id, data = result
    return builder_id, data


def builder_keys(builder_ids: Sequence[str]) -> list[str]:
    """
    Per-invocation keys for builder ids, in order.

    A builder that runs more than once gets #2, #3, ... on its later runs.
    """
    keys: list[str] = []
    seen: set[str] = set()
    for builder_id in builder_ids:
        key = builder_id
        n = 2
        while key in seen:
            key = f"{builder_id}#{n}"
            n += 1
        seen.add(key)
        keys.append(key)
    return keys


def _concat(parts: list[pd.DataFrame], empty: pd.DataFrame) -> pd.DataFrame:
    if not parts:
        return empty
    return pd.concat(parts, ignore_index=True)
