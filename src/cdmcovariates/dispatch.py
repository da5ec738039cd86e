"""
Builder dispatch.

Runs each requested builder against the shared cohort temp table and
collects the results in the order the settings were supplied.
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Sequence

import pandas as pd
import pandera.errors

from cdmcovariates.builders.base import BuildContext, CovariateSettings
from cdmcovariates.builders.registry import BuilderInfo, BuilderRegistry, get_registry
from cdmcovariates.data import CovariateData
from cdmcovariates.errors import BuilderExecutionError
from cdmcovariates.schemas.registry import SchemaRegistry
from cdmcovariates.sql import read_sql, render_sql
from cdmcovariates.utils.logging import get_logger

log = get_logger(__name__)

COHORT_ROWS_SQL = """
SELECT @row_id_field AS row_id, subject_id, cohort_start_date
FROM @cohort_table
"""


@dataclass
class DispatchResult:
    """
    Outcome of one builder invocation.

    Attributes:
        builder_id: Builder that ran.
        settings: Settings it ran with.
        data: Its (validated) output, or None when it produced nothing.
        elapsed_seconds: Wall-clock run time of the builder.
    """

    builder_id: str
    settings: CovariateSettings
    data: CovariateData | None
    elapsed_seconds: float

    @property
    def produced_covariates(self) -> bool:
        """Whether the builder returned any covariates."""
        return self.data is not None and not self.data.is_empty


class BuilderDispatcher:
    """
    Runs builders for a list of settings against one cohort.

    Every settings object is resolved before the database is touched.
    Builders run on a thread pool of ``max_workers`` threads; with one
    worker and no timeout they run inline in the caller's thread, which
    keeps connections that are bound to their creating thread usable.
    The first failing builder aborts the run.
    """

    def __init__(
        self,
        registry: BuilderRegistry | None = None,
        max_workers: int = 1,
        timeout: float | None = None,
    ) -> None:
        """
        Initialize dispatcher.

        Args:
            registry: Builder registry (default: global registry).
            max_workers: Maximum builders running at once.
            timeout: Per-builder timeout in seconds (None = no limit).
        """
        if max_workers < 1:
            msg = f"max_workers must be >= 1, got {max_workers}"
            raise ValueError(msg)
        if timeout is not None and timeout <= 0:
            msg = f"timeout must be positive, got {timeout}"
            raise ValueError(msg)
        self.registry = registry if registry is not None else get_registry()
        self.max_workers = max_workers
        self.timeout = timeout

    def dispatch(
        self,
        context: BuildContext,
        settings: CovariateSettings | Sequence[CovariateSettings],
    ) -> list[DispatchResult]:
        """
        Run the builders for the given settings.

        Args:
            context: Connection, schemas and cohort handle shared by all builders.
            settings: One settings object or a sequence of them.

        Returns:
            One DispatchResult per settings object, in input order.

        Raises:
            UnknownBuilderError: If any settings object has no builder.
            ValueError: If the cohort row ids are not unique.
            BuilderExecutionError: If a builder fails, times out, or
                returns output that breaks its contract.
        """
        resolved = self.registry.resolve_all(settings)
        if not resolved:
            return []

        cohort_row_ids = self.load_cohort_row_ids(context)
        log.info(
            "Dispatching covariate builders",
            builders=[info.builder_id for _, info in resolved],
            cohort_rows=len(cohort_row_ids),
            workers=self.max_workers,
        )

        if self.max_workers == 1 and self.timeout is None:
            raw = [self._run_inline(info, s, context) for s, info in resolved]
        else:
            raw = self._run_pooled(resolved, context)

        results = []
        for (s, info), (data, elapsed) in zip(resolved, raw):
            checked = self.check_output(info, data, cohort_row_ids)
            n_values = 0 if checked is None else len(checked.covariates)
            log.info(
                "Builder finished",
                builder_id=info.builder_id,
                values=n_values,
                seconds=round(elapsed, 3),
            )
            results.append(
                DispatchResult(
                    builder_id=info.builder_id,
                    settings=s,
                    data=checked,
                    elapsed_seconds=elapsed,
                )
            )
        return results

    def load_cohort_row_ids(self, context: BuildContext) -> set[int]:
        """
        Read and validate the cohort rows builders will see.

        Returns:
            Set of cohort row ids.

        Raises:
            ValueError: If the row id column is not unique or the cohort rows
                do not match the cohort schema.
        """
        row_id_field = context.cohort.row_id_field
        sql = render_sql(
            COHORT_ROWS_SQL,
            row_id_field=row_id_field,
            cohort_table=context.cohort.table,
        )
        rows = read_sql(context.connection, sql)

        duplicated = rows.loc[rows["row_id"].duplicated(), "row_id"]
        if not duplicated.empty:
            ids = sorted({int(r) for r in duplicated})
            msg = (
                f"Cohort column '{row_id_field}' does not identify rows uniquely; "
                f"duplicated ids: {ids[:10]}"
            )
            raise ValueError(msg)

        try:
            cohort = SchemaRegistry.validate(rows, "cohort")
        except (pandera.errors.SchemaError, pandera.errors.SchemaErrors) as e:
            msg = f"Cohort table {context.cohort.table} does not match the cohort schema: {e}"
            raise ValueError(msg) from e
        return set(cohort["row_id"].astype("int64").tolist())

    def _run_inline(
        self,
        info: BuilderInfo,
        settings: CovariateSettings,
        context: BuildContext,
    ) -> tuple[CovariateData | None, float]:
        try:
            return _timed_build(info, settings, context)
        except Exception as e:
            log.error("Builder failed", builder_id=info.builder_id, error=str(e))
            raise BuilderExecutionError(info.builder_id, e) from e

    def _run_pooled(
        self,
        resolved: list[tuple[CovariateSettings, BuilderInfo]],
        context: BuildContext,
    ) -> list[tuple[CovariateData | None, float]]:
        executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="covariate-builder",
        )
        try:
            futures: list[Future[tuple[CovariateData | None, float]]] = [
                executor.submit(_timed_build, info, s, context) for s, info in resolved
            ]
            outputs = []
            for (_, info), future in zip(resolved, futures):
                try:
                    outputs.append(future.result(timeout=self.timeout))
                except FuturesTimeoutError as e:
                    if future.done():
                        raise BuilderExecutionError(info.builder_id, e) from e
                    log.error(
                        "Builder timed out",
                        builder_id=info.builder_id,
                        timeout=self.timeout,
                    )
                    raise BuilderExecutionError(
                        info.builder_id, f"timed out after {self.timeout}s"
                    ) from e
                except Exception as e:
                    log.error("Builder failed", builder_id=info.builder_id, error=str(e))
                    raise BuilderExecutionError(info.builder_id, e) from e
            return outputs
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def check_output(
        self,
        info: BuilderInfo,
        data: object,
        cohort_row_ids: set[int],
    ) -> CovariateData | None:
        """
        Validate a builder's output against the builder contract.

        Non-empty output must pass the pandera schemas, cover only cohort
        rows, define every emitted id in covariate_ref, hold at most one
        value per (row_id, covariate_id) cell, stay inside the builder's own
        id range if it claims one, and stay out of ranges claimed by other
        registered builders.

        Args:
            info: Builder that produced the output.
            data: Whatever the builder returned.
            cohort_row_ids: Row ids present in the cohort.

        Returns:
            The validated CovariateData (types coerced), or None.

        Raises:
            BuilderExecutionError: If the output breaks the contract.
        """
        if data is None:
            return None
        if not isinstance(data, CovariateData):
            raise BuilderExecutionError(
                info.builder_id,
                f"returned {type(data).__name__}, expected CovariateData or None",
            )
        if data.is_empty:
            return data

        try:
            covariates = SchemaRegistry.validate(data.covariates, "covariate")
            covariate_ref = SchemaRegistry.validate(data.covariate_ref, "covariate_ref")
            analysis_ref = SchemaRegistry.validate(data.analysis_ref, "analysis_ref")
        except (pandera.errors.SchemaError, pandera.errors.SchemaErrors) as e:
            raise BuilderExecutionError(info.builder_id, e) from e

        unknown_rows = set(covariates["row_id"].tolist()) - cohort_row_ids
        if unknown_rows:
            raise BuilderExecutionError(
                info.builder_id,
                f"row ids not in cohort: {sorted(unknown_rows)[:10]}",
            )

        undefined = set(covariates["covariate_id"].tolist()) - set(
            covariate_ref["covariate_id"].tolist()
        )
        if undefined:
            raise BuilderExecutionError(
                info.builder_id,
                f"covariate ids missing from covariate_ref: {sorted(undefined)[:10]}",
            )

        repeated = covariates.duplicated(subset=["row_id", "covariate_id"])
        if repeated.any():
            cells = [
                (int(r), int(c))
                for r, c in covariates.loc[repeated, ["row_id", "covariate_id"]].itertuples(
                    index=False, name=None
                )
            ]
            raise BuilderExecutionError(
                info.builder_id,
                f"duplicate (row_id, covariate_id) cells: {cells[:10]}",
            )

        ids = sorted(int(c) for c in pd.unique(covariate_ref["covariate_id"]))
        outside = [cid for cid in ids if not info.owns_covariate_id(cid)]
        if outside:
            raise BuilderExecutionError(
                info.builder_id,
                f"covariate ids {outside[:10]} outside "
                f"registered range {info.covariate_id_range}",
            )

        for other_id in self.registry.list_builders():
            other = self.registry.get_info(other_id)
            if other_id == info.builder_id or other.covariate_id_range is None:
                continue
            trespassing = [cid for cid in ids if other.owns_covariate_id(cid)]
            if trespassing:
                raise BuilderExecutionError(
                    info.builder_id,
                    f"covariate ids {trespassing[:10]} inside range "
                    f"{other.covariate_id_range} claimed by '{other_id}'",
                )

        return CovariateData(
            covariates=covariates,
            covariate_ref=covariate_ref,
            analysis_ref=analysis_ref,
            metadata=data.metadata,
        )


def _timed_build(
    info: BuilderInfo,
    settings: CovariateSettings,
    context: BuildContext,
) -> tuple[CovariateData | None, float]:
    """Run one builder and measure its wall-clock time."""
    start = time.perf_counter()
    data = info.builder.build(context, settings)
    return data, time.perf_counter() - start
