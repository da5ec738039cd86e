"""
End-to-end covariate extraction.

Materializes the cohort temp table from a CDM cohort table, dispatches the
requested builders against it, merges their output, and drops the temp
table again.
"""

import uuid
from typing import Any, Sequence

from cdmcovariates.assembly import SparseFeatureAssembler, builder_keys
from cdmcovariates.builders.base import (
    BuildContext,
    CdmVersionTag,
    CohortReference,
    CovariateSettings,
)
from cdmcovariates.builders.registry import BuilderRegistry, get_registry
from cdmcovariates.data import CovariateData
from cdmcovariates.dispatch import BuilderDispatcher
from cdmcovariates.sql import execute_sql, qualify, read_sql, render_sql
from cdmcovariates.utils.hashing import hash_config
from cdmcovariates.utils.logging import get_logger, log_context

log = get_logger(__name__)

CREATE_COHORT_SQL = """
CREATE @temp_keyword TABLE @cohort_person AS
SELECT @row_id_expr AS row_id,
    subject_id,
    cohort_start_date,
    @definition_column AS @definition_column
FROM @cohort_source
"""

DROP_COHORT_SQL = "DROP TABLE @cohort_person"

DUPLICATE_ROWS_SQL = """
SELECT row_id
FROM @cohort_person
GROUP BY row_id
HAVING COUNT(*) > 1
ORDER BY row_id
"""


def create_cohort_table(
    connection: Any,
    cohort_table: str = "cohort",
    cohort_database_schema: str | None = None,
    cohort_ids: Sequence[int] | None = None,
    cdm_version: CdmVersionTag = "5",
    row_id_field: str = "subject_id",
    temp_schema: str | None = None,
) -> CohortReference:
    """
    Create the cohort_person temp table builders read from.

    Args:
        connection: Open DB-API 2.0 connection.
        cohort_table: Name of the source cohort table.
        cohort_database_schema: Schema of the cohort table.
        cohort_ids: Cohort definition (v5) or concept (v4) ids to keep;
            None keeps all rows, an empty sequence keeps none.
        cdm_version: CDM version of the cohort table.
        row_id_field: Column of the cohort table that identifies a row.
        temp_schema: Schema for an emulated temp table; None creates a
            native temporary table.

    Returns:
        Reference to the created table, with ``row_id`` as row id column.
    """
    reference = CohortReference(
        table=qualify(temp_schema, f"cohort_person_{uuid.uuid4().hex[:8]}"),
        row_id_field="row_id",
        cdm_version=cdm_version,
    )
    sql = render_sql(
        CREATE_COHORT_SQL,
        temp_keyword="" if temp_schema else "TEMPORARY",
        cohort_person=reference.table,
        row_id_expr=row_id_field,
        definition_column=reference.definition_column,
        cohort_source=qualify(cohort_database_schema, cohort_table),
    )
    if cohort_ids is not None:
        if len(cohort_ids) > 0:
            sql += render_sql(
                "WHERE @definition_column IN (@cohort_ids)\n",
                definition_column=reference.definition_column,
                cohort_ids=list(cohort_ids),
            )
        else:
            sql += "WHERE 1 = 0\n"
    execute_sql(connection, sql)
    log.debug("Created cohort temp table", table=reference.table)
    return reference


def drop_cohort_table(connection: Any, cohort: CohortReference) -> None:
    """Drop a cohort temp table created by create_cohort_table."""
    execute_sql(connection, render_sql(DROP_COHORT_SQL, cohort_person=cohort.table))
    log.debug("Dropped cohort temp table", table=cohort.table)


def get_db_covariate_data(
    connection: Any,
    cdm_database_schema: str,
    covariate_settings: CovariateSettings | Sequence[CovariateSettings],
    *,
    cohort_table: str = "cohort",
    cohort_database_schema: str | None = None,
    cohort_ids: Sequence[int] | None = None,
    cdm_version: CdmVersionTag = "5",
    row_id_field: str = "subject_id",
    temp_schema: str | None = None,
    registry: BuilderRegistry | None = None,
    max_workers: int = 1,
    timeout: float | None = None,
) -> CovariateData:
    """
    Construct covariates for a cohort with one or more builders.

    Args:
        connection: Open DB-API 2.0 connection to the CDM database.
        cdm_database_schema: Schema holding the CDM tables.
        covariate_settings: One settings object or a sequence of them.
        cohort_table: Name of the cohort table.
        cohort_database_schema: Schema of the cohort table (default: CDM schema).
        cohort_ids: Cohort ids to restrict to (None = all, empty = none).
        cdm_version: "4" or "5".
        row_id_field: Cohort column identifying each row.
        temp_schema: Schema for emulated temp tables.
        registry: Builder registry (default: global registry).
        max_workers: Maximum builders running at once.
        timeout: Per-builder timeout in seconds.

    Returns:
        Merged CovariateData. Its metadata holds a ``builders`` mapping
        and a ``run`` provenance record.

    Raises:
        UnknownBuilderError: Before any database access, if a settings
            object has no registered builder.
        ValueError: If row_id_field does not identify cohort rows uniquely.
        BuilderExecutionError: If a builder fails or times out.
        CovariateIdCollisionError: If two builders emit the same covariate id.
    """
    if cdm_version not in ("4", "5"):
        msg = f"cdm_version must be '4' or '5', got {cdm_version!r}"
        raise ValueError(msg)

    registry = registry if registry is not None else get_registry()
    resolved = registry.resolve_all(covariate_settings)
    settings_list = [s for s, _ in resolved]

    dispatcher = BuilderDispatcher(registry=registry, max_workers=max_workers, timeout=timeout)
    assembler = SparseFeatureAssembler()

    with log_context(cohort_table=cohort_table, cdm_version=cdm_version):
        log.info("Starting covariate extraction", builders=len(settings_list))

        cohort = create_cohort_table(
            connection,
            cohort_table=cohort_table,
            cohort_database_schema=cohort_database_schema or cdm_database_schema,
            cohort_ids=cohort_ids,
            cdm_version=cdm_version,
            row_id_field=row_id_field,
            temp_schema=temp_schema,
        )
        try:
            _check_unique_row_ids(connection, cohort, row_id_field)
            population_size = _count_rows(connection, cohort)
            context = BuildContext(
                connection=connection,
                cdm_database_schema=cdm_database_schema,
                cohort=cohort,
                temp_schema=temp_schema,
            )
            results = dispatcher.dispatch(context, settings_list)
        finally:
            drop_cohort_table(connection, cohort)

        merged = assembler.merge(results)
        keys = builder_keys([r.builder_id for r in results])
        merged.metadata["run"] = {
            "cdm_database_schema": cdm_database_schema,
            "cohort_table": cohort_table,
            "cohort_ids": list(cohort_ids) if cohort_ids is not None else None,
            "cdm_version": cdm_version,
            "row_id_field": row_id_field,
            "population_size": population_size,
            "settings": [s.describe() for s in settings_list],
            "settings_hash": hash_config(settings_list),
            "elapsed_seconds": {
                key: round(r.elapsed_seconds, 3) for key, r in zip(keys, results)
            },
        }

        log.info(
            "Covariate extraction complete",
            population=population_size,
            rows_with_covariates=merged.n_rows,
            covariates=merged.n_covariates,
        )
    return merged


def _count_rows(connection: Any, cohort: CohortReference) -> int:
    df = read_sql(connection, f"SELECT COUNT(*) AS n FROM {cohort.table}")
    return int(df["n"].iloc[0])


def _check_unique_row_ids(connection: Any, cohort: CohortReference, row_id_field: str) -> None:
    """Raise ValueError if the row id column repeats, e.g. a subject in two cohorts."""
    sql = render_sql(DUPLICATE_ROWS_SQL, cohort_person=cohort.table)
    duplicated = [int(r) for r in read_sql(connection, sql)["row_id"]]
    if duplicated:
        msg = (
            f"row_id_field '{row_id_field}' does not identify cohort rows uniquely; "
            f"duplicated ids: {duplicated[:10]}"
        )
        raise ValueError(msg)
