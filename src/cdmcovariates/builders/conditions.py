"""
Condition occurrence covariates.

One binary covariate per condition concept recorded within a window of
days relative to the index date.
"""

from typing import Any

import pandas as pd
from pydantic import Field, model_validator

from cdmcovariates.builders.base import (
    BuildContext,
    CovariateBuilder,
    CovariateSettings,
    covariate_id_for,
)
from cdmcovariates.data import CovariateData
from cdmcovariates.utils.logging import get_logger

log = get_logger(__name__)

CONDITION_SQL = """
SELECT DISTINCT c.@row_id_field AS row_id,
    c.cohort_start_date,
    co.condition_start_date,
    co.condition_concept_id AS concept_id
FROM @cohort_table c
INNER JOIN @cdm_database_schema.condition_occurrence co
    ON co.person_id = c.subject_id
WHERE co.condition_concept_id != 0
"""

CONCEPT_NAME_SQL = """
SELECT concept_id, concept_name
FROM @cdm_database_schema.concept
WHERE concept_id IN (@concept_ids)
"""


class ConditionOccurrenceSettings(CovariateSettings):
    """Settings for the condition occurrence builder."""

    builder_id = "condition_occurrence"

    use_condition_occurrence: bool = True
    start_day: int = Field(default=-365, le=0)
    end_day: int = Field(default=0, le=0)
    analysis_id: int = Field(default=102, ge=0, le=999)
    included_concept_ids: tuple[int, ...] = ()
    excluded_concept_ids: tuple[int, ...] = ()
    lookup_concept_names: bool = True

    @model_validator(mode="after")
    def check_window(self) -> "ConditionOccurrenceSettings":
        """Ensure the window is not inverted."""
        if self.start_day > self.end_day:
            msg = f"start_day ({self.start_day}) must not be after end_day ({self.end_day})"
            raise ValueError(msg)
        return self


def create_condition_covariate_settings(
    start_day: int = -365,
    end_day: int = 0,
    analysis_id: int = 102,
    included_concept_ids: tuple[int, ...] | list[int] = (),
    excluded_concept_ids: tuple[int, ...] | list[int] = (),
) -> ConditionOccurrenceSettings:
    """Create settings for the condition occurrence builder."""
    return ConditionOccurrenceSettings(
        start_day=start_day,
        end_day=end_day,
        analysis_id=analysis_id,
        included_concept_ids=tuple(included_concept_ids),
        excluded_concept_ids=tuple(excluded_concept_ids),
    )


class ConditionOccurrenceBuilder(CovariateBuilder):
    """Builds binary condition-in-window covariates."""

    def build(
        self,
        context: BuildContext,
        settings: CovariateSettings,
    ) -> CovariateData | None:
        if not isinstance(settings, ConditionOccurrenceSettings):
            msg = f"Expected ConditionOccurrenceSettings, got {type(settings).__name__}"
            raise TypeError(msg)
        if not settings.use_condition_occurrence:
            return None

        sql = CONDITION_SQL
        if settings.included_concept_ids:
            sql += "    AND co.condition_concept_id IN (@included_concept_ids)\n"
        if settings.excluded_concept_ids:
            sql += "    AND co.condition_concept_id NOT IN (@excluded_concept_ids)\n"

        params: dict[str, Any] = {}
        if settings.included_concept_ids:
            params["included_concept_ids"] = list(settings.included_concept_ids)
        if settings.excluded_concept_ids:
            params["excluded_concept_ids"] = list(settings.excluded_concept_ids)

        df, rendered = context.query(sql, **params)

        offset = (
            pd.to_datetime(df["condition_start_date"])
            - pd.to_datetime(df["cohort_start_date"])
        ).dt.days
        in_window = df[(offset >= settings.start_day) & (offset <= settings.end_day)]
        pairs = in_window[["row_id", "concept_id"]].drop_duplicates()

        if pairs.empty:
            log.debug("No conditions in window", analysis_id=settings.analysis_id)
            return CovariateData.empty(
                metadata={"sql": rendered, "settings": settings.describe()}
            )

        covariates = pd.DataFrame(
            {
                "row_id": pairs["row_id"].astype("int64"),
                "covariate_id": pairs["concept_id"].map(
                    lambda c: covariate_id_for(int(c), settings.analysis_id)
                ),
                "covariate_value": 1.0,
            }
        ).reset_index(drop=True)

        concept_ids = sorted(int(c) for c in pairs["concept_id"].unique())
        names = self._concept_names(context, concept_ids, settings)
        window = f"day {settings.start_day} through {settings.end_day} days relative to index"
        covariate_ref = pd.DataFrame(
            [
                {
                    "covariate_id": covariate_id_for(concept_id, settings.analysis_id),
                    "covariate_name": (
                        f"condition_occurrence during {window}: "
                        f"{names.get(concept_id, f'concept {concept_id}')}"
                    ),
                    "analysis_id": settings.analysis_id,
                    "concept_id": concept_id,
                }
                for concept_id in concept_ids
            ]
        )

        log.debug(
            "Built condition covariates",
            values=len(covariates),
            concepts=len(concept_ids),
        )
        return CovariateData(
            covariates=covariates,
            covariate_ref=covariate_ref,
            analysis_ref=pd.DataFrame(
                [
                    {
                        "analysis_id": settings.analysis_id,
                        "analysis_name": "ConditionOccurrence",
                        "domain_id": "Condition",
                        "is_binary": True,
                        "missing_means_zero": True,
                    }
                ]
            ),
            metadata={"sql": rendered, "settings": settings.describe()},
        )

    def _concept_names(
        self,
        context: BuildContext,
        concept_ids: list[int],
        settings: ConditionOccurrenceSettings,
    ) -> dict[int, str]:
        """Look up concept names from the vocabulary, if requested."""
        if not settings.lookup_concept_names:
            return {}
        df, _ = context.query(CONCEPT_NAME_SQL, concept_ids=concept_ids)
        return {int(row.concept_id): str(row.concept_name) for row in df.itertuples()}
