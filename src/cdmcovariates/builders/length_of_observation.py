"""
Length-of-observation covariate.

Number of days between the start of the observation period that contains
the index date and the index date itself.
"""

import pandas as pd
from pydantic import Field

from cdmcovariates.builders.base import (
    BuildContext,
    CovariateBuilder,
    CovariateSettings,
    covariate_id_for,
)
from cdmcovariates.data import CovariateData
from cdmcovariates.utils.logging import get_logger

log = get_logger(__name__)

# Covariate id block claimed by this builder (concept id 0, any analysis id).
LOO_COVARIATE_ID_RANGE = (1, 999)

LOO_SQL = """
SELECT c.@row_id_field AS row_id,
    c.cohort_start_date,
    op.observation_period_start_date
FROM @cohort_table c
INNER JOIN @cdm_database_schema.observation_period op
    ON op.person_id = c.subject_id
WHERE c.cohort_start_date >= op.observation_period_start_date
    AND c.cohort_start_date <= op.observation_period_end_date
"""


class LooSettings(CovariateSettings):
    """Settings for the length-of-observation builder."""

    builder_id = "length_of_observation"

    use_length_of_obs: bool = True
    analysis_id: int = Field(default=999, ge=1, le=999)


def create_loo_covariate_settings(
    use_length_of_obs: bool = True,
    analysis_id: int = 999,
) -> LooSettings:
    """Create settings for the length-of-observation builder."""
    return LooSettings(use_length_of_obs=use_length_of_obs, analysis_id=analysis_id)


class LengthOfObservationBuilder(CovariateBuilder):
    """Builds the days-of-prior-observation covariate."""

    def build(
        self,
        context: BuildContext,
        settings: CovariateSettings,
    ) -> CovariateData | None:
        if not isinstance(settings, LooSettings):
            msg = f"Expected LooSettings, got {type(settings).__name__}"
            raise TypeError(msg)
        if not settings.use_length_of_obs:
            return None

        df, sql = context.query(LOO_SQL)
        days = (
            pd.to_datetime(df["cohort_start_date"])
            - pd.to_datetime(df["observation_period_start_date"])
        ).dt.days

        covariate_id = covariate_id_for(0, settings.analysis_id)
        covariates = pd.DataFrame(
            {
                "row_id": df["row_id"],
                "covariate_id": covariate_id,
                "covariate_value": days.astype("float64"),
            }
        )
        # Overlapping observation periods: keep the longest prior observation
        covariates = covariates.sort_values("covariate_value", ascending=False).drop_duplicates(
            "row_id", keep="first"
        )
        covariates = covariates.sort_values("row_id")
        covariates = covariates[covariates["covariate_value"] != 0]

        log.debug("Built length-of-observation covariate", values=len(covariates))
        return CovariateData(
            covariates=covariates.reset_index(drop=True),
            covariate_ref=pd.DataFrame(
                [
                    {
                        "covariate_id": covariate_id,
                        "covariate_name": "Length of observation in days",
                        "analysis_id": settings.analysis_id,
                        "concept_id": 0,
                    }
                ]
            ),
            analysis_ref=pd.DataFrame(
                [
                    {
                        "analysis_id": settings.analysis_id,
                        "analysis_name": "Length of observation",
                        "domain_id": "Demographics",
                        "is_binary": False,
                        "missing_means_zero": False,
                    }
                ]
            ),
            metadata={"sql": sql, "settings": settings.describe()},
        )
