"""
Demographic covariates: gender, age and index year.

Covariate ids follow the ``concept_id * 1000 + analysis_id`` convention,
with age (no concept) fixed at 1002.
"""

import pandas as pd

from cdmcovariates.builders.base import (
    BuildContext,
    CovariateBuilder,
    CovariateSettings,
    covariate_id_for,
)
from cdmcovariates.data import CovariateData
from cdmcovariates.utils.logging import get_logger

log = get_logger(__name__)

GENDER_ANALYSIS_ID = 1
AGE_ANALYSIS_ID = 2
INDEX_YEAR_ANALYSIS_ID = 6
AGE_COVARIATE_ID = 1002

GENDER_CONCEPT_NAMES: dict[int, str] = {
    8507: "MALE",
    8532: "FEMALE",
}

DEMOGRAPHICS_SQL = """
SELECT c.@row_id_field AS row_id,
    c.cohort_start_date,
    p.year_of_birth,
    p.gender_concept_id
FROM @cohort_table c
INNER JOIN @cdm_database_schema.person p
    ON c.subject_id = p.person_id
"""


class DemographicsSettings(CovariateSettings):
    """Settings for demographic covariates."""

    builder_id = "demographics"

    use_gender: bool = False
    use_age: bool = False
    use_index_year: bool = False

    @property
    def any_enabled(self) -> bool:
        """Whether at least one demographic covariate is requested."""
        return self.use_gender or self.use_age or self.use_index_year


def create_demographics_covariate_settings(
    use_gender: bool = False,
    use_age: bool = False,
    use_index_year: bool = False,
) -> DemographicsSettings:
    """Create settings for the demographics builder."""
    return DemographicsSettings(
        use_gender=use_gender,
        use_age=use_age,
        use_index_year=use_index_year,
    )


class DemographicsBuilder(CovariateBuilder):
    """Builds gender, age and index-year covariates from the person table."""

    def build(
        self,
        context: BuildContext,
        settings: CovariateSettings,
    ) -> CovariateData | None:
        if not isinstance(settings, DemographicsSettings):
            msg = f"Expected DemographicsSettings, got {type(settings).__name__}"
            raise TypeError(msg)
        if not settings.any_enabled:
            return None

        df, sql = context.query(DEMOGRAPHICS_SQL)
        index_dates = pd.to_datetime(df["cohort_start_date"])

        covariate_parts: list[pd.DataFrame] = []
        ref_rows: list[dict[str, object]] = []
        analysis_rows: list[dict[str, object]] = []

        if settings.use_gender:
            known = df[df["gender_concept_id"].isin(list(GENDER_CONCEPT_NAMES))]
            ids = known["gender_concept_id"].map(
                lambda c: covariate_id_for(int(c), GENDER_ANALYSIS_ID)
            )
            covariate_parts.append(
                pd.DataFrame(
                    {"row_id": known["row_id"], "covariate_id": ids, "covariate_value": 1.0}
                )
            )
            for concept_id in sorted(known["gender_concept_id"].unique()):
                ref_rows.append(
                    {
                        "covariate_id": covariate_id_for(int(concept_id), GENDER_ANALYSIS_ID),
                        "covariate_name": f"gender = {GENDER_CONCEPT_NAMES[int(concept_id)]}",
                        "analysis_id": GENDER_ANALYSIS_ID,
                        "concept_id": int(concept_id),
                    }
                )
            analysis_rows.append(
                {
                    "analysis_id": GENDER_ANALYSIS_ID,
                    "analysis_name": "DemographicsGender",
                    "domain_id": "Demographics",
                    "is_binary": True,
                    "missing_means_zero": True,
                }
            )

        if settings.use_age:
            age = index_dates.dt.year - df["year_of_birth"].astype("int64")
            aged = pd.DataFrame(
                {
                    "row_id": df["row_id"],
                    "covariate_id": AGE_COVARIATE_ID,
                    "covariate_value": age.astype("float64"),
                }
            )
            aged = aged[aged["covariate_value"] != 0]
            covariate_parts.append(aged)
            if not aged.empty:
                ref_rows.append(
                    {
                        "covariate_id": AGE_COVARIATE_ID,
                        "covariate_name": "age in years",
                        "analysis_id": AGE_ANALYSIS_ID,
                        "concept_id": 0,
                    }
                )
            analysis_rows.append(
                {
                    "analysis_id": AGE_ANALYSIS_ID,
                    "analysis_name": "DemographicsAge",
                    "domain_id": "Demographics",
                    "is_binary": False,
                    "missing_means_zero": False,
                }
            )

        if settings.use_index_year:
            years = index_dates.dt.year.astype("int64")
            covariate_parts.append(
                pd.DataFrame(
                    {
                        "row_id": df["row_id"],
                        "covariate_id": years.map(
                            lambda y: covariate_id_for(int(y), INDEX_YEAR_ANALYSIS_ID)
                        ),
                        "covariate_value": 1.0,
                    }
                )
            )
            for year in sorted(years.unique()):
                ref_rows.append(
                    {
                        "covariate_id": covariate_id_for(int(year), INDEX_YEAR_ANALYSIS_ID),
                        "covariate_name": f"index year: {int(year)}",
                        "analysis_id": INDEX_YEAR_ANALYSIS_ID,
                        "concept_id": 0,
                    }
                )
            analysis_rows.append(
                {
                    "analysis_id": INDEX_YEAR_ANALYSIS_ID,
                    "analysis_name": "DemographicsIndexYear",
                    "domain_id": "Demographics",
                    "is_binary": True,
                    "missing_means_zero": True,
                }
            )

        covariates = pd.concat(covariate_parts, ignore_index=True)
        log.debug(
            "Built demographic covariates",
            rows=len(df),
            values=len(covariates),
            covariates=len(ref_rows),
        )
        return CovariateData(
            covariates=covariates,
            covariate_ref=pd.DataFrame(ref_rows),
            analysis_ref=pd.DataFrame(analysis_rows),
            metadata={"sql": sql, "settings": settings.describe()},
        )
