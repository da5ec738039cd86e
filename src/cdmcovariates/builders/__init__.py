"""
Covariate builders and their registry.

Builders are registered against a settings type; a run resolves every
settings object to its builder before any database access.
"""

from cdmcovariates.builders.base import (
    BuildContext,
    CohortReference,
    CovariateBuilder,
    CovariateSettings,
    FunctionBuilder,
    covariate_id_for,
)
from cdmcovariates.builders.conditions import (
    ConditionOccurrenceBuilder,
    ConditionOccurrenceSettings,
    create_condition_covariate_settings,
)
from cdmcovariates.builders.demographics import (
    DemographicsBuilder,
    DemographicsSettings,
    create_demographics_covariate_settings,
)
from cdmcovariates.builders.length_of_observation import (
    LengthOfObservationBuilder,
    LooSettings,
    create_loo_covariate_settings,
)
from cdmcovariates.builders.registry import (
    BuilderInfo,
    BuilderRegistry,
    create_default_registry,
    get_registry,
    register_builder,
)

__all__ = [
    "BuildContext",
    "BuilderInfo",
    "BuilderRegistry",
    "CohortReference",
    "ConditionOccurrenceBuilder",
    "ConditionOccurrenceSettings",
    "CovariateBuilder",
    "CovariateSettings",
    "DemographicsBuilder",
    "DemographicsSettings",
    "FunctionBuilder",
    "LengthOfObservationBuilder",
    "LooSettings",
    "covariate_id_for",
    "create_condition_covariate_settings",
    "create_default_registry",
    "create_demographics_covariate_settings",
    "create_loo_covariate_settings",
    "get_registry",
    "register_builder",
]
