"""Tests for Pandera schema definitions."""

import pandas as pd
import pandera.errors
import pytest

from cdmcovariates.schemas import (
    AnalysisRefSchema,
    CohortSchema,
    CovariateRefSchema,
    CovariateSchema,
)
from cdmcovariates.schemas.registry import DataRole, SchemaRegistry


class TestCovariateSchema:
    """Tests for CovariateSchema."""

    def test_valid_data(self) -> None:
        """Test that valid triples pass validation."""
        df = pd.DataFrame(
            {"row_id": [1, 2], "covariate_id": [1002, 1002], "covariate_value": [60, 35.5]}
        )
        result = CovariateSchema.validate(df)
        assert result["covariate_value"].dtype == "float64"

    def test_zero_value(self) -> None:
        """Test that stored zeros fail validation."""
        df = pd.DataFrame({"row_id": [1], "covariate_id": [1002], "covariate_value": [0.0]})
        with pytest.raises(pandera.errors.SchemaError):
            CovariateSchema.validate(df)

    def test_missing_column(self) -> None:
        """Test that a missing column fails validation."""
        df = pd.DataFrame({"row_id": [1], "covariate_value": [1.0]})
        with pytest.raises(pandera.errors.SchemaError):
            CovariateSchema.validate(df)


class TestCovariateRefSchema:
    """Tests for CovariateRefSchema."""

    def test_valid_data(self) -> None:
        """Test that valid reference rows pass validation."""
        df = pd.DataFrame(
            {
                "covariate_id": [1002, 999],
                "covariate_name": ["age in years", "Length of observation in days"],
                "analysis_id": [2, 999],
                "concept_id": [0, 0],
            }
        )
        assert len(CovariateRefSchema.validate(df)) == 2

    def test_duplicate_covariate_id(self) -> None:
        """Test that duplicate covariate ids fail validation."""
        df = pd.DataFrame(
            {
                "covariate_id": [1002, 1002],
                "covariate_name": ["a", "b"],
                "analysis_id": [2, 2],
                "concept_id": [0, 0],
            }
        )
        with pytest.raises(pandera.errors.SchemaError):
            CovariateRefSchema.validate(df)


class TestAnalysisRefSchema:
    """Tests for AnalysisRefSchema."""

    def test_negative_analysis_id(self) -> None:
        """Test that negative analysis ids fail validation."""
        df = pd.DataFrame(
            {
                "analysis_id": [-1],
                "analysis_name": ["x"],
                "domain_id": ["Demographics"],
                "is_binary": [True],
                "missing_means_zero": [True],
            }
        )
        with pytest.raises(pandera.errors.SchemaError):
            AnalysisRefSchema.validate(df)


class TestCohortSchema:
    """Tests for CohortSchema."""

    def test_dates_coerced(self) -> None:
        """Test that ISO date strings are coerced to datetimes."""
        df = pd.DataFrame(
            {"row_id": [1, 2], "subject_id": [1, 2], "cohort_start_date": ["2020-01-01", "2020-03-01"]}
        )
        result = CohortSchema.validate(df)
        assert pd.api.types.is_datetime64_any_dtype(result["cohort_start_date"])

    def test_duplicate_row_id(self) -> None:
        """Test that row ids must be unique."""
        df = pd.DataFrame(
            {"row_id": [1, 1], "subject_id": [1, 2], "cohort_start_date": ["2020-01-01"] * 2}
        )
        with pytest.raises(pandera.errors.SchemaError):
            CohortSchema.validate(df)


class TestSchemaRegistry:
    """Tests for SchemaRegistry."""

    def test_registry_version(self) -> None:
        """Test registry version is available."""
        assert SchemaRegistry.registry_version() == "1.0.0"

    def test_list_schemas(self) -> None:
        """Test listing all schemas."""
        assert SchemaRegistry.list_schemas() == [
            "cohort",
            "covariate",
            "covariate_ref",
            "analysis_ref",
        ]

    def test_get_schema(self) -> None:
        """Test getting a schema by name."""
        assert SchemaRegistry.get("covariate") is CovariateSchema

    def test_get_unknown_schema(self) -> None:
        """Test getting an unknown schema raises KeyError."""
        with pytest.raises(KeyError, match="Unknown schema"):
            SchemaRegistry.get("nonexistent")

    def test_list_by_role(self) -> None:
        """Test filtering schemas by role."""
        assert SchemaRegistry.list_by_role(DataRole.INPUT) == ["cohort"]
        assert SchemaRegistry.list_by_role(DataRole.REFERENCE) == [
            "covariate_ref",
            "analysis_ref",
        ]

    def test_validate_method(self) -> None:
        """Test validation through the registry."""
        df = pd.DataFrame({"row_id": [1], "covariate_id": [999], "covariate_value": [12.0]})
        result = SchemaRegistry.validate(df, "covariate")
        assert len(result) == 1
