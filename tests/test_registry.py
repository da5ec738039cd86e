"""Tests for the builder registry."""

import pytest
from pydantic import ValidationError

from cdmcovariates.builders import (
    BuilderRegistry,
    CovariateSettings,
    DemographicsBuilder,
    DemographicsSettings,
    FunctionBuilder,
    LooSettings,
    get_registry,
    register_builder,
)
from cdmcovariates.errors import UnknownBuilderError


class ToySettings(CovariateSettings):
    """Settings for a test builder."""

    builder_id = "toy"

    value: float = 1.0


class OtherToySettings(CovariateSettings):
    """Different settings type reusing the 'toy' builder id."""

    builder_id = "toy"


class UntaggedSettings(CovariateSettings):
    """Settings without a builder id."""


def toy_builder(context, settings):
    return None


class TestRegistration:
    """Tests for BuilderRegistry.register."""

    def test_register_and_get_info(self) -> None:
        """Registered builders can be looked up by id."""
        registry = BuilderRegistry()
        info = registry.register(ToySettings, toy_builder, description="Toy")

        assert info.builder_id == "toy"
        assert info.settings_type is ToySettings
        assert info.description == "Toy"
        assert registry.get_info("toy") is info
        assert "toy" in registry
        assert len(registry) == 1

    def test_function_is_wrapped(self) -> None:
        """Plain functions are adapted to the builder interface."""
        registry = BuilderRegistry()
        info = registry.register(ToySettings, toy_builder)

        assert isinstance(info.builder, FunctionBuilder)
        assert info.builder.name == "toy_builder"

    def test_builder_instance_kept(self) -> None:
        """Builder instances are registered as-is."""
        registry = BuilderRegistry()
        builder = DemographicsBuilder()
        info = registry.register(DemographicsSettings, builder)

        assert info.builder is builder

    def test_missing_builder_id(self) -> None:
        """Settings types must declare a builder id."""
        registry = BuilderRegistry()
        with pytest.raises(ValueError, match="builder_id"):
            registry.register(UntaggedSettings, toy_builder)

    def test_non_settings_type(self) -> None:
        """Only CovariateSettings subclasses can be registered."""
        registry = BuilderRegistry()
        with pytest.raises(TypeError, match="CovariateSettings subclass"):
            registry.register(dict, toy_builder)  # type: ignore[arg-type]

    def test_non_callable_builder(self) -> None:
        """Builders must be CovariateBuilder instances or callables."""
        registry = BuilderRegistry()
        with pytest.raises(TypeError, match="CovariateBuilder or callable"):
            registry.register(ToySettings, "not a builder")  # type: ignore[arg-type]

    def test_inverted_range(self) -> None:
        """Id ranges must have low <= high."""
        registry = BuilderRegistry()
        with pytest.raises(ValueError, match="Invalid covariate id range"):
            registry.register(ToySettings, toy_builder, covariate_id_range=(10, 5))

    def test_overlapping_ranges(self) -> None:
        """Two builders cannot claim overlapping id ranges."""
        registry = BuilderRegistry()
        registry.register(LooSettings, toy_builder, covariate_id_range=(1, 999))

        with pytest.raises(ValueError, match="overlaps"):
            registry.register(ToySettings, toy_builder, covariate_id_range=(999, 2000))

    def test_adjacent_ranges(self) -> None:
        """Touching but disjoint ranges are fine."""
        registry = BuilderRegistry()
        registry.register(LooSettings, toy_builder, covariate_id_range=(1, 999))
        info = registry.register(ToySettings, toy_builder, covariate_id_range=(1000, 1999))

        assert info.owns_covariate_id(1000)
        assert not info.owns_covariate_id(999)

    def test_reregister_same_id(self) -> None:
        """Registering the same builder id again replaces the entry."""
        registry = BuilderRegistry()
        registry.register(ToySettings, toy_builder, covariate_id_range=(1, 10))
        info = registry.register(ToySettings, toy_builder, covariate_id_range=(5, 15))

        assert registry.get_info("toy") is info
        assert len(registry) == 1

    def test_unregister(self) -> None:
        """Unregistered builders are gone; unknown ids raise."""
        registry = BuilderRegistry()
        registry.register(ToySettings, toy_builder)
        registry.unregister("toy")

        assert "toy" not in registry
        with pytest.raises(UnknownBuilderError):
            registry.unregister("toy")


class TestResolution:
    """Tests for resolving settings to builders."""

    def test_resolve(self) -> None:
        """Settings resolve to the builder registered for their type."""
        registry = BuilderRegistry()
        info = registry.register(ToySettings, toy_builder)

        assert registry.resolve(ToySettings(value=2.0)) is info

    def test_unknown_settings(self) -> None:
        """Unregistered settings raise UnknownBuilderError."""
        registry = BuilderRegistry()
        registry.register(ToySettings, toy_builder)

        with pytest.raises(UnknownBuilderError) as exc_info:
            registry.resolve(LooSettings())

        assert exc_info.value.builder_id == "length_of_observation"
        assert exc_info.value.available == ["toy"]

    def test_same_id_different_type(self) -> None:
        """A different settings class reusing a builder id does not resolve."""
        registry = BuilderRegistry()
        registry.register(ToySettings, toy_builder)

        with pytest.raises(UnknownBuilderError):
            registry.resolve(OtherToySettings())

    def test_resolve_non_settings(self) -> None:
        """Objects that are not settings raise TypeError."""
        registry = BuilderRegistry()
        with pytest.raises(TypeError, match="Expected CovariateSettings"):
            registry.resolve({"builder": "toy"})  # type: ignore[arg-type]

    def test_resolve_all_single(self, registry: BuilderRegistry) -> None:
        """A single settings object is accepted."""
        resolved = registry.resolve_all(LooSettings())

        assert [info.builder_id for _, info in resolved] == ["length_of_observation"]

    def test_resolve_all_keeps_order(self, registry: BuilderRegistry) -> None:
        """Sequences resolve in input order."""
        settings = [LooSettings(), DemographicsSettings(use_age=True)]
        resolved = registry.resolve_all(settings)

        assert [s for s, _ in resolved] == settings
        assert [info.builder_id for _, info in resolved] == [
            "length_of_observation",
            "demographics",
        ]

    def test_resolve_all_fails_on_any_unknown(self, registry: BuilderRegistry) -> None:
        """One unknown entry fails the whole list."""
        with pytest.raises(UnknownBuilderError, match="toy"):
            registry.resolve_all([LooSettings(), ToySettings()])


class TestSettingsFromDict:
    """Tests for building settings from config mappings."""

    def test_builds_settings(self, registry: BuilderRegistry) -> None:
        """The builder key selects the settings type."""
        settings = registry.settings_from_dict({"builder": "demographics", "use_age": True})

        assert settings == DemographicsSettings(use_age=True)

    def test_missing_builder_key(self, registry: BuilderRegistry) -> None:
        """Mappings without a builder key are rejected."""
        with pytest.raises(ValueError, match="'builder' key"):
            registry.settings_from_dict({"use_age": True})

    def test_unknown_builder(self, registry: BuilderRegistry) -> None:
        """Unknown builder ids raise UnknownBuilderError."""
        with pytest.raises(UnknownBuilderError, match="nonexistent"):
            registry.settings_from_dict({"builder": "nonexistent"})

    def test_unknown_option(self, registry: BuilderRegistry) -> None:
        """Unknown options fail settings validation."""
        with pytest.raises(ValidationError):
            registry.settings_from_dict({"builder": "demographics", "use_weight": True})


class TestSettings:
    """Tests for CovariateSettings behaviour."""

    def test_structural_equality(self) -> None:
        """Settings with equal fields compare and hash equal."""
        assert DemographicsSettings(use_age=True) == DemographicsSettings(use_age=True)
        assert hash(LooSettings()) == hash(LooSettings())
        assert DemographicsSettings(use_age=True) != DemographicsSettings(use_gender=True)

    def test_immutable(self) -> None:
        """Settings cannot be modified after creation."""
        settings = LooSettings()
        with pytest.raises(ValidationError):
            settings.use_length_of_obs = False  # type: ignore[misc]

    def test_describe(self) -> None:
        """describe() tags the fields with the builder id."""
        assert LooSettings().describe() == {
            "builder": "length_of_observation",
            "use_length_of_obs": True,
            "analysis_id": 999,
        }


class TestDefaultRegistry:
    """Tests for the built-in and global registries."""

    def test_builtin_builders(self, registry: BuilderRegistry) -> None:
        """The default registry holds the three built-in builders."""
        assert registry.list_builders() == [
            "demographics",
            "length_of_observation",
            "condition_occurrence",
        ]
        assert registry.get_info("length_of_observation").covariate_id_range == (1, 999)

    @pytest.mark.usefixtures("fresh_global_registry")
    def test_register_builder_global(self) -> None:
        """register_builder adds to the global registry."""
        info = register_builder(ToySettings, toy_builder, covariate_id_range=(5000, 5999))

        assert get_registry().resolve(ToySettings()) is info
        assert "demographics" in get_registry()

    @pytest.mark.usefixtures("fresh_global_registry")
    def test_global_registry_is_singleton(self) -> None:
        """get_registry returns the same instance."""
        assert get_registry() is get_registry()
