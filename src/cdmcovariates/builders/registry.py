"""
Builder registry.

Maps each CovariateSettings subclass to the builder that consumes it.
Registration validates the pairing up front, so resolving settings at run
time is a pure lookup that either succeeds or raises UnknownBuilderError.
"""

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from cdmcovariates.builders.base import (
    CovariateBuilder,
    CovariateSettings,
    FunctionBuilder,
)
from cdmcovariates.errors import UnknownBuilderError
from cdmcovariates.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class BuilderInfo:
    """
    A registered builder.

    Attributes:
        builder_id: Identifier the settings type is tagged with.
        settings_type: CovariateSettings subclass consumed by the builder.
        builder: Builder instance.
        covariate_id_range: Inclusive (low, high) id block the builder
            claims exclusively (no other builder may emit ids inside it),
            or None if it does not use a contiguous block.
        description: Human-readable description.
    """

    builder_id: str
    settings_type: type[CovariateSettings]
    builder: CovariateBuilder
    covariate_id_range: tuple[int, int] | None = None
    description: str = ""

    @property
    def version(self) -> str:
        """Version of the settings type."""
        return self.settings_type.settings_version

    def owns_covariate_id(self, covariate_id: int) -> bool:
        """Whether an id lies inside the claimed block (True when none is claimed)."""
        if self.covariate_id_range is None:
            return True
        low, high = self.covariate_id_range
        return low <= covariate_id <= high


class BuilderRegistry:
    """
    Registry of covariate builders keyed by settings type.

    Provides registration-time validation and settings resolution.
    """

    def __init__(self) -> None:
        self._builders: dict[str, BuilderInfo] = {}

    def register(
        self,
        settings_type: type[CovariateSettings],
        builder: CovariateBuilder | Callable[..., Any],
        *,
        covariate_id_range: tuple[int, int] | None = None,
        description: str = "",
    ) -> BuilderInfo:
        """
        Register a builder for a settings type.

        Args:
            settings_type: CovariateSettings subclass with a builder_id.
            builder: CovariateBuilder instance, or a function taking
                (context, settings).
            covariate_id_range: Optional inclusive id block the builder claims.
            description: Human-readable description.

        Returns:
            The registered BuilderInfo.

        Raises:
            TypeError: If settings_type or builder has the wrong type.
            ValueError: If builder_id is empty or the id block is malformed
                or overlaps another builder's block.
        """
        if not (isinstance(settings_type, type) and issubclass(settings_type, CovariateSettings)):
            msg = f"settings_type must be a CovariateSettings subclass, got {settings_type!r}"
            raise TypeError(msg)

        builder_id = settings_type.builder_id
        if not builder_id:
            msg = f"{settings_type.__name__} does not declare a builder_id"
            raise ValueError(msg)

        if not isinstance(builder, CovariateBuilder):
            if not callable(builder):
                msg = f"builder must be a CovariateBuilder or callable, got {builder!r}"
                raise TypeError(msg)
            builder = FunctionBuilder(builder)

        if covariate_id_range is not None:
            covariate_id_range = self._check_range(builder_id, covariate_id_range)

        if builder_id in self._builders:
            log.warning("Overwriting existing builder", builder_id=builder_id)

        info = BuilderInfo(
            builder_id=builder_id,
            settings_type=settings_type,
            builder=builder,
            covariate_id_range=covariate_id_range,
            description=description,
        )
        self._builders[builder_id] = info
        log.debug("Registered covariate builder", builder_id=builder_id, builder=builder.name)
        return info

    def _check_range(
        self,
        builder_id: str,
        covariate_id_range: tuple[int, int],
    ) -> tuple[int, int]:
        """Validate an id block against its shape and the other registered blocks."""
        low, high = (int(v) for v in covariate_id_range)
        if low > high:
            msg = f"Invalid covariate id range for '{builder_id}': {low} > {high}"
            raise ValueError(msg)

        for other in self._builders.values():
            if other.builder_id == builder_id or other.covariate_id_range is None:
                continue
            other_low, other_high = other.covariate_id_range
            if low <= other_high and other_low <= high:
                msg = (
                    f"Covariate id range ({low}, {high}) for '{builder_id}' overlaps "
                    f"({other_low}, {other_high}) of '{other.builder_id}'"
                )
                raise ValueError(msg)
        return low, high

    def unregister(self, builder_id: str) -> None:
        """Remove a builder; unknown ids raise UnknownBuilderError."""
        if builder_id not in self._builders:
            raise UnknownBuilderError(builder_id, self.list_builders())
        del self._builders[builder_id]

    def get_info(self, builder_id: str) -> BuilderInfo:
        """
        Get a registered builder by id.

        Raises:
            UnknownBuilderError: If no builder is registered under the id.
        """
        if builder_id not in self._builders:
            raise UnknownBuilderError(builder_id, self.list_builders())
        return self._builders[builder_id]

    def list_builders(self) -> list[str]:
        """List registered builder ids in registration order."""
        return list(self._builders.keys())

    def __contains__(self, builder_id: object) -> bool:
        return builder_id in self._builders

    def __len__(self) -> int:
        return len(self._builders)

    def resolve(self, settings: CovariateSettings) -> BuilderInfo:
        """
        Resolve a settings object to its builder.

        The settings type itself must be registered; a different class
        reusing a registered builder_id does not match.

        Raises:
            TypeError: If settings is not a CovariateSettings.
            UnknownBuilderError: If no builder is registered for its type.
        """
        if not isinstance(settings, CovariateSettings):
            msg = f"Expected CovariateSettings, got {type(settings).__name__}"
            raise TypeError(msg)

        info = self._builders.get(settings.builder_id)
        if info is None or info.settings_type is not type(settings):
            label = settings.builder_id or type(settings).__name__
            raise UnknownBuilderError(label, self.list_builders())
        return info

    def resolve_all(
        self,
        settings: CovariateSettings | Sequence[CovariateSettings],
    ) -> list[tuple[CovariateSettings, BuilderInfo]]:
        """
        Resolve one settings object or a sequence of them, in order.

        Every entry is resolved before anything is returned, so an unknown
        builder is reported before any builder runs.
        """
        if isinstance(settings, CovariateSettings):
            settings = [settings]
        return [(s, self.resolve(s)) for s in settings]

    def settings_from_dict(self, data: Mapping[str, Any]) -> CovariateSettings:
        """
        Build a settings object from a config mapping.

        Args:
            data: Mapping with a 'builder' key naming the builder id; the
                remaining keys are passed to the settings type.

        Returns:
            Validated settings instance.

        Raises:
            ValueError: If the 'builder' key is missing.
            UnknownBuilderError: If the builder id is not registered.
        """
        options = dict(data)
        builder_id = options.pop("builder", None)
        if not builder_id:
            msg = f"Covariate settings need a 'builder' key. Available: {self.list_builders()}"
            raise ValueError(msg)
        info = self.get_info(str(builder_id))
        return info.settings_type(**options)


_registry: BuilderRegistry | None = None


def create_default_registry() -> BuilderRegistry:
    """Create a registry holding the built-in builders."""
    from cdmcovariates.builders.conditions import (
        ConditionOccurrenceBuilder,
        ConditionOccurrenceSettings,
    )
    from cdmcovariates.builders.demographics import (
        DemographicsBuilder,
        DemographicsSettings,
    )
    from cdmcovariates.builders.length_of_observation import (
        LOO_COVARIATE_ID_RANGE,
        LengthOfObservationBuilder,
        LooSettings,
    )

    registry = BuilderRegistry()
    registry.register(
        DemographicsSettings,
        DemographicsBuilder(),
        description="Gender, age and index year",
    )
    registry.register(
        LooSettings,
        LengthOfObservationBuilder(),
        covariate_id_range=LOO_COVARIATE_ID_RANGE,
        description="Days of observation before the index date",
    )
    registry.register(
        ConditionOccurrenceSettings,
        ConditionOccurrenceBuilder(),
        description="Condition concepts recorded in a window before the index date",
    )
    return registry


def get_registry() -> BuilderRegistry:
    """Get the global builder registry."""
    global _registry
    if _registry is None:
        _registry = create_default_registry()
    return _registry


def register_builder(
    settings_type: type[CovariateSettings],
    builder: CovariateBuilder | Callable[..., Any],
    *,
    covariate_id_range: tuple[int, int] | None = None,
    description: str = "",
) -> BuilderInfo:
    """Register a builder in the global registry."""
    return get_registry().register(
        settings_type,
        builder,
        covariate_id_range=covariate_id_range,
        description=description,
    )
