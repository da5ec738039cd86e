"""
Error taxonomy for covariate extraction runs.

Every error here is fatal to the run: there is no partial-result mode.
"""


class CovariateExtractionError(Exception):
    """Base class for errors raised during a covariate extraction run."""


class UnknownBuilderError(CovariateExtractionError):
    """No builder is registered for a settings object or builder id."""

    def __init__(self, builder_id: str, available: list[str] | None = None) -> None:
        self.builder_id = builder_id
        self.available = list(available or [])
        msg = f"No covariate builder registered for '{builder_id}'"
        if self.available:
            msg += f". Available: {', '.join(self.available)}"
        super().__init__(msg)


class BuilderExecutionError(CovariateExtractionError):
    """A builder raised, timed out, or returned output that breaks its contract."""

    def __init__(self, builder_id: str, cause: BaseException | str) -> None:
        self.builder_id = builder_id
        self.cause = cause
        if isinstance(cause, BaseException):
            detail = f"{type(cause).__name__}: {cause}"
        else:
            detail = cause
        super().__init__(f"Covariate builder '{builder_id}' failed: {detail}")


class CovariateIdCollisionError(CovariateExtractionError):
    """Two builders emitted the same covariate id in one run."""

    def __init__(
        self,
        covariate_id: int,
        first_builder: str,
        second_builder: str,
    ) -> None:
        self.covariate_id = covariate_id
        self.first_builder = first_builder
        self.second_builder = second_builder
        super().__init__(
            f"Covariate id {covariate_id} emitted by both "
            f"'{first_builder}' and '{second_builder}'"
        )
