"""Typed errors raised by the projection engine."""


class ProjectionEngineError(Exception):
    """Base exception for projection engine errors."""

    pass


class CyclicDependencyError(ProjectionEngineError):
    """Raised when the driver graph contains a cycle.

    Args:
        cycle: Driver ids along the cycle, with the first id repeated at the end.
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


class MissingDependencyValueError(ProjectionEngineError):
    """Raised when a value needed for a calculation is absent for a year."""

    def __init__(
        self,
        driver_id: str,
        year: int,
        driver_name: str | None = None,
    ) -> None:
        self.driver_id = driver_id
        self.year = year
        self.driver_name = driver_name
        label = driver_name or driver_id
        super().__init__(f"Missing value for driver '{label}' in year {year}")


class FormulaEvaluationError(ProjectionEngineError):
    """Raised when a formula cannot be reduced to a finite number."""

    def __init__(self, formula: str, reason: str) -> None:
        self.formula = formula
        self.reason = reason
        super().__init__(f"Failed to evaluate formula '{formula}': {reason}")


class ValidationError(ProjectionEngineError):
    """Raised for out-of-range or malformed configuration and input data.

    Args:
        errors: Every problem found, one message each.
    """

    def __init__(self, errors: list[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))
