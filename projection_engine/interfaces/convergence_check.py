"""Abstract interface for convergence predicates."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from projection_engine.models.statement_model import StatementSnapshot


@dataclass(frozen=True)
class CheckOutcome:
    """
    Result of one check on one iteration.

    Args:
        check: Name of the check.
        passed: Whether the check is within tolerance.
        value: Absolute difference measured by the check.
        message: Human-readable description when the check fails.
    """

    check: str
    passed: bool
    value: float
    message: str | None = None


class ConvergenceCheckInterface(ABC):
    """
    Abstract interface for the predicate that ends a year's iteration.

    The convergence engine calls ``evaluate`` once per iteration and stops
    iterating as soon as every returned outcome has passed. Implementations
    must be pure: the same snapshot, seed and tolerance always give the
    same outcomes.

    New predicates plug in without touching the engine:

        >>> class NetResultCheck(ConvergenceCheckInterface):
        ...     name = "net_result_positive"
        ...
        ...     def evaluate(self, snapshot, seed_cash_end, tolerance):
        ...         shortfall = max(0.0, -snapshot.net_result)
        ...         return [CheckOutcome(self.name, shortfall <= tolerance, shortfall)]
        >>> engine = ConvergenceEngine(convergence_check=NetResultCheck())
    """

    name: str = ""

    @abstractmethod
    def evaluate(
        self,
        snapshot: "StatementSnapshot",
        seed_cash_end: float,
        tolerance: float,
    ) -> list[CheckOutcome]:
        """
        Evaluate the predicate on one iteration's snapshot.

        Args:
            snapshot: Statements computed in this iteration.
            seed_cash_end: Ending cash the iteration assumed for interest.
            tolerance: Maximum accepted absolute difference.

        Returns:
            One outcome per underlying check.
        """
        raise NotImplementedError
