"""Convergence predicates and their registry."""

from projection_engine.errors import ValidationError
from projection_engine.interfaces.convergence_check import (
    CheckOutcome,
    ConvergenceCheckInterface,
)
from projection_engine.models.statement_model import StatementSnapshot
from projection_engine.utils.financial_utils import check_balance


class BalanceSheetCheck(ConvergenceCheckInterface):
    """Assets = Liabilities + Equity within tolerance."""

    name = "balance_sheet"

    def evaluate(
        self,
        snapshot: StatementSnapshot,
        seed_cash_end: float,
        tolerance: float,
    ) -> list[CheckOutcome]:
        balanced, residual = check_balance(
            snapshot.total_assets,
            snapshot.total_liabilities,
            snapshot.total_equity,
            tolerance,
        )
        message = None if balanced else f"BS imbalance: {residual:.2f}"
        return [CheckOutcome(self.name, balanced, abs(residual), message)]


class CashBalanceCheck(ConvergenceCheckInterface):
    """
    Ending cash is a fixed point of the interest calculation.

    Passes when the balance sheet cash (the seed assumed for interest)
    matches the ending cash of the cash flow statement.
    """

    name = "cash_balance"

    def evaluate(
        self,
        snapshot: StatementSnapshot,
        seed_cash_end: float,
        tolerance: float,
    ) -> list[CheckOutcome]:
        difference = abs(snapshot.cash - snapshot.cash_end)
        passed = difference <= tolerance
        message = None if passed else f"Cash imbalance: {difference:.2f}"
        return [CheckOutcome(self.name, passed, difference, message)]


class CompositeCheck(ConvergenceCheckInterface):
    """Passes only when every component check passes."""

    def __init__(self, name: str, checks: list[ConvergenceCheckInterface]) -> None:
        self.name = name
        self.checks = list(checks)

    def evaluate(
        self,
        snapshot: StatementSnapshot,
        seed_cash_end: float,
        tolerance: float,
    ) -> list[CheckOutcome]:
        outcomes = []
        for check in self.checks:
            outcomes.extend(check.evaluate(snapshot, seed_cash_end, tolerance))
        return outcomes


CONVERGENCE_CHECKS = {
    "balance_sheet": BalanceSheetCheck,
    "cash_balance": CashBalanceCheck,
    "bs_cf_balance": lambda: CompositeCheck(
        "bs_cf_balance", [BalanceSheetCheck(), CashBalanceCheck()]
    ),
}


def get_convergence_check(name: str) -> ConvergenceCheckInterface:
    """
    Instantiate a registered convergence check by name.

    Raises:
        ValidationError: If no check is registered under ``name``.
    """
    if name not in CONVERGENCE_CHECKS:
        raise ValidationError(
            f"Unknown convergence_check '{name}'. "
            f"Available checks: {list(CONVERGENCE_CHECKS.keys())}"
        )
    return CONVERGENCE_CHECKS[name]()
