"""Convergence engine: per-year fixed-point solve of the circular statements."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from projection_engine.errors import (
    MissingDependencyValueError,
    ProjectionEngineError,
    ValidationError,
)
from projection_engine.interfaces.convergence_check import (
    CheckOutcome,
    ConvergenceCheckInterface,
)
from projection_engine.models.convergence_checks import get_convergence_check
from projection_engine.models.driver import ValueTable
from projection_engine.models.scenario_config import (
    CashEngineConfig,
    StatementConfig,
)
from projection_engine.models.statement_model import (
    CarryForward,
    StatementModel,
    StatementSnapshot,
)

logger = logging.getLogger(__name__)


class YearStatus(str, Enum):
    """Terminal state of one year's solve."""

    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckRecord:
    """One check evaluated on one iteration."""

    iteration: int
    check: str
    passed: bool
    value: float


@dataclass(frozen=True)
class ConvergenceResult:
    """
    Diagnostics of one year's solve.

    Args:
        year: Year solved.
        status: Converged, Exhausted or Failed.
        iterations: Iterations consumed; 0 for a failed year.
        residual: Total assets minus liabilities and equity of the returned
            snapshot, or None for a failed year.
        last_error: Why the year did not converge, or None.
        checks: Every check evaluated, in order.
        defaulted_inputs: Optional inputs that were absent and defaulted.
        opening_year: Year whose closing position opened this year, or None
            if the opening balances were used.
    """

    year: int
    status: YearStatus
    iterations: int
    residual: float | None
    last_error: str | None = None
    checks: tuple[CheckRecord, ...] = field(default_factory=tuple)
    defaulted_inputs: tuple[str, ...] = field(default_factory=tuple)
    opening_year: int | None = None

    @property
    def converged(self) -> bool:
        return self.status == YearStatus.CONVERGED


@dataclass(frozen=True)
class RunResult:
    """Per-year statements and diagnostics of a full-horizon run."""

    years: tuple[int, ...]
    statements: dict[int, StatementSnapshot]
    convergence: dict[int, ConvergenceResult]

    @property
    def all_converged(self) -> bool:
        return all(result.converged for result in self.convergence.values())

    @property
    def total_iterations(self) -> int:
        return sum(result.iterations for result in self.convergence.values())

    @property
    def years_processed(self) -> list[int]:
        return list(self.years)

    @property
    def failed_years(self) -> list[int]:
        return [y for y in self.years if self.convergence[y].status == YearStatus.FAILED]

    @property
    def exhausted_years(self) -> list[int]:
        return [
            y for y in self.years if self.convergence[y].status == YearStatus.EXHAUSTED
        ]

    def series(self, item: str) -> np.ndarray:
        """
        Return one statement line across all solved years.

        Failed years are NaN.
        """
        return np.array(
            [
                getattr(self.statements[y], item) if y in self.statements else np.nan
                for y in self.years
            ],
            dtype=np.float64,
        )

    def summary(self) -> dict[str, Any]:
        return {
            "converged": self.all_converged,
            "total_iterations": self.total_iterations,
            "years_processed": len(self.years),
            "convergence_by_year": {
                year: {
                    "status": result.status.value,
                    "iterations": result.iterations,
                    "residual": result.residual,
                }
                for year, result in self.convergence.items()
            },
        }


class ConvergenceEngine:
    """
    Solves each year's statements by bounded fixed-point iteration.

    Per year: Seeded -> Iterating -> Converged | Exhausted | Failed.

    - Seeded: the prior accepted snapshot (or the opening balances) becomes
      the carry-forward state; the ending-cash seed is the opening cash.
    - Iterating: recompute the snapshot from the year's inputs, the
      carry-forward state and the seed, then evaluate the convergence
      check. The seed is the balance sheet cash, so the balance check only
      passes once it matches the cash flow ending cash. On success the year
      is Converged. Otherwise the snapshot's ending cash becomes the next
      seed, so interest on the average cash balance is recomputed from the
      latest known cash position.
    - Exhausted: ``max_iterations`` reached without passing. The last
      snapshot is still returned and carried forward.
    - Failed: invalid configuration or a missing required input. The year
      consumes no iteration and yields no snapshot; the next year opens
      from the most recent accepted snapshot.

    Args:
        config: Iteration limit, tolerance, predicate name and cash rates.
        convergence_check: Predicate instance overriding
            ``config.convergence_check``.
    """

    def __init__(
        self,
        config: CashEngineConfig | None = None,
        convergence_check: ConvergenceCheckInterface | None = None,
    ) -> None:
        self.config = config or CashEngineConfig()
        self.config.validate()
        self.convergence_check = convergence_check or get_convergence_check(
            self.config.convergence_check
        )
        self.statement_model = StatementModel()

    def run(
        self,
        table: ValueTable,
        years: list[int],
        statement_config: StatementConfig,
        opening: CarryForward,
        line_items: dict[str, str] | None = None,
    ) -> RunResult:
        """
        Solve ``years`` in increasing order.

        Args:
            table: Value table holding every statement input.
            years: Years to solve.
            statement_config: Working-capital assumptions.
            opening: Opening balances for the first year.
            line_items: Statement input -> driver id overrides.

        Returns:
            RunResult covering every requested year.
        """
        statements: dict[int, StatementSnapshot] = {}
        convergence: dict[int, ConvergenceResult] = {}
        carry_forward = opening

        for year in sorted(years):
            snapshot, result = self.solve_year(
                year, table, carry_forward, statement_config, line_items
            )
            convergence[year] = result
            if snapshot is not None:
                statements[year] = snapshot
                carry_forward = CarryForward.from_snapshot(snapshot)

        run = RunResult(
            years=tuple(sorted(years)),
            statements=statements,
            convergence=convergence,
        )
        logger.info(
            "Cash engine processed %d years: converged=%s, iterations=%d",
            len(run.years),
            run.all_converged,
            run.total_iterations,
        )
        return run

    def solve_year(
        self,
        year: int,
        table: ValueTable,
        prior: CarryForward,
        statement_config: StatementConfig,
        line_items: dict[str, str] | None = None,
    ) -> tuple[StatementSnapshot | None, ConvergenceResult]:
        """
        Solve one year.

        Returns:
            Tuple of (snapshot, result). The snapshot is None if the year failed.
        """
        try:
            inputs = self.statement_model.read_inputs(table, year, line_items)
        except (MissingDependencyValueError, ValidationError) as exc:
            return None, self._failed(year, prior, exc)

        seed_cash_end = prior.cash
        checks: list[CheckRecord] = []
        snapshot = None
        outcomes: list[CheckOutcome] = []

        for iteration in range(1, self.config.max_iterations + 1):
            try:
                snapshot = self.statement_model.calculate(
                    year,
                    inputs,
                    prior,
                    dso_days=statement_config.dso_days,
                    dpo_days=statement_config.dpo_days,
                    deferred_revenue_pct=statement_config.deferred_revenue_pct,
                    deposit_rate=self.config.deposit_rate,
                    overdraft_rate=self.config.overdraft_rate,
                    seed_cash_end=seed_cash_end,
                )
            except ValidationError as exc:
                return None, self._failed(year, prior, exc, inputs.defaulted)

            outcomes = self.convergence_check.evaluate(
                snapshot, seed_cash_end, self.config.tolerance
            )
            checks.extend(
                CheckRecord(iteration, o.check, o.passed, o.value) for o in outcomes
            )
            logger.debug(
                "[%s] Iteration %d: residual=%.4f, cash=%.2f, cash_end=%.2f",
                year,
                iteration,
                snapshot.residual,
                snapshot.cash,
                snapshot.cash_end,
            )

            if all(outcome.passed for outcome in outcomes):
                return snapshot, ConvergenceResult(
                    year=year,
                    status=YearStatus.CONVERGED,
                    iterations=iteration,
                    residual=snapshot.residual,
                    checks=tuple(checks),
                    defaulted_inputs=inputs.defaulted,
                    opening_year=prior.year,
                )

            # Feed the latest ending cash back into the interest calculation
            seed_cash_end = snapshot.cash_end

        last_error = "; ".join(o.message or o.check for o in outcomes if not o.passed)
        logger.warning(
            "[%s] Not converged after %d iterations: %s",
            year,
            self.config.max_iterations,
            last_error,
        )
        return snapshot, ConvergenceResult(
            year=year,
            status=YearStatus.EXHAUSTED,
            iterations=self.config.max_iterations,
            residual=snapshot.residual,
            last_error=last_error,
            checks=tuple(checks),
            defaulted_inputs=inputs.defaulted,
            opening_year=prior.year,
        )

    @staticmethod
    def _failed(
        year: int,
        prior: CarryForward,
        error: ProjectionEngineError,
        defaulted: tuple[str, ...] = (),
    ) -> ConvergenceResult:
        logger.error("[%s] Year failed: %s", year, error)
        return ConvergenceResult(
            year=year,
            status=YearStatus.FAILED,
            iterations=0,
            residual=None,
            last_error=str(error),
            defaulted_inputs=defaulted,
            opening_year=prior.year,
        )
