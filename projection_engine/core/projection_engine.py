"""Main ProjectionEngine class orchestrating a scenario run."""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import numpy as np

from projection_engine.core.convergence_engine import ConvergenceEngine, RunResult
from projection_engine.core.dependency_resolver import DependencyResolver
from projection_engine.core.driver_pipeline import (
    DriverProjectionPipeline,
    EvaluationFailure,
)
from projection_engine.core.kpi_calculator import KPICalculator
from projection_engine.interfaces.convergence_check import ConvergenceCheckInterface
from projection_engine.models.driver import Driver, DriverValue, ValueTable
from projection_engine.models.scenario_config import ScenarioConfig

logger = logging.getLogger(__name__)


@dataclass
class ProjectionResult:
    """
    Everything a scenario run produced.

    Args:
        value_table: Seed values plus every calculated driver value.
        evaluation_failures: Driver-years the pipeline could not calculate.
        statements: Per-year statements and convergence diagnostics.
        kpis: Per-year ratio series (see KPICalculator).
        order: Driver ids in evaluation order.
    """

    value_table: ValueTable
    evaluation_failures: list[EvaluationFailure]
    statements: RunResult
    kpis: dict[str, np.ndarray] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "drivers_evaluated": len(self.order),
            "evaluation_failures": len(self.evaluation_failures),
            **self.statements.summary(),
        }


class ProjectionEngine:
    """
    Main orchestrator for a scenario projection.

    Runs, in order: configuration checks, dependency resolution, driver
    projection over the configured years, the per-year convergence solve
    of the financial statements, and the derived ratios.

    Args:
        config: Scenario configuration. Defaults to SCENARIO_DEFAULTS.
        convergence_check: Predicate instance overriding the configured one.

    Example:
        >>> engine = ProjectionEngine.from_params({
        ...     "start_year": 2025,
        ...     "end_year": 2027,
        ...     "cash_engine": {"convergence_check": "bs_cf_balance"},
        ... })
        >>> result = engine.run(drivers, seed_values)
        >>> result.statements.statements[2025].cash_end
    """

    def __init__(
        self,
        config: ScenarioConfig | None = None,
        convergence_check: ConvergenceCheckInterface | None = None,
    ) -> None:
        """Initialize the engine and validate its configuration."""
        self.config = config or ScenarioConfig()
        self.config.validate()

        self.resolver = DependencyResolver()
        self.pipeline = DriverProjectionPipeline()
        self.convergence_engine = ConvergenceEngine(
            self.config.cash_engine, convergence_check=convergence_check
        )
        self.kpi_calculator = KPICalculator()

    @classmethod
    def from_params(
        cls,
        params: dict[str, Any],
        convergence_check: ConvergenceCheckInterface | None = None,
    ) -> "ProjectionEngine":
        """Build an engine from a parameter dict (see ScenarioConfig.from_dict)."""
        return cls(ScenarioConfig.from_dict(params), convergence_check=convergence_check)

    def run(
        self,
        drivers: Iterable[Driver | dict[str, Any]],
        seed_values: Iterable[DriverValue | dict[str, Any]],
    ) -> ProjectionResult:
        """
        Run the full projection for one scenario.

        Args:
            drivers: Driver catalog, as Driver instances or catalog rows.
            seed_values: Manual and historical values, as DriverValue
                instances or persistence rows.

        Returns:
            ProjectionResult.

        Raises:
            CyclicDependencyError: If the driver graph has a cycle. Nothing
                is calculated in that case.
            ValidationError: On duplicate driver ids or invalid seed values.
        """
        catalog = [d if isinstance(d, Driver) else Driver.from_dict(d) for d in drivers]
        values = [
            v if isinstance(v, DriverValue) else DriverValue.from_dict(v)
            for v in seed_values
        ]
        seed = ValueTable.from_values(values, scenario_id=self.config.scenario_id)

        ordered = self.resolver.resolve(catalog)

        projection = self.pipeline.run(
            ordered,
            self.config.start_year,
            self.config.end_year,
            seed,
            historical_end=self.config.historical_end,
        )

        statements = self.convergence_engine.run(
            projection.table,
            self.config.forecast_years,
            self.config.statement,
            self.config.opening_balances,
            line_items=self.config.line_items,
        )

        kpis = self.kpi_calculator.calculate(statements)

        logger.info(
            "Scenario %s: %d drivers, %d-%d, %d evaluation failures, converged=%s",
            self.config.scenario_id,
            len(ordered),
            self.config.start_year,
            self.config.end_year,
            len(projection.failures),
            statements.all_converged,
        )

        return ProjectionResult(
            value_table=projection.table,
            evaluation_failures=projection.failures,
            statements=statements,
            kpis=kpis,
            order=[driver.id for driver in ordered],
        )
