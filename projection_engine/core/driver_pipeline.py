"""Driver projection pipeline: evaluates formula drivers across a year range."""

import logging
from dataclasses import dataclass, field

from projection_engine.errors import (
    FormulaEvaluationError,
    MissingDependencyValueError,
    ProjectionEngineError,
)
from projection_engine.models.driver import Driver, ValueSource, ValueTable
from projection_engine.utils.formula_parser import FormulaEvaluator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationFailure:
    """A driver-year that could not be calculated. The run continued past it."""

    driver_id: str
    driver_name: str
    year: int
    error: ProjectionEngineError

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class PipelineResult:
    """
    Output of one pipeline run.

    Args:
        table: Seed values plus every value the run calculated.
        failures: Driver-years that could not be calculated.
        calculated: Number of values written.
    """

    table: ValueTable
    failures: list[EvaluationFailure] = field(default_factory=list)
    calculated: int = 0

    @property
    def succeeded(self) -> bool:
        return not self.failures


class DriverProjectionPipeline:
    """
    Evaluates formula drivers for every year of a range.

    Drivers are processed in the given (topological) order, and for each
    driver every year in ascending order. A value written for one driver is
    visible at once to every later driver and year of the same run. A driver
    reads its own earlier years through ``Name[PREV_YEAR]``, which is a
    plain table lookup.

    The pipeline never writes to:
        - historical years (``year <= historical_end``),
        - cells holding manual, imported, forecasted or adjusted values.

    A failed driver-year is recorded and left empty, dropping any value a
    previous run calculated for it, so dependents fail instead of reading a
    stale number. Independent drivers and years are still calculated.
    """

    def __init__(self, evaluator: FormulaEvaluator | None = None) -> None:
        self.evaluator = evaluator or FormulaEvaluator()

    def run(
        self,
        ordered_drivers: list[Driver],
        start_year: int,
        end_year: int,
        seed: ValueTable,
        historical_end: int | None = None,
    ) -> PipelineResult:
        """
        Project formula drivers over [start_year, end_year].

        Args:
            ordered_drivers: Drivers in dependency order (see DependencyResolver).
            start_year: First year (inclusive).
            end_year: Last year (inclusive).
            seed: Manual and historical values. Not modified.
            historical_end: Last read-only year, or None if all years are
                computable.

        Returns:
            PipelineResult with a new table and the recorded failures.
        """
        table = seed.copy()
        by_id = {driver.id: driver for driver in ordered_drivers}
        result = PipelineResult(table=table)

        for driver in ordered_drivers:
            if not driver.has_formula:
                continue

            for year in range(start_year, end_year + 1):
                if historical_end is not None and year <= historical_end:
                    continue
                if table.is_protected(driver.id, year):
                    logger.debug(
                        "[%s] Keeping %s value of '%s'",
                        year,
                        table.get_entry(driver.id, year).source.value,
                        driver.name,
                    )
                    continue

                try:
                    value = self._evaluate(driver, year, table, by_id)
                except (MissingDependencyValueError, FormulaEvaluationError) as exc:
                    logger.warning(
                        "Error calculating driver %s for year %s: %s",
                        driver.name,
                        year,
                        exc,
                    )
                    result.failures.append(
                        EvaluationFailure(driver.id, driver.name, year, exc)
                    )
                    # A value calculated by an earlier run is stale now
                    if table.delete(driver.id, year) is not None:
                        logger.debug(
                            "[%s] Dropped stale calculated value of '%s'",
                            year,
                            driver.name,
                        )
                    continue

                table.set(driver.id, year, value, source=ValueSource.CALCULATED)
                result.calculated += 1
                logger.debug("[%s] %s = %s", year, driver.name, value)

        logger.info(
            "Calculated %d driver values for %d-%d (%d failures)",
            result.calculated,
            start_year,
            end_year,
            len(result.failures),
        )
        return result

    def _evaluate(
        self,
        driver: Driver,
        year: int,
        table: ValueTable,
        by_id: dict[str, Driver],
    ) -> float:
        references = []
        for dependency_id in driver.dependencies:
            dependency = by_id.get(dependency_id)
            if dependency is None:
                # No catalog entry, so no name to substitute
                raise MissingDependencyValueError(dependency_id, year)
            references.append((dependency.id, dependency.name))

        return self.evaluator.evaluate(
            driver.formula,
            references,
            year,
            table,
            own=(driver.id, driver.name),
        )
