"""Explicit, immutable configuration for one scenario run."""

import math
from dataclasses import dataclass, field, fields
from typing import Any

from projection_engine.errors import ValidationError
from projection_engine.models.statement_model import CarryForward
from projection_engine.templates.scenario_defaults import (
    DEFAULT_LINE_ITEMS,
    SCENARIO_DEFAULTS,
    YEAR_MAX,
    YEAR_MIN,
)


def _is_number(value: Any) -> bool:
    """True for a finite int or float (bools excluded)."""
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _merge_section(params: dict[str, Any], name: str, config_cls: type) -> dict[str, Any]:
    """
    Merge one parameter section over its defaults.

    Raises:
        ValidationError: If the section is not a mapping or has unknown keys.
    """
    overrides = params.get(name) or {}
    if not isinstance(overrides, dict):
        raise ValidationError(f"'{name}' must be a mapping, got {overrides!r}")
    known = {f.name for f in fields(config_cls)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValidationError(
            f"Unknown {name} keys: {unknown}. Available: {sorted(known)}"
        )
    return {**SCENARIO_DEFAULTS[name], **overrides}


@dataclass(frozen=True)
class StatementConfig:
    """
    Working-capital assumptions.

    Ranges are checked by the statement derivation for each year, so an
    out-of-range value fails the affected years rather than the whole run.
    """

    dso_days: float = SCENARIO_DEFAULTS["statement"]["dso_days"]
    dpo_days: float = SCENARIO_DEFAULTS["statement"]["dpo_days"]
    deferred_revenue_pct: float = SCENARIO_DEFAULTS["statement"]["deferred_revenue_pct"]


@dataclass(frozen=True)
class CashEngineConfig:
    """Convergence loop settings and the interest rates on cash."""

    max_iterations: int = SCENARIO_DEFAULTS["cash_engine"]["max_iterations"]
    tolerance: float = SCENARIO_DEFAULTS["cash_engine"]["tolerance"]
    convergence_check: str = SCENARIO_DEFAULTS["cash_engine"]["convergence_check"]
    deposit_rate: float = SCENARIO_DEFAULTS["cash_engine"]["deposit_rate"]
    overdraft_rate: float = SCENARIO_DEFAULTS["cash_engine"]["overdraft_rate"]

    def validate(self) -> None:
        """
        Raises:
            ValidationError: Listing every invalid setting.
        """
        errors = []
        if not _is_integer(self.max_iterations) or self.max_iterations < 1:
            errors.append(f"max_iterations must be a positive integer, got {self.max_iterations!r}")
        if not _is_number(self.tolerance) or self.tolerance < 0:
            errors.append(f"tolerance must be a non-negative number, got {self.tolerance!r}")
        if not _is_number(self.deposit_rate) or self.deposit_rate < 0:
            errors.append(f"deposit_rate must be non-negative, got {self.deposit_rate!r}")
        if not _is_number(self.overdraft_rate) or self.overdraft_rate < 0:
            errors.append(f"overdraft_rate must be non-negative, got {self.overdraft_rate!r}")
        if not isinstance(self.convergence_check, str):
            errors.append(
                f"convergence_check must be a check name, got {self.convergence_check!r}"
            )
        if errors:
            raise ValidationError(errors)


@dataclass(frozen=True)
class ScenarioConfig:
    """
    Everything a run needs besides the driver catalog and seed values.

    Args:
        start_year: First year to project (inclusive).
        end_year: Last year to project (inclusive).
        historical_end: Last historical year. Years up to and including it
            are read-only: never computed, never overwritten.
        statement: Working-capital assumptions.
        cash_engine: Convergence loop settings.
        line_items: Statement input -> driver id overrides.
        opening_balances: Closing position of the last historical year.
        scenario_id: Scenario the run belongs to.

    Example:
        >>> config = ScenarioConfig.from_dict({
        ...     "start_year": 2025,
        ...     "end_year": 2030,
        ...     "statement": {"dso_days": 15},
        ... })
        >>> config.statement.dpo_days
        45
    """

    start_year: int = SCENARIO_DEFAULTS["start_year"]
    end_year: int = SCENARIO_DEFAULTS["end_year"]
    historical_end: int = SCENARIO_DEFAULTS["historical_end"]
    statement: StatementConfig = field(default_factory=StatementConfig)
    cash_engine: CashEngineConfig = field(default_factory=CashEngineConfig)
    line_items: dict[str, str] = field(default_factory=dict)
    opening_balances: CarryForward = field(default_factory=CarryForward)
    scenario_id: str | None = None

    @classmethod
    def from_dict(cls, params: dict[str, Any]) -> "ScenarioConfig":
        """
        Build a config from a parameter dict, filling gaps from SCENARIO_DEFAULTS.

        Raises:
            ValidationError: If a section is not a mapping or has unknown keys.
        """
        statement = _merge_section(params, "statement", StatementConfig)
        cash_engine = _merge_section(params, "cash_engine", CashEngineConfig)
        opening = _merge_section(params, "opening_balances", CarryForward)
        line_items = params.get("line_items") or {}
        if not isinstance(line_items, dict):
            raise ValidationError(f"'line_items' must be a mapping, got {line_items!r}")
        return cls(
            start_year=params.get("start_year", SCENARIO_DEFAULTS["start_year"]),
            end_year=params.get("end_year", SCENARIO_DEFAULTS["end_year"]),
            historical_end=params.get(
                "historical_end", SCENARIO_DEFAULTS["historical_end"]
            ),
            statement=StatementConfig(**statement),
            cash_engine=CashEngineConfig(**cash_engine),
            line_items=dict(line_items),
            opening_balances=CarryForward.from_dict(opening),
            scenario_id=params.get("scenario_id"),
        )

    @property
    def years(self) -> list[int]:
        return list(range(self.start_year, self.end_year + 1))

    @property
    def forecast_years(self) -> list[int]:
        """Years of the range that the engine may compute."""
        return [year for year in self.years if year > self.historical_end]

    def validate(self) -> None:
        """
        Check run-level settings.

        The year range must leave at least one forecast year after
        ``historical_end``. Working-capital ranges are not checked here; see
        StatementConfig.

        Raises:
            ValidationError: Listing every invalid setting.
        """
        errors = []
        years = {
            "start_year": self.start_year,
            "end_year": self.end_year,
            "historical_end": self.historical_end,
        }
        bad_years = [name for name, value in years.items() if not _is_integer(value)]
        for name in bad_years:
            errors.append(f"{name} must be an integer year, got {years[name]!r}")

        if not bad_years:
            if self.start_year > self.end_year:
                errors.append(
                    f"start_year {self.start_year} is after end_year {self.end_year}"
                )
            elif self.historical_end >= self.end_year:
                errors.append(
                    f"historical_end {self.historical_end} leaves no forecast years "
                    f"in {self.start_year}-{self.end_year}"
                )
            if self.start_year < YEAR_MIN or self.end_year > YEAR_MAX:
                errors.append(
                    f"Year range {self.start_year}-{self.end_year} is outside "
                    f"{YEAR_MIN}-{YEAR_MAX}"
                )
        for balance in fields(self.opening_balances):
            value = getattr(self.opening_balances, balance.name)
            if balance.name != "year" and not _is_number(value):
                errors.append(
                    f"Opening balance {balance.name} must be a finite number, got {value!r}"
                )
        unknown = sorted(set(self.line_items) - set(DEFAULT_LINE_ITEMS))
        if unknown:
            errors.append(f"Unknown statement line items: {unknown}")
        try:
            self.cash_engine.validate()
        except ValidationError as exc:
            errors.extend(exc.errors)
        if errors:
            raise ValidationError(errors)
