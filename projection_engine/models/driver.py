"""Driver catalog entries, per-year driver values, and the shared value table."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator

import numpy as np

from projection_engine.errors import ValidationError


class ValueSource(str, Enum):
    """Provenance of a driver value."""

    MANUAL = "manual"
    CALCULATED = "calculated"
    IMPORTED = "imported"
    FORECASTED = "forecasted"
    ADJUSTED = "adjusted"


@dataclass(frozen=True)
class Driver:
    """
    A named scalar quantity tracked per year.

    A driver without a formula is a pure input: its values come from the
    seed table. A driver with a formula is computed by the projection
    pipeline from the drivers listed in ``dependencies``.

    Args:
        id: Opaque driver identifier.
        name: Display name, used to reference the driver inside formulas.
        formula: Arithmetic formula text, or None for input drivers.
        dependencies: Ordered ids of the drivers the formula reads.
        category: Free-form grouping tag (e.g. 'revenue', 'opex').
        value_kind: Kind of value held; only 'numeric' is supported.
    """

    id: str
    name: str
    formula: str | None = None
    dependencies: tuple[str, ...] = field(default_factory=tuple)
    category: str = ""
    value_kind: str = "numeric"

    def __post_init__(self) -> None:
        # Accept any iterable of ids but store an immutable tuple
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        if self.formula is not None and not isinstance(self.formula, str):
            raise ValidationError(
                f"Formula of driver '{self.id}' must be text, got {self.formula!r}"
            )
        if self.formula is not None and not self.formula.strip():
            object.__setattr__(self, "formula", None)

    @property
    def has_formula(self) -> bool:
        return self.formula is not None

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "Driver":
        """Build a driver from a catalog row (id, name, formula, dependencies, ...)."""
        missing = [key for key in ("id", "name") if key not in row]
        if missing:
            raise ValidationError(f"Driver row is missing {missing}")
        return cls(
            id=str(row["id"]),
            name=row["name"],
            formula=row.get("formula"),
            dependencies=tuple(str(d) for d in row.get("dependencies") or ()),
            category=row.get("category", ""),
            value_kind=row.get("data_type", row.get("value_kind", "numeric")),
        )


@dataclass(frozen=True)
class DriverValue:
    """One (driver, year) value with its provenance."""

    driver_id: str
    year: int
    value: float
    source: ValueSource = ValueSource.MANUAL
    scenario_id: str | None = None

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "DriverValue":
        """
        Build a value from a persistence row (driver_id, year, value, source).

        Raises:
            ValidationError: If a field is missing or malformed.
        """
        try:
            return cls(
                driver_id=str(row["driver_id"]),
                year=int(row["year"]),
                value=float(row["value"]),
                source=ValueSource(row.get("source", ValueSource.MANUAL.value)),
                scenario_id=row.get("scenario_id"),
            )
        except KeyError as exc:
            raise ValidationError(f"Driver value row is missing {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid driver value row {row!r}: {exc}") from exc


class ValueTable:
    """
    Sparse table of driver values keyed by (driver id, year).

    A cell may legitimately be empty: not yet computed, or no data. Lookups
    return None for empty cells, never zero.

    Args:
        scenario_id: Scenario the values belong to. Values tagged with a
            different scenario are rejected.

    Example:
        >>> table = ValueTable()
        >>> table.set("students", 2025, 500)
        >>> table.get("students", 2025)
        500.0
        >>> table.get("students", 2026) is None
        True
    """

    def __init__(self, scenario_id: str | None = None) -> None:
        self.scenario_id = scenario_id
        self._cells: dict[tuple[str, int], DriverValue] = {}

    @classmethod
    def from_values(
        cls,
        values: Iterable[DriverValue],
        scenario_id: str | None = None,
    ) -> "ValueTable":
        """
        Build a table from seed values.

        Raises:
            ValidationError: On duplicate (driver, year) pairs, non-finite
                values, or values belonging to another scenario.
        """
        table = cls(scenario_id=scenario_id)
        errors = []

        for entry in values:
            key = (entry.driver_id, entry.year)
            if key in table._cells:
                errors.append(
                    f"Duplicate value for driver '{entry.driver_id}' in year {entry.year}"
                )
                continue
            if not math.isfinite(entry.value):
                errors.append(
                    f"Non-finite value for driver '{entry.driver_id}' in year {entry.year}"
                )
                continue
            if (
                scenario_id is not None
                and entry.scenario_id is not None
                and entry.scenario_id != scenario_id
            ):
                errors.append(
                    f"Value for driver '{entry.driver_id}' in year {entry.year} "
                    f"belongs to scenario '{entry.scenario_id}', not '{scenario_id}'"
                )
                continue
            table._cells[key] = entry

        if errors:
            raise ValidationError(errors)
        return table

    def get(self, driver_id: str, year: int) -> float | None:
        """Return the value at (driver, year), or None if the cell is empty."""
        entry = self._cells.get((driver_id, year))
        return None if entry is None else entry.value

    def get_entry(self, driver_id: str, year: int) -> DriverValue | None:
        return self._cells.get((driver_id, year))

    def set(
        self,
        driver_id: str,
        year: int,
        value: float,
        source: ValueSource = ValueSource.MANUAL,
    ) -> None:
        """Write a value into the table, replacing any existing cell."""
        value = float(value)
        if not math.isfinite(value):
            raise ValidationError(
                f"Non-finite value for driver '{driver_id}' in year {year}"
            )
        self._cells[(driver_id, year)] = DriverValue(
            driver_id=driver_id,
            year=year,
            value=value,
            source=source,
            scenario_id=self.scenario_id,
        )

    def delete(self, driver_id: str, year: int) -> DriverValue | None:
        """Remove the cell at (driver, year) and return it, or None if it was empty."""
        return self._cells.pop((driver_id, year), None)

    def is_protected(self, driver_id: str, year: int) -> bool:
        """True if the cell holds a value the engine must not overwrite."""
        entry = self._cells.get((driver_id, year))
        return entry is not None and entry.source != ValueSource.CALCULATED

    def copy(self) -> "ValueTable":
        clone = ValueTable(scenario_id=self.scenario_id)
        clone._cells = dict(self._cells)
        return clone

    def entries(self, source: ValueSource | None = None) -> list[DriverValue]:
        """
        Return all cells sorted by (driver id, year).

        Args:
            source: Only return cells with this provenance.
        """
        selected = [
            entry
            for entry in self._cells.values()
            if source is None or entry.source == source
        ]
        return sorted(selected, key=lambda e: (e.driver_id, e.year))

    def to_array(self, driver_id: str, years: Iterable[int]) -> np.ndarray:
        """
        Return a driver's values as an array aligned to ``years``.

        Empty cells are NaN.
        """
        return np.array(
            [
                np.nan if (v := self.get(driver_id, year)) is None else v
                for year in years
            ],
            dtype=np.float64,
        )

    def __contains__(self, key: tuple[str, int]) -> bool:
        return key in self._cells

    def __iter__(self) -> Iterator[DriverValue]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._cells)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValueTable):
            return NotImplemented
        return self.scenario_id == other.scenario_id and self._cells == other._cells

    def __repr__(self) -> str:
        return f"ValueTable(scenario_id={self.scenario_id!r}, cells={len(self._cells)})"
