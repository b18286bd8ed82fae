"""Tests for the ConvergenceEngine and convergence checks."""

import pytest

from projection_engine.core.convergence_engine import ConvergenceEngine, YearStatus
from projection_engine.errors import ValidationError
from projection_engine.interfaces.convergence_check import (
    CheckOutcome,
    ConvergenceCheckInterface,
)
from projection_engine.models.convergence_checks import (
    BalanceSheetCheck,
    CompositeCheck,
    get_convergence_check,
)
from projection_engine.models.driver import ValueTable
from projection_engine.models.scenario_config import CashEngineConfig, StatementConfig
from projection_engine.models.statement_model import CarryForward


def _table(years: list[int], **values: float) -> ValueTable:
    """Fill every required statement input (default 0) for ``years``."""
    inputs = {"revenue": 0.0, "staff_costs": 0.0, "rent": 0.0, "other_opex": 0.0}
    inputs.update(values)
    table = ValueTable()
    for year in years:
        for driver_id, value in inputs.items():
            table.set(driver_id, year, value)
    return table


class NeverConverges(ConvergenceCheckInterface):
    """Check that always fails."""

    name = "never"

    def evaluate(self, snapshot, seed_cash_end, tolerance) -> list[CheckOutcome]:
        return [CheckOutcome(self.name, False, 1.0, "never converges")]


class TestConvergenceChecks:
    """Tests for the convergence check registry."""

    @pytest.mark.parametrize("name", ["balance_sheet", "cash_balance", "bs_cf_balance"])
    def test_registered_checks(self, name: str) -> None:
        """Test that every documented check name is available."""
        check = get_convergence_check(name)
        assert isinstance(check, ConvergenceCheckInterface)
        assert check.name == name

    def test_unknown_check(self) -> None:
        """Test that an unknown name is rejected."""
        with pytest.raises(ValidationError, match="Unknown convergence_check"):
            get_convergence_check("cashflow")

    def test_composite_returns_all_outcomes(self) -> None:
        """Test that the combined check reports each component."""
        check = get_convergence_check("bs_cf_balance")
        assert isinstance(check, CompositeCheck)
        assert [c.name for c in check.checks] == ["balance_sheet", "cash_balance"]


class TestConvergenceEngine:
    """Tests for ConvergenceEngine.solve_year() and run()."""

    @pytest.fixture
    def statement_config(self) -> StatementConfig:
        return StatementConfig()

    def test_interest_settles_before_converging(
        self, statement_config: StatementConfig
    ) -> None:
        """Test that the balance check waits for interest on average cash."""
        table = _table([2025], revenue=1_000_000, staff_costs=600_000)
        engine = ConvergenceEngine(CashEngineConfig(max_iterations=10))

        run = engine.run(table, [2025], statement_config, CarryForward())

        result = run.convergence[2025]
        snapshot = run.statements[2025]
        # 400,000 EBITDA - 82,191.78 AR + 73,972.60 AP + 350,000 deferred
        first_gap = 400_000 - 1_000_000 * 30 / 365 + 600_000 * 45 / 365 + 350_000
        assert result.status == YearStatus.CONVERGED
        assert result.converged
        assert result.iterations == 6
        assert result.checks[0].value == pytest.approx(first_gap)
        assert result.checks[1].value == pytest.approx(0.025 * first_gap)
        assert result.residual == pytest.approx(0.0, abs=0.01)
        assert result.last_error is None
        assert snapshot.interest_income == pytest.approx(
            0.05 * snapshot.cash_end / 2, abs=0.01
        )
        assert run.all_converged

    def test_opening_interest_not_accepted(
        self, statement_config: StatementConfig
    ) -> None:
        """Test that interest on opening cash alone does not balance the year."""
        table = _table([2025])
        opening = CarryForward(cash=1_000_000.0, retained_earnings=1_000_000.0)

        snapshot, result = ConvergenceEngine().solve_year(
            2025, table, opening, statement_config
        )

        assert result.status == YearStatus.EXHAUSTED
        assert [round(r.value, 4) for r in result.checks] == [50_000.0, 1_250.0, 31.25]
        assert result.residual == pytest.approx(snapshot.cash - snapshot.cash_end)
        assert "BS imbalance" in result.last_error

    def test_zero_rates_converge_on_second_iteration(
        self, statement_config: StatementConfig
    ) -> None:
        """Test that without interest the first fed-back cash is the fixed point."""
        table = _table([2025], revenue=1_000_000, staff_costs=600_000)
        engine = ConvergenceEngine(CashEngineConfig(deposit_rate=0.0, overdraft_rate=0.0))

        snapshot, result = engine.solve_year(
            2025, table, CarryForward(), statement_config
        )

        assert result.converged
        assert result.iterations == 2
        assert snapshot.cash == snapshot.cash_end

    def test_imbalance_exhausts(self, statement_config: StatementConfig) -> None:
        """Test 1,000,000 assets vs 600,000 + 399,995 never balances."""
        table = _table([2025])
        opening = CarryForward(
            cash=1_000_000.00, provisions=600_000.00, retained_earnings=399_995.00
        )
        engine = ConvergenceEngine(
            CashEngineConfig(max_iterations=3, tolerance=0.01, deposit_rate=0.0)
        )

        snapshot, result = engine.solve_year(2025, table, opening, statement_config)

        assert result.status == YearStatus.EXHAUSTED
        assert not result.converged
        assert result.iterations == 3
        assert result.residual == pytest.approx(5.0)
        assert "BS imbalance: 5.00" in result.last_error
        assert [record.iteration for record in result.checks] == [1, 2, 3]
        # Best-effort snapshot is still returned
        assert snapshot is not None
        assert snapshot.residual == pytest.approx(5.0)

    def test_exhausted_year_carried_forward(
        self, statement_config: StatementConfig
    ) -> None:
        """Test that the next year opens from an exhausted year's snapshot."""
        table = _table([2025, 2026])
        opening = CarryForward(
            cash=1_000_000.00, provisions=600_000.00, retained_earnings=399_995.00
        )
        engine = ConvergenceEngine(CashEngineConfig(deposit_rate=0.0))

        run = engine.run(table, [2025, 2026], statement_config, opening)

        assert run.exhausted_years == [2025, 2026]
        assert run.convergence[2026].opening_year == 2025
        assert run.statements[2026].cash_begin == run.statements[2025].cash_end
        assert run.total_iterations == 6

    def test_cash_balance_fixed_point(self, statement_config: StatementConfig) -> None:
        """Test that interest on cash iterates to a fixed point."""
        table = _table([2025])
        opening = CarryForward(cash=1_000_000.0, retained_earnings=1_000_000.0)
        engine = ConvergenceEngine(
            CashEngineConfig(
                max_iterations=10, convergence_check="cash_balance", deposit_rate=0.05
            )
        )

        snapshot, result = engine.solve_year(2025, table, opening, statement_config)

        # Each iteration shrinks the gap by a factor of 0.025
        assert result.status == YearStatus.CONVERGED
        assert result.iterations == 6
        assert [round(r.value, 4) for r in result.checks[:3]] == [50_000.0, 1_250.0, 31.25]
        expected = 1_025_000.0 / 0.975
        assert snapshot.cash_end == pytest.approx(expected, abs=0.01)
        assert snapshot.interest_income == pytest.approx(
            0.05 * (1_000_000.0 + snapshot.cash_end) / 2, abs=0.01
        )

    def test_cash_balance_exhausts_with_default_limit(
        self, statement_config: StatementConfig
    ) -> None:
        """Test that three iterations are not enough for the same scenario."""
        table = _table([2025])
        opening = CarryForward(cash=1_000_000.0, retained_earnings=1_000_000.0)
        engine = ConvergenceEngine(CashEngineConfig(convergence_check="cash_balance"))

        _, result = engine.solve_year(2025, table, opening, statement_config)

        assert result.status == YearStatus.EXHAUSTED
        assert "Cash imbalance" in result.last_error

    def test_bs_cf_balance_records_both_checks(
        self, statement_config: StatementConfig
    ) -> None:
        """Test that both checks are recorded on every iteration."""
        table = _table([2025])
        opening = CarryForward(cash=1_000_000.0, retained_earnings=1_000_000.0)
        engine = ConvergenceEngine(
            CashEngineConfig(max_iterations=10, convergence_check="bs_cf_balance")
        )

        _, result = engine.solve_year(2025, table, opening, statement_config)

        assert result.converged
        assert len(result.checks) == 2 * result.iterations
        assert {r.check for r in result.checks} == {"balance_sheet", "cash_balance"}

    def test_missing_input_fails_year_only(
        self, statement_config: StatementConfig
    ) -> None:
        """Test that a failed year does not stop later years."""
        table = _table([2025, 2027], revenue=100_000, staff_costs=50_000)
        engine = ConvergenceEngine(CashEngineConfig(deposit_rate=0.0))

        run = engine.run(table, [2025, 2026, 2027], statement_config, CarryForward())

        failed = run.convergence[2026]
        assert failed.status == YearStatus.FAILED
        assert failed.iterations == 0
        assert failed.residual is None
        assert "revenue" in failed.last_error
        assert 2026 not in run.statements

        assert run.failed_years == [2026]
        assert run.convergence[2027].converged
        assert run.convergence[2027].opening_year == 2025
        assert run.statements[2027].cash_begin == run.statements[2025].cash_end
        assert not run.all_converged

    def test_invalid_statement_config_fails_years(self) -> None:
        """Test that out-of-range working-capital settings fail each year."""
        table = _table([2025, 2026], revenue=100_000)
        engine = ConvergenceEngine()

        run = engine.run(
            table, [2025, 2026], StatementConfig(dso_days=400), CarryForward()
        )

        assert run.failed_years == [2025, 2026]
        assert "DSO days" in run.convergence[2025].last_error
        assert run.statements == {}

    def test_defaulted_inputs_reported(self, statement_config: StatementConfig) -> None:
        """Test that defaulted optional inputs are listed per year."""
        table = _table([2025])
        table.set("capex", 2025, 10_000)

        _, result = ConvergenceEngine().solve_year(
            2025, table, CarryForward(), statement_config
        )

        assert "capex" not in result.defaulted_inputs
        assert "depreciation" in result.defaulted_inputs

    def test_custom_check(self, statement_config: StatementConfig) -> None:
        """Test plugging in a custom convergence check."""
        engine = ConvergenceEngine(
            CashEngineConfig(max_iterations=2), convergence_check=NeverConverges()
        )

        _, result = engine.solve_year(
            2025, _table([2025]), CarryForward(), statement_config
        )

        assert result.status == YearStatus.EXHAUSTED
        assert result.iterations == 2
        assert result.last_error == "never converges"

    def test_custom_check_overrides_config(self) -> None:
        """Test that an explicit check instance wins over the configured name."""
        check = BalanceSheetCheck()
        engine = ConvergenceEngine(
            CashEngineConfig(convergence_check="cash_balance"), convergence_check=check
        )
        assert engine.convergence_check is check

    def test_invalid_engine_config(self) -> None:
        """Test that invalid loop settings are rejected up front."""
        with pytest.raises(ValidationError) as exc_info:
            ConvergenceEngine(CashEngineConfig(max_iterations=0, tolerance=-1))

        assert len(exc_info.value.errors) == 2

    def test_unknown_configured_check(self) -> None:
        """Test that an unregistered check name is rejected."""
        with pytest.raises(ValidationError, match="Unknown convergence_check"):
            ConvergenceEngine(CashEngineConfig(convergence_check="nope"))

    def test_summary(self, statement_config: StatementConfig) -> None:
        """Test the run summary."""
        run = ConvergenceEngine().run(
            _table([2025, 2026]), [2025, 2026], statement_config, CarryForward()
        )

        summary = run.summary()

        assert summary["converged"] is True
        assert summary["total_iterations"] == 2
        assert summary["years_processed"] == 2
        assert summary["convergence_by_year"][2025]["status"] == "converged"
        assert run.years_processed == [2025, 2026]
