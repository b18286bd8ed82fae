"""Statement model assembling one year's P&L, balance sheet and cash flow."""

import logging
import math
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from projection_engine.errors import MissingDependencyValueError, ValidationError
from projection_engine.models.driver import ValueTable
from projection_engine.templates.scenario_defaults import (
    DEFAULT_LINE_ITEMS,
    OPTIONAL_LINE_ITEMS,
    REQUIRED_LINE_ITEMS,
)
from projection_engine.utils.financial_utils import (
    calculate_accounts_payable,
    calculate_accounts_receivable,
    calculate_balance_sheet_totals,
    calculate_cf_investing,
    calculate_cf_operating,
    calculate_cogs,
    calculate_deferred_revenue,
    calculate_ebit,
    calculate_ebitda,
    calculate_ending_cash,
    calculate_interest_from_cash,
    calculate_net_cash_flow,
    calculate_net_fixed_assets,
    calculate_net_result,
    calculate_working_capital,
    validate_statement_config,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatementInputs:
    """
    Raw values of one year, read from the value table.

    Args:
        defaulted: Names of optional inputs that were absent and replaced by
            their default (zero, or prior provisions).
    """

    revenue: float
    staff_costs: float
    rent: float
    other_opex: float
    depreciation: float = 0.0
    capex: float = 0.0
    financing: float = 0.0
    tax: float = 0.0
    provisions: float | None = None
    defaulted: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CarryForward:
    """
    Closing position of the prior year, used as this year's opening basis.

    ``year`` is the year the position closed, or None for externally
    supplied opening balances.
    """

    cash: float = 0.0
    accounts_receivable: float = 0.0
    accounts_payable: float = 0.0
    deferred_revenue: float = 0.0
    provisions: float = 0.0
    retained_earnings: float = 0.0
    tangible_assets: float = 0.0
    accumulated_depreciation: float = 0.0
    year: int | None = None

    @classmethod
    def from_snapshot(cls, snapshot: "StatementSnapshot") -> "CarryForward":
        return cls(
            cash=snapshot.cash_end,
            accounts_receivable=snapshot.accounts_receivable,
            accounts_payable=snapshot.accounts_payable,
            deferred_revenue=snapshot.deferred_revenue,
            provisions=snapshot.provisions,
            retained_earnings=snapshot.retained_earnings,
            tangible_assets=snapshot.tangible_assets,
            accumulated_depreciation=snapshot.accumulated_depreciation,
            year=snapshot.year,
        )

    @classmethod
    def from_dict(cls, balances: dict[str, Any]) -> "CarryForward":
        """Build opening balances from a dict; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(balances) - known)
        if unknown:
            raise ValidationError(f"Unknown opening balance keys: {unknown}")
        return cls(**balances)


@dataclass(frozen=True)
class StatementSnapshot:
    """
    Complete set of statement values for one year.

    ``cash`` is the cash carried on the balance sheet, which is the seeded
    ending cash. ``cash_end`` is the ending cash of the cash flow statement.
    The two agree once the year has converged.
    """

    year: int
    # P&L
    revenue: float
    staff_costs: float
    rent: float
    other_opex: float
    cogs: float
    ebitda: float
    depreciation: float
    ebit: float
    interest_income: float
    interest_expense: float
    tax: float
    net_result: float
    # Working capital
    accounts_receivable: float
    accounts_payable: float
    deferred_revenue: float
    working_capital: float
    # Balance sheet
    cash: float
    cash_end: float
    total_current_assets: float
    tangible_assets: float
    accumulated_depreciation: float
    net_fixed_assets: float
    total_assets: float
    total_current_liabilities: float
    provisions: float
    total_liabilities: float
    retained_earnings: float
    total_equity: float
    # Cash flow
    delta_receivables: float
    delta_payables: float
    delta_deferred_income: float
    delta_provisions: float
    capex: float
    cf_operating: float
    cf_investing: float
    cf_financing: float
    net_cash_flow: float
    cash_begin: float

    @property
    def residual(self) -> float:
        """Total assets minus total liabilities and equity."""
        return self.total_assets - (self.total_liabilities + self.total_equity)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class StatementModel:
    """
    Derives a year's statements from raw inputs and the carry-forward state.

    The only circular quantity is interest on the average cash balance: it
    depends on ending cash, which depends on the net result, which includes
    interest. ``calculate`` breaks the loop with ``seed_cash_end``, the best
    known ending cash. The balance sheet carries the seed as its cash, so
    the balance residual equals ``seed_cash_end - cash_end`` for a balanced
    opening position. The convergence engine feeds each result's ending
    cash back in as the next seed.
    """

    def read_inputs(
        self,
        table: ValueTable,
        year: int,
        line_items: dict[str, str] | None = None,
    ) -> StatementInputs:
        """
        Read one year's statement inputs from the value table.

        Args:
            table: Value table after driver projection.
            year: Year to read.
            line_items: Statement input -> driver id mapping.

        Returns:
            StatementInputs with absent optional inputs defaulted and listed.

        Raises:
            MissingDependencyValueError: If a required input is absent.
            ValidationError: If an input value is not finite.
        """
        mapping = {**DEFAULT_LINE_ITEMS, **(line_items or {})}
        values: dict[str, float] = {}
        defaulted = []

        for item in REQUIRED_LINE_ITEMS:
            value = table.get(mapping[item], year)
            if value is None:
                raise MissingDependencyValueError(mapping[item], year, driver_name=item)
            values[item] = value

        for item in OPTIONAL_LINE_ITEMS:
            value = table.get(mapping[item], year)
            if value is None:
                defaulted.append(item)
                continue
            values[item] = value

        bad = [name for name, value in values.items() if not math.isfinite(value)]
        if bad:
            raise ValidationError(
                [f"Input '{name}' for year {year} is not a finite number" for name in bad]
            )

        if defaulted:
            logger.warning(
                "[%s] Statement inputs absent, using defaults: %s",
                year,
                ", ".join(defaulted),
            )

        return StatementInputs(**values, defaulted=tuple(defaulted))

    def calculate(
        self,
        year: int,
        inputs: StatementInputs,
        prior: CarryForward,
        dso_days: float,
        dpo_days: float,
        deferred_revenue_pct: float,
        deposit_rate: float,
        overdraft_rate: float,
        seed_cash_end: float,
    ) -> StatementSnapshot:
        """
        Calculate the statement snapshot for one year.

        Args:
            year: Year being calculated.
            inputs: Raw values of the year.
            prior: Carry-forward state of the prior year.
            dso_days: Days Sales Outstanding.
            dpo_days: Days Payable Outstanding.
            deferred_revenue_pct: Share of revenue collected in advance.
            deposit_rate: Interest rate on positive average cash.
            overdraft_rate: Interest rate on negative average cash.
            seed_cash_end: Ending cash assumed when computing interest, and
                the cash carried on the balance sheet.

        Returns:
            StatementSnapshot for the year.

        Raises:
            ValidationError: If the working-capital configuration is out of range.
        """
        validate_statement_config(dso_days, dpo_days, deferred_revenue_pct)

        # Working capital
        cogs = calculate_cogs(inputs.staff_costs, inputs.rent, inputs.other_opex)
        receivables = calculate_accounts_receivable(inputs.revenue, dso_days)
        payables = calculate_accounts_payable(cogs, dpo_days)
        deferred = calculate_deferred_revenue(inputs.revenue, deferred_revenue_pct)
        working_capital = calculate_working_capital(receivables, payables, deferred)

        # P&L, with interest on the seeded average cash balance
        cash_begin = prior.cash
        interest_income, interest_expense = calculate_interest_from_cash(
            cash_begin, seed_cash_end, deposit_rate, overdraft_rate
        )
        ebitda = calculate_ebitda(inputs.revenue, cogs)
        ebit = calculate_ebit(ebitda, inputs.depreciation)
        net_result = calculate_net_result(
            ebit, interest_income, interest_expense, inputs.tax
        )

        provisions = prior.provisions if inputs.provisions is None else inputs.provisions

        # Cash flow
        delta_receivables = receivables - prior.accounts_receivable
        delta_payables = payables - prior.accounts_payable
        delta_deferred = deferred - prior.deferred_revenue
        delta_provisions = provisions - prior.provisions

        cf_operating = calculate_cf_operating(
            net_result,
            inputs.depreciation,
            delta_receivables,
            delta_payables,
            delta_deferred,
            delta_provisions,
        )
        cf_investing = calculate_cf_investing(inputs.capex)
        cf_financing = inputs.financing
        net_cash_flow = calculate_net_cash_flow(cf_operating, cf_investing, cf_financing)
        cash_end = calculate_ending_cash(cash_begin, net_cash_flow)

        # Balance sheet, carrying the seeded cash
        tangible_assets = prior.tangible_assets + inputs.capex
        accumulated_depreciation = prior.accumulated_depreciation + inputs.depreciation
        net_fixed_assets = calculate_net_fixed_assets(
            tangible_assets, accumulated_depreciation
        )
        totals = calculate_balance_sheet_totals(
            cash=seed_cash_end,
            accounts_receivable=receivables,
            net_fixed_assets=net_fixed_assets,
            accounts_payable=payables,
            deferred_revenue=deferred,
            provisions=provisions,
            prior_retained_earnings=prior.retained_earnings,
            net_result=net_result,
        )

        return StatementSnapshot(
            year=year,
            revenue=inputs.revenue,
            staff_costs=inputs.staff_costs,
            rent=inputs.rent,
            other_opex=inputs.other_opex,
            cogs=cogs,
            ebitda=ebitda,
            depreciation=inputs.depreciation,
            ebit=ebit,
            interest_income=interest_income,
            interest_expense=interest_expense,
            tax=inputs.tax,
            net_result=net_result,
            accounts_receivable=receivables,
            accounts_payable=payables,
            deferred_revenue=deferred,
            working_capital=working_capital,
            cash=seed_cash_end,
            cash_end=cash_end,
            total_current_assets=totals["total_current_assets"],
            tangible_assets=tangible_assets,
            accumulated_depreciation=accumulated_depreciation,
            net_fixed_assets=net_fixed_assets,
            total_assets=totals["total_assets"],
            total_current_liabilities=totals["total_current_liabilities"],
            provisions=provisions,
            total_liabilities=totals["total_liabilities"],
            retained_earnings=totals["retained_earnings"],
            total_equity=totals["total_equity"],
            delta_receivables=delta_receivables,
            delta_payables=delta_payables,
            delta_deferred_income=delta_deferred,
            delta_provisions=delta_provisions,
            capex=inputs.capex,
            cf_operating=cf_operating,
            cf_investing=cf_investing,
            cf_financing=cf_financing,
            net_cash_flow=net_cash_flow,
            cash_begin=cash_begin,
        )
