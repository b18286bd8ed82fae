"""Pure statement derivation functions.

Every function takes explicit numeric inputs and returns derived values.
Nothing here reads configuration or carries state between calls.
"""

from projection_engine.errors import ValidationError

DAYS_PER_YEAR = 365
MAX_DAYS_OUTSTANDING = 365


def _within(value, low: float, high: float) -> bool:
    """True for an int or float in [low, high]. NaN, None and text are not."""
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and low <= value <= high
    )


def validate_statement_config(
    dso_days: float,
    dpo_days: float,
    deferred_revenue_pct: float,
) -> None:
    """
    Validate working-capital configuration.

    All problems are reported together.

    Args:
        dso_days: Days Sales Outstanding, must lie in [0, 365].
        dpo_days: Days Payable Outstanding, must lie in [0, 365].
        deferred_revenue_pct: Share of revenue collected in advance, in [0, 1].

    Raises:
        ValidationError: If any value is out of range or not a number.
    """
    errors = []
    if not _within(dso_days, 0, MAX_DAYS_OUTSTANDING):
        errors.append(f"DSO days must be between 0 and 365, got {dso_days}")
    if not _within(dpo_days, 0, MAX_DAYS_OUTSTANDING):
        errors.append(f"DPO days must be between 0 and 365, got {dpo_days}")
    if not _within(deferred_revenue_pct, 0, 1):
        errors.append(
            "Deferred revenue % must be between 0 and 1 "
            f"(e.g., 0.35 for 35%), got {deferred_revenue_pct}"
        )
    if errors:
        raise ValidationError(errors)


# ── P&L ─────────────────────────────────────────────────────────


def calculate_cogs(staff_costs: float, rent: float, other_opex: float) -> float:
    """
    Cost of goods sold.

    COGS covers all operating costs, not only direct costs:
    COGS = Staff Costs + Rent + Other Operating Expenses
    """
    return staff_costs + rent + other_opex


def calculate_ebitda(revenue: float, cogs: float) -> float:
    """EBITDA = Revenue - COGS."""
    return revenue - cogs


def calculate_ebit(ebitda: float, depreciation: float) -> float:
    """EBIT = EBITDA - Depreciation."""
    return ebitda - depreciation


def calculate_net_result(
    ebit: float,
    interest_income: float,
    interest_expense: float,
    tax: float,
) -> float:
    """Net result = EBIT + Interest Income - Interest Expense - Tax."""
    return ebit + interest_income - interest_expense - tax


def calculate_interest_from_cash(
    cash_begin: float,
    cash_end: float,
    deposit_rate: float,
    overdraft_rate: float,
) -> tuple[float, float]:
    """
    Interest on the average cash balance of the year.

    A positive average balance earns ``deposit_rate``; a negative one
    (overdraft) costs ``overdraft_rate``.

    Args:
        cash_begin: Cash at the beginning of the year.
        cash_end: Cash at the end of the year.
        deposit_rate: Annual rate earned on positive balances.
        overdraft_rate: Annual rate charged on negative balances.

    Returns:
        Tuple of (interest_income, interest_expense), both non-negative.

    Example:
        >>> calculate_interest_from_cash(100_000, 300_000, 0.05, 0.12)
        (10000.0, 0.0)
    """
    average_cash = (cash_begin + cash_end) / 2
    interest_income = average_cash * deposit_rate if average_cash > 0 else 0.0
    interest_expense = abs(average_cash) * overdraft_rate if average_cash < 0 else 0.0
    return float(interest_income), float(interest_expense)


# ── Working capital ─────────────────────────────────────────────


def calculate_accounts_receivable(revenue: float, dso_days: float) -> float:
    """
    Accounts receivable from Days Sales Outstanding.

    AR = Revenue × DSO / 365

    Raises:
        ValidationError: If ``dso_days`` lies outside [0, 365].

    Example:
        >>> calculate_accounts_receivable(365_000, 30)
        30000.0
    """
    if not 0 <= dso_days <= MAX_DAYS_OUTSTANDING:
        raise ValidationError(f"DSO days must be between 0 and 365, got {dso_days}")
    return revenue * dso_days / DAYS_PER_YEAR


def calculate_accounts_payable(cogs: float, dpo_days: float) -> float:
    """
    Accounts payable from Days Payable Outstanding.

    AP = COGS × DPO / 365

    Raises:
        ValidationError: If ``dpo_days`` lies outside [0, 365].
    """
    if not 0 <= dpo_days <= MAX_DAYS_OUTSTANDING:
        raise ValidationError(f"DPO days must be between 0 and 365, got {dpo_days}")
    return cogs * dpo_days / DAYS_PER_YEAR


def calculate_deferred_revenue(revenue: float, deferred_pct: float) -> float:
    """
    Revenue collected in advance and not yet earned.

    Raises:
        ValidationError: If ``deferred_pct`` lies outside [0, 1].
    """
    if not 0 <= deferred_pct <= 1:
        raise ValidationError(
            f"Deferred revenue % must be between 0 and 1, got {deferred_pct}"
        )
    return revenue * deferred_pct


def calculate_working_capital(
    accounts_receivable: float,
    accounts_payable: float,
    deferred_revenue: float,
) -> float:
    """Net working capital = AR - AP - Deferred Revenue."""
    return accounts_receivable - accounts_payable - deferred_revenue


# ── Cash flow ───────────────────────────────────────────────────


def calculate_cf_operating(
    net_result: float,
    depreciation: float,
    delta_receivables: float,
    delta_payables: float,
    delta_deferred_income: float,
    delta_provisions: float,
) -> float:
    """
    Operating cash flow (indirect method).

    An increase in receivables consumes cash; increases in payables,
    deferred income and provisions release it.
    """
    return (
        net_result
        + depreciation
        - delta_receivables
        + delta_payables
        + delta_deferred_income
        + delta_provisions
    )


def calculate_cf_investing(capex_additions: float) -> float:
    """Investing cash flow = -CAPEX additions."""
    return -capex_additions


def calculate_net_cash_flow(
    cf_operating: float,
    cf_investing: float,
    cf_financing: float,
) -> float:
    """Net cash flow for the year."""
    return cf_operating + cf_investing + cf_financing


def calculate_ending_cash(cash_begin: float, net_cash_flow: float) -> float:
    """
    Cash at the end of the year.

    Equal to cash_begin + cf_operating + cf_investing + cf_financing; it is
    computed from the net cash flow so that
    ``cash_begin + net_cash_flow == cash_end`` holds exactly in floating point.
    """
    return cash_begin + net_cash_flow


# ── Balance sheet ───────────────────────────────────────────────


def calculate_net_fixed_assets(
    tangible_assets: float,
    accumulated_depreciation: float,
) -> float:
    return tangible_assets - accumulated_depreciation


def calculate_balance_sheet_totals(
    cash: float,
    accounts_receivable: float,
    net_fixed_assets: float,
    accounts_payable: float,
    deferred_revenue: float,
    provisions: float,
    prior_retained_earnings: float,
    net_result: float,
) -> dict[str, float]:
    """
    Balance sheet subtotals and totals.

    Args:
        cash: Cash carried on the balance sheet.
        accounts_receivable: Closing receivables.
        net_fixed_assets: Tangible assets less accumulated depreciation.
        accounts_payable: Closing payables.
        deferred_revenue: Closing deferred income.
        provisions: Closing provisions.
        prior_retained_earnings: Retained earnings carried forward.
        net_result: Net result of the year.

    Returns:
        Dictionary with total_current_assets, total_assets,
        total_current_liabilities, total_liabilities, retained_earnings
        and total_equity.
    """
    total_current_assets = cash + accounts_receivable
    total_assets = total_current_assets + net_fixed_assets
    total_current_liabilities = accounts_payable + deferred_revenue
    total_liabilities = total_current_liabilities + provisions
    retained_earnings = prior_retained_earnings + net_result
    total_equity = retained_earnings

    return {
        "total_current_assets": total_current_assets,
        "total_assets": total_assets,
        "total_current_liabilities": total_current_liabilities,
        "total_liabilities": total_liabilities,
        "retained_earnings": retained_earnings,
        "total_equity": total_equity,
    }


def check_balance(
    total_assets: float,
    total_liabilities: float,
    total_equity: float,
    tolerance: float = 0.01,
) -> tuple[bool, float]:
    """
    Check Assets = Liabilities + Equity within ``tolerance``.

    Returns:
        Tuple of (balanced, residual) where residual is
        total_assets - (total_liabilities + total_equity).

    Example:
        >>> check_balance(1_000_000.00, 600_000.00, 399_995.00)
        (False, 5.0)
    """
    residual = total_assets - (total_liabilities + total_equity)
    return abs(residual) <= tolerance, residual
