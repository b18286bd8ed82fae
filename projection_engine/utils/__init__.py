"""Formula evaluation and statement derivation functions."""

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
    check_balance,
    validate_statement_config,
)
from projection_engine.utils.formula_parser import FormulaEvaluator, evaluate_expression

__all__ = [
    "calculate_accounts_payable",
    "calculate_accounts_receivable",
    "calculate_balance_sheet_totals",
    "calculate_cf_investing",
    "calculate_cf_operating",
    "calculate_cogs",
    "calculate_deferred_revenue",
    "calculate_ebit",
    "calculate_ebitda",
    "calculate_ending_cash",
    "calculate_interest_from_cash",
    "calculate_net_cash_flow",
    "calculate_net_fixed_assets",
    "calculate_net_result",
    "calculate_working_capital",
    "check_balance",
    "validate_statement_config",
    "FormulaEvaluator",
    "evaluate_expression",
]
