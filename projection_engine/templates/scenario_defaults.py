"""Default scenario parameters and the planning year domain."""

from typing import Any

# Planning horizon: two historical years followed by the forecast.
YEAR_MIN = 2023
HISTORICAL_END = 2024
FORECAST_START = 2025
YEAR_MAX = 2052

# Statement inputs read from the value table for each forecast year.
REQUIRED_LINE_ITEMS = ("revenue", "staff_costs", "rent", "other_opex")
OPTIONAL_LINE_ITEMS = ("depreciation", "capex", "financing", "tax", "provisions")

# Statement input -> driver id. Identity unless the scenario overrides it.
DEFAULT_LINE_ITEMS: dict[str, str] = {
    item: item for item in REQUIRED_LINE_ITEMS + OPTIONAL_LINE_ITEMS
}

SCENARIO_DEFAULTS: dict[str, Any] = {
    "start_year": FORECAST_START,
    "end_year": YEAR_MAX,
    "historical_end": HISTORICAL_END,
    "statement": {
        "dso_days": 30,
        "dpo_days": 45,
        "deferred_revenue_pct": 0.35,  # tuition collected before the year starts
    },
    "cash_engine": {
        "max_iterations": 3,
        "tolerance": 0.01,  # statement currency unit
        "convergence_check": "balance_sheet",
        "deposit_rate": 0.05,
        "overdraft_rate": 0.12,
    },
    "opening_balances": {
        "cash": 0.0,
        "accounts_receivable": 0.0,
        "accounts_payable": 0.0,
        "deferred_revenue": 0.0,
        "provisions": 0.0,
        "retained_earnings": 0.0,
        "tangible_assets": 0.0,
        "accumulated_depreciation": 0.0,
    },
}
