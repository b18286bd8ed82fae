"""Data model and per-year statement calculation."""

from projection_engine.models.driver import Driver, DriverValue, ValueSource, ValueTable
from projection_engine.models.statement_model import (
    CarryForward,
    StatementInputs,
    StatementModel,
    StatementSnapshot,
)
from projection_engine.models.scenario_config import (
    CashEngineConfig,
    ScenarioConfig,
    StatementConfig,
)
from projection_engine.models.convergence_checks import (
    CONVERGENCE_CHECKS,
    BalanceSheetCheck,
    CashBalanceCheck,
    CompositeCheck,
    get_convergence_check,
)

__all__ = [
    "Driver",
    "DriverValue",
    "ValueSource",
    "ValueTable",
    "CarryForward",
    "StatementInputs",
    "StatementModel",
    "StatementSnapshot",
    "CashEngineConfig",
    "ScenarioConfig",
    "StatementConfig",
    "CONVERGENCE_CHECKS",
    "BalanceSheetCheck",
    "CashBalanceCheck",
    "CompositeCheck",
    "get_convergence_check",
]
