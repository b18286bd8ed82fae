"""
Financial Projection Engine for multi-year scenario planning.

Projects operator-defined drivers over a planning horizon and derives
balanced financial statements from them:
- Evaluates driver formulas in dependency order, year by year
- Derives P&L, balance sheet and cash flow for each forecast year
- Solves the interest-on-cash circularity by bounded iteration
- Reports per-year convergence diagnostics and derived ratios
"""

from projection_engine.core.projection_engine import ProjectionEngine, ProjectionResult
from projection_engine.errors import (
    CyclicDependencyError,
    FormulaEvaluationError,
    MissingDependencyValueError,
    ProjectionEngineError,
    ValidationError,
)
from projection_engine.templates.scenario_defaults import SCENARIO_DEFAULTS

__version__ = "1.0.0"
__all__ = [
    "ProjectionEngine",
    "ProjectionResult",
    "SCENARIO_DEFAULTS",
    "CyclicDependencyError",
    "FormulaEvaluationError",
    "MissingDependencyValueError",
    "ProjectionEngineError",
    "ValidationError",
]
