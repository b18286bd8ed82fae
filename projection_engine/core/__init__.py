"""Core projection engine components."""

from projection_engine.core.convergence_engine import (
    ConvergenceEngine,
    ConvergenceResult,
    RunResult,
    YearStatus,
)
from projection_engine.core.dependency_resolver import DependencyResolver
from projection_engine.core.driver_pipeline import (
    DriverProjectionPipeline,
    EvaluationFailure,
    PipelineResult,
)
from projection_engine.core.kpi_calculator import KPICalculator
from projection_engine.core.projection_engine import ProjectionEngine, ProjectionResult

__all__ = [
    "ConvergenceEngine",
    "ConvergenceResult",
    "RunResult",
    "YearStatus",
    "DependencyResolver",
    "DriverProjectionPipeline",
    "EvaluationFailure",
    "PipelineResult",
    "KPICalculator",
    "ProjectionEngine",
    "ProjectionResult",
]
