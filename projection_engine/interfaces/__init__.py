"""Abstract interfaces for pluggable engine behaviour."""

from projection_engine.interfaces.convergence_check import (
    CheckOutcome,
    ConvergenceCheckInterface,
)

__all__ = ["CheckOutcome", "ConvergenceCheckInterface"]
