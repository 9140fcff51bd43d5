"""
Convex optimizers.

Optimizers depend on objectives only through ``ObjectiveFunction``.
"""

from .base import (
    ConvergenceReason,
    OptimizationResult,
    OptimizationStatesTracker,
    Optimizer,
    OptimizerState,
    OptimizerStatus,
    OptimizerType,
)
from .config import OptimizerConfig
from .lbfgs import LBFGS
from .tron import TRON

__all__ = [
    "Optimizer",
    "OptimizerType",
    "OptimizerStatus",
    "OptimizerState",
    "ConvergenceReason",
    "OptimizationResult",
    "OptimizationStatesTracker",
    "OptimizerConfig",
    "LBFGS",
    "TRON",
]
