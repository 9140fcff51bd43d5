"""
Optimizer configuration.
"""

from dataclasses import dataclass
from typing import Union

from .base import Optimizer, OptimizerType
from .lbfgs import LBFGS
from .tron import TRON


@dataclass
class OptimizerConfig:
    """
    Settings for building an optimizer.

    ``history_length`` and ``max_line_search_iterations`` apply to LBFGS;
    ``max_cg_iterations`` and ``max_improvement_failures`` to TRON.
    """
    optimizer_type: Union[str, OptimizerType] = OptimizerType.LBFGS
    tolerance: float = 1e-6
    max_iterations: int = 100
    history_length: int = 10
    max_line_search_iterations: int = 20
    max_cg_iterations: int = 50
    max_improvement_failures: int = 5

    def __post_init__(self):
        self.optimizer_type = OptimizerType(self.optimizer_type)
        if not self.tolerance > 0:
            raise ValueError(f"tolerance must be > 0, got {self.tolerance}")
        for name in ('max_iterations', 'history_length', 'max_line_search_iterations',
                     'max_cg_iterations', 'max_improvement_failures'):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")

    def build_optimizer(self) -> Optimizer:
        if self.optimizer_type is OptimizerType.LBFGS:
            return LBFGS(
                tolerance=self.tolerance,
                max_iterations=self.max_iterations,
                history_length=self.history_length,
                max_line_search_iterations=self.max_line_search_iterations,
            )
        return TRON(
            tolerance=self.tolerance,
            max_iterations=self.max_iterations,
            max_cg_iterations=self.max_cg_iterations,
            max_improvement_failures=self.max_improvement_failures,
        )
