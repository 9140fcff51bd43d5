"""
Shared optimizer machinery.

Every optimizer runs the same state machine:

    INIT -> ITERATING -> {CONVERGED | MAX_ITERATIONS | FAILED}

INIT validates the starting point against the objective's dimension.
Each iteration evaluates the objective at the current point, computes a
step and checks for termination. Failures raise an ``OptimizationError``
carrying the last valid state.
"""

import logging
import time
import warnings
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from .._utils import check_dimension
from ..exceptions import (
    ConvergenceWarning,
    LineSearchFailure,
    NonFiniteValue,
    OptimizationError,
    SubproblemFailure,
)
from ..objective import ObjectiveFunction

logger = logging.getLogger(__name__)


class OptimizerType(Enum):
    """Available optimizers."""
    LBFGS = "lbfgs"
    TRON = "tron"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.lower():
                    return member
        return None


class OptimizerStatus(Enum):
    INIT = "init"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    FAILED = "failed"


class ConvergenceReason(Enum):
    FUNCTION_VALUES_CONVERGED = "function_values_converged"
    GRADIENT_CONVERGED = "gradient_converged"
    OBJECTIVE_NOT_IMPROVING = "objective_not_improving"
    MAX_ITERATIONS = "max_iterations"
    NON_FINITE_VALUE = "non_finite_value"
    LINE_SEARCH_FAILED = "line_search_failed"
    SUBPROBLEM_FAILED = "subproblem_failed"


@dataclass
class OptimizerState:
    """Optimizer position after an iteration."""
    coefficients: np.ndarray
    gradient: np.ndarray
    value: float
    iteration: int
    convergence_reason: Optional[ConvergenceReason] = None

    @property
    def gradient_norm(self) -> float:
        return float(np.linalg.norm(self.gradient))


@dataclass
class TrackedState:
    iteration: int
    value: float
    gradient_norm: float
    elapsed_seconds: float


class OptimizationStatesTracker:
    """Records the objective value and gradient norm of every iteration."""

    def __init__(self):
        self._start = time.perf_counter()
        self._states: List[TrackedState] = []
        self.convergence_reason: Optional[ConvergenceReason] = None

    def track(self, state: OptimizerState):
        self._states.append(TrackedState(
            iteration=state.iteration,
            value=state.value,
            gradient_norm=state.gradient_norm,
            elapsed_seconds=time.perf_counter() - self._start,
        ))

    @property
    def states(self) -> List[TrackedState]:
        return list(self._states)

    def to_frame(self) -> pd.DataFrame:
        """Iteration history as a DataFrame indexed by iteration."""
        return pd.DataFrame(
            {
                'value': [s.value for s in self._states],
                'gradient_norm': [s.gradient_norm for s in self._states],
                'elapsed_seconds': [s.elapsed_seconds for s in self._states],
            },
            index=pd.Index([s.iteration for s in self._states], name='iteration'),
        )

    def __len__(self):
        return len(self._states)

    def __repr__(self):
        return f"OptimizationStatesTracker(iterations={len(self)}, reason={self.convergence_reason})"


@dataclass
class OptimizationResult:
    """Final state of an optimizer run."""
    coefficients: np.ndarray
    value: float
    gradient: np.ndarray
    iterations: int
    status: OptimizerStatus
    convergence_reason: ConvergenceReason
    tracker: OptimizationStatesTracker = field(repr=False)

    @property
    def converged(self) -> bool:
        return self.status is OptimizerStatus.CONVERGED


class CachedObjective:
    """
    Memoizes ``value_and_gradient`` for the last few points.

    Line searches ask for the value and the gradient at the same trial
    point separately; each distinct point costs a single pass over the data.
    """

    def __init__(self, objective: ObjectiveFunction, maxsize: int = 4):
        self.objective = objective
        self.maxsize = maxsize
        self._cache: 'OrderedDict[bytes, Tuple[float, np.ndarray]]' = OrderedDict()

    def value_and_gradient(self, theta: np.ndarray) -> Tuple[float, np.ndarray]:
        theta = np.asarray(theta, dtype=np.float64)
        key = theta.tobytes()
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]
        result = self.objective.value_and_gradient(theta)
        self._cache[key] = result
        if len(self._cache) > self.maxsize:
            self._cache.popitem(last=False)
        return result

    def value(self, theta: np.ndarray) -> float:
        return self.value_and_gradient(theta)[0]

    def gradient(self, theta: np.ndarray) -> np.ndarray:
        return self.value_and_gradient(theta)[1]


class Optimizer(ABC):
    """
    Base class for iterative convex minimizers.

    Parameters
    ----------
    tolerance : float, default=1e-6
        Relative tolerance of the function-value and gradient-norm checks
    max_iterations : int, default=100
        Iteration cap
    """

    optimizer_type: OptimizerType

    def __init__(self, tolerance: float = 1e-6, max_iterations: int = 100):
        if not tolerance > 0:
            raise ValueError(f"tolerance must be > 0, got {tolerance}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.status = OptimizerStatus.INIT

    def optimize(self, objective: ObjectiveFunction, initial: np.ndarray) -> OptimizationResult:
        """
        Minimize ``objective`` starting from ``initial``.

        Raises
        ------
        DimensionMismatch
            If ``initial`` does not match ``objective.domain_dimension``
        NonFiniteValue, LineSearchFailure, SubproblemFailure
            Fatal failures; ``error.state`` holds the last valid state
        """
        self.status = OptimizerStatus.INIT
        initial = np.array(initial, dtype=np.float64)
        if initial.ndim != 1:
            raise ValueError("initial coefficients must be 1-dimensional")
        check_dimension(initial.shape[0], objective.domain_dimension, what="initial coefficients")
        self._validate_objective(objective)

        tracker = OptimizationStatesTracker()
        self.status = OptimizerStatus.ITERATING
        try:
            state = self._run(objective, initial, tracker)
        except OptimizationError as e:
            self.status = OptimizerStatus.FAILED
            tracker.convergence_reason = _failure_reason(e)
            logger.error("%s failed: %s", type(self).__name__, e)
            raise

        reason = state.convergence_reason
        tracker.convergence_reason = reason
        if reason is ConvergenceReason.MAX_ITERATIONS:
            self.status = OptimizerStatus.MAX_ITERATIONS
            warnings.warn(
                f"{type(self).__name__} stopped after {state.iteration} iterations "
                f"without converging (tolerance {self.tolerance:g})",
                ConvergenceWarning,
            )
        else:
            self.status = OptimizerStatus.CONVERGED

        logger.info(
            "%s finished after %d iterations: %s, value=%.10g",
            type(self).__name__, state.iteration, reason.value, state.value,
        )
        return OptimizationResult(
            coefficients=state.coefficients,
            value=state.value,
            gradient=state.gradient,
            iterations=state.iteration,
            status=self.status,
            convergence_reason=reason,
            tracker=tracker,
        )

    def _validate_objective(self, objective: ObjectiveFunction):
        pass

    @abstractmethod
    def _run(self, objective, initial: np.ndarray,
             tracker: OptimizationStatesTracker) -> OptimizerState:
        """Iterate until termination; return the final state with its reason."""
        pass

    def _evaluate(self, objective, theta: np.ndarray, iteration: int,
                  last_state: Optional[OptimizerState]) -> OptimizerState:
        value, gradient = objective.value_and_gradient(theta)
        if not np.isfinite(value) or not np.all(np.isfinite(gradient)):
            what = 'objective value' if not np.isfinite(value) else 'gradient'
            raise NonFiniteValue(
                f"Non-finite {what} at iteration {iteration}",
                state=last_state,
            )
        return OptimizerState(
            coefficients=theta,
            gradient=np.asarray(gradient, dtype=np.float64),
            value=float(value),
            iteration=iteration,
        )

    def _check_convergence(self, previous: OptimizerState, current: OptimizerState,
                           initial_gradient_norm: float) -> Optional[ConvergenceReason]:
        scale = max(abs(previous.value), abs(current.value), 1.0)
        if abs(previous.value - current.value) <= self.tolerance * scale:
            return ConvergenceReason.FUNCTION_VALUES_CONVERGED
        if current.gradient_norm <= self.tolerance * max(initial_gradient_norm, 1.0):
            return ConvergenceReason.GRADIENT_CONVERGED
        return None

    def _log_iteration(self, state: OptimizerState):
        logger.debug(
            "%s iteration %d: value=%.10g, |gradient|=%.6g",
            type(self).__name__, state.iteration, state.value, state.gradient_norm,
        )

    def __repr__(self):
        return (f"{type(self).__name__}(tolerance={self.tolerance:g}, "
                f"max_iterations={self.max_iterations})")


def _failure_reason(error: OptimizationError) -> ConvergenceReason:
    if isinstance(error, LineSearchFailure):
        return ConvergenceReason.LINE_SEARCH_FAILED
    if isinstance(error, SubproblemFailure):
        return ConvergenceReason.SUBPROBLEM_FAILED
    return ConvergenceReason.NON_FINITE_VALUE


__all__ = [
    "OptimizerType",
    "OptimizerStatus",
    "ConvergenceReason",
    "OptimizerState",
    "OptimizationStatesTracker",
    "OptimizationResult",
    "CachedObjective",
    "Optimizer",
]
