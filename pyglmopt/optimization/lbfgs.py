"""
Limited-memory BFGS.

The inverse Hessian is approximated from the last ``history_length``
(Δθ, Δgradient) pairs with the two-loop recursion; step lengths come from a
strong-Wolfe line search.
"""

import warnings
from collections import deque
from typing import Deque, Tuple

import numpy as np
from scipy.optimize import line_search

from ..exceptions import LineSearchFailure
from .base import (
    CachedObjective,
    ConvergenceReason,
    OptimizationStatesTracker,
    Optimizer,
    OptimizerState,
    OptimizerType,
)

# Sufficient-decrease and curvature constants of the Wolfe conditions
C1 = 1e-4
C2 = 0.9


def two_loop_recursion(gradient: np.ndarray,
                       history: Deque[Tuple[np.ndarray, np.ndarray]]) -> np.ndarray:
    """
    Approximate inverse Hessian times ``gradient``.

    ``history`` holds (s, y) pairs, oldest first. The initial matrix is
    scaled by sᵀy / yᵀy of the newest pair.
    """
    q = gradient.copy()
    coefficients = []
    for s, y in reversed(history):
        rho = 1.0 / (y @ s)
        a = rho * (s @ q)
        q -= a * y
        coefficients.append((rho, a))

    if history:
        s, y = history[-1]
        q *= (s @ y) / (y @ y)

    for (s, y), (rho, a) in zip(history, reversed(coefficients)):
        b = rho * (y @ q)
        q += (a - b) * s
    return q


class LBFGS(Optimizer):
    """
    Limited-memory quasi-Newton minimizer.

    Parameters
    ----------
    tolerance : float, default=1e-6
        Convergence tolerance
    max_iterations : int, default=100
        Iteration cap
    history_length : int, default=10
        Number of correction pairs kept; the oldest pair is dropped first
    max_line_search_iterations : int, default=20
        Line search budget per iteration

    Examples
    --------
    >>> result = LBFGS(tolerance=1e-8).optimize(objective, np.zeros(d))
    >>> result.coefficients
    """

    optimizer_type = OptimizerType.LBFGS

    def __init__(
        self,
        tolerance: float = 1e-6,
        max_iterations: int = 100,
        history_length: int = 10,
        max_line_search_iterations: int = 20,
    ):
        super().__init__(tolerance=tolerance, max_iterations=max_iterations)
        if history_length < 1:
            raise ValueError(f"history_length must be >= 1, got {history_length}")
        if max_line_search_iterations < 1:
            raise ValueError(
                f"max_line_search_iterations must be >= 1, got {max_line_search_iterations}"
            )
        self.history_length = history_length
        self.max_line_search_iterations = max_line_search_iterations

    def _run(self, objective, initial: np.ndarray,
             tracker: OptimizationStatesTracker) -> OptimizerState:
        cached = CachedObjective(objective)
        history: Deque[Tuple[np.ndarray, np.ndarray]] = deque(maxlen=self.history_length)

        state = self._evaluate(cached, initial, 0, None)
        tracker.track(state)
        self._log_iteration(state)
        initial_gradient_norm = state.gradient_norm
        # Gradient check floor: tol * max(|g0|, 1)
        if initial_gradient_norm <= self.tolerance:
            state.convergence_reason = ConvergenceReason.GRADIENT_CONVERGED
            return state

        # Makes the first trial step 1.01 / |g|, as scipy's BFGS does
        old_old_value = state.value + initial_gradient_norm / 2.0

        def trial(theta):
            return self._evaluate(cached, theta, state.iteration + 1, state)

        while state.iteration < self.max_iterations:
            direction = -two_loop_recursion(state.gradient, history)
            if direction @ state.gradient >= 0.0:
                history.clear()
                direction = -state.gradient

            with warnings.catch_warnings():
                warnings.filterwarnings('ignore', message='.*line search')
                alpha, _, _, _, _, _ = line_search(
                    lambda theta: trial(theta).value,
                    lambda theta: trial(theta).gradient,
                    state.coefficients,
                    direction,
                    gfk=state.gradient,
                    old_fval=state.value,
                    old_old_fval=old_old_value,
                    c1=C1,
                    c2=C2,
                    maxiter=self.max_line_search_iterations,
                )
            if alpha is None:
                raise LineSearchFailure(
                    f"No step satisfying the Wolfe conditions at iteration {state.iteration + 1}",
                    state=state,
                )

            coefficients = state.coefficients + alpha * direction
            new_state = trial(coefficients)

            s = new_state.coefficients - state.coefficients
            y = new_state.gradient - state.gradient
            if s @ y > np.finfo(np.float64).eps * (y @ y):
                history.append((s, y))

            reason = self._check_convergence(state, new_state, initial_gradient_norm)
            old_old_value = state.value
            state = new_state
            tracker.track(state)
            self._log_iteration(state)
            if reason is not None:
                state.convergence_reason = reason
                return state

        state.convergence_reason = ConvergenceReason.MAX_ITERATIONS
        return state

    def __repr__(self):
        return (f"LBFGS(tolerance={self.tolerance:g}, max_iterations={self.max_iterations}, "
                f"history_length={self.history_length})")


__all__ = ["LBFGS", "two_loop_recursion"]
