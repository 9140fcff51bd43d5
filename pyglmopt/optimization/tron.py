"""
Trust-region Newton method (TRON).

Each iteration approximately minimizes the quadratic model of the objective
inside a trust region with Steihaug conjugate gradient, then updates the
radius from the ratio of actual to predicted reduction.

Reference:
    C.-J. Lin and J. J. Moré, "Newton's method for large bound-constrained
    optimization problems", SIAM J. Optim. 9(4), 1999.
"""

import logging
from typing import Tuple

import numpy as np

from ..exceptions import NonFiniteValue, SubproblemFailure
from .base import (
    ConvergenceReason,
    OptimizationStatesTracker,
    Optimizer,
    OptimizerState,
    OptimizerType,
)

logger = logging.getLogger(__name__)

# Ratio thresholds for step acceptance and radius updates
ETA0, ETA1, ETA2 = 1e-4, 0.25, 0.75
# Radius update factors
SIGMA1, SIGMA2, SIGMA3 = 0.25, 0.5, 4.0
# Relative residual at which conjugate gradient stops
CG_TOLERANCE = 0.1


def _negligible(actual: float, predicted: float, value: float) -> bool:
    return abs(actual) <= 1e-12 * abs(value) and abs(predicted) <= 1e-12 * abs(value)


class TRON(Optimizer):
    """
    Trust-region Newton-CG minimizer. Needs Hessian-vector products.

    Parameters
    ----------
    tolerance : float, default=1e-6
        Convergence tolerance
    max_iterations : int, default=100
        Cap on accepted steps
    max_cg_iterations : int, default=50
        Conjugate-gradient budget per subproblem
    max_improvement_failures : int, default=5
        Consecutive rejected steps tolerated before giving up
    """

    optimizer_type = OptimizerType.TRON

    def __init__(
        self,
        tolerance: float = 1e-6,
        max_iterations: int = 100,
        max_cg_iterations: int = 50,
        max_improvement_failures: int = 5,
    ):
        super().__init__(tolerance=tolerance, max_iterations=max_iterations)
        if max_cg_iterations < 1:
            raise ValueError(f"max_cg_iterations must be >= 1, got {max_cg_iterations}")
        if max_improvement_failures < 1:
            raise ValueError(
                f"max_improvement_failures must be >= 1, got {max_improvement_failures}"
            )
        self.max_cg_iterations = max_cg_iterations
        self.max_improvement_failures = max_improvement_failures

    def _validate_objective(self, objective):
        if not objective.supports_hessian:
            raise TypeError(f"TRON needs Hessian-vector products; {type(objective).__name__} has none")

    def _hessian_vector(self, objective, state: OptimizerState, v: np.ndarray) -> np.ndarray:
        hv = objective.hessian_vector(state.coefficients, v)
        if not np.all(np.isfinite(hv)):
            raise NonFiniteValue(
                f"Non-finite Hessian-vector product at iteration {state.iteration + 1}",
                state=state,
            )
        return hv

    def _solve_subproblem(self, objective, state: OptimizerState,
                          radius: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Steihaug CG on the model gᵀs + ½ sᵀHs subject to ||s|| <= radius.

        Returns the step ``s`` and the residual ``r = -g - Hs``.
        """
        g = state.gradient
        s = np.zeros_like(g)
        r = -g
        d = r.copy()
        r_norm_sq = r @ r
        cg_tol = CG_TOLERANCE * np.linalg.norm(g)

        for i in range(self.max_cg_iterations):
            if np.sqrt(r_norm_sq) <= cg_tol:
                break
            hd = self._hessian_vector(objective, state, d)
            curvature = d @ hd
            inside = False
            if curvature > 0:
                alpha = r_norm_sq / curvature
                step = s + alpha * d
                inside = np.linalg.norm(step) <= radius
            if not inside:
                # Move to the trust-region boundary along d
                sd, ss, dd = s @ d, s @ s, d @ d
                gap = radius * radius - ss
                root = np.sqrt(sd * sd + dd * gap)
                if sd >= 0:
                    alpha = gap / (sd + root)
                else:
                    alpha = (root - sd) / dd
                s = s + alpha * d
                r = r - alpha * hd
                logger.debug("CG hit the trust-region boundary after %d iterations", i + 1)
                break
            s = step
            r = r - alpha * hd
            new_r_norm_sq = r @ r
            d = r + (new_r_norm_sq / r_norm_sq) * d
            r_norm_sq = new_r_norm_sq

        return s, r

    def _run(self, objective, initial: np.ndarray,
             tracker: OptimizationStatesTracker) -> OptimizerState:
        state = self._evaluate(objective, initial, 0, None)
        tracker.track(state)
        self._log_iteration(state)
        initial_gradient_norm = state.gradient_norm
        # Gradient check floor: tol * max(|g0|, 1)
        if initial_gradient_norm <= self.tolerance:
            state.convergence_reason = ConvergenceReason.GRADIENT_CONVERGED
            return state

        radius = initial_gradient_norm
        first_step = True

        while state.iteration < self.max_iterations:
            failures = 0
            while True:
                s, r = self._solve_subproblem(objective, state, radius)
                gs = state.gradient @ s
                predicted = -0.5 * (gs - s @ r)
                trial = self._evaluate(objective, state.coefficients + s, state.iteration + 1, state)
                actual = state.value - trial.value
                s_norm = np.linalg.norm(s)

                if first_step:
                    radius = min(radius, s_norm)
                    first_step = False

                # Interpolated radius factor
                denominator = trial.value - state.value - gs
                if denominator <= 0:
                    alpha = SIGMA3
                else:
                    alpha = max(SIGMA1, -0.5 * (gs / denominator))

                if actual < ETA0 * predicted:
                    radius = min(max(alpha, SIGMA1) * s_norm, SIGMA2 * radius)
                elif actual < ETA1 * predicted:
                    radius = max(SIGMA1 * radius, min(alpha * s_norm, SIGMA2 * radius))
                elif actual < ETA2 * predicted:
                    radius = max(SIGMA1 * radius, min(alpha * s_norm, SIGMA3 * radius))
                else:
                    radius = max(radius, min(alpha * s_norm, SIGMA3 * radius))

                if actual > ETA0 * predicted:
                    break

                if (actual <= 0 and predicted <= 0) or _negligible(actual, predicted, state.value):
                    state.convergence_reason = ConvergenceReason.OBJECTIVE_NOT_IMPROVING
                    return state

                failures += 1
                logger.debug(
                    "TRON step rejected (actual=%.6g, predicted=%.6g), radius=%.6g",
                    actual, predicted, radius,
                )
                if failures >= self.max_improvement_failures:
                    raise SubproblemFailure(
                        f"{failures} consecutive trust-region steps rejected "
                        f"at iteration {state.iteration + 1}",
                        state=state,
                    )

            reason = self._check_convergence(state, trial, initial_gradient_norm)
            state = trial
            tracker.track(state)
            self._log_iteration(state)
            if reason is not None:
                state.convergence_reason = reason
                return state

            if _negligible(actual, predicted, state.value):
                state.convergence_reason = ConvergenceReason.OBJECTIVE_NOT_IMPROVING
                return state

        state.convergence_reason = ConvergenceReason.MAX_ITERATIONS
        return state

    def __repr__(self):
        return (f"TRON(tolerance={self.tolerance:g}, max_iterations={self.max_iterations}, "
                f"max_cg_iterations={self.max_cg_iterations})")


__all__ = ["TRON"]
