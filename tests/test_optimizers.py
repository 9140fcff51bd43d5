"""
Test LBFGS and TRON on small analytic objectives.
"""

import logging
from collections import deque

import numpy as np
import pytest

from pyglmopt import (
    LBFGS,
    TRON,
    ConvergenceWarning,
    DimensionMismatch,
    LineSearchFailure,
    NonFiniteValue,
    OptimizerConfig,
    OptimizerType,
    SubproblemFailure,
)
from pyglmopt.objective import ObjectiveFunction
from pyglmopt.optimization import ConvergenceReason, OptimizerStatus
from pyglmopt.optimization.base import CachedObjective
from pyglmopt.optimization.lbfgs import two_loop_recursion


class Quadratic(ObjectiveFunction):
    """f(x) = ½ (x - b)ᵀ A (x - b)"""

    def __init__(self, A, b):
        self.A = np.asarray(A, dtype=float)
        self.b = np.asarray(b, dtype=float)
        self.calls = 0
        self.value_calls = 0

    @property
    def domain_dimension(self):
        return self.b.shape[0]

    def value(self, x):
        self.value_calls += 1
        d = x - self.b
        return 0.5 * d @ self.A @ d

    def value_and_gradient(self, x):
        self.calls += 1
        d = x - self.b
        return 0.5 * d @ self.A @ d, self.A @ d

    def hessian_vector(self, x, v):
        return self.A @ v


class GradientOnlyQuadratic(ObjectiveFunction):
    """Quadratic without a Hessian-vector product."""

    def __init__(self, b):
        self.b = np.asarray(b, dtype=float)

    @property
    def domain_dimension(self):
        return self.b.shape[0]

    def value(self, x):
        return 0.5 * np.sum((x - self.b) ** 2)

    def value_and_gradient(self, x):
        return self.value(x), x - self.b


class WrongGradient(Quadratic):
    """Reports the negated gradient, so every 'descent' step goes uphill."""

    def value_and_gradient(self, x):
        value, gradient = super().value_and_gradient(x)
        return value, -gradient


class NaNObjective(Quadratic):
    def value_and_gradient(self, x):
        return np.nan, np.zeros_like(x)


class NaNGradient(Quadratic):
    def value_and_gradient(self, x):
        value, gradient = super().value_and_gradient(x)
        return value, np.full_like(gradient, np.nan)


class NaNHessian(Quadratic):
    def hessian_vector(self, x, v):
        return np.full_like(v, np.nan)


class BlowsUpFar(Quadratic):
    """Value or gradient turns non-finite outside the ball ||x|| <= 3."""

    def __init__(self, b, bad='value'):
        super().__init__(np.eye(len(b)), b)
        self.bad = bad
        self.non_finite_evaluations = 0

    def value_and_gradient(self, x):
        value, gradient = super().value_and_gradient(x)
        if np.linalg.norm(x) > 3.0:
            self.non_finite_evaluations += 1
            if self.bad == 'value':
                value = np.inf
            else:
                gradient = np.full_like(gradient, np.nan)
        return value, gradient


@pytest.fixture
def quadratic():
    rng = np.random.default_rng(42)
    M = rng.normal(size=(4, 4))
    A = M @ M.T + np.diag([1.0, 2.0, 5.0, 10.0])
    b = np.array([1.0, -2.0, 3.0, 0.5])
    return Quadratic(A, b)


@pytest.fixture
def ill_conditioned():
    return Quadratic(np.diag(np.logspace(0.0, 3.0, 20)), np.ones(20))


@pytest.mark.parametrize("optimizer_class", [LBFGS, TRON])
class TestConvergence:
    """Both optimizers minimize a strictly convex quadratic."""

    def test_solves_quadratic(self, quadratic, optimizer_class):
        optimizer = optimizer_class(tolerance=1e-12, max_iterations=200)
        result = optimizer.optimize(quadratic, np.zeros(4))

        assert result.converged
        assert optimizer.status is OptimizerStatus.CONVERGED
        assert result.convergence_reason in (
            ConvergenceReason.FUNCTION_VALUES_CONVERGED,
            ConvergenceReason.GRADIENT_CONVERGED,
            ConvergenceReason.OBJECTIVE_NOT_IMPROVING,
        )
        np.testing.assert_allclose(result.coefficients, quadratic.b, atol=1e-4)
        assert result.value < 1e-8

    def test_start_at_minimum(self, quadratic, optimizer_class):
        result = optimizer_class().optimize(quadratic, quadratic.b)
        assert result.iterations == 0
        assert result.convergence_reason is ConvergenceReason.GRADIENT_CONVERGED

    def test_tracker(self, ill_conditioned, optimizer_class):
        result = optimizer_class(tolerance=1e-10, max_iterations=500).optimize(
            ill_conditioned, np.zeros(20))
        frame = result.tracker.to_frame()

        assert len(frame) == result.iterations + 1
        assert list(frame.columns) == ['value', 'gradient_norm', 'elapsed_seconds']
        assert frame.index.name == 'iteration'
        assert frame.index[0] == 0
        # accepted steps never increase the objective
        assert np.all(np.diff(frame['value'].to_numpy()) <= 1e-12)
        assert result.tracker.convergence_reason is result.convergence_reason

    def test_max_iterations_warns(self, ill_conditioned, optimizer_class):
        optimizer = optimizer_class(tolerance=1e-14, max_iterations=1)
        with pytest.warns(ConvergenceWarning):
            result = optimizer.optimize(ill_conditioned, np.zeros(20))

        assert result.status is OptimizerStatus.MAX_ITERATIONS
        assert result.convergence_reason is ConvergenceReason.MAX_ITERATIONS
        assert result.iterations == 1
        assert not result.converged

    def test_initial_dimension_mismatch(self, quadratic, optimizer_class):
        optimizer = optimizer_class()
        with pytest.raises(DimensionMismatch):
            optimizer.optimize(quadratic, np.zeros(3))
        assert optimizer.status is OptimizerStatus.INIT

    def test_non_finite_value(self, optimizer_class):
        optimizer = optimizer_class()
        objective = NaNObjective(np.eye(2), np.zeros(2))
        with pytest.raises(NonFiniteValue) as excinfo:
            optimizer.optimize(objective, np.ones(2))
        assert optimizer.status is OptimizerStatus.FAILED
        assert excinfo.value.state is None

    def test_non_finite_gradient(self, optimizer_class):
        optimizer = optimizer_class()
        with pytest.raises(NonFiniteValue, match="gradient") as excinfo:
            optimizer.optimize(NaNGradient(np.eye(2), np.zeros(2)), np.ones(2))
        assert optimizer.status is OptimizerStatus.FAILED
        assert excinfo.value.state is None

    @pytest.mark.parametrize("bad, message", [
        ('value', 'objective value'),
        ('gradient', 'gradient'),
    ])
    def test_non_finite_trial_point(self, optimizer_class, bad, message):
        objective = BlowsUpFar(np.full(4, 10.0), bad=bad)
        optimizer = optimizer_class(max_iterations=50)
        with pytest.raises(NonFiniteValue, match=message) as excinfo:
            optimizer.optimize(objective, np.zeros(4))

        assert optimizer.status is OptimizerStatus.FAILED
        # the first non-finite evaluation ends the run
        assert objective.non_finite_evaluations == 1
        state = excinfo.value.state
        assert state is not None
        assert np.isfinite(state.value)
        assert np.linalg.norm(state.coefficients) <= 3.0

    def test_logs_summary(self, quadratic, optimizer_class, caplog):
        caplog.set_level(logging.INFO, logger="pyglmopt")
        optimizer_class(tolerance=1e-8).optimize(quadratic, np.zeros(4))
        assert any("finished after" in record.getMessage() for record in caplog.records)


class TestFailures:
    """Fatal failures raise with the last valid state attached."""

    def test_lbfgs_line_search_failure(self, quadratic):
        objective = WrongGradient(quadratic.A, quadratic.b)
        optimizer = LBFGS()
        with pytest.raises(LineSearchFailure) as excinfo:
            optimizer.optimize(objective, np.zeros(4))

        assert optimizer.status is OptimizerStatus.FAILED
        state = excinfo.value.state
        assert state.iteration == 0
        np.testing.assert_array_equal(state.coefficients, np.zeros(4))

    def test_tron_subproblem_failure(self, quadratic):
        objective = WrongGradient(quadratic.A, quadratic.b)
        optimizer = TRON(max_improvement_failures=3)
        with pytest.raises(SubproblemFailure) as excinfo:
            optimizer.optimize(objective, np.zeros(4))

        assert optimizer.status is OptimizerStatus.FAILED
        assert excinfo.value.state.iteration == 0

    def test_lbfgs_non_finite_after_first_step(self):
        objective = BlowsUpFar(np.full(4, 10.0))
        with pytest.raises(NonFiniteValue) as excinfo:
            LBFGS().optimize(objective, np.zeros(4))

        state = excinfo.value.state
        assert state.iteration == 1
        np.testing.assert_allclose(state.coefficients, np.full(4, 1.01))

    def test_tron_non_finite_hessian(self, quadratic):
        objective = NaNHessian(quadratic.A, quadratic.b)
        optimizer = TRON()
        with pytest.raises(NonFiniteValue, match="Hessian") as excinfo:
            optimizer.optimize(objective, np.zeros(4))

        assert optimizer.status is OptimizerStatus.FAILED
        assert excinfo.value.state.iteration == 0

    def test_tron_needs_hessian(self):
        with pytest.raises(TypeError, match="Hessian"):
            TRON().optimize(GradientOnlyQuadratic(np.ones(3)), np.zeros(3))

    def test_tron_one_evaluation_per_step(self, quadratic):
        result = TRON(tolerance=1e-8).optimize(quadratic, np.zeros(4))
        assert quadratic.value_calls == 0
        assert quadratic.calls == result.iterations + 1

    def test_lbfgs_without_hessian(self):
        result = LBFGS(tolerance=1e-10).optimize(GradientOnlyQuadratic(np.ones(3)), np.zeros(3))
        np.testing.assert_allclose(result.coefficients, np.ones(3), atol=1e-4)


class TestTwoLoopRecursion:
    """Test the inverse Hessian approximation."""

    def test_empty_history_is_identity(self):
        g = np.array([1.0, -2.0, 3.0])
        result = two_loop_recursion(g, deque())
        np.testing.assert_array_equal(result, g)
        assert result is not g

    def test_secant_condition(self, quadratic):
        rng = np.random.default_rng(0)
        history = deque(maxlen=3)
        for _ in range(5):
            s = rng.normal(size=4)
            history.append((s, quadratic.A @ s))

        s_new, y_new = history[-1]
        np.testing.assert_allclose(two_loop_recursion(y_new, history), s_new, rtol=1e-8)


class TestCachedObjective:
    def test_repeated_point_evaluated_once(self, quadratic):
        cached = CachedObjective(quadratic)
        x = np.array([0.5, 0.5, 0.5, 0.5])
        cached.value(x)
        cached.gradient(x)
        cached.value_and_gradient(x.copy())
        assert quadratic.calls == 1

    def test_eviction(self, quadratic):
        cached = CachedObjective(quadratic, maxsize=2)
        for i in range(3):
            cached.value(np.full(4, float(i)))
        cached.value(np.zeros(4))
        assert quadratic.calls == 4


class TestOptimizerConfig:
    """Test optimizer configuration."""

    def test_default_is_lbfgs(self):
        optimizer = OptimizerConfig().build_optimizer()
        assert isinstance(optimizer, LBFGS)
        assert optimizer.history_length == 10

    def test_build_tron(self):
        config = OptimizerConfig(optimizer_type='TRON', tolerance=1e-8, max_iterations=7,
                                 max_cg_iterations=12)
        optimizer = config.build_optimizer()
        assert isinstance(optimizer, TRON)
        assert optimizer.tolerance == 1e-8
        assert optimizer.max_iterations == 7
        assert optimizer.max_cg_iterations == 12

    def test_parse_type(self):
        assert OptimizerType('lbfgs') is OptimizerType.LBFGS
        assert OptimizerType('Tron') is OptimizerType.TRON
        with pytest.raises(ValueError):
            OptimizerType('newton')

    @pytest.mark.parametrize("kwargs", [
        {'tolerance': 0.0},
        {'max_iterations': 0},
        {'history_length': 0},
        {'max_cg_iterations': -1},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            OptimizerConfig(**kwargs)
