"""
Exception hierarchy.

Dimension errors are ``ValueError`` subclasses; failures of an optimizer run
are ``RuntimeError`` subclasses that keep the last valid optimizer state.
"""

from typing import Optional


class PyGLMOptError(Exception):
    """Base class for all pyglmopt errors."""


class DimensionMismatch(PyGLMOptError, ValueError):
    """A vector, summary or coefficient has the wrong number of features."""

    def __init__(self, message: str, expected: Optional[int] = None,
                 actual: Optional[int] = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class InvalidDimension(PyGLMOptError, ValueError):
    """A normalization context is used with data of another dimension."""


class OptimizationError(PyGLMOptError, RuntimeError):
    """
    Fatal optimizer failure.

    Attributes
    ----------
    state : OptimizerState or None
        Last valid state before the failure (coefficients, value, iteration).
    """

    def __init__(self, message: str, state=None):
        super().__init__(message)
        self.state = state


class NonFiniteValue(OptimizationError):
    """NaN or Inf in an objective value, gradient or Hessian-vector product."""


class LineSearchFailure(OptimizationError):
    """LBFGS line search found no step satisfying the Wolfe conditions."""


class SubproblemFailure(OptimizationError):
    """TRON rejected too many consecutive trust-region steps."""


class ConvergenceWarning(UserWarning):
    """Optimizer stopped at the iteration cap."""


__all__ = [
    "PyGLMOptError",
    "DimensionMismatch",
    "InvalidDimension",
    "OptimizationError",
    "NonFiniteValue",
    "LineSearchFailure",
    "SubproblemFailure",
    "ConvergenceWarning",
]
