"""
Normalized-space linear algebra on raw feature storage.

With ``x' = (x - s) ⊙ f`` and coefficients θ' in normalized space:

    θ' · x' = (θ' ⊙ f) · x - (θ' ⊙ f) · s
    X'ᵀ r   = f ⊙ (Xᵀ r - s Σ r)

so margins, gradients and Hessian-vector products are computed from the
raw matrix without allocating ``X'``. Which of ``f`` and ``s`` are present
is resolved once when the transform is built.
"""

from typing import Optional, Tuple

import numpy as np

from .normalization import NormalizationContext


class CoefficientSpaceTransform:
    """
    Maps between original and normalized coefficient spaces.

    Parameters
    ----------
    context : NormalizationContext
        Broadcast (read-only) normalization context
    """

    def __init__(self, context: Optional[NormalizationContext] = None):
        self.context = context if context is not None else NormalizationContext.identity()
        self._factors = self.context.factors
        self._shifts = self.context.shifts

    def effective_coefficients(self, theta: np.ndarray) -> Tuple[np.ndarray, float]:
        """
        Coefficients acting on raw features, and the constant term.

        Returns ``(θ' ⊙ f, -(θ' ⊙ f) · s)``.
        """
        effective = theta if self._factors is None else theta * self._factors
        constant = 0.0 if self._shifts is None else -float(effective @ self._shifts)
        return effective, constant

    def project(self, X, v: np.ndarray) -> np.ndarray:
        """``X' v`` for an arbitrary vector ``v``."""
        effective, constant = self.effective_coefficients(v)
        z = np.asarray(X @ effective).ravel()
        if constant != 0.0:
            z = z + constant
        return z

    def margins(self, X, theta: np.ndarray, offsets: np.ndarray) -> np.ndarray:
        """Linear predictor ``X' θ' + offsets``."""
        return self.project(X, theta) + offsets

    def accumulate(self, X, r: np.ndarray) -> np.ndarray:
        """``X'ᵀ r``: sum of normalized rows weighted by ``r``."""
        g = np.asarray(X.T @ r, dtype=np.float64).ravel()
        if self._shifts is not None:
            g = g - self._shifts * r.sum()
        if self._factors is not None:
            g = g * self._factors
        return g

    def to_original_space(self, theta: np.ndarray) -> Tuple[np.ndarray, float]:
        """
        Map normalized-space coefficients to raw feature space.

        Returns ``(θ, c)`` with ``θ' · x' = θ · x + c``. When the context has
        an intercept, ``c`` is folded into the intercept coefficient and 0.0
        is returned.
        """
        coefficients, correction = self.effective_coefficients(theta)
        coefficients = np.array(coefficients, dtype=np.float64)
        icpt = self.context.intercept_index
        if icpt is not None and correction != 0.0:
            coefficients[icpt] += correction
            correction = 0.0
        return coefficients, correction

    def to_transformed_space(self, coefficients: np.ndarray,
                             correction: float = 0.0) -> np.ndarray:
        """
        Inverse of ``to_original_space``.

        Raises
        ------
        ValueError
            If the correction cannot be represented (no intercept while the
            context shifts features, or shifts without a matching correction)
        """
        theta = np.array(coefficients, dtype=np.float64)
        if self._factors is not None:
            theta = theta / self._factors
        if self._shifts is None:
            if correction != 0.0:
                raise ValueError("A nonzero correction needs a context with shifts")
            return theta

        # θ·x + c = θ'·x' requires c = -(θ'⊙f)·s
        implied = -float((theta if self._factors is None else theta * self._factors) @ self._shifts)
        icpt = self.context.intercept_index
        if icpt is not None:
            theta[icpt] += correction - implied
            return theta
        if not np.isclose(correction, implied, rtol=1e-10, atol=1e-12):
            raise ValueError(
                "Coefficients and correction are inconsistent with this context; "
                "designate an intercept feature to absorb the shift"
            )
        return theta

    def __repr__(self):
        return f"CoefficientSpaceTransform({self.context!r})"


__all__ = ["CoefficientSpaceTransform"]
