"""
Feature normalization policies and contexts.

A ``NormalizationContext`` holds per-feature scale factors ``f`` and shifts
``s`` derived from a ``StatisticalSummary``. The normalized feature vector is
``x' = (x - s) ⊙ f``; a missing ``f`` means all ones and a missing ``s`` all
zeros. Contexts are immutable once built and are shared read-only by every
worker of a training run.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import numpy as np
import scipy.sparse as sp

from ..exceptions import InvalidDimension
from .summary import StatisticalSummary

logger = logging.getLogger(__name__)

# Features with std < STD_EPSILON * max(|mean|, 1) are treated as constant.
# Sum-of-squares variances carry about sqrt(eps) * |mean| of noise in the std.
STD_EPSILON = 1e-6


class NormalizationType(Enum):
    """Normalization policy for a training run."""
    NONE = "none"
    SCALE_WITH_STANDARD_DEVIATION = "scale_with_standard_deviation"
    SCALE_WITH_MAX_MAGNITUDE = "scale_with_max_magnitude"
    STANDARDIZATION = "standardization"

    # Alias
    SCALE = "scale_with_standard_deviation"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            value = value.lower()
            if value == 'scale':
                return cls.SCALE_WITH_STANDARD_DEVIATION
            for member in cls:
                if member.value == value:
                    return member
        return None


def _readonly(a: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if a is None:
        return None
    a = np.array(a, dtype=np.float64)
    a.flags.writeable = False
    return a


def _inverse_or_one(scale: np.ndarray, degenerate: np.ndarray) -> np.ndarray:
    safe = np.where(degenerate, 1.0, scale)
    return np.where(degenerate, 1.0, 1.0 / safe)


@dataclass(frozen=True, eq=False)
class NormalizationContext:
    """
    Per-feature scale factors and shifts.

    Attributes
    ----------
    factors : ndarray, shape (d,), optional
        Multiplicative factors ``f``; None means no scaling
    shifts : ndarray, shape (d,), optional
        Shifts ``s`` subtracted before scaling; None means no shift
    intercept_index : int, optional
        Feature holding the constant intercept term; it always has factor
        1.0 and shift 0.0
    """
    factors: Optional[np.ndarray] = None
    shifts: Optional[np.ndarray] = None
    intercept_index: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'factors', _readonly(self.factors))
        object.__setattr__(self, 'shifts', _readonly(self.shifts))
        if (self.factors is not None and self.shifts is not None
                and self.factors.shape != self.shifts.shape):
            raise InvalidDimension(
                f"factors have dimension {self.factors.shape[0]} "
                f"but shifts have dimension {self.shifts.shape[0]}"
            )
        d = self.dimension
        if self.intercept_index is not None and d is not None:
            if not 0 <= self.intercept_index < d:
                raise InvalidDimension(
                    f"intercept_index {self.intercept_index} outside [0, {d})"
                )
            if self.factors is not None and self.factors[self.intercept_index] != 1.0:
                raise ValueError("The intercept must have a scale factor of 1.0")
            if self.shifts is not None and self.shifts[self.intercept_index] != 0.0:
                raise ValueError("The intercept must have a shift of 0.0")

    @classmethod
    def identity(cls, intercept_index: Optional[int] = None) -> 'NormalizationContext':
        """Context that leaves features unchanged."""
        return cls(intercept_index=intercept_index)

    @classmethod
    def build(
        cls,
        summary: StatisticalSummary,
        normalization_type: Union[str, NormalizationType],
        intercept_index: Optional[int] = None,
        epsilon: float = STD_EPSILON,
    ) -> 'NormalizationContext':
        """
        Derive a context from a statistical summary.

        Parameters
        ----------
        summary : StatisticalSummary
            Statistics of the training data
        normalization_type : str or NormalizationType
            - NONE: identity
            - SCALE_WITH_STANDARD_DEVIATION: f = 1/std
            - SCALE_WITH_MAX_MAGNITUDE: f = 1/max(|min|, |max|)
            - STANDARDIZATION: f = 1/std, s = mean
        intercept_index : int, optional
            Feature holding the intercept; never scaled or shifted
        epsilon : float
            Relative threshold below which a feature counts as constant and
            gets a factor of exactly 1.0

        Returns
        -------
        NormalizationContext
        """
        normalization_type = NormalizationType(normalization_type)
        d = summary.dimension
        if intercept_index is not None and not 0 <= intercept_index < d:
            raise InvalidDimension(f"intercept_index {intercept_index} outside [0, {d})")

        if normalization_type is NormalizationType.NONE:
            return cls.identity(intercept_index=intercept_index)

        if normalization_type is NormalizationType.SCALE_WITH_MAX_MAGNITUDE:
            magnitude = np.maximum(np.abs(summary.min), np.abs(summary.max))
            degenerate = magnitude == 0.0
            factors = _inverse_or_one(magnitude, degenerate)
        else:
            std = summary.std
            degenerate = std < epsilon * np.maximum(np.abs(summary.mean), 1.0)
            factors = _inverse_or_one(std, degenerate)

        shifts = None
        if normalization_type is NormalizationType.STANDARDIZATION:
            shifts = summary.mean.copy()

        if intercept_index is not None:
            factors[intercept_index] = 1.0
            degenerate[intercept_index] = False
            if shifts is not None:
                shifts[intercept_index] = 0.0

        if np.any(degenerate):
            logger.debug(
                "%d constant feature(s) left unscaled: %s",
                int(np.sum(degenerate)), np.flatnonzero(degenerate).tolist(),
            )

        return cls(factors=factors, shifts=shifts, intercept_index=intercept_index)

    @property
    def dimension(self) -> Optional[int]:
        """Feature dimension, or None for the identity context."""
        if self.factors is not None:
            return self.factors.shape[0]
        if self.shifts is not None:
            return self.shifts.shape[0]
        return None

    @property
    def is_identity(self) -> bool:
        return self.factors is None and self.shifts is None

    def check_dimension(self, dimension: int):
        """Raise InvalidDimension if data of ``dimension`` features cannot use this context."""
        d = self.dimension
        if d is not None and d != dimension:
            raise InvalidDimension(
                f"Normalization context has dimension {d}, data has dimension {dimension}"
            )

    def transform(self, X):
        """
        Explicitly normalize a vector or matrix: ``(X - s) ⊙ f``.

        Sparse input stays sparse unless a shift forces densification.
        """
        self.check_dimension(X.shape[-1])
        if self.is_identity:
            return X

        if sp.issparse(X):
            if self.shifts is not None:
                X = np.asarray(X.todense())
            else:
                return sp.csr_matrix(X.multiply(self.factors))

        X = np.asarray(X, dtype=np.float64)
        if self.shifts is not None:
            X = X - self.shifts
        if self.factors is not None:
            X = X * self.factors
        return X

    def transform_dataset(self, dataset):
        """Explicitly normalized copy of a ``PartitionedDataset``."""
        self.check_dimension(dataset.dimension)
        return dataset.map_features(self.transform)

    def __repr__(self):
        kind = {
            (False, False): 'identity',
            (True, False): 'scale',
            (False, True): 'shift',
            (True, True): 'scale_and_shift',
        }[(self.factors is not None, self.shifts is not None)]
        return (f"NormalizationContext({kind}, dimension={self.dimension}, "
                f"intercept_index={self.intercept_index})")


__all__ = ["STD_EPSILON", "NormalizationType", "NormalizationContext"]
