"""
Utility functions.
"""

import numpy as np
import scipy.sparse as sp

from .exceptions import DimensionMismatch


def check_array(X, name='X', dtype=np.float64):
    """Validate array input. Sparse matrices are converted to CSR."""
    if sp.issparse(X):
        X = sp.csr_matrix(X, dtype=dtype)
        if not np.all(np.isfinite(X.data)):
            raise ValueError(f"{name} contains NaN or Inf")
        return X
    X = np.asarray(X, dtype=dtype)
    if X.ndim != 2:
        raise ValueError(f"{name} must be 2-dimensional")
    if not np.all(np.isfinite(X)):
        raise ValueError(f"{name} contains NaN or Inf")
    return X


def check_vector(y, name='y', dtype=np.float64, size=None):
    """Validate vector input, optionally of a given length."""
    y = np.asarray(y, dtype=dtype)
    if y.ndim != 1:
        raise ValueError(f"{name} must be 1-dimensional")
    if size is not None:
        check_dimension(y.shape[0], size, what=name)
    if not np.all(np.isfinite(y)):
        raise ValueError(f"{name} contains NaN or Inf")
    return y


def check_dimension(actual: int, expected: int, what: str = 'vector'):
    """Raise DimensionMismatch unless ``actual == expected``."""
    if actual != expected:
        raise DimensionMismatch(
            f"{what} has dimension {actual}, expected {expected}",
            expected=expected,
            actual=actual,
        )
