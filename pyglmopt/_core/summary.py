"""
Per-feature statistical summary of a partitioned dataset.

Each partition is reduced to a ``PartialSummary`` in one pass; partials are
merged along the dataset's reduction tree. ``PartialSummary.merge`` is
associative and commutative, so the result does not depend on the
partitioning or the tree depth beyond floating-point rounding.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import scipy.sparse as sp

from .._backends import DEFAULT_TREE_DEPTH
from .._utils import check_dimension


def _column(values) -> np.ndarray:
    return np.asarray(values, dtype=np.float64).ravel()


@dataclass(frozen=True)
class PartialSummary:
    """Additive per-feature aggregates of one or more partitions."""
    count: int
    total: np.ndarray
    total_sq: np.ndarray
    total_abs: np.ndarray
    minimum: np.ndarray
    maximum: np.ndarray
    num_nonzeros: np.ndarray

    @classmethod
    def empty(cls, dimension: int) -> 'PartialSummary':
        zeros = np.zeros(dimension)
        return cls(
            count=0,
            total=zeros,
            total_sq=zeros,
            total_abs=zeros,
            minimum=np.full(dimension, np.inf),
            maximum=np.full(dimension, -np.inf),
            num_nonzeros=zeros,
        )

    @classmethod
    def from_partition(cls, partition, dimension: int) -> 'PartialSummary':
        X = partition.X
        check_dimension(X.shape[1], dimension, what="partition features")
        if X.shape[0] == 0:
            return cls.empty(dimension)

        if sp.issparse(X):
            # Sparse min/max account for the implicit zeros
            return cls(
                count=X.shape[0],
                total=_column(X.sum(axis=0)),
                total_sq=_column(X.multiply(X).sum(axis=0)),
                total_abs=_column(abs(X).sum(axis=0)),
                minimum=_column(X.min(axis=0).toarray()),
                maximum=_column(X.max(axis=0).toarray()),
                num_nonzeros=_column((X != 0).sum(axis=0)),
            )

        return cls(
            count=X.shape[0],
            total=X.sum(axis=0),
            total_sq=np.einsum('ij,ij->j', X, X),
            total_abs=np.abs(X).sum(axis=0),
            minimum=X.min(axis=0),
            maximum=X.max(axis=0),
            num_nonzeros=np.count_nonzero(X, axis=0).astype(np.float64),
        )

    def merge(self, other: 'PartialSummary') -> 'PartialSummary':
        return PartialSummary(
            count=self.count + other.count,
            total=self.total + other.total,
            total_sq=self.total_sq + other.total_sq,
            total_abs=self.total_abs + other.total_abs,
            minimum=np.minimum(self.minimum, other.minimum),
            maximum=np.maximum(self.maximum, other.maximum),
            num_nonzeros=self.num_nonzeros + other.num_nonzeros,
        )


@dataclass(frozen=True)
class StatisticalSummary:
    """
    Per-feature statistics of a dataset snapshot.

    Attributes
    ----------
    count : int
        Number of examples
    mean, variance, min, max : ndarray, shape (d,)
        Per-feature statistics; variance uses the ``ddof`` it was built with
    num_nonzeros, norm_l1, norm_l2, mean_abs : ndarray, shape (d,)
        Sparsity and magnitude statistics
    """
    count: int
    mean: np.ndarray
    variance: np.ndarray
    min: np.ndarray
    max: np.ndarray
    num_nonzeros: np.ndarray
    norm_l1: np.ndarray
    norm_l2: np.ndarray
    mean_abs: np.ndarray
    ddof: int = 0

    @property
    def dimension(self) -> int:
        return self.mean.shape[0]

    @property
    def std(self) -> np.ndarray:
        return np.sqrt(self.variance)

    @classmethod
    def from_partial(cls, partial: PartialSummary, ddof: int = 0) -> 'StatisticalSummary':
        n = partial.count
        if n == 0:
            raise ValueError("Cannot summarize an empty dataset")
        if not 0 <= ddof < n:
            raise ValueError(f"ddof must be in [0, {n}), got {ddof}")

        mean = partial.total / n
        # Cancellation can leave tiny negative values for constant features
        variance = np.maximum((partial.total_sq - n * mean * mean) / (n - ddof), 0.0)

        return cls(
            count=n,
            mean=mean,
            variance=variance,
            min=partial.minimum,
            max=partial.maximum,
            num_nonzeros=partial.num_nonzeros,
            norm_l1=partial.total_abs,
            norm_l2=np.sqrt(partial.total_sq),
            mean_abs=partial.total_abs / n,
            ddof=ddof,
        )


def summarize(
    dataset,
    dimension: Optional[int] = None,
    ddof: int = 0,
    tree_depth: int = DEFAULT_TREE_DEPTH,
) -> StatisticalSummary:
    """
    Compute per-feature count, mean, variance, min and max in one pass.

    Parameters
    ----------
    dataset : PartitionedDataset
        Input data
    dimension : int, optional
        Expected number of features; defaults to the dataset's dimension
    ddof : int, default=0
        Delta degrees of freedom for the variance (0 = population)
    tree_depth : int, default=2
        Depth of the reduction tree used to merge partition summaries

    Returns
    -------
    StatisticalSummary

    Raises
    ------
    DimensionMismatch
        If a partition does not have exactly ``dimension`` features
    """
    if dimension is None:
        dimension = dataset.dimension

    partial = dataset.aggregate(
        lambda part: PartialSummary.from_partition(part, dimension),
        PartialSummary.merge,
        depth=tree_depth,
    )
    return StatisticalSummary.from_partial(partial, ddof=ddof)


__all__ = ["PartialSummary", "StatisticalSummary", "summarize"]
