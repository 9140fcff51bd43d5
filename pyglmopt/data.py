"""
Labeled examples and partitioned datasets.

A ``PartitionedDataset`` is the distributed collection the optimizers work
on: an immutable tuple of ``Partition`` blocks plus the execution backend
that maps work over them and tree-reduces the partial results.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import scipy.sparse as sp

from ._backends import DEFAULT_TREE_DEPTH, ExecutionBackend, get_backend
from ._utils import check_array, check_dimension, check_vector


def _freeze(a: np.ndarray) -> np.ndarray:
    """Read-only private copy; the caller's array stays writeable."""
    a = a.copy()
    a.flags.writeable = False
    return a


@dataclass(frozen=True)
class LabeledExample:
    """
    A single training example.

    ``features`` is a 1-d dense array or a sparse row with explicit indices.
    ``weight`` scales the example's loss; ``offset`` is added to the linear
    predictor outside the coefficients.
    """
    label: float
    features: Union[np.ndarray, sp.spmatrix]
    weight: float = 1.0
    offset: float = 0.0

    @property
    def dimension(self) -> int:
        if sp.issparse(self.features):
            return self.features.shape[-1]
        return np.asarray(self.features).shape[0]


@dataclass(frozen=True)
class Partition:
    """A block of examples processed by one worker."""
    X: Union[np.ndarray, sp.csr_matrix]  # (n, d), dense or CSR
    labels: np.ndarray
    weights: np.ndarray
    offsets: np.ndarray

    def __post_init__(self):
        n = self.X.shape[0]
        for name in ('labels', 'weights', 'offsets'):
            if getattr(self, name).shape != (n,):
                raise ValueError(
                    f"Partition {name} has shape {getattr(self, name).shape}, expected ({n},)"
                )

    @property
    def size(self) -> int:
        return self.X.shape[0]

    @property
    def dimension(self) -> int:
        return self.X.shape[1]

    @property
    def is_sparse(self) -> bool:
        return sp.issparse(self.X)

    @classmethod
    def from_arrays(cls, X, labels, weights=None, offsets=None) -> 'Partition':
        X = check_array(X)
        labels = check_vector(labels, name='labels')
        n = X.shape[0]
        weights = np.ones(n) if weights is None else check_vector(weights, name='weights')
        offsets = np.zeros(n) if offsets is None else check_vector(offsets, name='offsets')
        if np.any(weights < 0):
            raise ValueError("weights must be non-negative")
        X = X.copy() if sp.issparse(X) else _freeze(X)
        return cls(X, _freeze(labels), _freeze(weights), _freeze(offsets))


class PartitionedDataset:
    """
    Immutable, partitioned collection of labeled examples.

    Parameters
    ----------
    partitions : iterable of Partition
        Data blocks; all must share the same feature dimension
    backend : str or ExecutionBackend, default='local'
        Execution backend used by ``map`` and ``tree_reduce``

    Raises
    ------
    DimensionMismatch
        If partitions disagree on the feature dimension
    """

    def __init__(self, partitions: Iterable[Partition],
                 backend: Union[str, ExecutionBackend] = 'local'):
        partitions = tuple(partitions)
        if not partitions:
            raise ValueError("A dataset needs at least one partition")
        dimension = partitions[0].dimension
        for i, part in enumerate(partitions):
            check_dimension(part.dimension, dimension, what=f"partition {i}")

        self.partitions = partitions
        self.dimension = dimension
        self.backend = get_backend(backend)

    @property
    def num_partitions(self) -> int:
        return len(self.partitions)

    @property
    def count(self) -> int:
        return sum(part.size for part in self.partitions)

    @property
    def is_sparse(self) -> bool:
        return any(part.is_sparse for part in self.partitions)

    def map(self, fn: Callable[[Partition], object]) -> List:
        """Apply ``fn`` to every partition on the backend."""
        return self.backend.map(fn, self.partitions)

    def tree_reduce(self, values: Sequence, combine: Callable,
                    depth: int = DEFAULT_TREE_DEPTH):
        """Combine per-partition values along a bounded-depth tree."""
        return self.backend.tree_reduce(values, combine, depth=depth)

    def aggregate(self, seq_op: Callable[[Partition], object], comb_op: Callable,
                  depth: int = DEFAULT_TREE_DEPTH):
        """``map`` followed by ``tree_reduce``."""
        return self.tree_reduce(self.map(seq_op), comb_op, depth=depth)

    def map_features(self, fn: Callable) -> 'PartitionedDataset':
        """New dataset with ``fn`` applied to each partition's feature matrix."""
        partitions = self.map(
            lambda part: Partition.from_arrays(fn(part.X), part.labels, part.weights, part.offsets)
        )
        return PartitionedDataset(partitions, backend=self.backend)

    def with_backend(self, backend: Union[str, ExecutionBackend]) -> 'PartitionedDataset':
        return PartitionedDataset(self.partitions, backend=backend)

    def repartition(self, num_partitions: int) -> 'PartitionedDataset':
        X, y, w, o = self.to_arrays()
        return PartitionedDataset.from_arrays(
            X, y, weights=w, offsets=o,
            num_partitions=num_partitions, backend=self.backend,
        )

    def to_arrays(self) -> Tuple:
        """Stack partitions back into ``(X, labels, weights, offsets)``."""
        if self.is_sparse:
            X = sp.vstack([sp.csr_matrix(part.X) for part in self.partitions], format='csr')
        else:
            X = np.vstack([part.X for part in self.partitions])
        labels = np.concatenate([part.labels for part in self.partitions])
        weights = np.concatenate([part.weights for part in self.partitions])
        offsets = np.concatenate([part.offsets for part in self.partitions])
        return X, labels, weights, offsets

    @classmethod
    def from_arrays(
        cls,
        X,
        y,
        weights: Optional[np.ndarray] = None,
        offsets: Optional[np.ndarray] = None,
        num_partitions: int = 1,
        backend: Union[str, ExecutionBackend] = 'local',
    ) -> 'PartitionedDataset':
        """
        Split arrays row-wise into contiguous partitions.

        Parameters
        ----------
        X : ndarray or sparse matrix, shape (n, d)
            Feature matrix
        y : ndarray, shape (n,)
            Labels
        weights : ndarray, shape (n,), optional
            Example weights (default 1.0)
        offsets : ndarray, shape (n,), optional
            Example offsets (default 0.0)
        num_partitions : int, default=1
            Number of partitions (capped at n)
        backend : str or ExecutionBackend
            Execution backend
        """
        X = check_array(X)
        n = X.shape[0]
        y = check_vector(y, size=n)
        if n == 0:
            raise ValueError("Cannot build a dataset from zero examples")
        if num_partitions < 1:
            raise ValueError(f"num_partitions must be >= 1, got {num_partitions}")
        weights = np.ones(n) if weights is None else check_vector(weights, name='weights', size=n)
        offsets = np.zeros(n) if offsets is None else check_vector(offsets, name='offsets', size=n)

        bounds = np.linspace(0, n, min(num_partitions, n) + 1).astype(int)
        partitions = [
            Partition.from_arrays(X[lo:hi], y[lo:hi], weights[lo:hi], offsets[lo:hi])
            for lo, hi in zip(bounds[:-1], bounds[1:])
        ]
        return cls(partitions, backend=backend)

    @classmethod
    def from_examples(
        cls,
        examples: Sequence[LabeledExample],
        num_partitions: int = 1,
        backend: Union[str, ExecutionBackend] = 'local',
    ) -> 'PartitionedDataset':
        """Build a dataset from ``LabeledExample`` objects."""
        examples = list(examples)
        if not examples:
            raise ValueError("Cannot build a dataset from zero examples")
        dimension = examples[0].dimension
        for i, ex in enumerate(examples):
            check_dimension(ex.dimension, dimension, what=f"example {i}")

        if any(sp.issparse(ex.features) for ex in examples):
            X = sp.vstack(
                [sp.csr_matrix(ex.features).reshape(1, dimension) for ex in examples],
                format='csr',
            )
        else:
            X = np.vstack([np.asarray(ex.features, dtype=np.float64) for ex in examples])

        return cls.from_arrays(
            X,
            np.array([ex.label for ex in examples], dtype=np.float64),
            weights=np.array([ex.weight for ex in examples], dtype=np.float64),
            offsets=np.array([ex.offset for ex in examples], dtype=np.float64),
            num_partitions=num_partitions,
            backend=backend,
        )

    def __len__(self):
        return self.count

    def __repr__(self):
        return (f"PartitionedDataset(count={self.count}, dimension={self.dimension}, "
                f"num_partitions={self.num_partitions}, backend={self.backend!r})")


def read_libsvm(
    path: Union[str, Path],
    dimension: Optional[int] = None,
    add_intercept: bool = True,
    binarize: bool = False,
    num_partitions: int = 1,
    backend: Union[str, ExecutionBackend] = 'local',
) -> PartitionedDataset:
    """
    Read a LIBSVM-format text file (``label idx:value ...``, 1-based indices).

    Parameters
    ----------
    path : str or Path
        Input file
    dimension : int, optional
        Number of features in the file. Inferred from the largest index
        when omitted.
    add_intercept : bool, default=True
        Append a constant 1.0 column as the last feature
    binarize : bool, default=False
        Map labels to {0, 1} (labels > 0 become 1)
    num_partitions : int, default=1
        Number of partitions
    backend : str or ExecutionBackend
        Execution backend

    Returns
    -------
    PartitionedDataset
        Sparse (CSR) dataset
    """
    labels, rows, cols, values = [], [], [], []
    with open(path, 'r') as f:
        for line in f:
            tokens = line.split()
            if not tokens or tokens[0].startswith('#'):
                continue
            row = len(labels)
            labels.append(float(tokens[0]))
            for token in tokens[1:]:
                index, value = token.split(':')
                index = int(index)
                if index < 1:
                    raise ValueError(f"Feature indices are 1-based, got {index} on line {row + 1}")
                rows.append(row)
                cols.append(index - 1)
                values.append(float(value))

    if not labels:
        raise ValueError(f"No examples in {path}")

    max_index = max(cols) + 1 if cols else 0
    if dimension is None:
        dimension = max_index
    elif max_index > dimension:
        check_dimension(max_index, dimension, what=f"feature index in {path}")

    n = len(labels)
    if add_intercept:
        rows.extend(range(n))
        cols.extend([dimension] * n)
        values.extend([1.0] * n)
        dimension += 1

    X = sp.csr_matrix((values, (rows, cols)), shape=(n, dimension), dtype=np.float64)
    y = np.asarray(labels, dtype=np.float64)
    if binarize:
        y = (y > 0).astype(np.float64)

    return PartitionedDataset.from_arrays(X, y, num_partitions=num_partitions, backend=backend)


__all__ = [
    "LabeledExample",
    "Partition",
    "PartitionedDataset",
    "read_libsvm",
]
