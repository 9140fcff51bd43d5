"""
Abstract base classes for execution backends.

A backend is the data-parallel substrate the library runs on: it maps a
function over partitions and combines partial results with a bounded-depth
reduction tree. All computation on partitions is pure, so backends never
need locking.
"""

import math
from abc import ABC, abstractmethod
from functools import reduce
from typing import Any, Callable, Iterable, List, Sequence, TypeVar

T = TypeVar('T')
R = TypeVar('R')

DEFAULT_TREE_DEPTH = 2


class ExecutionBackend(ABC):
    """Abstract base class for all execution backends."""

    name = 'base'

    @abstractmethod
    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        """
        Apply ``fn`` to every item, returning results in input order.

        Exceptions raised by ``fn`` propagate to the caller unchanged.
        """
        pass

    def tree_reduce(
        self,
        values: Sequence[T],
        combine: Callable[[T, T], T],
        depth: int = DEFAULT_TREE_DEPTH,
    ) -> T:
        """
        Combine ``values`` pairwise along a reduction tree of bounded depth.

        Parameters
        ----------
        values : sequence
            Partial results, one per partition
        combine : callable
            Associative and commutative binary operator
        depth : int, default=2
            Number of tree levels. ``depth=1`` is a flat fold on the caller.

        Returns
        -------
        Combined value
        """
        if depth < 1:
            raise ValueError(f"Tree depth must be >= 1, got {depth}")
        values = list(values)
        if not values:
            raise ValueError("Cannot reduce an empty collection")

        # Same level sizing as Spark's treeAggregate
        scale = max(int(math.ceil(len(values) ** (1.0 / depth))), 2)
        while len(values) > scale + int(math.ceil(len(values) / scale)):
            groups = [values[i:i + scale] for i in range(0, len(values), scale)]
            values = self.map(lambda group: reduce(combine, group), groups)

        return reduce(combine, values)

    @abstractmethod
    def get_info(self) -> dict:
        """Get backend information."""
        pass

    def __repr__(self):
        return f"{type(self).__name__}()"
