"""
Thread pool backend.

NumPy and SciPy kernels release the GIL, so per-partition linear algebra
runs in parallel on a thread pool without copying partitions to other
processes.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional

from .base import ExecutionBackend


class ThreadPoolBackend(ExecutionBackend):
    """
    Maps partitions over a ``concurrent.futures.ThreadPoolExecutor``.

    Parameters
    ----------
    max_workers : int, optional
        Pool size. Defaults to the CPU count.
    """

    name = 'threads'

    def __init__(self, max_workers: Optional[int] = None):
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = max_workers or os.cpu_count() or 1

    def map(self, fn: Callable, items: Iterable) -> List:
        items = list(items)
        if len(items) <= 1 or self.max_workers == 1:
            return [fn(item) for item in items]

        workers = min(self.max_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pyglmopt-worker") as executor:
            # executor.map re-raises the first worker exception on iteration
            return list(executor.map(fn, items))

    def get_info(self) -> dict:
        return {
            'backend': 'threads',
            'workers': self.max_workers,
        }

    def __repr__(self):
        return f"ThreadPoolBackend(max_workers={self.max_workers})"
