"""
In-process sequential backend.
"""

from typing import Callable, Iterable, List

from .base import ExecutionBackend


class LocalBackend(ExecutionBackend):
    """
    Runs every partition in the calling thread.

    Reference backend: results are deterministic for a fixed partitioning.
    """

    name = 'local'

    def map(self, fn: Callable, items: Iterable) -> List:
        return [fn(item) for item in items]

    def get_info(self) -> dict:
        return {
            'backend': 'local',
            'workers': 1,
        }
