"""
Backend selection and management.

Provides a unified map + tree-reduce interface over in-process and
thread-pool execution.
"""

import os
from typing import Optional, Union

from .base import ExecutionBackend, DEFAULT_TREE_DEPTH
from .local_backend import LocalBackend
from .thread_backend import ThreadPoolBackend


def get_backend(
    backend: Union[str, ExecutionBackend] = 'auto',
    max_workers: Optional[int] = None,
) -> ExecutionBackend:
    """
    Get execution backend.

    Parameters
    ----------
    backend : str or ExecutionBackend
        Backend selection:
        - 'auto': Thread pool when more than one CPU is available, else local
        - 'local': Sequential, in the calling thread
        - 'threads': ``concurrent.futures`` thread pool
        An ``ExecutionBackend`` instance is returned unchanged.

    max_workers : int or None
        Thread pool size (ignored by 'local')

    Returns
    -------
    ExecutionBackend
        Backend instance

    Examples
    --------
    >>> backend = get_backend('local')
    >>> backend = get_backend('threads', max_workers=4)
    """
    if isinstance(backend, ExecutionBackend):
        return backend

    if backend == 'auto':
        workers = max_workers or os.cpu_count() or 1
        if workers > 1:
            return ThreadPoolBackend(max_workers=workers)
        return LocalBackend()

    elif backend == 'local':
        return LocalBackend()

    elif backend == 'threads':
        return ThreadPoolBackend(max_workers=max_workers)

    else:
        raise ValueError(
            f"Unknown backend: '{backend}'\n"
            f"Valid options: 'auto', 'local', 'threads'"
        )


def list_available_backends() -> list:
    """List names of available backends."""
    return ['local', 'threads']


__all__ = [
    'get_backend',
    'list_available_backends',
    'ExecutionBackend',
    'LocalBackend',
    'ThreadPoolBackend',
    'DEFAULT_TREE_DEPTH',
]
