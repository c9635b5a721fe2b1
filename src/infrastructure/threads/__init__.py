"""
スレッドプール関連の公開API。
"""

from .executors import (
    ExecutionWrapper,
    ExecutorBuilder,
    WrappingThreadPoolExecutor,
    context_propagating,
    thread_local_propagating,
)

__all__ = [
    "ExecutionWrapper",
    "ExecutorBuilder",
    "WrappingThreadPoolExecutor",
    "context_propagating",
    "thread_local_propagating",
]
