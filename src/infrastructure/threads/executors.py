"""
Settings から構成するスレッドプールと、投入タスクのラッパー。
"""

from __future__ import annotations

import contextvars
import functools
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Protocol, Sequence, TypeVar

from domain.settings import Settings

logger = logging.getLogger("layered_settings_core.threads")

T = TypeVar("T")

# 投入時のスレッドで呼ばれ、ワーカースレッドで実行する callable を返す。
ExecutionWrapper = Callable[[Callable[[], Any]], Callable[[], Any]]


class ShutdownHooks(Protocol):
    def add(self, hook: object) -> Any:
        ...


def context_propagating() -> ExecutionWrapper:
    """投入時の contextvars をワーカースレッドへ引き継ぐラッパー。"""

    def _wrap(task: Callable[[], Any]) -> Callable[[], Any]:
        context = contextvars.copy_context()
        return functools.partial(context.run, task)

    return _wrap


def thread_local_propagating(local: threading.local, *names: str) -> ExecutionWrapper:
    """
    threading.local の属性を投入時に写し取り、実行中のみワーカースレッドに設定するラッパー。
    """

    if not names:
        raise ValueError("引き継ぐ属性名を 1 つ以上指定してください。")

    def _wrap(task: Callable[[], Any]) -> Callable[[], Any]:
        captured = {name: getattr(local, name) for name in names if hasattr(local, name)}

        def _run() -> Any:
            previous = {name: getattr(local, name) for name in names if hasattr(local, name)}
            for name in names:
                if name in captured:
                    setattr(local, name, captured[name])
                elif hasattr(local, name):
                    delattr(local, name)
            try:
                return task()
            finally:
                for name in names:
                    if name in previous:
                        setattr(local, name, previous[name])
                    elif hasattr(local, name):
                        delattr(local, name)

        return _run

    return _wrap


class WrappingThreadPoolExecutor(ThreadPoolExecutor):
    """投入されたタスクを登録済みのラッパーで包んでから実行する ThreadPoolExecutor。"""

    def __init__(
        self,
        max_workers: int,
        *,
        thread_name_prefix: str = "",
        wrappers: Sequence[ExecutionWrapper] = (),
    ) -> None:
        super().__init__(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self._wrappers = tuple(wrappers)

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def submit(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> Future[T]:
        task: Callable[[], Any] = functools.partial(fn, *args, **kwargs)
        for wrapper in self._wrappers:
            task = wrapper(task)
        return super().submit(task)


class ExecutorBuilder:
    """
    名前付きスレッドプールのビルダー。

    スレッド数は明示指定、設定 ``<name>.threads``、既定値（CPU 数）の順で決まり、
    設定 ``<name>.corePoolSize`` の方が大きい場合はそちらを採用する。
    """

    def __init__(self, name: str, settings: Settings) -> None:
        if not name:
            raise ValueError("スレッドプール名は必須です。")
        self.name = name
        self._settings = settings
        self._default_thread_count = os.cpu_count() or 1
        self._explicit_thread_count: int | None = None
        self._legacy_name: str | None = None
        self._wrappers: list[ExecutionWrapper] = []

    def with_default_thread_count(self, count: int) -> "ExecutorBuilder":
        self._default_thread_count = _greater_than_zero("thread_count", count)
        return self

    def with_explicit_thread_count(self, count: int) -> "ExecutorBuilder":
        self._explicit_thread_count = _greater_than_zero("explicit_thread_count", count)
        return self

    def legacy_thread_count_name(self, name: str) -> "ExecutorBuilder":
        self._legacy_name = name
        return self

    def wrapping_submissions_with(self, wrapper: ExecutionWrapper, *more: ExecutionWrapper) -> "ExecutorBuilder":
        self._wrappers.append(wrapper)
        self._wrappers.extend(more)
        return self

    def propagating_context(self) -> "ExecutorBuilder":
        return self.wrapping_submissions_with(context_propagating())

    def propagating_thread_local(self, local: threading.local, *names: str) -> "ExecutorBuilder":
        return self.wrapping_submissions_with(thread_local_propagating(local, *names))

    def thread_count(self) -> int:
        """
        実際に使用するスレッド数を返す。

        Raises:
            ValueError: 設定値が 1 未満の場合。
        """

        if self._explicit_thread_count is not None:
            threads = self._explicit_thread_count
        else:
            configured = self._settings.get_int(f"{self.name}.threads")
            if configured is None and self._legacy_name:
                configured = self._settings.get_int(self._legacy_name)
            threads = configured if configured is not None else self._default_thread_count
        _greater_than_zero(f"{self.name}.threads", threads)

        core_pool_size = self._settings.get_int(f"{self.name}.corePoolSize", threads)
        if core_pool_size is None or core_pool_size < 0:
            raise ValueError(f"{self.name}.corePoolSize may not be < 0 but is {core_pool_size}")
        return max(threads, core_pool_size)

    def build(self, shutdown_hooks: ShutdownHooks | None = None) -> WrappingThreadPoolExecutor:
        threads = self.thread_count()
        executor = WrappingThreadPoolExecutor(
            threads,
            thread_name_prefix=self.name,
            wrappers=self._wrappers,
        )
        if shutdown_hooks is not None:
            shutdown_hooks.add(executor)
        logger.debug("created executor %s with %d threads", self.name, threads)
        return executor


def _greater_than_zero(name: str, value: int) -> int:
    if isinstance(value, bool) or int(value) <= 0:
        raise ValueError(f"{name} は 1 以上である必要があります: {value}")
    return int(value)
