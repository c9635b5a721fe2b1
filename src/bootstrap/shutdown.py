"""
プロセス終了時に実行するフックを段階（FIRST / MIDDLE / LAST）ごとに管理するレジストリ。

FIRST と MIDDLE は後から登録したものから、LAST は先に登録したものから実行する。
"""

from __future__ import annotations

import atexit
import enum
import logging
import threading
import time
import weakref
from concurrent.futures import Executor
from typing import Any, Callable

logger = logging.getLogger("layered_settings_core.bootstrap.shutdown")


class Phase(enum.Enum):
    FIRST = "first"
    MIDDLE = "middle"
    LAST = "last"


class _Hook:
    """1 回だけ実行されるフック。弱参照の場合は対象が回収済みなら何もしない。"""

    def __init__(self, target: object, *, weak: bool) -> None:
        if target is None:
            raise ValueError("シャットダウンフックに None は指定できません。")
        self._weak = weak
        self._ref: Callable[[], object | None]
        if weak:
            if hasattr(target, "__self__") and hasattr(target, "__func__"):
                self._ref = weakref.WeakMethod(target)  # type: ignore[arg-type]
            else:
                self._ref = weakref.ref(target)
        else:
            self._ref = lambda: target
        self._description = repr(target)
        self.ran = False

    def target(self) -> object | None:
        return self._ref()

    def __repr__(self) -> str:
        return f"Hook({self._description}{', weak' if self._weak else ''})"


class ShutdownHookRegistry:
    """
    シャットダウンフックのレジストリ。

    フックとして callable、Executor（停止して ``executor_wait_seconds`` まで待機）、
    ``threading.Timer``（cancel）、``close()`` を持つオブジェクトを受け付ける。
    フック内の例外は記録され、他のフックの実行は継続する。
    """

    def __init__(self, executor_wait_seconds: float = 0.5) -> None:
        self._executor_wait_seconds = max(0.0, float(executor_wait_seconds))
        self._hooks: dict[Phase, list[_Hook]] = {phase: [] for phase in Phase}
        self._lock = threading.RLock()
        self._running = False
        self._installed = False
        self._wait_for: weakref.WeakSet[Executor] = weakref.WeakSet()
        self.errors: list[BaseException] = []

    # 登録系 ------------------------------------------------------------
    def add(self, hook: object, phase: Phase = Phase.MIDDLE) -> "ShutdownHookRegistry":
        return self._add(hook, phase, weak=False)

    def add_first(self, hook: object) -> "ShutdownHookRegistry":
        return self._add(hook, Phase.FIRST, weak=False)

    def add_last(self, hook: object) -> "ShutdownHookRegistry":
        return self._add(hook, Phase.LAST, weak=False)

    def add_weak(self, hook: object, phase: Phase = Phase.MIDDLE) -> "ShutdownHookRegistry":
        return self._add(hook, phase, weak=True)

    def add_first_weak(self, hook: object) -> "ShutdownHookRegistry":
        return self._add(hook, Phase.FIRST, weak=True)

    def add_last_weak(self, hook: object) -> "ShutdownHookRegistry":
        return self._add(hook, Phase.LAST, weak=True)

    def _add(self, hook: object, phase: Phase, *, weak: bool) -> "ShutdownHookRegistry":
        entry = _Hook(hook, weak=weak)
        with self._lock:
            self._hooks[phase].append(entry)
        return self

    @property
    def running(self) -> bool:
        return self._running

    def remaining(self) -> int:
        with self._lock:
            return sum(1 for hooks in self._hooks.values() for hook in hooks if not hook.ran)

    # 実行系 ------------------------------------------------------------
    def install(self) -> "ShutdownHookRegistry":
        """プロセス終了時に :meth:`shutdown` が呼ばれるよう atexit に登録する。"""

        with self._lock:
            if not self._installed:
                atexit.register(self.shutdown)
                self._installed = True
        return self

    def uninstall(self) -> None:
        with self._lock:
            if self._installed:
                atexit.unregister(self.shutdown)
                self._installed = False

    def shutdown(self) -> int:
        """
        登録済みのフックを全て実行し、実行したフック数を返す。

        実行中に再度呼ばれた場合は何もせず 0 を返す。
        """

        with self._lock:
            if self._running:
                logger.warning("attempt to reenter shutdown hooks")
                return 0
            self._running = True
        try:
            count = self._run_all()
        finally:
            with self._lock:
                self._running = False
            self.uninstall()
        if self.errors:
            logger.warning("%d exceptions thrown in shutdown hooks", len(self.errors))
        return count

    def _run_all(self) -> int:
        count = 0
        try:
            while True:
                pending = self._pending()
                if not pending:
                    break
                for hook in pending:
                    hook.ran = True
                    count += 1
                    self._run_one(hook)
        finally:
            self._await_executors()
        return count

    def _pending(self) -> list[_Hook]:
        with self._lock:
            first = [hook for hook in reversed(self._hooks[Phase.FIRST]) if not hook.ran]
            middle = [hook for hook in reversed(self._hooks[Phase.MIDDLE]) if not hook.ran]
            last = [hook for hook in self._hooks[Phase.LAST] if not hook.ran]
        return first + middle + last

    def _run_one(self, hook: _Hook) -> None:
        target = hook.target()
        if target is None:
            return
        try:
            if isinstance(target, Executor):
                target.shutdown(wait=False)
                self._wait_for.add(target)
            elif isinstance(target, threading.Timer):
                target.cancel()
            elif isinstance(target, threading.Thread):
                logger.debug("ignoring thread hook %s", target.name)
            elif hasattr(target, "close") and callable(getattr(target, "close")):
                target.close()
            elif callable(target):
                target()
            else:
                raise TypeError(f"シャットダウンフックとして実行できないオブジェクトです: {target!r}")
        except Exception as exc:  # noqa: BLE001
            logger.warning("shutdown hook %r failed", hook, exc_info=True)
            self.errors.append(exc)

    def _await_executors(self) -> None:
        executors = list(self._wait_for)
        self._wait_for = weakref.WeakSet()
        if not executors:
            return
        deadline = time.monotonic() + self._executor_wait_seconds
        unterminated = [executor for executor in executors if not _terminated(executor)]
        while unterminated and time.monotonic() < deadline:
            time.sleep(min(0.05, max(0.0, deadline - time.monotonic())))
            unterminated = [executor for executor in unterminated if not _terminated(executor)]
        if unterminated:
            logger.info("some executors did not terminate: %s", unterminated)


def _terminated(executor: Any) -> bool:
    threads = getattr(executor, "_threads", None)
    if threads is None:
        return True
    return not any(thread.is_alive() for thread in threads)
