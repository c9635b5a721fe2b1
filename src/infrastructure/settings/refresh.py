"""
設定ソースの定期再読み込み。
"""

from __future__ import annotations

import logging
import threading
import weakref
from typing import Callable

from domain.settings import PropertiesSettings, Settings

from .sources import SettingsSource

logger = logging.getLogger("layered_settings_core.settings.refresh")

# 間隔が 0 に下げられている間、再開を確認する周期（秒）
PAUSED_POLL_SECONDS = 1.0


class RefreshTask:
    """
    1 つの設定ソースを ``source.interval`` ごとに再読み込みし、
    対応する PropertiesSettings の委譲先を差し替えるタスク。

    owner（通常は SettingsBuilder.build() の戻り値）への参照は弱参照のみで、
    owner がガベージコレクトされた時点でタスクは停止する。

    実行中に間隔が 0 へ変更された場合は読み込みを止めて一時停止し、
    PAUSED_POLL_SECONDS ごとに間隔を確認して、正の値に戻った時点で再開する。
    開始時点で間隔が 0 のソースはスケジュールしない。
    """

    def __init__(
        self,
        source: SettingsSource,
        target: PropertiesSettings,
        owner: Settings,
        *,
        timer_factory: Callable[[float, Callable[[], None]], threading.Timer] | None = None,
    ) -> None:
        self._source = source
        self._target = target
        self._owner = weakref.ref(owner)
        self._timer_factory = timer_factory or _daemon_timer
        self._timer: threading.Timer | None = None
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def source(self) -> SettingsSource:
        return self._source

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> None:
        if self._source.interval.enabled:
            self._schedule()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def run_once(self) -> bool:
        """
        再読み込みを 1 回行う。owner が既に存在しない場合はタスクを停止し False を返す。

        読み込みに失敗した場合は警告を記録し、直前の値を維持する。
        """

        if self._cancelled:
            return False
        if self._owner() is None:
            logger.debug("settings for %s were garbage collected; stopping refresh", self._source.describe())
            self.cancel()
            return False
        try:
            values = self._source.load()
        except Exception:  # noqa: BLE001 - ソースの種類ごとに失敗要因が異なる
            logger.warning("failed to refresh settings from %s", self._source.describe(), exc_info=True)
            return True
        self._target.set_delegate(values)
        return True

    def _tick(self) -> None:
        if not self._source.interval.enabled:
            if self._owner() is None:
                self.cancel()
                return
            self._schedule()
            return
        if self.run_once():
            self._schedule()

    def _schedule(self) -> None:
        seconds = self._source.interval.seconds
        if seconds <= 0:
            seconds = PAUSED_POLL_SECONDS
        with self._lock:
            if self._cancelled:
                return
            timer = self._timer_factory(seconds, self._tick)
            self._timer = timer
        timer.start()


def _daemon_timer(seconds: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(seconds, callback)
    timer.daemon = True
    timer.name = "settings-refresh"
    return timer
