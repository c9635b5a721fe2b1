"""
設定ソースの再読み込み間隔。
"""

from __future__ import annotations

import threading
from typing import ClassVar


class RefreshInterval:
    """
    設定ソースの種類ごとの再読み込み間隔（秒）。

    間隔は実行時に変更でき、0 の場合は再読み込みを行わない。
    事前定義の間隔はプロセス全体で共有される。
    """

    NONE: ClassVar["RefreshInterval"]
    CLASSPATH: ClassVar["RefreshInterval"]
    SYSTEM_PROPERTIES: ClassVar["RefreshInterval"]
    FILES: ClassVar["RefreshInterval"]
    URLS: ClassVar["RefreshInterval"]

    def __init__(self, name: str, seconds: float) -> None:
        if not name:
            raise ValueError("RefreshInterval の名前は必須です。")
        self._name = name
        self._lock = threading.Lock()
        self._seconds = _validate_seconds(seconds)

    @property
    def name(self) -> str:
        return self._name

    @property
    def seconds(self) -> float:
        with self._lock:
            return self._seconds

    @property
    def enabled(self) -> bool:
        return self.seconds > 0

    def set_seconds(self, seconds: float) -> None:
        value = _validate_seconds(seconds)
        with self._lock:
            self._seconds = value

    @classmethod
    def values(cls) -> tuple["RefreshInterval", ...]:
        return (cls.NONE, cls.CLASSPATH, cls.SYSTEM_PROPERTIES, cls.FILES, cls.URLS)

    def __repr__(self) -> str:
        return f"RefreshInterval({self._name}={self.seconds}s)"


def _validate_seconds(seconds: float) -> float:
    if isinstance(seconds, bool):
        raise ValueError("RefreshInterval の秒数には数値を指定してください。")
    value = float(seconds)
    if value < 0:
        raise ValueError(f"RefreshInterval の秒数は 0 以上である必要があります: {seconds}")
    return value


RefreshInterval.NONE = RefreshInterval("none", 0)
RefreshInterval.CLASSPATH = RefreshInterval("classpath", 60 * 60)
RefreshInterval.SYSTEM_PROPERTIES = RefreshInterval("system_properties", 10 * 60)
RefreshInterval.FILES = RefreshInterval("files", 10 * 60)
RefreshInterval.URLS = RefreshInterval("urls", 5 * 60)
