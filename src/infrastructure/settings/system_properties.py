"""
プロセス全体で共有される可変のプロパティ。

環境変数とは異なり、実行中に自由に書き換えられる設定値の置き場として使う。
SettingsBuilder.add_system_properties() はこの内容を定期的に取り込む。
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Mapping


class SystemProperties:
    """スレッドセーフなキー/値ストア。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, str] = {}

    def get(self, name: str, default: str | None = None) -> str | None:
        with self._lock:
            return self._values.get(name, default)

    def set(self, name: str, value: object) -> None:
        if not name:
            raise ValueError("プロパティ名は必須です。")
        with self._lock:
            self._values[name] = str(value)

    def update(self, values: Mapping[str, object]) -> None:
        with self._lock:
            for name, value in values.items():
                self._values[str(name)] = str(value)

    def remove(self, name: str) -> str | None:
        with self._lock:
            return self._values.pop(name, None)

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._values)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    @contextmanager
    def overridden(self, values: Mapping[str, object]) -> Iterator["SystemProperties"]:
        """一時的に値を上書きし、終了時に元の状態へ戻す。"""

        with self._lock:
            previous = {name: self._values.get(name) for name in values}
            for name, value in values.items():
                self._values[name] = str(value)
        try:
            yield self
        finally:
            with self._lock:
                for name, value in previous.items():
                    if value is None:
                        self._values.pop(name, None)
                    else:
                        self._values[name] = value


system_properties = SystemProperties()
