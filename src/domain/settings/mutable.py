"""
書き込み可能な Settings。
"""

from __future__ import annotations

import threading
from abc import abstractmethod
from typing import Sequence

from .base import Settings, to_setting_string
from .namespace import DEFAULT_NAMESPACE, validate_namespace


class MutableSettings(Settings):
    """実行時に値の上書き・削除ができる Settings。"""

    @abstractmethod
    def set_string(self, name: str, value: str | None) -> None:
        """値を設定する。None を渡した場合は :meth:`clear` と同じ。"""

    @abstractmethod
    def clear(self, name: str) -> None:
        """キーを削除し、下位レイヤの値も見えなくする。"""

    def set_int(self, name: str, value: int) -> None:
        self.set_string(name, str(int(value)))

    def set_float(self, name: str, value: float) -> None:
        self.set_string(name, str(float(value)))

    def set_bool(self, name: str, value: bool) -> None:
        self.set_string(name, to_setting_string(bool(value)))

    def set_int_list(self, name: str, values: Sequence[int]) -> None:
        self.set_string(name, ",".join(str(int(value)) for value in values))


class WritableSettings(MutableSettings):
    """
    ベースの Settings の上に揮発性の書き込みレイヤを重ねた実装。

    書き込みレイヤの値が優先され、:meth:`clear` したキーはベースに値があっても
    存在しないものとして扱う。再度 ``set_*`` すると削除状態は解除される。
    """

    def __init__(self, namespace: str | None, base: Settings) -> None:
        self._namespace = validate_namespace(namespace or DEFAULT_NAMESPACE)
        self._base = base
        self._written: dict[str, str] = {}
        self._cleared: set[str] = set()
        self._lock = threading.RLock()

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def base(self) -> Settings:
        return self._base

    def set_settings(self, base: Settings) -> None:
        """ベースの Settings を差し替える。書き込み済みの値は維持される。"""

        with self._lock:
            self._base = base

    def set_string(self, name: str, value: str | None) -> None:
        if value is None:
            self.clear(name)
            return
        with self._lock:
            self._cleared.discard(name)
            self._written[name] = str(value)

    def clear(self, name: str) -> None:
        with self._lock:
            self._cleared.add(name)
            self._written.pop(name, None)

    def lookup(self, name: str) -> str | None:
        with self._lock:
            if name in self._cleared:
                return None
            if name in self._written:
                return self._written[name]
            base = self._base
        return base.lookup(name)

    def all_keys(self) -> set[str]:
        with self._lock:
            written = set(self._written)
            cleared = set(self._cleared)
            base = self._base
        return (base.all_keys() | written) - cleared

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"WritableSettings[{self._namespace}] written={sorted(self._written)} "
                f"cleared={sorted(self._cleared)} over {self._base!r}"
            )
