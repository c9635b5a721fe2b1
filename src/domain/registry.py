"""
自己登録型シングルトンのためのレジストリ。

Registerable を継承したオブジェクトは生成時に自身をレジストリへ登録する。
レジストリは初回の列挙以降は凍結され、それ以降の登録はエラーになる。
"""

from __future__ import annotations

import threading
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")


class RegistryFrozenError(RuntimeError):
    """列挙済みのレジストリへ登録しようとした場合の例外。"""


class AbstractRegistry(Generic[T]):
    """
    登録順、または ``order`` 属性の昇順で要素を保持するレジストリ。

    Args:
        ordered: 真の場合、要素の ``order`` 属性（既定 0）で安定ソートする。
    """

    def __init__(self, *, ordered: bool = False) -> None:
        self._ordered = ordered
        self._items: list[T] = []
        self._used = False
        self._lock = threading.Lock()

    def register(self, item: T) -> T:
        """
        要素を登録する。

        Raises:
            RegistryFrozenError: 既に列挙された後の場合。
        """

        self.validate(item)
        with self._lock:
            if self._used:
                raise RegistryFrozenError(
                    f"{type(self).__name__} は既に使用されているため {item!r} を登録できません。"
                )
            self._items.append(item)
        return item

    def validate(self, item: T) -> None:
        """登録前の検証フック。既定では何もしない。"""

    def items(self) -> list[T]:
        """要素のスナップショットを返し、以降の登録を禁止する。"""

        with self._lock:
            self._used = True
            items = list(self._items)
        if self._ordered:
            items.sort(key=lambda item: getattr(item, "order", 0))
        return items

    def is_empty(self) -> bool:
        with self._lock:
            return not self._items

    @property
    def used(self) -> bool:
        return self._used

    def __iter__(self) -> Iterator[T]:
        return iter(self.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class Registerable:
    """生成時に自身を registry へ登録する基底クラス。"""

    def __init__(self, registry: AbstractRegistry) -> None:
        registry.register(self)
