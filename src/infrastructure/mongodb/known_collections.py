"""
バインディング名とコレクション名の対応表。
"""

from __future__ import annotations

import threading

from pymongo.collection import Collection
from pymongo.database import Database


class KnownCollections:
    """``bind_collection("users")`` のように論理名で参照するコレクションを管理する。"""

    def __init__(self) -> None:
        self._bindings: dict[str, str] = {}
        self._lock = threading.Lock()

    def bind_collection(self, binding: str, collection: str | None = None) -> "KnownCollections":
        if not binding:
            raise ValueError("バインディング名は必須です。")
        name = collection or binding
        with self._lock:
            existing = self._bindings.get(binding)
            if existing is not None and existing != name:
                raise ValueError(f"バインディング '{binding}' は既に '{existing}' に割り当てられています。")
            self._bindings[binding] = name
        return self

    def collection_name(self, binding: str) -> str:
        with self._lock:
            try:
                return self._bindings[binding]
            except KeyError:
                raise KeyError(f"未知のバインディングです: {binding}") from None

    def collection(self, database: Database, binding: str) -> Collection:
        return database[self.collection_name(binding)]

    def bindings(self) -> dict[str, str]:
        with self._lock:
            return dict(self._bindings)

    def __contains__(self, binding: object) -> bool:
        with self._lock:
            return binding in self._bindings
