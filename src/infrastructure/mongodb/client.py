"""
MongoDB クライアントの生成と初期化フック。
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, MutableMapping

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from domain.registry import AbstractRegistry, Registerable

from .config import MongoConfig

logger = logging.getLogger("layered_settings_core.mongodb.client")

ClientFactory = Callable[[MongoConfig, MutableMapping[str, Any]], MongoClient]


class MongoInitializerRegistry(AbstractRegistry["MongoInitializer"]):
    """``order`` 昇順で MongoInitializer を保持するレジストリ。"""

    def __init__(self) -> None:
        super().__init__(ordered=True)


class MongoInitializer(Registerable):
    """
    クライアント生成の前後やコレクション作成時に処理を差し込むフック。

    サブクラスは生成時に自身を registry へ登録する。``order`` が小さいものから順に呼ばれる。
    """

    order: int = 0

    def __init__(self, registry: MongoInitializerRegistry) -> None:
        super().__init__(registry)

    def on_before_create_client(self, kwargs: MutableMapping[str, Any]) -> None:
        """クライアント生成前にキーワード引数を調整する。"""

    def on_after_create_client(self, client: MongoClient, database: Database) -> None:
        """クライアント生成後に呼ばれる。"""

    def on_create_collection(self, name: str, collection: Collection) -> None:
        """コレクションを新規作成した直後に呼ばれる。"""


class MongoClientProvider:
    """
    MongoClient を遅延生成して保持するプロバイダ。

    初回の :meth:`client` 呼び出しでレジストリ内の初期化フックを順に実行する。
    フックが例外を送出した場合は生成したクライアントを閉じ、次回の呼び出しで作り直す。
    """

    def __init__(
        self,
        config: MongoConfig,
        *,
        registry: MongoInitializerRegistry | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._config = config
        self._registry = registry or MongoInitializerRegistry()
        self._client_factory = client_factory or _default_client_factory
        self._client: MongoClient | None = None
        self._lock = threading.Lock()

    @property
    def config(self) -> MongoConfig:
        return self._config

    @property
    def registry(self) -> MongoInitializerRegistry:
        return self._registry

    def client(self) -> MongoClient:
        with self._lock:
            if self._client is None:
                self._client = self._create_client()
            return self._client

    def database(self) -> Database:
        return self.client()[self._config.database]

    def close(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()

    def _create_client(self) -> MongoClient:
        initializers = self._registry.items()
        kwargs: dict[str, Any] = self._config.to_client_kwargs()
        for initializer in initializers:
            initializer.on_before_create_client(kwargs)
        client = self._client_factory(self._config, kwargs)
        database = client[self._config.database]
        try:
            for initializer in initializers:
                initializer.on_after_create_client(client, database)
        except BaseException:
            logger.error("mongo initializer failed; closing the new client", exc_info=True)
            client.close()
            raise
        logger.info(
            "mongo client created host=%s port=%s database=%s initializers=%d",
            self._config.host,
            self._config.port,
            self._config.database,
            len(initializers),
        )
        return client


def _default_client_factory(config: MongoConfig, kwargs: MutableMapping[str, Any]) -> MongoClient:
    return MongoClient(**kwargs)
