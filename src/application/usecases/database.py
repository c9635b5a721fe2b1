"""
MongoDB のコレクション初期化とマイグレーション実行を扱うユースケース。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.database import Database

from application import observability
from infrastructure.mongodb import (
    MIGRATIONS_COLLECTION,
    CollectionsInfo,
    Migration,
    MigrationFailedError,
    MongoInitializer,
    MongoInitializerRegistry,
)

logger = logging.getLogger("layered_settings_core.usecases.database")

# 他の初期化処理より先にコレクションを作成し、マイグレーションは最後に実行する。
COLLECTIONS_INITIALIZER_ORDER = -(2**31) + 10
MIGRATIONS_INITIALIZER_ORDER = 2**31 - 11


@dataclass(frozen=True)
class CollectionInitResult:
    collection: str
    created: bool
    indexes_created: tuple[str, ...] = ()
    documents_inserted: int = 0

    @staticmethod
    def from_mapping(mapping: Mapping[str, Any]) -> "CollectionInitResult":
        return CollectionInitResult(
            collection=str(mapping["collection"]),
            created=bool(mapping.get("created", False)),
            indexes_created=tuple(str(name) for name in mapping.get("indexesCreated", ())),
            documents_inserted=int(mapping.get("documentsInserted", 0)),
        )


@dataclass(frozen=True)
class MigrationRunResult:
    """
    マイグレーション 1 件の実行結果。

    Attributes:
        status: ``applied``（今回実行）、``skipped``（実行済み）、``failed`` のいずれか。
    """

    name: str
    version: int
    status: str
    record: Mapping[str, Any] = field(default_factory=dict)


class DatabaseMaintenanceService:
    """
    コレクション初期化とマイグレーションを実行し、メトリクスとログを記録する。
    """

    def __init__(self, database_provider: Callable[[], Database]) -> None:
        self._database_provider = database_provider

    def initialize_collections(
        self,
        collections: CollectionsInfo,
        *,
        database: Database | None = None,
        on_create: Callable[[str, Collection], None] | None = None,
    ) -> list[CollectionInitResult]:
        target = database if database is not None else self._database_provider()

        def _on_create(name: str, collection: Collection) -> None:
            observability.metrics_recorder.increment_collections_created(name)
            if on_create is not None:
                on_create(name, collection)

        summaries = collections.init(target, on_create=_on_create)
        results = [CollectionInitResult.from_mapping(summary) for summary in summaries]
        logger.info(
            "initialized %d collections (%d created)",
            len(results),
            sum(1 for result in results if result.created),
        )
        return results

    def run_migrations(
        self,
        migrations: Iterable[Migration],
        *,
        database: Database | None = None,
    ) -> list[MigrationRunResult]:
        """
        マイグレーションを順に実行する。失敗した時点で MigrationFailedError を送出する。
        """

        target = database if database is not None else self._database_provider()
        results: list[MigrationRunResult] = []
        for migration in migrations:
            started = time.perf_counter()
            try:
                record = migration.migrate(target)
            except MigrationFailedError:
                observability.metrics_recorder.observe_migration(
                    migration.name, "failed", time.perf_counter() - started
                )
                raise
            status = "skipped" if record.get("alreadyRun") else "applied"
            observability.metrics_recorder.observe_migration(migration.name, status, time.perf_counter() - started)
            logger.info("migration %s v%s %s", migration.name, migration.new_version, status)
            results.append(
                MigrationRunResult(name=migration.name, version=migration.new_version, status=status, record=record)
            )
        return results

    def list_migrations(self, *, database: Database | None = None) -> list[dict[str, Any]]:
        """``migrations`` コレクションの記録を開始時刻順に返す。"""

        target = database if database is not None else self._database_provider()
        cursor = target[MIGRATIONS_COLLECTION].find({}).sort("start", ASCENDING)
        return [dict(document) for document in cursor]


class CollectionsInitializer(MongoInitializer):
    """クライアント生成直後にコレクションを初期化するフック。"""

    order = COLLECTIONS_INITIALIZER_ORDER

    def __init__(
        self,
        registry: MongoInitializerRegistry,
        collections: CollectionsInfo,
        service: DatabaseMaintenanceService,
    ) -> None:
        super().__init__(registry)
        self._registry = registry
        self._collections = collections
        self._service = service
        self.results: list[CollectionInitResult] = []

    def on_after_create_client(self, client: Any, database: Database) -> None:
        def _notify(name: str, collection: Collection) -> None:
            for initializer in self._registry.items():
                initializer.on_create_collection(name, collection)

        self.results = self._service.initialize_collections(
            self._collections,
            database=database,
            on_create=_notify,
        )


class MigrationsInitializer(MongoInitializer):
    """クライアント生成直後に登録済みのマイグレーションを順に実行するフック。"""

    order = MIGRATIONS_INITIALIZER_ORDER

    def __init__(
        self,
        registry: MongoInitializerRegistry,
        migrations: Sequence[Migration],
        service: DatabaseMaintenanceService,
    ) -> None:
        super().__init__(registry)
        self._migrations = [migration for migration in migrations if not migration.is_empty()]
        self._service = service
        self.results: list[MigrationRunResult] = []

    def on_after_create_client(self, client: Any, database: Database) -> None:
        self.results = self._service.run_migrations(self._migrations, database=database)
