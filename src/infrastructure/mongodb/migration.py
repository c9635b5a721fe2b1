"""
MongoDB コレクションのバージョン付きマイグレーション。

マイグレーションは次の順に実行される。

1. ``migrations`` コレクションに同名・同バージョンの成功記録があれば、
   その記録に ``alreadyRun: true`` を付けて返し、何も実行しない。
2. バックアップ対象の各コレクションについて、クエリに一致するドキュメントを
   ``<collection>_migrated_to_v_<version>`` へ 50 件ずつ複製する。
3. 登録されたワーカーを順に実行する。
4. 成功時は ``success: true`` の記録を保存して返す。
   失敗時はバックアップからドキュメントを書き戻し（ロールバック）、
   ``success: false`` と例外情報を記録した上で MigrationFailedError を送出する。
"""

from __future__ import annotations

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Iterator, Mapping, Protocol, Sequence, TypeVar

from pymongo import ReplaceOne
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger("layered_settings_core.mongodb.migration")

MIGRATIONS_COLLECTION = "migrations"
BATCH_SIZE = 50

R = TypeVar("R")


class MigrationWorker(Protocol):
    """1 つのコレクションを変換し、実施内容の要約を返すワーカー。"""

    def __call__(self, database: Database, collection: Collection) -> Mapping[str, Any] | None:
        ...


class MigrationError(RuntimeError):
    """マイグレーション処理の基底例外。"""


class MigrationFailedError(MigrationError):
    """
    マイグレーションが失敗し、ロールバックされた場合の例外。

    Attributes:
        record: ``migrations`` コレクションへ保存した（または保存を試みた）記録。
    """

    def __init__(self, message: str, record: Mapping[str, Any]) -> None:
        super().__init__(message)
        self.record = record


class Migration:
    """
    名前と目標バージョンで識別される 1 回限りのデータ変換。
    """

    def __init__(
        self,
        name: str,
        new_version: int,
        workers: Mapping[str, Sequence[MigrationWorker]],
        backup_queries: Mapping[str, Mapping[str, Any]],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not name:
            raise ValueError("マイグレーション名は必須です。")
        self.name = name
        self.new_version = new_version
        self._workers = {collection: tuple(items) for collection, items in workers.items()}
        self._backup_queries = {collection: dict(query) for collection, query in backup_queries.items()}
        self._clock = clock or _utcnow

    def is_empty(self) -> bool:
        return not self._workers

    @property
    def collections(self) -> list[str]:
        return list(self._workers)

    @property
    def backup_queries(self) -> dict[str, dict[str, Any]]:
        return {collection: dict(query) for collection, query in self._backup_queries.items()}

    def backup_collection_name(self, collection: str) -> str:
        return f"{collection}_migrated_to_v_{self.new_version}"

    def migrate(self, database: Database) -> dict[str, Any]:
        """
        マイグレーションを実行し、``migrations`` コレクションに保存した記録を返す。

        Raises:
            MigrationFailedError: バックアップまたはワーカーが失敗した場合。
                ``__cause__`` に元の例外を持つ。
        """

        migrations = database[MIGRATIONS_COLLECTION]
        found = migrations.find_one({"migration": self.name, "version": self.new_version, "success": True})
        if found is not None:
            logger.info("migration %s v%s already run", self.name, self.new_version)
            found = dict(found)
            found["alreadyRun"] = True
            return found

        record: dict[str, Any] = {
            "migration": self.name,
            "version": self.new_version,
            "start": self._clock(),
        }
        counter = 0
        try:
            for collection, query in self._backup_queries.items():
                record[f"{collection}_backup_{counter}"] = self._backup(database, collection, query)
                counter += 1
            for collection, workers in self._workers.items():
                for worker in workers:
                    summary = worker(database, database[collection])
                    if summary:
                        record[f"{collection}_migrate_{counter}"] = dict(summary)
                    counter += 1
        except Exception as exc:
            logger.exception("migration %s v%s failed; rolling back", self.name, self.new_version)
            record["success"] = False
            record["end"] = self._clock()
            record["thrown"] = _describe_exception(exc)
            record["rollback"] = self._rollback(database)
            failure = MigrationFailedError(
                f"マイグレーション '{self.name}' (v{self.new_version}) が失敗しました: {exc}",
                record,
            )
            try:
                migrations.insert_one(record)
            except PyMongoError as insert_error:
                logger.error("failed to record migration failure for %s", self.name, exc_info=True)
                failure.add_note(f"記録の保存にも失敗しました: {insert_error}")
            raise failure from exc

        record["success"] = True
        record["end"] = self._clock()
        migrations.insert_one(record)
        logger.info("migration %s v%s completed", self.name, self.new_version)
        return record

    def _backup(self, database: Database, collection: str, query: Mapping[str, Any]) -> dict[str, Any]:
        backup_name = self.backup_collection_name(collection)
        source = database[collection]
        target = database[backup_name]
        info: dict[str, Any] = {
            "collection": collection,
            "backedUpTo": backup_name,
            "name": self.name,
            "toVersion": self.new_version,
            "when": self._clock(),
            "ids": [],
            "docsSeen": 0,
            "docsBackedUp": 0,
        }
        for batch in _batches(source.find(query, batch_size=BATCH_SIZE)):
            info["docsSeen"] += len(batch)
            # 失敗後の再実行で同じ _id が残っていても上書きできるよう置換で書き込む
            target.bulk_write(
                [ReplaceOne({"_id": document["_id"]}, document, upsert=True) for document in batch],
                ordered=True,
            )
            info["ids"].extend(document["_id"] for document in batch)
            info["docsBackedUp"] += len(batch)
        logger.info(
            "backed up %d documents from %s to %s",
            info["docsBackedUp"],
            collection,
            backup_name,
        )
        return info

    def _rollback(self, database: Database) -> dict[str, Any]:
        rollbacks: dict[str, Any] = {}
        for collection in self._backup_queries:
            summary: dict[str, Any] = {}
            rollbacks[collection] = summary
            source = database[self.backup_collection_name(collection)]
            target = database[collection]
            try:
                for number, batch in enumerate(_batches(source.find({}, batch_size=BATCH_SIZE)), start=1):
                    summary[f"batch-{number}"] = len(batch)
                    try:
                        target.bulk_write(
                            [ReplaceOne({"_id": document["_id"]}, document, upsert=True) for document in batch],
                            ordered=False,
                        )
                    except PyMongoError as exc:
                        logger.error("rollback batch %d of %s failed", number, collection, exc_info=True)
                        summary[f"batch-{number}-failed"] = True
                        summary[f"batch-{number}-error"] = _describe_exception(exc)
                    else:
                        summary[f"batch-{number}-succeeded"] = len(batch)
            except PyMongoError as exc:
                logger.error("could not read backup of %s", collection, exc_info=True)
                summary["error"] = _describe_exception(exc)
        return rollbacks


class MigrationBuilder(Generic[R]):
    """
    Migration を組み立てるビルダー。

    consumer を渡した場合、:meth:`build` は consumer(migration) の戻り値を返す。
    """

    def __init__(
        self,
        name: str,
        new_version: int,
        consumer: Callable[[Migration], R] | None = None,
    ) -> None:
        if not name:
            raise ValueError("マイグレーション名は必須です。")
        self.name = name
        self.new_version = new_version
        self._consumer = consumer
        self._workers: dict[str, list[MigrationWorker]] = {}
        self._backup_queries: dict[str, dict[str, Any]] = {}

    def backup(self, collection: str, query: Mapping[str, Any]) -> "MigrationBuilder[R]":
        """
        マイグレーション前に、query に一致するドキュメントをバックアップする。

        同じコレクションに対して複数回呼んだ場合、クエリは ``$or`` で結合される。
        """

        if not collection:
            raise ValueError("コレクション名は必須です。")
        if query is None:
            raise ValueError("バックアップ用クエリは必須です。")
        existing = self._backup_queries.get(collection)
        if existing is None:
            self._backup_queries[collection] = dict(query)
        else:
            self._backup_queries[collection] = {"$or": [existing, dict(query)]}
        return self

    def no_backup(self, collection: str) -> "MigrationBuilder[R]":
        self._backup_queries.pop(collection, None)
        return self

    def migrate_collection(self, collection: str, worker: MigrationWorker) -> "MigrationBuilder[R]":
        """ワーカーを登録する。同じコレクションに複数登録した場合は登録順に実行される。"""

        if not collection:
            raise ValueError("コレクション名は必須です。")
        self._workers.setdefault(collection, []).append(worker)
        return self

    def build(self) -> Migration | R:
        migration = Migration(self.name, self.new_version, self._workers, self._backup_queries)
        if self._consumer is None:
            return migration
        return self._consumer(migration)


def _batches(cursor: Iterator[Mapping[str, Any]]) -> Iterator[list[dict[str, Any]]]:
    batch: list[dict[str, Any]] = []
    for document in cursor:
        batch.append(dict(document))
        if len(batch) >= BATCH_SIZE:
            yield batch
            batch = []
    if batch:
        yield batch


def _describe_exception(exc: BaseException) -> dict[str, Any]:
    return {
        "thrown": f"{type(exc).__module__}.{type(exc).__qualname__}",
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
