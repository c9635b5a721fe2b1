from __future__ import annotations

from typing import Any, MutableMapping
from unittest.mock import MagicMock

import mongomock
import pytest

from application import observability
from application.usecases import (
    CollectionsInitializer,
    DatabaseMaintenanceService,
    MigrationsInitializer,
)
from domain.settings import Settings
from infrastructure.mongodb import (
    CollectionsInfoBuilder,
    MigrationBuilder,
    MigrationFailedError,
    MongoClientProvider,
    MongoConfig,
    MongoInitializer,
    MongoInitializerRegistry,
)


@pytest.fixture
def recorder() -> Any:
    mock = MagicMock()
    observability.use_metrics_recorder(mock)
    yield mock
    observability.reset_observability()


def make_service() -> tuple[DatabaseMaintenanceService, Any]:
    database = mongomock.MongoClient()["app"]
    return DatabaseMaintenanceService(lambda: database), database


def add_flag(database: Any, collection: Any) -> dict[str, Any]:
    result = collection.update_many({}, {"$set": {"flag": True}})
    return {"modified": result.modified_count}


def test_initialize_collections_returns_results_and_counts_created(recorder: Any) -> None:
    service, database = make_service()
    collections = CollectionsInfoBuilder().add("users").index("name").put("name").build().build().build()

    first = service.initialize_collections(collections)
    second = service.initialize_collections(collections)

    assert first[0].collection == "users"
    assert first[0].created is True
    assert first[0].indexes_created == ("name",)
    assert second[0].created is False
    recorder.increment_collections_created.assert_called_once_with("users")


def test_run_migrations_reports_applied_then_skipped(recorder: Any) -> None:
    service, database = make_service()
    database["users"].insert_one({"_id": 1})
    migration = MigrationBuilder("flag-users", 1).migrate_collection("users", add_flag).build()

    applied = service.run_migrations([migration])
    skipped = service.run_migrations([migration])

    assert [result.status for result in applied + skipped] == ["applied", "skipped"]
    assert applied[0].record["users_migrate_0"] == {"modified": 1}
    statuses = [call.args[1] for call in recorder.observe_migration.call_args_list]
    assert statuses == ["applied", "skipped"]
    assert [record["migration"] for record in service.list_migrations()] == ["flag-users"]


def test_run_migrations_records_failure_and_stops(recorder: Any) -> None:
    service, database = make_service()
    calls: list[str] = []

    def explode(database: Any, collection: Any) -> None:
        raise RuntimeError("boom")

    failing = MigrationBuilder("failing", 1).migrate_collection("users", explode).build()
    never = MigrationBuilder("never", 1).migrate_collection("users", lambda d, c: calls.append("never")).build()

    with pytest.raises(MigrationFailedError):
        service.run_migrations([failing, never])

    assert calls == []
    assert recorder.observe_migration.call_args.args[:2] == ("failing", "failed")


class CreationListener(MongoInitializer):
    def __init__(self, registry: MongoInitializerRegistry, seen: list[str]) -> None:
        super().__init__(registry)
        self._seen = seen

    def on_create_collection(self, name: str, collection: Any) -> None:
        self._seen.append(name)


def test_initializers_run_collections_before_migrations_on_client_creation(recorder: Any) -> None:
    client = mongomock.MongoClient()
    registry = MongoInitializerRegistry()
    provider = MongoClientProvider(
        MongoConfig.from_settings(Settings.from_mapping({"mongo.database": "app"})),
        registry=registry,
        client_factory=lambda config, kwargs: client,
    )
    service = DatabaseMaintenanceService(provider.database)
    seen: list[str] = []
    empty = MigrationBuilder("empty", 1).build()
    migration = MigrationBuilder("flag-users", 1).migrate_collection("users", add_flag).build()
    collections = (
        CollectionsInfoBuilder().add("users").insert_when_created({"name": "admin"}).build().build()
    )

    migrations_initializer = MigrationsInitializer(registry, [empty, migration], service)
    collections_initializer = CollectionsInitializer(registry, collections, service)
    CreationListener(registry, seen)
    provider.client()

    assert seen == ["users"]
    assert [result.created for result in collections_initializer.results] == [True]
    assert [result.name for result in migrations_initializer.results] == ["flag-users"]
    assert client["app"]["users"].find_one({"name": "admin"})["flag"] is True


def test_failed_migration_during_client_creation_closes_each_client(recorder: Any) -> None:
    created: list[mongomock.MongoClient] = []
    closed: list[mongomock.MongoClient] = []

    def client_factory(config: MongoConfig, kwargs: MutableMapping[str, Any]) -> mongomock.MongoClient:
        client = mongomock.MongoClient()
        client.close = lambda: closed.append(client)  # type: ignore[method-assign]
        created.append(client)
        return client

    def explode(database: Any, collection: Any) -> None:
        raise RuntimeError("boom")

    registry = MongoInitializerRegistry()
    provider = MongoClientProvider(
        MongoConfig.from_settings(Settings.from_mapping({"mongo.database": "app"})),
        registry=registry,
        client_factory=client_factory,
    )
    service = DatabaseMaintenanceService(provider.database)
    MigrationsInitializer(registry, [MigrationBuilder("failing", 1).migrate_collection("users", explode).build()], service)

    for _ in range(2):
        with pytest.raises(MigrationFailedError):
            provider.client()
    provider.close()

    assert len(created) == 2
    assert closed == created
