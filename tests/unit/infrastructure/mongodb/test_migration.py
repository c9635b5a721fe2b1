from __future__ import annotations

from typing import Any

import mongomock
import pytest
from pymongo.errors import OperationFailure

from infrastructure.mongodb import MIGRATIONS_COLLECTION, Migration, MigrationBuilder, MigrationFailedError


def seeded_database(count: int = 3) -> Any:
    database = mongomock.MongoClient()["app"]
    database["users"].insert_many([{"_id": number, "name": f"user-{number}", "active": True} for number in range(count)])
    return database


def rename_users(database: Any, collection: Any) -> dict[str, Any]:
    result = collection.update_many({}, {"$rename": {"name": "displayName"}})
    return {"modified": result.modified_count}


def test_migration_backs_up_runs_workers_and_records_success() -> None:
    database = seeded_database()
    migration = MigrationBuilder("rename-users", 2).backup("users", {}).migrate_collection("users", rename_users).build()

    record = migration.migrate(database)

    assert record["success"] is True
    assert record["users_backup_0"]["docsSeen"] == 3
    assert record["users_backup_0"]["docsBackedUp"] == 3
    assert record["users_backup_0"]["backedUpTo"] == "users_migrated_to_v_2"
    assert record["users_migrate_1"] == {"modified": 3}
    assert database["users_migrated_to_v_2"].count_documents({"name": {"$exists": True}}) == 3
    assert database["users"].count_documents({"displayName": {"$exists": True}}) == 3
    assert database[MIGRATIONS_COLLECTION].count_documents({"migration": "rename-users", "success": True}) == 1


def test_completed_migration_is_not_run_again() -> None:
    database = seeded_database()
    calls: list[str] = []

    def worker(database: Any, collection: Any) -> None:
        calls.append(collection.name)

    migration = MigrationBuilder("once", 1).migrate_collection("users", worker).build()

    migration.migrate(database)
    again = migration.migrate(database)

    assert calls == ["users"]
    assert again["alreadyRun"] is True
    assert database[MIGRATIONS_COLLECTION].count_documents({}) == 1


def test_failed_migration_rolls_back_and_records_failure() -> None:
    database = seeded_database(120)

    def break_then_fail(database: Any, collection: Any) -> None:
        collection.update_many({}, {"$set": {"active": False}})
        raise RuntimeError("worker exploded")

    migration = (
        MigrationBuilder("deactivate", 3)
        .backup("users", {"active": True})
        .migrate_collection("users", break_then_fail)
        .build()
    )

    with pytest.raises(MigrationFailedError) as excinfo:
        migration.migrate(database)

    record = excinfo.value.record
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert record["success"] is False
    assert record["thrown"]["thrown"] == "builtins.RuntimeError"
    assert record["thrown"]["message"] == "worker exploded"
    assert record["rollback"]["users"] == {
        "batch-1": 50,
        "batch-1-succeeded": 50,
        "batch-2": 50,
        "batch-2-succeeded": 50,
        "batch-3": 20,
        "batch-3-succeeded": 20,
    }
    assert database["users"].count_documents({"active": True}) == 120
    assert database[MIGRATIONS_COLLECTION].count_documents({"migration": "deactivate", "success": False}) == 1


def test_failed_migration_can_be_retried() -> None:
    database = seeded_database()
    attempts: list[int] = []

    def flaky(database: Any, collection: Any) -> dict[str, Any]:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("first attempt fails")
        return {"attempt": len(attempts)}

    migration = MigrationBuilder("flaky", 1).backup("users", {}).migrate_collection("users", flaky).build()

    with pytest.raises(MigrationFailedError):
        migration.migrate(database)
    record = migration.migrate(database)

    assert record["success"] is True
    assert record["users_backup_0"]["docsBackedUp"] == 3
    assert database["users_migrated_to_v_1"].count_documents({}) == 3


def test_builder_combines_backup_queries_and_uses_consumer() -> None:
    built: list[Migration] = []

    result = (
        MigrationBuilder("combined", 4, consumer=lambda migration: built.append(migration) or "registered")
        .backup("users", {"a": 1})
        .backup("users", {"b": 2})
        .backup("events", {})
        .no_backup("events")
        .build()
    )

    assert result == "registered"
    assert built[0].backup_queries == {"users": {"$or": [{"a": 1}, {"b": 2}]}}
    assert built[0].is_empty() is True
    with pytest.raises(ValueError):
        MigrationBuilder("", 1)


def test_failure_during_backup_rolls_back_and_skips_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    database = seeded_database(60)
    calls: list[str] = []
    original_bulk_write = mongomock.Collection.bulk_write
    backup_batches: list[int] = []

    def failing_bulk_write(self: Any, requests: Any, *args: Any, **kwargs: Any) -> Any:
        if self.name == "users_migrated_to_v_2":
            backup_batches.append(len(requests))
            if len(backup_batches) == 2:
                raise OperationFailure("backup write rejected")
        return original_bulk_write(self, requests, *args, **kwargs)

    monkeypatch.setattr(mongomock.Collection, "bulk_write", failing_bulk_write)
    migration = (
        MigrationBuilder("backup-fails", 2)
        .backup("users", {})
        .migrate_collection("users", lambda database, collection: calls.append("worker"))
        .build()
    )

    with pytest.raises(MigrationFailedError) as excinfo:
        migration.migrate(database)

    record = excinfo.value.record
    assert calls == []
    assert isinstance(excinfo.value.__cause__, OperationFailure)
    assert record["success"] is False
    assert "users_backup_0" not in record
    assert record["rollback"]["users"] == {"batch-1": 50, "batch-1-succeeded": 50}
    assert database["users"].count_documents({}) == 60
    assert database[MIGRATIONS_COLLECTION].count_documents({"migration": "backup-fails", "success": False}) == 1


def test_failure_record_error_is_attached_to_the_original_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    database = seeded_database()
    original_insert_one = mongomock.Collection.insert_one

    def failing_insert_one(self: Any, document: Any, *args: Any, **kwargs: Any) -> Any:
        if self.name == MIGRATIONS_COLLECTION:
            raise OperationFailure("migrations is read-only")
        return original_insert_one(self, document, *args, **kwargs)

    def break_then_fail(database: Any, collection: Any) -> None:
        collection.update_many({}, {"$set": {"active": False}})
        raise RuntimeError("worker exploded")

    monkeypatch.setattr(mongomock.Collection, "insert_one", failing_insert_one)
    migration = MigrationBuilder("unrecorded", 1).backup("users", {}).migrate_collection("users", break_then_fail).build()

    with pytest.raises(MigrationFailedError) as excinfo:
        migration.migrate(database)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert str(excinfo.value.__cause__) == "worker exploded"
    assert any("migrations is read-only" in note for note in excinfo.value.__notes__)
    assert excinfo.value.record["success"] is False
    assert database["users"].count_documents({"active": True}) == 3
    assert database[MIGRATIONS_COLLECTION].count_documents({}) == 0
