from __future__ import annotations

from typing import Any

import mongomock
import pytest
from bson import ObjectId

from infrastructure.mongodb import CollectionsInfo, CollectionsInfoBuilder, IndexInfo, OneCollectionInfo

ADMIN_ID = "5f1d7f3e9b1e8a3c4d5e6f70"


def make_collections() -> CollectionsInfo:
    return (
        CollectionsInfoBuilder()
        .add("users")
        .index("email_unique").put("email").unique().build()
        .index("created_ttl").put("created").expire_after(3600).build()
        .insert_when_created({"_id": ADMIN_ID, "email": "admin@example.com"})
        .build()
        .add("events")
        .build()
        .build()
    )


def test_init_creates_collections_indexes_and_prepopulates_once() -> None:
    database = mongomock.MongoClient()["app"]
    created: list[str] = []
    collections = make_collections()

    first = collections.init(database, on_create=lambda name, collection: created.append(name))
    second = collections.init(database, on_create=lambda name, collection: created.append(name))

    assert first[0] == {
        "collection": "users",
        "created": True,
        "indexesCreated": ["email_unique", "created_ttl"],
        "documentsInserted": 1,
    }
    assert second[0] == {"collection": "users", "created": False, "indexesCreated": [], "documentsInserted": 0}
    assert created == ["users", "events"]
    assert database["users"].count_documents({}) == 1
    assert database["users"].find_one({"_id": ObjectId(ADMIN_ID)}) is not None
    assert {index["name"] for index in database["users"].list_indexes()} >= {"email_unique", "created_ttl"}


def test_existing_collection_gets_missing_indexes_but_no_documents() -> None:
    database = mongomock.MongoClient()["app"]
    database.create_collection("users")

    summaries = make_collections().init(database)

    assert summaries[0]["created"] is False
    assert summaries[0]["indexesCreated"] == ["email_unique", "created_ttl"]
    assert database["users"].count_documents({}) == 0


def test_from_mapping_validates_schema() -> None:
    document: dict[str, Any] = {
        "collections": [
            {
                "name": "users",
                "indexes": [{"name": "email", "keys": {"email": 1}, "options": {"unique": True}}],
                "prepopulate": [{"email": "a@example.com"}],
            },
            {"name": "users", "options": {"capped": True, "size": 1024}},
        ]
    }

    info = CollectionsInfo.from_mapping(document)

    assert info.names() == ["users"]
    assert info.get("users") is not None
    assert info.get("users").options == {"capped": True, "size": 1024}
    with pytest.raises(ValueError) as excinfo:
        CollectionsInfo.from_mapping({"collections": [{"name": "x", "indexes": [{"name": "i"}]}]})
    assert "collections/0/indexes/0" in str(excinfo.value)
    with pytest.raises(ValueError):
        CollectionsInfo.from_mapping({"tables": []})


def test_collection_info_identity_and_validation() -> None:
    assert OneCollectionInfo("users") == OneCollectionInfo("users", options={"capped": True, "size": 1})
    assert len({OneCollectionInfo("users"), OneCollectionInfo("users")}) == 1
    with pytest.raises(ValueError):
        OneCollectionInfo("")
    with pytest.raises(ValueError):
        OneCollectionInfo(
            "users",
            indexes=(IndexInfo("dup", (("a", 1),)), IndexInfo("dup", (("b", 1),))),
        )
    with pytest.raises(ValueError):
        IndexInfo("empty", ())
