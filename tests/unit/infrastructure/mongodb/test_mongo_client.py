from __future__ import annotations

from typing import Any, MutableMapping
from unittest.mock import MagicMock

import mongomock
import pytest

from domain.registry import RegistryFrozenError
from domain.settings import Settings
from infrastructure.mongodb import KnownCollections, MongoClientProvider, MongoConfig, MongoInitializer, MongoInitializerRegistry


class RecordingInitializer(MongoInitializer):
    def __init__(self, registry: MongoInitializerRegistry, name: str, order: int, events: list[str]) -> None:
        self.name = name
        self.order = order
        self._events = events
        super().__init__(registry)

    def on_before_create_client(self, kwargs: MutableMapping[str, Any]) -> None:
        self._events.append(f"before:{self.name}")
        kwargs["appname"] = self.name

    def on_after_create_client(self, client: Any, database: Any) -> None:
        self._events.append(f"after:{self.name}:{database.name}")


def make_config() -> MongoConfig:
    return MongoConfig.from_settings(Settings.from_mapping({"mongo.database": "app"}))


def test_client_is_created_once_and_initializers_run_in_order() -> None:
    events: list[str] = []
    seen_kwargs: list[dict[str, Any]] = []
    registry = MongoInitializerRegistry()
    RecordingInitializer(registry, "late", 5, events)
    RecordingInitializer(registry, "early", -5, events)

    def client_factory(config: MongoConfig, kwargs: MutableMapping[str, Any]) -> mongomock.MongoClient:
        seen_kwargs.append(dict(kwargs))
        return mongomock.MongoClient()

    provider = MongoClientProvider(make_config(), registry=registry, client_factory=client_factory)

    first = provider.client()
    second = provider.client()

    assert first is second
    assert events == ["before:early", "before:late", "after:early:app", "after:late:app"]
    assert seen_kwargs[0]["appname"] == "late"
    assert provider.database().name == "app"
    with pytest.raises(RegistryFrozenError):
        RecordingInitializer(registry, "too-late", 0, events)


def test_close_discards_client() -> None:
    clients: list[mongomock.MongoClient] = []

    def client_factory(config: MongoConfig, kwargs: MutableMapping[str, Any]) -> mongomock.MongoClient:
        client = mongomock.MongoClient()
        clients.append(client)
        return client

    provider = MongoClientProvider(make_config(), client_factory=client_factory)
    provider.client()
    provider.close()
    provider.close()
    provider.client()

    assert len(clients) == 2


class FailingInitializer(MongoInitializer):
    def on_after_create_client(self, client: Any, database: Any) -> None:
        raise RuntimeError("initializer exploded")


def test_client_is_closed_when_an_initializer_fails() -> None:
    clients: list[MagicMock] = []

    def client_factory(config: MongoConfig, kwargs: MutableMapping[str, Any]) -> MagicMock:
        client = MagicMock()
        clients.append(client)
        return client

    registry = MongoInitializerRegistry()
    FailingInitializer(registry)
    provider = MongoClientProvider(make_config(), registry=registry, client_factory=client_factory)

    for _ in range(2):
        with pytest.raises(RuntimeError, match="initializer exploded"):
            provider.client()
    provider.close()

    assert len(clients) == 2
    assert [client.close.call_count for client in clients] == [1, 1]


def test_known_collections_bind_and_resolve() -> None:
    known = KnownCollections().bind_collection("users").bind_collection("audit", "audit_log_v2")
    database = mongomock.MongoClient()["app"]

    assert known.collection_name("audit") == "audit_log_v2"
    assert known.collection(database, "users").name == "users"
    assert "users" in known
    assert known.bindings() == {"users": "users", "audit": "audit_log_v2"}
    known.bind_collection("users", "users")
    with pytest.raises(ValueError):
        known.bind_collection("users", "people")
    with pytest.raises(KeyError):
        known.collection_name("missing")
