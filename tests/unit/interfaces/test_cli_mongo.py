from __future__ import annotations

import json
from pathlib import Path

import mongomock
import pytest
from typer.testing import CliRunner

from domain.settings import Settings
from infrastructure.mongodb import MigrationBuilder, MongoClientProvider, MongoConfig
from interfaces.cli.app import create_cli
from interfaces.cli.commands import mongo as mongo_commands

runner = CliRunner()

COLLECTIONS_YAML = """
collections:
  - name: users
    indexes:
      - name: email_unique
        keys: {email: 1}
        options: {unique: true}
    prepopulate:
      - {email: admin@example.com}
  - name: events
"""


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> mongomock.MongoClient:
    shared = mongomock.MongoClient()

    def build_provider(settings: Settings) -> MongoClientProvider:
        return MongoClientProvider(MongoConfig.from_settings(settings), client_factory=lambda config, kwargs: shared)

    monkeypatch.setattr(mongo_commands, "build_mongo_provider", build_provider)
    monkeypatch.setattr(
        mongo_commands,
        "build_settings",
        lambda namespace, files=(): Settings.from_mapping({"mongo.database": "cli"}),
    )
    return shared


def test_init_creates_collections_from_yaml(tmp_path: Path, client: mongomock.MongoClient) -> None:
    definition = tmp_path / "collections.yaml"
    definition.write_text(COLLECTIONS_YAML, encoding="utf-8")

    first = runner.invoke(create_cli(), ["mongo", "init", "--collections", str(definition)])
    second = runner.invoke(create_cli(), ["mongo", "init", "--collections", str(definition)])

    assert first.exit_code == 0
    assert first.stdout.splitlines() == [
        "users\tcreated\tindexes=email_unique\tinserted=1",
        "events\tcreated\tindexes=-\tinserted=0",
    ]
    assert second.stdout.splitlines()[0] == "users\texists\tindexes=-\tinserted=0"
    assert client["cli"]["users"].count_documents({}) == 1


def test_init_rejects_invalid_definitions(tmp_path: Path, client: mongomock.MongoClient) -> None:
    definition = tmp_path / "collections.yaml"
    definition.write_text("collections:\n  - indexes: []\n", encoding="utf-8")

    invalid = runner.invoke(create_cli(), ["mongo", "init", "--collections", str(definition)])
    missing = runner.invoke(create_cli(), ["mongo", "init", "--collections", str(tmp_path / "none.yaml")])

    assert invalid.exit_code == 2
    assert missing.exit_code == 2


def test_migrations_lists_records(client: mongomock.MongoClient) -> None:
    empty = runner.invoke(create_cli(), ["mongo", "migrations"])
    MigrationBuilder("add-flag", 3).migrate_collection("users", lambda database, collection: None).build().migrate(
        client["cli"]
    )

    listed = runner.invoke(create_cli(), ["mongo", "migrations"])
    as_json = runner.invoke(create_cli(), ["mongo", "migrations", "--json"])

    assert empty.stdout.strip() == "実行済みのマイグレーションはありません。"
    assert listed.exit_code == 0
    assert listed.stdout.startswith("add-flag\tv3\tsuccess\t")
    records = json.loads(as_json.stdout)
    assert records[0]["migration"] == "add-flag"
    assert records[0]["success"] is True


def test_migrations_reports_configuration_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(mongo_commands, "build_settings", lambda namespace, files=(): Settings.from_mapping({}))

    result = runner.invoke(create_cli(), ["mongo", "migrations"])

    assert result.exit_code == 1
