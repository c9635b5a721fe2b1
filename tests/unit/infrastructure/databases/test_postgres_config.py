from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from domain.settings import Settings
from infrastructure.databases import PostgresConfig, PostgresConnectionProvider, PostgresPoolConfig


def test_postgres_config_defaults() -> None:
    config = PostgresConfig.from_settings(Settings.from_mapping({"pg-db": " postgresql://localhost/app "}))

    assert config.dsn == "postgresql://localhost/app"
    assert config.statement_timeout_ms == 30000
    assert config.search_path == ("public",)
    assert config.pool == PostgresPoolConfig(
        name="pg",
        min_size=1,
        max_size=12,
        timeout_seconds=30.0,
        max_idle_seconds=600.0,
    )


def test_postgres_config_reads_overrides() -> None:
    settings = Settings.from_mapping(
        {
            "pg-db": "postgresql://db/app",
            "pg-pool-min-size": "0",
            "pg-max-pool-size": "4",
            "pg-connect-timeout": "1500",
            "pg-statement-timeout-millis": "0",
            "pg-search-path": "app, public",
            "pg-pool-name": "reporting",
            "pg-pool-connection-idle-timeout-seconds": "30",
        }
    )

    config = PostgresConfig.from_settings(settings)

    assert config.search_path == ("app", "public")
    assert config.statement_timeout_ms == 0
    assert config.pool.name == "reporting"
    assert config.pool.min_size == 0
    assert config.pool.max_size == 4
    assert config.pool.timeout_seconds == 1.5
    assert config.pool.max_idle_seconds == 30.0


@pytest.mark.parametrize(
    "values",
    [
        {},
        {"pg-db": "  "},
        {"pg-db": "x", "pg-statement-timeout-millis": "-1"},
        {"pg-db": "x", "pg-pool-min-size": "-1"},
        {"pg-db": "x", "pg-max-pool-size": "0"},
        {"pg-db": "x", "pg-pool-min-size": "5", "pg-max-pool-size": "2"},
        {"pg-db": "x", "pg-connect-timeout": "0"},
        {"pg-db": "x", "pg-pool-connection-idle-timeout-seconds": "0"},
        {"pg-db": "x", "pg-max-pool-size": "many"},
        {"pg-db": "x", "pg-statement-timeout-millis": "soon"},
    ],
)
def test_postgres_config_rejects_invalid_values(values: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        PostgresConfig.from_settings(Settings.from_mapping(values))


def test_provider_delegates_to_pool() -> None:
    pool = MagicMock()
    config = PostgresConfig.from_settings(Settings.from_mapping({"pg-db": "postgresql://db/app"}))
    seen: list[PostgresConfig] = []

    def pool_factory(received: PostgresConfig) -> MagicMock:
        seen.append(received)
        return pool

    provider = PostgresConnectionProvider(config, pool_factory=pool_factory)

    with provider.connection():
        pass
    provider.close()

    assert seen == [config]
    pool.connection.assert_called_once_with()
    pool.close.assert_called_once_with()
