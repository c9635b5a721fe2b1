"""
PostgreSQL 接続ユーティリティ。

接続先とプール設定は ``pg-`` で始まる設定キーから読み込む。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, ContextManager

from psycopg import sql
from psycopg_pool import ConnectionPool

from domain.settings import MissingSettingError, Settings

logger = logging.getLogger("layered_settings_core.databases.postgres")

SETTINGS_KEY_PG_URI = "pg-db"
SETTINGS_KEY_MIN_POOL_SIZE = "pg-pool-min-size"
SETTINGS_KEY_MAX_POOL_SIZE = "pg-max-pool-size"
SETTINGS_KEY_CONNECT_TIMEOUT = "pg-connect-timeout"
SETTINGS_KEY_STATEMENT_TIMEOUT = "pg-statement-timeout-millis"
SETTINGS_KEY_SEARCH_PATH = "pg-search-path"
SETTINGS_KEY_POOL_NAME = "pg-pool-name"
SETTINGS_KEY_POOL_CONNECTION_IDLE_TIMEOUT_SECONDS = "pg-pool-connection-idle-timeout-seconds"

DEFAULT_MIN_POOL_SIZE = 1
DEFAULT_MAX_POOL_SIZE = 12
DEFAULT_CONNECT_TIMEOUT_MILLIS = 30000
DEFAULT_STATEMENT_TIMEOUT_MILLIS = 30000
DEFAULT_POOL_NAME = "pg"
DEFAULT_IDLE_TIMEOUT_SECONDS = 600


class DatabaseOperationError(RuntimeError):
    """データベース操作が失敗した際に送出される例外。"""


@dataclass(frozen=True)
class PostgresPoolConfig:
    """
    コネクションプール設定。
    """

    name: str
    min_size: int
    max_size: int
    timeout_seconds: float
    max_idle_seconds: float

    @staticmethod
    def from_settings(settings: Settings) -> "PostgresPoolConfig":
        min_size = _int_setting(settings, SETTINGS_KEY_MIN_POOL_SIZE, DEFAULT_MIN_POOL_SIZE)
        max_size = _int_setting(settings, SETTINGS_KEY_MAX_POOL_SIZE, DEFAULT_MAX_POOL_SIZE)
        connect_timeout_ms = _int_setting(settings, SETTINGS_KEY_CONNECT_TIMEOUT, DEFAULT_CONNECT_TIMEOUT_MILLIS)
        idle_seconds = _int_setting(
            settings, SETTINGS_KEY_POOL_CONNECTION_IDLE_TIMEOUT_SECONDS, DEFAULT_IDLE_TIMEOUT_SECONDS
        )

        if min_size < 0:
            raise ValueError(f"{SETTINGS_KEY_MIN_POOL_SIZE} は 0 以上である必要があります: {min_size}")
        if max_size <= 0:
            raise ValueError(f"{SETTINGS_KEY_MAX_POOL_SIZE} は正の値である必要があります: {max_size}")
        if min_size > max_size:
            raise ValueError(f"{SETTINGS_KEY_MIN_POOL_SIZE} は {SETTINGS_KEY_MAX_POOL_SIZE} 以下である必要があります。")
        if connect_timeout_ms <= 0:
            raise ValueError(f"{SETTINGS_KEY_CONNECT_TIMEOUT} は正の値である必要があります: {connect_timeout_ms}")
        if idle_seconds <= 0:
            raise ValueError(
                f"{SETTINGS_KEY_POOL_CONNECTION_IDLE_TIMEOUT_SECONDS} は正の値である必要があります: {idle_seconds}"
            )

        return PostgresPoolConfig(
            name=settings.get_string(SETTINGS_KEY_POOL_NAME, DEFAULT_POOL_NAME) or DEFAULT_POOL_NAME,
            min_size=min_size,
            max_size=max_size,
            timeout_seconds=connect_timeout_ms / 1000,
            max_idle_seconds=float(idle_seconds),
        )


@dataclass(frozen=True)
class PostgresConfig:
    """
    PostgreSQL 接続設定。
    """

    dsn: str
    pool: PostgresPoolConfig
    statement_timeout_ms: int
    search_path: tuple[str, ...]

    @staticmethod
    def from_settings(settings: Settings) -> "PostgresConfig":
        """
        Raises:
            ValueError: ``pg-db`` が未設定、または数値設定が範囲外の場合。
        """

        try:
            dsn = settings.require_string(SETTINGS_KEY_PG_URI)
        except MissingSettingError as exc:
            raise ValueError(f"{SETTINGS_KEY_PG_URI} は必須です。") from exc
        if not dsn.strip():
            raise ValueError(f"{SETTINGS_KEY_PG_URI} は必須です。")

        statement_timeout_ms = _int_setting(settings, SETTINGS_KEY_STATEMENT_TIMEOUT, DEFAULT_STATEMENT_TIMEOUT_MILLIS)
        if statement_timeout_ms < 0:
            raise ValueError(
                f"{SETTINGS_KEY_STATEMENT_TIMEOUT} は 0 以上である必要があります: {statement_timeout_ms}"
            )

        search_path = tuple(settings.get_string_list(SETTINGS_KEY_SEARCH_PATH, ["public"]) or ())
        if not search_path:
            raise ValueError(f"{SETTINGS_KEY_SEARCH_PATH} は少なくとも1つのスキーマを指定する必要があります。")

        return PostgresConfig(
            dsn=dsn.strip(),
            pool=PostgresPoolConfig.from_settings(settings),
            statement_timeout_ms=statement_timeout_ms,
            search_path=search_path,
        )


class PostgresConnectionProvider:
    """
    psycopg の ConnectionPool をラップした接続プロバイダ。
    """

    def __init__(
        self,
        config: PostgresConfig,
        *,
        pool_factory: Callable[[PostgresConfig], ConnectionPool] | None = None,
    ) -> None:
        self._config = config
        self._pool_factory = pool_factory or _default_pool_factory
        self._pool = self._pool_factory(config)

    @property
    def config(self) -> PostgresConfig:
        return self._config

    def connection(self) -> ContextManager[Any]:
        """
        コネクションプールから接続を取得するコンテキストマネージャを返す。
        """

        return self._pool.connection()

    def close(self) -> None:
        self._pool.close()
        logger.info("postgres pool %s closed", self._config.pool.name)


def _default_pool_factory(config: PostgresConfig) -> ConnectionPool:
    def _configure(conn: Any) -> None:
        if config.search_path:
            search_sql = sql.SQL(", ").join(sql.Identifier(part) for part in config.search_path)
            conn.execute(sql.SQL("SET search_path TO {}").format(search_sql))
        if config.statement_timeout_ms:
            conn.execute("SET statement_timeout TO %s", (f"{config.statement_timeout_ms}ms",))
        conn.commit()

    return ConnectionPool(
        conninfo=config.dsn,
        min_size=config.pool.min_size,
        max_size=config.pool.max_size,
        timeout=config.pool.timeout_seconds,
        max_idle=config.pool.max_idle_seconds,
        name=config.pool.name,
        configure=_configure,
        open=True,
    )


def _int_setting(settings: Settings, key: str, default: int) -> int:
    value = settings.get_int(key, default)
    return default if value is None else value
