"""
MongoDB 接続設定。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from domain.settings import ConfigurationError, Settings

MONGO_HOST = "mongoHost"
MONGO_PORT = "mongoPort"
DATABASE_NAME = "mongo.database"
LEGACY_DATABASE_NAME = "_dbName"
MONGO_USER = "mongo.user"
MONGO_PASSWORD = "mongo.password"
MAX_CONNECTIONS = "mongo.max.connections"
POOL_MIN_SIZE = "mongo.connection.pool.size.min"
POOL_MAX_SIZE = "mongo.connection.pool.size.max"
MAX_WAIT_MILLIS = "mongo.max.wait.millis"
POOL_MAX_IDLE_TIME_MILLIS = "mongo.connection.pool.max.idle.time.millis"
MONGO_SSL = "mongo.ssl"
MONGO_SSL_INVALID_HOSTNAMES_ALLOWED = "mongo.ssl.allow.invalid.hostnames"
WRITE_CONCERN = "mongo.write.concern"
READ_PREFERENCE = "mongo.readPreference"

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 27017
DEFAULT_MAX_CONNECTIONS = 1500
DEFAULT_MAX_WAIT_MILLIS = 20000

_WRITE_CONCERNS: dict[str, dict[str, Any]] = {
    "ACKNOWLEDGED": {"w": 1},
    "W1": {"w": 1},
    "W2": {"w": 2},
    "W3": {"w": 3},
    "UNACKNOWLEDGED": {"w": 0},
    "JOURNALED": {"w": 1, "journal": True},
    "MAJORITY": {"w": "majority"},
}
_READ_PREFERENCES = {
    "primary": "primary",
    "primarypreferred": "primaryPreferred",
    "secondary": "secondary",
    "secondarypreferred": "secondaryPreferred",
    "nearest": "nearest",
}


@dataclass(frozen=True)
class MongoConfig:
    """
    Settings から組み立てた MongoDB クライアント設定。
    """

    host: str
    port: int
    database: str
    user: str | None
    password: str | None
    max_pool_size: int
    min_pool_size: int
    max_wait_millis: int
    max_idle_time_millis: int | None
    ssl: bool
    ssl_allow_invalid_hostnames: bool
    write_concern: str
    read_preference: str

    @staticmethod
    def from_settings(settings: Settings) -> "MongoConfig":
        """
        Settings から設定を読み込む。

        Raises:
            ValueError: ポート番号やプールサイズが不正、またはデータベース名がない場合。
            ConfigurationError: ユーザーとパスワードの片方のみが指定された場合。
        """

        database = settings.get_string(DATABASE_NAME) or settings.get_string(LEGACY_DATABASE_NAME)
        if not database:
            raise ValueError(f"{DATABASE_NAME} が設定されていません。")

        port = settings.get_int(MONGO_PORT, DEFAULT_PORT)
        if port is None or not 0 < port < 65536:
            raise ValueError(f"{MONGO_PORT} が不正です: {port}")

        max_pool_size = settings.get_int(POOL_MAX_SIZE, lambda: settings.get_int(MAX_CONNECTIONS, DEFAULT_MAX_CONNECTIONS))
        min_pool_size = settings.get_int(POOL_MIN_SIZE, 0)
        if max_pool_size is None or max_pool_size <= 0:
            raise ValueError(f"{POOL_MAX_SIZE} は正の値である必要があります。")
        if min_pool_size is None or min_pool_size < 0 or min_pool_size > max_pool_size:
            raise ValueError(f"{POOL_MIN_SIZE} は 0 以上 {POOL_MAX_SIZE} 以下である必要があります。")

        max_wait_millis = settings.get_int(MAX_WAIT_MILLIS, DEFAULT_MAX_WAIT_MILLIS)
        if max_wait_millis is None or max_wait_millis < 0:
            raise ValueError(f"{MAX_WAIT_MILLIS} は 0 以上である必要があります。")

        user = settings.get_string(MONGO_USER)
        password = settings.get_string(MONGO_PASSWORD)
        if (user is None) != (password is None):
            raise ConfigurationError(
                f"Either both {MONGO_USER} and {MONGO_PASSWORD} must be set, or neither may be."
            )

        write_concern = (settings.get_string(WRITE_CONCERN) or "ACKNOWLEDGED").upper()
        if write_concern not in _WRITE_CONCERNS:
            raise ValueError(f"{WRITE_CONCERN} が不正です: {write_concern}")

        read_preference_raw = settings.get_string(READ_PREFERENCE, "primary") or "primary"
        read_preference = _READ_PREFERENCES.get(read_preference_raw.lower())
        if read_preference is None:
            raise ValueError(f"{READ_PREFERENCE} が不正です: {read_preference_raw}")

        return MongoConfig(
            host=settings.get_string(MONGO_HOST, DEFAULT_HOST) or DEFAULT_HOST,
            port=port,
            database=database,
            user=user,
            password=password,
            max_pool_size=max_pool_size,
            min_pool_size=min_pool_size,
            max_wait_millis=max_wait_millis,
            max_idle_time_millis=settings.get_int(POOL_MAX_IDLE_TIME_MILLIS),
            ssl=bool(settings.get_bool(MONGO_SSL, False)),
            ssl_allow_invalid_hostnames=bool(settings.get_bool(MONGO_SSL_INVALID_HOSTNAMES_ALLOWED, True)),
            write_concern=write_concern,
            read_preference=read_preference,
        )

    def to_client_kwargs(self) -> dict[str, Any]:
        """pymongo.MongoClient に渡すキーワード引数へ変換する。"""

        kwargs: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "directConnection": True,
            "maxPoolSize": self.max_pool_size,
            "minPoolSize": self.min_pool_size,
            "waitQueueTimeoutMS": self.max_wait_millis,
            "readPreference": self.read_preference,
        }
        kwargs.update(_WRITE_CONCERNS[self.write_concern])
        if self.max_idle_time_millis is not None:
            kwargs["maxIdleTimeMS"] = self.max_idle_time_millis
        if self.ssl:
            kwargs["tls"] = True
            kwargs["tlsAllowInvalidHostnames"] = self.ssl_allow_invalid_hostnames
        if self.user is not None:
            kwargs["username"] = self.user
            kwargs["password"] = self.password
            kwargs["authSource"] = self.database
        return kwargs
