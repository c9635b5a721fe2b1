"""
インフラ層のパッケージ初期化。
"""

from .databases import DatabaseOperationError, PostgresConfig, PostgresConnectionProvider, PostgresPoolConfig
from .metrics import MetricsRecorder, PrometheusMetricsRegistry
from .mongodb import (
    CollectionsInfo,
    Migration,
    MigrationBuilder,
    MigrationFailedError,
    MongoClientProvider,
    MongoConfig,
    MongoInitializer,
    MongoInitializerRegistry,
)
from .settings import SettingsBuilder, ShortcutsBuilder, system_properties
from .threads import ExecutorBuilder, WrappingThreadPoolExecutor

__all__ = [
    "CollectionsInfo",
    "DatabaseOperationError",
    "ExecutorBuilder",
    "MetricsRecorder",
    "Migration",
    "MigrationBuilder",
    "MigrationFailedError",
    "MongoClientProvider",
    "MongoConfig",
    "MongoInitializer",
    "MongoInitializerRegistry",
    "PostgresConfig",
    "PostgresConnectionProvider",
    "PostgresPoolConfig",
    "PrometheusMetricsRegistry",
    "SettingsBuilder",
    "ShortcutsBuilder",
    "WrappingThreadPoolExecutor",
    "system_properties",
]
