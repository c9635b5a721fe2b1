"""
ランタイム依存関係のビルダー。
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence, cast

from redis import Redis

from application.usecases.database import (
    CollectionsInitializer,
    DatabaseMaintenanceService,
    MigrationsInitializer,
)
from bootstrap import (
    BootstrapContainer,
    BuilderSettingsLoader,
    Dependencies,
    DependenciesBuilder,
    DictConfigLoggingConfigurator,
    MetricsConfiguratorRegistry,
    ShutdownHookRegistry,
)
from domain.settings import DEFAULT_NAMESPACE, Settings
from infrastructure.databases import PostgresConfig, PostgresConnectionProvider
from infrastructure.mongodb import (
    CollectionsInfo,
    Migration,
    MongoClientProvider,
    MongoConfig,
    MongoInitializerRegistry,
)
from infrastructure.settings import SettingsBuilder
from infrastructure.threads import ExecutorBuilder, WrappingThreadPoolExecutor

RESOURCE_PACKAGE = "runtime"


def build_settings_builder(
    namespace: str = DEFAULT_NAMESPACE,
    *,
    files: Sequence[Path] = (),
    args: Sequence[str] = (),
    redis_url: str | None = None,
    redis_key: str | None = None,
    resource_packages: Iterable[str] = (RESOURCE_PACKAGE,),
) -> SettingsBuilder:
    """
    既定の場所に加えて、指定ファイル、Redis ハッシュ、コマンドライン引数を積んだビルダーを返す。

    優先順位は 既定の場所 < ファイル < Redis < 引数 < 環境変数。
    """

    builder = SettingsBuilder(namespace, resource_packages=resource_packages)
    builder.add_system_properties().add_filesystem_and_classpath_locations()
    for path in files:
        builder.add_file(path)
    if redis_url:
        builder.add_redis_hash(_redis_client(redis_url), redis_key or f"settings:{namespace}")
    builder.parse_command_line_arguments(*args)
    return builder.add_env()


def build_settings(
    namespace: str = DEFAULT_NAMESPACE,
    *,
    files: Sequence[Path] = (),
    args: Sequence[str] = (),
    redis_url: str | None = None,
    redis_key: str | None = None,
) -> Settings:
    return build_settings_builder(
        namespace,
        files=files,
        args=args,
        redis_url=redis_url,
        redis_key=redis_key,
    ).build()


def build_dependencies(
    namespaces: Iterable[str] = (),
    *,
    locations: Iterable[Path] = (),
    shutdown_hooks: ShutdownHookRegistry | None = None,
) -> Dependencies:
    builder = DependenciesBuilder(resource_packages=(RESOURCE_PACKAGE,))
    for location in locations:
        builder.add_default_location(location)
    for namespace in namespaces:
        builder.add_namespace(namespace)
    builder.add_default_settings()
    if shutdown_hooks is not None:
        builder.with_shutdown_hooks(shutdown_hooks)
    return builder.build()


def build_bootstrap_container(
    namespace: str = DEFAULT_NAMESPACE,
    *,
    files: Sequence[Path] = (),
    args: Sequence[str] = (),
) -> BootstrapContainer:
    return BootstrapContainer(
        settings_loader_factory=lambda ns: BuilderSettingsLoader(
            ns, resource_packages=(RESOURCE_PACKAGE,), files=files, args=args
        ),
        logging_configurator=DictConfigLoggingConfigurator(),
        metrics_configurator=MetricsConfiguratorRegistry.default(),
        namespace=namespace,
    )


def build_mongo_provider(
    settings: Settings,
    *,
    registry: MongoInitializerRegistry | None = None,
    shutdown_hooks: ShutdownHookRegistry | None = None,
) -> MongoClientProvider:
    provider = MongoClientProvider(MongoConfig.from_settings(settings), registry=registry)
    if shutdown_hooks is not None:
        shutdown_hooks.add_last(provider)
    return provider


def build_database_service(provider: MongoClientProvider) -> DatabaseMaintenanceService:
    return DatabaseMaintenanceService(provider.database)


def install_database_initializers(
    provider: MongoClientProvider,
    *,
    collections: CollectionsInfo | None = None,
    migrations: Sequence[Migration] = (),
) -> tuple[CollectionsInitializer | None, MigrationsInitializer | None]:
    """
    クライアント生成時に実行するコレクション初期化とマイグレーションを登録する。
    """

    service = build_database_service(provider)
    collections_initializer = None
    migrations_initializer = None
    if collections is not None and len(collections):
        collections_initializer = CollectionsInitializer(provider.registry, collections, service)
    if migrations:
        migrations_initializer = MigrationsInitializer(provider.registry, migrations, service)
    return collections_initializer, migrations_initializer


def build_executor(
    name: str,
    settings: Settings,
    *,
    shutdown_hooks: ShutdownHookRegistry | None = None,
    propagate_context: bool = True,
) -> WrappingThreadPoolExecutor:
    builder = ExecutorBuilder(name, settings)
    if propagate_context:
        builder.propagating_context()
    return builder.build(shutdown_hooks)


def build_postgres_provider(
    settings: Settings,
    *,
    shutdown_hooks: ShutdownHookRegistry | None = None,
) -> PostgresConnectionProvider:
    provider = PostgresConnectionProvider(PostgresConfig.from_settings(settings))
    if shutdown_hooks is not None:
        shutdown_hooks.add_last(provider)
    return provider


def _redis_client(url: str) -> Redis:
    return cast(Redis, Redis.from_url(url))
