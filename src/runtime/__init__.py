"""
runtime パッケージ公開 API。
"""

from .dependencies import (
    build_bootstrap_container,
    build_database_service,
    build_dependencies,
    build_executor,
    build_mongo_provider,
    build_postgres_provider,
    build_settings,
    build_settings_builder,
    install_database_initializers,
)

__all__ = [
    "build_bootstrap_container",
    "build_database_service",
    "build_dependencies",
    "build_executor",
    "build_mongo_provider",
    "build_postgres_provider",
    "build_settings",
    "build_settings_builder",
    "install_database_initializers",
]
