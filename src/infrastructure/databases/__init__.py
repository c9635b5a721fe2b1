"""
データベース接続ユーティリティ。
"""

from .postgres import (
    DatabaseOperationError,
    PostgresConfig,
    PostgresConnectionProvider,
    PostgresPoolConfig,
)

__all__ = [
    "DatabaseOperationError",
    "PostgresConfig",
    "PostgresConnectionProvider",
    "PostgresPoolConfig",
]

