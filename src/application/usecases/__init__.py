"""
ユースケース層の公開API。
"""

from .database import (
    COLLECTIONS_INITIALIZER_ORDER,
    MIGRATIONS_INITIALIZER_ORDER,
    CollectionInitResult,
    CollectionsInitializer,
    DatabaseMaintenanceService,
    MigrationRunResult,
    MigrationsInitializer,
)

__all__ = [
    "COLLECTIONS_INITIALIZER_ORDER",
    "MIGRATIONS_INITIALIZER_ORDER",
    "CollectionInitResult",
    "CollectionsInitializer",
    "DatabaseMaintenanceService",
    "MigrationRunResult",
    "MigrationsInitializer",
]
