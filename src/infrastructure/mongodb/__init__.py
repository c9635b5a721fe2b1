"""
MongoDB 関連の公開API。
"""

from .client import MongoClientProvider, MongoInitializer, MongoInitializerRegistry
from .collection_init import (
    CollectionInitializationError,
    CollectionsInfo,
    CollectionsInfoBuilder,
    IndexInfo,
    OneCollectionInfo,
)
from .config import MongoConfig
from .known_collections import KnownCollections
from .migration import (
    MIGRATIONS_COLLECTION,
    Migration,
    MigrationBuilder,
    MigrationError,
    MigrationFailedError,
    MigrationWorker,
)

__all__ = [
    "MIGRATIONS_COLLECTION",
    "CollectionInitializationError",
    "CollectionsInfo",
    "CollectionsInfoBuilder",
    "IndexInfo",
    "KnownCollections",
    "Migration",
    "MigrationBuilder",
    "MigrationError",
    "MigrationFailedError",
    "MigrationWorker",
    "MongoClientProvider",
    "MongoConfig",
    "MongoInitializer",
    "MongoInitializerRegistry",
    "OneCollectionInfo",
]
