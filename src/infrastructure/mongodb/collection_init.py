"""
宣言的なコレクション定義と、その作成・インデックス付与・初期データ投入。
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence, cast

from bson import ObjectId
from jsonschema import Draft202012Validator, ValidationError
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import CollectionInvalid, OperationFailure, PyMongoError

logger = logging.getLogger("layered_settings_core.mongodb.collections")

OnCreate = Callable[[str, Collection], None]

_NAMESPACE_EXISTS = 48

COLLECTIONS_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "required": ["collections"],
    "properties": {
        "collections": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "additionalProperties": False,
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "options": {"type": "object"},
                    "indexes": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["name", "keys"],
                            "additionalProperties": False,
                            "properties": {
                                "name": {"type": "string", "minLength": 1},
                                "keys": {"type": "object", "minProperties": 1},
                                "options": {"type": "object"},
                            },
                        },
                    },
                    "prepopulate": {"type": "array", "items": {"type": "object"}},
                },
            },
        }
    },
}


class CollectionInitializationError(RuntimeError):
    """コレクションの作成やインデックス付与に失敗した場合の例外。"""


@dataclass(frozen=True)
class IndexInfo:
    """
    インデックス定義。

    Attributes:
        name: インデックス名。既存インデックスとの突き合わせに使う。
        keys: フィールド名と方向（1, -1, "text" など）の順序付き対応。
        options: ``unique`` や ``expireAfterSeconds`` などの追加オプション。
    """

    name: str
    keys: tuple[tuple[str, Any], ...]
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("インデックス名は必須です。")
        if not self.keys:
            raise ValueError(f"インデックス '{self.name}' のキーが空です。")

    @staticmethod
    def from_mapping(mapping: Mapping[str, Any]) -> "IndexInfo":
        keys = cast(Mapping[str, Any], mapping["keys"])
        return IndexInfo(
            name=str(mapping["name"]),
            keys=tuple(keys.items()),
            options=dict(cast(Mapping[str, Any], mapping.get("options", {}))),
        )

    def create(self, collection: Collection) -> str:
        options = dict(self.options)
        options["name"] = self.name
        return collection.create_index(list(self.keys), **options)


@dataclass(frozen=True)
class OneCollectionInfo:
    """1 つのコレクションの定義。名前で同一性を判定する。"""

    name: str
    options: Mapping[str, Any] = field(default_factory=dict)
    indexes: tuple[IndexInfo, ...] = ()
    prepopulate: tuple[Mapping[str, Any], ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("コレクション名は必須です。")
        names = [index.name for index in self.indexes]
        if len(names) != len(set(names)):
            raise ValueError(f"コレクション '{self.name}' に同名のインデックスが定義されています。")

    def __hash__(self) -> int:
        return hash(self.name)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, OneCollectionInfo) and other.name == self.name

    @staticmethod
    def from_mapping(mapping: Mapping[str, Any]) -> "OneCollectionInfo":
        indexes = cast(Sequence[Mapping[str, Any]], mapping.get("indexes", ()))
        documents = cast(Sequence[Mapping[str, Any]], mapping.get("prepopulate", ()))
        return OneCollectionInfo(
            name=str(mapping["name"]),
            options=dict(cast(Mapping[str, Any], mapping.get("options", {}))),
            indexes=tuple(IndexInfo.from_mapping(index) for index in indexes),
            prepopulate=tuple(dict(document) for document in documents),
        )

    def init(self, database: Database, existing_names: Iterable[str], on_create: OnCreate | None = None) -> dict[str, Any]:
        """
        コレクションを初期化し、実施内容の要約を返す。

        存在しないコレクションは作成し、未作成のインデックスを付与する。初期データは
        このメソッドがコレクションを新規作成した場合のみ投入する。

        Raises:
            CollectionInitializationError: MongoDB の操作に失敗した場合。
        """

        try:
            created = False
            if self.name not in set(existing_names):
                created = self._create(database)
            collection = database[self.name]
            indexes_created = self._ensure_indexes(collection)
            inserted = self._populate(collection) if created else 0
        except PyMongoError as exc:
            raise CollectionInitializationError(f"コレクション '{self.name}' の初期化に失敗しました。") from exc

        if created and on_create is not None:
            on_create(self.name, collection)
        return {
            "collection": self.name,
            "created": created,
            "indexesCreated": indexes_created,
            "documentsInserted": inserted,
        }

    def _create(self, database: Database) -> bool:
        logger.info("creating collection %s", self.name)
        try:
            database.create_collection(self.name, **dict(self.options))
        except CollectionInvalid:
            logger.info("collection %s was created concurrently", self.name)
            return False
        except OperationFailure as exc:
            if exc.code == _NAMESPACE_EXISTS:
                logger.info("collection %s was created concurrently", self.name)
                return False
            raise
        return True

    def _ensure_indexes(self, collection: Collection) -> list[str]:
        existing = {index["name"] for index in collection.list_indexes()}
        created: list[str] = []
        for index in self.indexes:
            if index.name in existing:
                continue
            logger.info("creating index %s on %s", index.name, self.name)
            index.create(collection)
            created.append(index.name)
        return created

    def _populate(self, collection: Collection) -> int:
        if not self.prepopulate:
            return 0
        documents = [_with_object_id(document) for document in self.prepopulate]
        collection.insert_many(documents, ordered=True)
        logger.info("prepopulated %d documents in %s", len(documents), self.name)
        return len(documents)


def _with_object_id(document: Mapping[str, Any]) -> dict[str, Any]:
    result = copy.deepcopy(dict(document))
    identifier = result.get("_id")
    if isinstance(identifier, str) and ObjectId.is_valid(identifier):
        result["_id"] = ObjectId(identifier)
    return result


class CollectionsInfo:
    """コレクション定義の集合。同名の定義は後から追加したものに置き換わる。"""

    def __init__(self, infos: Iterable[OneCollectionInfo] = ()) -> None:
        self._infos: dict[str, OneCollectionInfo] = {}
        for info in infos:
            self._infos[info.name] = info

    @staticmethod
    def from_mapping(mapping: Mapping[str, Any]) -> "CollectionsInfo":
        """
        ``{"collections": [...]}`` 形式の Mapping から生成する。

        Raises:
            ValueError: JSON Schema による検証に失敗した場合。
        """

        validator = Draft202012Validator(COLLECTIONS_SCHEMA)
        try:
            validator.validate(mapping)
        except ValidationError as exc:
            location = "/".join(str(part) for part in exc.absolute_path)
            raise ValueError(f"コレクション定義が不正です ({location or '<root>'}): {exc.message}") from exc
        collections = cast(Sequence[Mapping[str, Any]], mapping["collections"])
        return CollectionsInfo(OneCollectionInfo.from_mapping(item) for item in collections)

    def names(self) -> list[str]:
        return list(self._infos)

    def get(self, name: str) -> OneCollectionInfo | None:
        return self._infos.get(name)

    def init(self, database: Database, on_create: OnCreate | None = None) -> list[dict[str, Any]]:
        existing = set(database.list_collection_names())
        return [info.init(database, existing, on_create) for info in self._infos.values()]

    def __iter__(self):
        return iter(self._infos.values())

    def __len__(self) -> int:
        return len(self._infos)

    def __contains__(self, name: object) -> bool:
        return name in self._infos


class IndexInfoBuilder:
    def __init__(self, parent: "OneCollectionInfoBuilder", name: str) -> None:
        self._parent = parent
        self._name = name
        self._keys: list[tuple[str, Any]] = []
        self._options: dict[str, Any] = {}

    def put(self, key: str, direction: Any = 1) -> "IndexInfoBuilder":
        self._keys.append((key, direction))
        return self

    def unique(self, unique: bool = True) -> "IndexInfoBuilder":
        return self.option("unique", unique)

    def sparse(self, sparse: bool = True) -> "IndexInfoBuilder":
        return self.option("sparse", sparse)

    def background(self, background: bool = True) -> "IndexInfoBuilder":
        return self.option("background", background)

    def expire_after(self, seconds: int) -> "IndexInfoBuilder":
        return self.option("expireAfterSeconds", int(seconds))

    def option(self, key: str, value: Any) -> "IndexInfoBuilder":
        self._options[key] = value
        return self

    def build(self) -> "OneCollectionInfoBuilder":
        self._parent._indexes.append(IndexInfo(self._name, tuple(self._keys), dict(self._options)))
        return self._parent


class OneCollectionInfoBuilder:
    def __init__(self, parent: "CollectionsInfoBuilder", name: str) -> None:
        self._parent = parent
        self._name = name
        self._options: dict[str, Any] = {}
        self._indexes: list[IndexInfo] = []
        self._documents: list[Mapping[str, Any]] = []

    def options(self, **options: Any) -> "OneCollectionInfoBuilder":
        self._options.update(options)
        return self

    def capped(self, max_bytes: int, max_documents: int | None = None) -> "OneCollectionInfoBuilder":
        self._options.update({"capped": True, "size": int(max_bytes)})
        if max_documents is not None:
            self._options["max"] = int(max_documents)
        return self

    def index(self, name: str) -> IndexInfoBuilder:
        return IndexInfoBuilder(self, name)

    def insert_when_created(self, *documents: Mapping[str, Any]) -> "OneCollectionInfoBuilder":
        self._documents.extend(documents)
        return self

    def build(self) -> "CollectionsInfoBuilder":
        self._parent._infos.append(
            OneCollectionInfo(
                name=self._name,
                options=dict(self._options),
                indexes=tuple(self._indexes),
                prepopulate=tuple(self._documents),
            )
        )
        return self._parent


class CollectionsInfoBuilder:
    """
    コレクション定義を流れるように組み立てるビルダー。

    Example:
        >>> info = (
        ...     CollectionsInfoBuilder()
        ...     .add("users")
        ...     .index("email_unique").put("email").unique().build()
        ...     .insert_when_created({"email": "admin@example.com"})
        ...     .build()
        ...     .build()
        ... )
    """

    def __init__(self) -> None:
        self._infos: list[OneCollectionInfo] = []

    def add(self, name: str) -> OneCollectionInfoBuilder:
        return OneCollectionInfoBuilder(self, name)

    def build(self) -> CollectionsInfo:
        return CollectionsInfo(self._infos)
