"""
コード上で宣言される設定の既定値とメタデータ。

:func:`defaults` はモジュールやクラスに ``"key=value"`` 形式の既定値を添え、
:func:`declare_setting` は説明・型・検証パターン・短縮オプションなどを伴う
個別の設定項目を宣言する。宣言はプロセス全体のレジストリに集約され、
SettingsBuilder が最も優先度の低いレイヤとして取り込む。
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, TypeVar

from .namespace import DEFAULT_NAMESPACE, validate_namespace

logger = logging.getLogger("layered_settings_core.settings.declarations")

T = TypeVar("T")


class SettingType(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"


class SettingTier(str, Enum):
    """利用者にとっての重要度。ヘルプ表示の並び順に使う。"""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"


@dataclass(frozen=True)
class SettingDeclaration:
    """
    個別の設定項目の宣言。

    Attributes:
        name: 設定キー。
        description: 説明文。
        namespace: 所属する名前空間。
        value_type: 値の型。
        default_value: 既定値（文字列）。None の場合は既定値なし。
        pattern: 値が満たすべき正規表現。
        shortcut: 1 文字の短縮コマンドラインオプション。
        tier: 重要度。
        origin: 宣言元の識別子。
    """

    name: str
    description: str
    namespace: str = DEFAULT_NAMESPACE
    value_type: SettingType = SettingType.STRING
    default_value: str | None = None
    pattern: str | None = None
    shortcut: str | None = None
    tier: SettingTier = SettingTier.PRIMARY
    origin: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("設定名は必須です。")
        validate_namespace(self.namespace)
        if self.shortcut is not None and len(self.shortcut) != 1:
            raise ValueError(f"設定 '{self.name}' の shortcut は 1 文字である必要があります。")
        if self.pattern is not None:
            re.compile(self.pattern)
        if self.default_value is not None:
            self.validate_value(self.default_value)

    def validate_value(self, value: str) -> None:
        """
        値が宣言された型と検証パターンを満たすか確認する。

        Raises:
            ValueError: 満たさない場合。
        """

        if self.value_type is SettingType.INTEGER:
            try:
                int(value.strip())
            except ValueError as exc:
                raise ValueError(f"設定 '{self.name}' の値 {value!r} は整数ではありません。") from exc
        elif self.value_type is SettingType.FLOAT:
            try:
                float(value.strip())
            except ValueError as exc:
                raise ValueError(f"設定 '{self.name}' の値 {value!r} は数値ではありません。") from exc
        elif self.value_type is SettingType.BOOLEAN:
            if value.strip().lower() not in ("true", "false"):
                raise ValueError(f"設定 '{self.name}' の値 {value!r} は true/false ではありません。")
        if self.pattern is not None and re.fullmatch(self.pattern, value) is None:
            raise ValueError(
                f"設定 '{self.name}' の値 {value!r} がパターン {self.pattern!r} に一致しません。"
            )


@dataclass(frozen=True)
class _DefaultEntry:
    value: str
    origin: str


class DeclarationRegistry:
    """宣言された既定値と設定項目を名前空間ごとに保持するレジストリ。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._defaults: dict[str, dict[str, _DefaultEntry]] = {}
        self._declarations: dict[str, dict[str, SettingDeclaration]] = {}
        self._conflicts: list[str] = []

    def register_defaults(self, namespace: str, pairs: Iterable[str], *, origin: str = "") -> dict[str, str]:
        """
        ``"key=value"`` 形式の既定値を登録し、解釈した値を返す。

        Raises:
            ValueError: ``=`` を含まない要素がある場合。
        """

        validate_namespace(namespace)
        parsed: dict[str, str] = {}
        for pair in pairs:
            key, separator, value = pair.partition("=")
            if not separator or not key.strip():
                raise ValueError(f"既定値 {pair!r} は 'key=value' 形式である必要があります。")
            parsed[key.strip()] = value.strip()
        with self._lock:
            for key, value in parsed.items():
                self._put_default(namespace, key, value, origin)
        return parsed

    def declare(self, declaration: SettingDeclaration) -> SettingDeclaration:
        with self._lock:
            namespace_declarations = self._declarations.setdefault(declaration.namespace, {})
            namespace_declarations[declaration.name] = declaration
            if declaration.default_value is not None:
                self._put_default(
                    declaration.namespace,
                    declaration.name,
                    declaration.default_value,
                    declaration.origin,
                )
        return declaration

    def namespaces(self) -> set[str]:
        with self._lock:
            return set(self._defaults) | set(self._declarations)

    def defaults_for(self, namespace: str) -> dict[str, str]:
        with self._lock:
            entries = self._defaults.get(namespace, {})
            return {key: entry.value for key, entry in entries.items()}

    def declarations_for(self, namespace: str) -> list[SettingDeclaration]:
        """宣言を重要度、名前の順に並べて返す。"""

        with self._lock:
            declarations = list(self._declarations.get(namespace, {}).values())
        tier_order = list(SettingTier)
        return sorted(declarations, key=lambda item: (tier_order.index(item.tier), item.name))

    def declaration(self, namespace: str, name: str) -> SettingDeclaration | None:
        with self._lock:
            return self._declarations.get(namespace, {}).get(name)

    def conflicts(self) -> list[str]:
        with self._lock:
            return list(self._conflicts)

    def clear(self) -> None:
        with self._lock:
            self._defaults.clear()
            self._declarations.clear()
            self._conflicts.clear()

    def _put_default(self, namespace: str, key: str, value: str, origin: str) -> None:
        entries = self._defaults.setdefault(namespace, {})
        existing = entries.get(key)
        if existing is not None and existing.value != value:
            message = (
                f"{namespace}:{key} の既定値が競合しています: "
                f"{existing.value!r} ({existing.origin}) -> {value!r} ({origin})"
            )
            self._conflicts.append(message)
            logger.warning(message)
        entries[key] = _DefaultEntry(value=value, origin=origin)


_registry = DeclarationRegistry()


def declaration_registry() -> DeclarationRegistry:
    return _registry


def defaults(*pairs: str, namespace: str = DEFAULT_NAMESPACE) -> Callable[[T], T]:
    """
    モジュールレベルのクラスや関数に既定値を添えるデコレータ。

    Example:
        >>> @defaults("server.port=8080", "server.host=localhost")
        ... class Server: ...
    """

    def _decorate(target: T) -> T:
        origin = f"{getattr(target, '__module__', '')}.{getattr(target, '__qualname__', target)!s}"
        _registry.register_defaults(namespace, pairs, origin=origin)
        return target

    return _decorate


def declare_setting(
    name: str,
    description: str,
    *,
    namespace: str = DEFAULT_NAMESPACE,
    value_type: SettingType = SettingType.STRING,
    default: object = None,
    pattern: str | None = None,
    shortcut: str | None = None,
    tier: SettingTier = SettingTier.PRIMARY,
    origin: str = "",
) -> SettingDeclaration:
    """設定項目を宣言してレジストリに登録する。"""

    default_value: str | None
    if default is None:
        default_value = None
    elif isinstance(default, bool):
        default_value = "true" if default else "false"
    else:
        default_value = str(default)
    declaration = SettingDeclaration(
        name=name,
        description=description,
        namespace=namespace,
        value_type=value_type,
        default_value=default_value,
        pattern=pattern,
        shortcut=shortcut,
        tier=tier,
        origin=origin,
    )
    return _registry.declare(declaration)
