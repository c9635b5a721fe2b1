"""
1 文字の短縮コマンドラインオプションと長い設定名との対応を組み立てる。
"""

from __future__ import annotations

import logging
from importlib import resources
from typing import Callable

from domain.settings import DEFAULT_NAMESPACE, declaration_registry, validate_namespace
from domain.settings.declarations import DeclarationRegistry

from .builder import DEFAULT_RESOURCE_DIRECTORY

logger = logging.getLogger("layered_settings_core.settings.shortcuts")

SHORTCUTS_SUFFIX = "-shortcuts.list"


class ShortcutBinding:
    """``ShortcutsBuilder.map(c).to(name)`` の中間オブジェクト。"""

    def __init__(self, character: str, parent: "ShortcutsBuilder") -> None:
        self._character = character
        self._parent = parent

    def to(self, long_name: str) -> "ShortcutsBuilder":
        if not long_name:
            raise ValueError("長い名前は必須です。")
        self._parent._put(self._character, long_name)
        return self._parent


class ShortcutsBuilder:
    """
    短縮オプションの対応表を組み立てるビルダー。

    パッケージ同梱の ``settings/<namespace>-shortcuts.list`` は 1 行 1 対応の
    ``c:long-name`` 形式で、``#`` で始まる行はコメントとして無視する。
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE, *, errors: Callable[[str], None] | None = None) -> None:
        self.namespace = validate_namespace(namespace)
        self._errors = errors or logger.warning
        self._mapping: dict[str, str] = {}

    def map(self, character: str) -> ShortcutBinding:
        if len(character) != 1:
            raise ValueError(f"短縮オプションは 1 文字である必要があります: {character!r}")
        return ShortcutBinding(character, self)

    def load_from_packages(self, *packages: str) -> "ShortcutsBuilder":
        file_name = self.namespace + SHORTCUTS_SUFFIX
        for package in packages:
            try:
                resource = resources.files(package).joinpath(DEFAULT_RESOURCE_DIRECTORY).joinpath(file_name)
            except ModuleNotFoundError:
                logger.debug("shortcut package %s is not importable", package)
                continue
            if resource.is_file():
                self.load_text(resource.read_text(encoding="utf-8"), origin=f"{package}/{file_name}")
        return self

    def load_text(self, text: str, *, origin: str = "<text>") -> "ShortcutsBuilder":
        for line_number, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("#") or len(line) < 3:
                continue
            separator = line.find(":", 1)
            if separator < 0:
                self._errors(f"Unparseable shortcut line {line_number} in {origin}: '{line}'.")
                continue
            self._put(line[0], line[separator + 1 :].strip())
        return self

    def load_from_declarations(self, registry: DeclarationRegistry | None = None) -> "ShortcutsBuilder":
        """:func:`declare_setting` で宣言された shortcut を取り込む。"""

        for declaration in (registry or declaration_registry()).declarations_for(self.namespace):
            if declaration.shortcut:
                self._put(declaration.shortcut, declaration.name)
        return self

    def build(self) -> dict[str, str]:
        return dict(self._mapping)

    def _put(self, character: str, long_name: str) -> None:
        previous = self._mapping.get(character)
        if previous is not None and previous != long_name:
            self._errors(
                f"Shortcut '{character}' mapped to '{long_name}' overrides previous mapping to {previous}"
            )
        self._mapping[character] = long_name
