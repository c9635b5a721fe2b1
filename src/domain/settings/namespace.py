"""
設定の名前空間。

名前空間は設定値をグループごとに振り分けるための名前で、設定ファイル名や
リソース名の一部にもなるため、パス区切りなどの文字は使用できない。
"""

from __future__ import annotations

from typing import Callable, TypeVar

DEFAULT_NAMESPACE = "defaults"

_FORBIDDEN_CHARACTERS = frozenset(",/\\:;")
_NAMESPACE_ATTRIBUTE = "__settings_namespace__"

T = TypeVar("T")


def validate_namespace(name: str) -> str:
    """
    名前空間名を検証して返す。

    Raises:
        ValueError: 空文字、空白、または ``, / \\ : ;`` を含む場合。
    """

    if not isinstance(name, str) or not name:
        raise ValueError("名前空間は非空の文字列である必要があります。")
    for character in name:
        if character in _FORBIDDEN_CHARACTERS or character.isspace():
            raise ValueError(f"名前空間 '{name}' に使用できない文字 {character!r} が含まれています。")
    return name


def namespace(name: str) -> Callable[[T], T]:
    """クラスや関数に、参照すべき設定の名前空間を付与するデコレータ。"""

    validate_namespace(name)

    def _decorate(target: T) -> T:
        setattr(target, _NAMESPACE_ATTRIBUTE, name)
        return target

    return _decorate


def namespace_of(target: object, default: str = DEFAULT_NAMESPACE) -> str:
    """:func:`namespace` で付与された名前空間を返す。未指定なら default。"""

    value = getattr(target, _NAMESPACE_ATTRIBUTE, None)
    if value is None and not isinstance(target, type):
        value = getattr(type(target), _NAMESPACE_ATTRIBUTE, None)
    return value if isinstance(value, str) else default
