"""
キー/文字列値の読み取り専用ビューである Settings と、その基本実装群。

Settings はレイヤ化された設定ソースを 1 つのビューとして扱うための抽象で、
値は常に文字列で保持し、型付きの取得メソッドが都度変換する。
"""

from __future__ import annotations

import base64
import binascii
import re
import threading
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Callable, Iterable, Iterator, Mapping, Sequence, TypeVar, Union

from .errors import InvalidSettingValueError, MissingSettingError
from .namespace import DEFAULT_NAMESPACE, validate_namespace

T = TypeVar("T")

# 既定値は値そのものか、遅延評価される引数なし callable のどちらか。
Default = Union[T, Callable[[], T], None]

_DURATION_PATTERN = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(ms|s|m|h|d)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}
_REPR_LIMIT = 160


def _resolve_default(default: Default[T]) -> T | None:
    if callable(default):
        return default()
    return default


def parse_duration(text: str) -> timedelta:
    """
    ``"250"``, ``"250ms"``, ``"30s"``, ``"5m"``, ``"1h"``, ``"2d"`` 形式の文字列を
    timedelta に変換する。単位を省略した場合はミリ秒として扱う。

    Raises:
        ValueError: 形式が不正な場合。
    """

    match = _DURATION_PATTERN.match(text)
    if match is None:
        raise ValueError(f"期間として解釈できません: {text!r}")
    amount = float(match.group(1))
    unit = (match.group(2) or "ms").lower()
    return _DURATION_UNITS[unit] * amount


def _split_list(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(ABC):
    """
    読み取り専用の設定ビュー。

    サブクラスは :meth:`lookup` と :meth:`all_keys` のみを実装すればよい。
    型付き取得メソッドはキーが存在しない場合に既定値を返し、値が存在するが
    変換できない場合は :class:`InvalidSettingValueError` を送出する。
    """

    @abstractmethod
    def lookup(self, name: str) -> str | None:
        """キーに対応する生の文字列値を返す。存在しない場合は None。"""

    @abstractmethod
    def all_keys(self) -> set[str]:
        """このビューから参照可能なキーの集合を返す。"""

    @staticmethod
    def from_mapping(mapping: Mapping[str, object], *, description: str = "mapping") -> "PropertiesSettings":
        """任意の Mapping を文字列化して Settings に包む。"""

        return PropertiesSettings(mapping, description=description)

    def get_string(self, name: str, default: Default[str] = None) -> str | None:
        value = self.lookup(name)
        if value is None:
            return _resolve_default(default)
        return value

    def require_string(self, name: str) -> str:
        value = self.lookup(name)
        if value is None:
            raise MissingSettingError(name)
        return value

    def get(self, name: str, converter: Callable[[str], T], default: Default[T] = None) -> T | None:
        """
        任意の変換関数で値を取得する。

        Raises:
            InvalidSettingValueError: 変換関数が ValueError / TypeError を送出した場合。
        """

        raw = self.lookup(name)
        if raw is None:
            return _resolve_default(default)
        try:
            return converter(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidSettingValueError(name, raw) from exc

    def get_int(self, name: str, default: Default[int] = None) -> int | None:
        return self.get(name, lambda raw: int(raw.strip()), default)

    def get_float(self, name: str, default: Default[float] = None) -> float | None:
        return self.get(name, lambda raw: float(raw.strip()), default)

    def get_bool(self, name: str, default: Default[bool] = None) -> bool | None:
        raw = self.lookup(name)
        if raw is None:
            return _resolve_default(default)
        return raw.strip().lower() == "true"

    def get_duration(self, name: str, default: Default[timedelta] = None) -> timedelta | None:
        return self.get(name, parse_duration, default)

    def get_base64(self, name: str, default: Default[bytes] = None) -> bytes | None:
        def _decode(raw: str) -> bytes:
            try:
                return base64.b64decode(raw.strip(), validate=True)
            except binascii.Error as exc:
                raise ValueError(str(exc)) from exc

        return self.get(name, _decode, default)

    def get_int_list(self, name: str, default: Default[Sequence[int]] = None) -> list[int] | None:
        result = self.get(name, lambda raw: [int(part) for part in _split_list(raw)], default)
        return list(result) if result is not None else None

    def get_float_list(self, name: str, default: Default[Sequence[float]] = None) -> list[float] | None:
        result = self.get(name, lambda raw: [float(part) for part in _split_list(raw)], default)
        return list(result) if result is not None else None

    def get_string_list(self, name: str, default: Default[Sequence[str]] = None) -> list[str] | None:
        result = self.get(name, _split_list, default)
        return list(result) if result is not None else None

    def if_present(self, name: str, consumer: Callable[[str], object]) -> bool:
        value = self.lookup(name)
        if value is None:
            return False
        consumer(value)
        return True

    def if_int_present(self, name: str, consumer: Callable[[int], object]) -> bool:
        value = self.get_int(name)
        if value is None:
            return False
        consumer(value)
        return True

    def with_prefix(self, prefix: str) -> "Settings":
        if not prefix:
            return self
        return PrefixedSettings(prefix, self)

    def to_dict(self) -> dict[str, str]:
        """現時点の解決済みスナップショットを返す。"""

        snapshot: dict[str, str] = {}
        for key in self.all_keys():
            value = self.lookup(key)
            if value is not None:
                snapshot[key] = value
        return snapshot

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.all_keys()))


class _EmptySettings(Settings):
    def lookup(self, name: str) -> str | None:
        return None

    def all_keys(self) -> set[str]:
        return set()

    def __repr__(self) -> str:
        return "EMPTY"


EMPTY: Settings = _EmptySettings()


class PropertiesSettings(Settings):
    """
    差し替え可能な Mapping を委譲先に持つ Settings。

    設定ソースの定期リフレッシュではこのオブジェクトの委譲先のみが入れ替わり、
    上位の LayeredSettings はそのまま利用し続けられる。
    """

    def __init__(self, mapping: Mapping[str, object] | None = None, *, description: str = "properties") -> None:
        self._lock = threading.Lock()
        self._delegate: dict[str, str] = _stringify(mapping or {})
        self._description = description

    @property
    def description(self) -> str:
        return self._description

    def set_delegate(self, mapping: Mapping[str, object]) -> None:
        replacement = _stringify(mapping)
        with self._lock:
            self._delegate = replacement

    def lookup(self, name: str) -> str | None:
        with self._lock:
            return self._delegate.get(name)

    def all_keys(self) -> set[str]:
        with self._lock:
            return set(self._delegate)

    def __repr__(self) -> str:
        return f"{self._description} ({len(self.all_keys())} keys)"


class LayeredSettings(Settings):
    """
    複数のレイヤを優先順に重ねた Settings。

    先頭のレイヤほど優先され、最初に値を持つレイヤの値が採用される。
    """

    def __init__(self, namespace: str | None, layers: Iterable[Settings]) -> None:
        self._namespace = validate_namespace(namespace or DEFAULT_NAMESPACE)
        self._layers: tuple[Settings, ...] = tuple(layers)

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def layers(self) -> tuple[Settings, ...]:
        return self._layers

    def lookup(self, name: str) -> str | None:
        for layer in self._layers:
            value = layer.lookup(name)
            if value is not None:
                return value
        return None

    def all_keys(self) -> set[str]:
        keys: set[str] = set()
        for layer in self._layers:
            keys.update(layer.all_keys())
        return keys

    def __repr__(self) -> str:
        lines = [f"LayeredSettings[{self._namespace}]"]
        for layer in self._layers:
            description = repr(layer)
            if len(description) > _REPR_LIMIT:
                description = description[: _REPR_LIMIT - 3] + "..."
            lines.append("  " + description.replace("\n", "\n  "))
        return "\n".join(lines)


class PrefixedSettings(Settings):
    """キーに接頭辞を付与して委譲先を参照するビュー。"""

    def __init__(self, prefix: str, delegate: Settings) -> None:
        self._prefix = prefix
        self._delegate = delegate

    def lookup(self, name: str) -> str | None:
        return self._delegate.lookup(self._prefix + name)

    def all_keys(self) -> set[str]:
        size = len(self._prefix)
        return {key[size:] for key in self._delegate.all_keys() if key.startswith(self._prefix)}

    def __repr__(self) -> str:
        return f"PrefixedSettings({self._prefix!r}, {self._delegate!r})"


def _stringify(mapping: Mapping[str, object]) -> dict[str, str]:
    result: dict[str, str] = {}
    for key, value in mapping.items():
        if value is None:
            continue
        result[str(key)] = to_setting_string(value)
    return result


def to_setting_string(value: object) -> str:
    """設定値として保存する文字列表現へ変換する。真偽値は ``true``/``false``。"""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(to_setting_string(item) for item in value)
    return str(value)
