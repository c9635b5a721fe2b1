"""
設定ファイルのコーデック。

``.properties`` 形式（``key=value`` / ``key: value`` / ``key value``、``#`` と ``!`` の
コメント行、行末バックスラッシュによる継続行、``\\uXXXX`` エスケープ）と、
YAML をドット区切りキーに平坦化したものの双方を扱う。
"""

from __future__ import annotations

from pathlib import PurePath
from typing import Mapping

import yaml

from domain.settings.base import to_setting_string

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_KEY_TERMINATORS = "=: \t\f"
YAML_SUFFIXES = (".yaml", ".yml")


class SettingsFormatError(ValueError):
    """設定ファイルの内容を解釈できない場合の例外。"""


def parse_properties(text: str) -> dict[str, str]:
    """``.properties`` 形式の文字列を辞書に変換する。後に出現したキーが優先される。"""

    result: dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = _split_key_value(line)
        result[_unescape(key)] = _unescape(value)
    return result


def dump_properties(mapping: Mapping[str, object]) -> str:
    """辞書を ``.properties`` 形式の文字列に変換する。キーはソートされる。"""

    lines = []
    for key in sorted(mapping):
        value = to_setting_string(mapping[key])
        lines.append(f"{_escape(key, is_key=True)}={_escape(value, is_key=False)}")
    return "\n".join(lines) + ("\n" if lines else "")


def flatten_yaml(text: str) -> dict[str, str]:
    """
    YAML 文書をドット区切りキーの辞書に平坦化する。

    Raises:
        SettingsFormatError: YAML として不正、またはトップレベルが Mapping でない場合。
    """

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SettingsFormatError(f"YAML の解析に失敗しました: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise SettingsFormatError("設定 YAML のトップレベルは Mapping である必要があります。")
    result: dict[str, str] = {}
    _flatten_into(result, "", data)
    return result


def parse_settings_text(text: str, *, name: str) -> dict[str, str]:
    """name の拡張子から形式を判定して解析する。"""

    if PurePath(name).suffix.lower() in YAML_SUFFIXES:
        return flatten_yaml(text)
    return parse_properties(text)


def _flatten_into(result: dict[str, str], prefix: str, data: Mapping[object, object]) -> None:
    for raw_key, value in data.items():
        key = f"{prefix}{raw_key}"
        if isinstance(value, Mapping):
            _flatten_into(result, key + ".", value)
        elif value is not None:
            result[key] = to_setting_string(value)


def _logical_lines(text: str) -> list[str]:
    lines: list[str] = []
    pending: str | None = None
    for physical in text.splitlines():
        stripped = physical.lstrip(" \t\f")
        if pending is None:
            if not stripped or stripped[0] in "#!":
                continue
            current = stripped
        else:
            current = pending + stripped
        if _ends_with_continuation(current):
            pending = current[:-1]
            continue
        pending = None
        lines.append(current)
    if pending is not None:
        lines.append(pending)
    return lines


def _ends_with_continuation(line: str) -> bool:
    count = 0
    for character in reversed(line):
        if character != "\\":
            break
        count += 1
    return count % 2 == 1


def _split_key_value(line: str) -> tuple[str, str]:
    index = 0
    length = len(line)
    while index < length:
        character = line[index]
        if character == "\\":
            index += 2
            continue
        if character in _KEY_TERMINATORS:
            break
        index += 1
    key = line[:index]
    rest = line[index:].lstrip(" \t\f")
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(" \t\f")
    return key, rest


def _unescape(text: str) -> str:
    if "\\" not in text:
        return text
    output: list[str] = []
    index = 0
    length = len(text)
    while index < length:
        character = text[index]
        if character != "\\" or index + 1 >= length:
            output.append(character)
            index += 1
            continue
        marker = text[index + 1]
        if marker == "u":
            digits = text[index + 2 : index + 6]
            try:
                output.append(chr(int(digits, 16)))
            except ValueError as exc:
                raise SettingsFormatError(f"不正な \\u エスケープです: \\u{digits}") from exc
            index += 6
            continue
        output.append(_ESCAPES.get(marker, marker))
        index += 2
    return "".join(output)


def _escape(text: str, *, is_key: bool) -> str:
    output: list[str] = []
    for position, character in enumerate(text):
        if character == "\\":
            output.append("\\\\")
        elif character == "\n":
            output.append("\\n")
        elif character == "\t":
            output.append("\\t")
        elif character == "\r":
            output.append("\\r")
        elif character in "=:#!" and (is_key or position == 0):
            output.append("\\" + character)
        elif character == " " and (is_key or position == 0):
            output.append("\\ ")
        else:
            output.append(character)
    return "".join(output)
