"""
設定関連の例外定義。
"""

from __future__ import annotations


class SettingsError(RuntimeError):
    """設定処理全般の基底例外。"""


class ConfigurationError(SettingsError):
    """コマンドライン引数など、利用者が与えた構成が解釈できない場合の例外。"""


class SettingsLoadError(SettingsError):
    """設定ソースの初回読み込みに失敗した場合の例外。"""


class InvalidSettingValueError(ValueError):
    """設定値を要求された型へ変換できない場合の例外。"""

    def __init__(self, name: str, value: str) -> None:
        super().__init__(f"Invalid value for {name}: {value!r}")
        self.name = name
        self.value = value


class MissingSettingError(KeyError):
    """必須の設定キーが存在しない場合の例外。"""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"設定キー '{self.name}' が存在しません。"
