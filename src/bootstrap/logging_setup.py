"""
ロギング初期化ロジック。
"""

from __future__ import annotations

import logging.config
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from domain.settings import Settings

from .config_loader import LoggingConfigModel
from .container import InvalidConfigurationError, LoggingConfigurator, MissingConfigurationError

LOGGING_CONFIG_KEY = "logging.config"
LOGGING_LEVEL_KEY = "logging.level"
LOGGING_FORMAT_KEY = "logging.format"

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class DictConfigLoggingConfigurator(LoggingConfigurator):
    """
    標準ライブラリの ``logging.config.dictConfig`` を用いたロギング初期化。

    ``logging.config`` に YAML ファイルが指定されていればその内容を、
    無ければ ``logging.level`` と ``logging.format`` から組み立てた設定を適用する。
    """

    def configure(self, settings: Settings) -> None:
        config_path = settings.get_string(LOGGING_CONFIG_KEY)
        if config_path:
            config = _load_yaml(Path(config_path))
        else:
            config = build_basic_config(
                level=(settings.get_string(LOGGING_LEVEL_KEY, "INFO") or "INFO").upper(),
                fmt=settings.get_string(LOGGING_FORMAT_KEY, DEFAULT_FORMAT) or DEFAULT_FORMAT,
            )

        try:
            validated = LoggingConfigModel(**config)
        except ValidationError as exc:
            raise InvalidConfigurationError("logging 設定に 'version' が存在しません。") from exc

        try:
            logging.config.dictConfig(_to_plain_dict(validated.model_dump()))
        except (ValueError, TypeError, AttributeError) as exc:
            raise InvalidConfigurationError("logging 設定の適用に失敗しました。") from exc


def build_basic_config(*, level: str, fmt: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": fmt}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default", "level": level},
        },
        "loggers": {
            "layered_settings_core": {"handlers": ["console"], "level": level, "propagate": False},
        },
    }


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise MissingConfigurationError(f"logging 設定ファイルが存在しません: {path}")
    try:
        with path.open("r", encoding="utf-8") as fh:
            content = yaml.safe_load(fh)
    except OSError as exc:
        raise InvalidConfigurationError(f"logging 設定ファイルを読み込めません: {path}") from exc
    except yaml.YAMLError as exc:
        raise InvalidConfigurationError(f"YAML の解析に失敗しました: {path}") from exc

    if not isinstance(content, Mapping):
        raise InvalidConfigurationError(f"YAML ファイルのトップレベルは Mapping である必要があります: {path}")
    return dict(content)


def _to_plain_dict(mapping: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(value, Mapping):
            result[key] = _to_plain_dict(value)
        else:
            result[key] = value
    return result
