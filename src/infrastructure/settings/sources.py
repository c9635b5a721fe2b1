"""
SettingsBuilder に積み上げる設定ソース群。

各ソースは ``load()`` で ``dict[str, str]`` を返し、``interval`` が有効な場合は
SettingsBuilder.build() 後に定期的に再読み込みされる。
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from email.utils import formatdate
from importlib import resources
from pathlib import Path
from typing import Any, Callable, Mapping

import httpx

from domain.settings import RefreshInterval, Settings, declaration_registry
from domain.settings.base import to_setting_string
from domain.settings.declarations import DeclarationRegistry

from .codecs import flatten_yaml, parse_settings_text
from .system_properties import SystemProperties, system_properties

logger = logging.getLogger("layered_settings_core.settings.sources")

URL_TIMEOUT_SECONDS = 20.0


class SettingsSource(ABC):
    """設定値の読み込み元。"""

    interval: RefreshInterval = RefreshInterval.NONE

    @abstractmethod
    def load(self) -> dict[str, str]:
        """現在の設定値を読み込む。"""

    def describe(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return self.describe()


class FixedSource(SettingsSource):
    """
    固定の Mapping を返すソース。

    ``owned`` が真のものは SettingsBuilder.add() が生成した内部レイヤで、
    以降の単一キー追加をまとめて受け入れる。
    """

    def __init__(self, values: Mapping[str, object] | None = None, *, owned: bool = False, label: str = "fixed") -> None:
        self._values: dict[str, str] = {
            str(key): to_setting_string(value) for key, value in (values or {}).items() if value is not None
        }
        self.owned = owned
        self._label = label

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def put(self, key: str, value: str) -> None:
        if not self.owned:
            raise RuntimeError("呼び出し元から渡された Mapping は変更できません。")
        self._values[key] = value

    def load(self) -> dict[str, str]:
        return dict(self._values)

    def describe(self) -> str:
        return f"{self._label}{sorted(self._values)}"


class FileSource(SettingsSource):
    """
    ファイルを読み込むソース。存在しないファイルは空として扱う。

    拡張子が ``.yaml``/``.yml`` のものは YAML、それ以外は ``.properties`` として解析する。
    """

    def __init__(self, path: Path | str, interval: RefreshInterval = RefreshInterval.FILES) -> None:
        self.path = Path(path)
        self.interval = interval

    def load(self) -> dict[str, str]:
        if not self.path.is_file():
            return {}
        text = self.path.read_text(encoding="utf-8")
        return parse_settings_text(text, name=self.path.name)

    def describe(self) -> str:
        return f"file:{self.path}"


class UrlSource(SettingsSource):
    """
    HTTP(S) 上の設定ファイルを取得するソース。

    2 回目以降は ``If-Modified-Since`` / ``If-None-Match`` を付与し、
    200 以外の応答では直前に取得できた内容を維持する。
    """

    def __init__(
        self,
        url: str,
        interval: RefreshInterval = RefreshInterval.URLS,
        *,
        client_factory: Callable[[], httpx.Client] | None = None,
    ) -> None:
        if not url:
            raise ValueError("URL は必須です。")
        self.url = url
        self.interval = interval
        self._client_factory = client_factory or _default_client_factory
        self._last: dict[str, str] = {}
        self._last_modified: str | None = None
        self._etag: str | None = None

    def load(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._last_modified:
            headers["If-Modified-Since"] = self._last_modified
        if self._etag:
            headers["If-None-Match"] = self._etag

        with self._client_factory() as client:
            response = client.get(self.url, headers=headers)

        if response.status_code != 200:
            if response.status_code != 304:
                logger.warning(
                    "settings url %s returned status=%s; keeping previous values",
                    self.url,
                    response.status_code,
                )
            return dict(self._last)

        content_type = response.headers.get("content-type", "")
        if "yaml" in content_type:
            values = flatten_yaml(response.text)
        else:
            values = parse_settings_text(response.text, name=httpx.URL(self.url).path)
        self._last = values
        self._last_modified = response.headers.get("last-modified") or formatdate(usegmt=True)
        self._etag = response.headers.get("etag")
        return dict(values)

    def describe(self) -> str:
        return f"url:{self.url}"


def _default_client_factory() -> httpx.Client:
    return httpx.Client(timeout=URL_TIMEOUT_SECONDS, follow_redirects=True)


class RedisHashSource(SettingsSource):
    """Redis のハッシュ 1 つを設定として読み込むソース。"""

    def __init__(self, client: Any, key: str, interval: RefreshInterval = RefreshInterval.URLS) -> None:
        if not key:
            raise ValueError("Redis のキーは必須です。")
        self._client = client
        self.key = key
        self.interval = interval

    def load(self) -> dict[str, str]:
        raw = self._client.hgetall(self.key) or {}
        return {_decode(field): _decode(value) for field, value in raw.items()}

    def describe(self) -> str:
        return f"redis:{self.key}"


def _decode(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class EnvironmentSource(SettingsSource):
    """環境変数を読み込むソース。keys を指定した場合はそのキーのみを公開する。"""

    def __init__(self, keys: tuple[str, ...] = (), environ: Mapping[str, str] | None = None) -> None:
        self.keys = tuple(keys)
        self._environ = environ

    def load(self) -> dict[str, str]:
        environ = self._environ if self._environ is not None else os.environ
        if not self.keys:
            return dict(environ)
        return {key: environ[key] for key in self.keys if key in environ}

    def describe(self) -> str:
        if self.keys:
            return f"env{list(self.keys)}"
        return "env"


class SystemPropertiesSource(SettingsSource):
    """プロセス全体の :class:`SystemProperties` を読み込むソース。"""

    def __init__(self, properties: SystemProperties | None = None) -> None:
        self._properties = properties or system_properties
        self.interval = RefreshInterval.SYSTEM_PROPERTIES

    def load(self) -> dict[str, str]:
        return self._properties.snapshot()

    def describe(self) -> str:
        return "system-properties"


class ResourceSource(SettingsSource):
    """インポート可能なパッケージに同梱された設定ファイルを読み込むソース。"""

    def __init__(self, package: str, resource: str, interval: RefreshInterval = RefreshInterval.CLASSPATH) -> None:
        self.package = package
        self.resource = resource
        self.interval = interval

    def load(self) -> dict[str, str]:
        try:
            root = resources.files(self.package)
        except ModuleNotFoundError:
            logger.debug("resource package %s is not importable", self.package)
            return {}
        target = root
        for part in self.resource.split("/"):
            target = target.joinpath(part)
        if not target.is_file():
            return {}
        text = target.read_text(encoding="utf-8")
        return parse_settings_text(text, name=self.resource)

    def describe(self) -> str:
        return f"resource:{self.package}/{self.resource}"


class DeclaredDefaultsSource(SettingsSource):
    """コード上で宣言された既定値を読み込むソース。"""

    def __init__(self, namespace: str, registry: DeclarationRegistry | None = None) -> None:
        self.namespace = namespace
        self._registry = registry or declaration_registry()

    def load(self) -> dict[str, str]:
        return self._registry.defaults_for(self.namespace)

    def describe(self) -> str:
        return f"declared-defaults:{self.namespace}"


class ExistingSettingsSource(SettingsSource):
    """既存の Settings をそのままレイヤとして使うためのソース。"""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def load(self) -> dict[str, str]:
        return self.settings.to_dict()

    def describe(self) -> str:
        return f"settings:{self.settings!r}"


__all__ = [
    "DeclaredDefaultsSource",
    "EnvironmentSource",
    "ExistingSettingsSource",
    "FileSource",
    "FixedSource",
    "RedisHashSource",
    "ResourceSource",
    "SettingsSource",
    "SystemPropertiesSource",
    "UrlSource",
]
