"""
SettingsBuilder を用いて名前空間の Settings を構築するローダと、設定検証モデル。
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from domain.settings import Settings
from infrastructure.settings import SettingsBuilder

from .container import SettingsLoader


class LoggingConfigModel(BaseModel):
    """``logging.config`` で指定する dictConfig 形式 YAML の最小検証モデル。"""

    model_config = ConfigDict(extra="allow")

    version: int


class MetricsConfigModel(BaseModel):
    """``metrics.*`` 設定の検証モデル。"""

    provider: str = "noop"
    host: str = Field(default="0.0.0.0", min_length=1)
    port: int = Field(default=0, ge=0, le=65535)


class BuilderSettingsLoader(SettingsLoader):
    """
    既定の場所（環境変数、システムプロパティ、同梱リソース、各種ディレクトリ）と
    追加ファイル、コマンドライン引数から Settings を構築する実装。
    """

    def __init__(
        self,
        namespace: str,
        *,
        resource_packages: Iterable[str] = ("runtime",),
        files: Sequence[Path] = (),
        locations: Sequence[Path] = (),
        args: Sequence[str] = (),
        shortcuts: dict[str, str] | None = None,
    ) -> None:
        self._namespace = namespace
        self._resource_packages = tuple(resource_packages)
        self._files = tuple(files)
        self._locations = tuple(locations)
        self._args = tuple(args)
        self._shortcuts = shortcuts
        self.builder: SettingsBuilder | None = None

    def load(self) -> Settings:
        builder = SettingsBuilder(self._namespace, resource_packages=self._resource_packages)
        builder.add_system_properties().add_filesystem_and_classpath_locations()
        for location in self._locations:
            builder.add_location(location)
        for path in self._files:
            builder.add_file(path)
        builder.parse_command_line_arguments(*self._args, shortcuts=self._shortcuts)
        builder.add_env()
        self.builder = builder
        return builder.build()
