"""
アプリケーション全体の初期化を担うDIコンテナ。

設定は SettingsBuilder で名前空間ごとに構築し、ロギングとメトリクスの
初期化はその Settings を元に行う。利用側には初期化済みのコンテキストを返す。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from application import observability
from domain.settings import DEFAULT_NAMESPACE, Settings

logger = logging.getLogger("layered_settings_core.bootstrap.container")


class SettingsLoader(Protocol):
    """名前空間の Settings を構築するインターフェース。"""

    def load(self) -> Settings:
        raise NotImplementedError


class LoggingConfigurator(Protocol):
    """ロギング設定を適用するインターフェース。"""

    def configure(self, settings: Settings) -> None:
        raise NotImplementedError


class MetricsConfigurator(Protocol):
    """メトリクスの初期化を行うインターフェース。"""

    def configure(self, settings: Settings) -> None:
        raise NotImplementedError


class BootstrapError(RuntimeError):
    """ブートストラップ処理でのエラーを表す基底例外。"""


class MissingConfigurationError(BootstrapError):
    """必須設定が欠落している場合の例外。"""


class InvalidConfigurationError(BootstrapError):
    """設定値が期待する形式ではない場合の例外。"""


@dataclass(frozen=True)
class BootstrapContext:
    """
    ブートストラップ処理後に利用側へ渡すコンテキスト。
    """

    namespace: str
    settings: Settings


@dataclass
class BootstrapContainer:
    """
    アプリケーション全体の初期化を司るコンテナ。

    Attributes:
        settings_loader_factory: 名前空間から SettingsLoader を生成するファクトリ。
        logging_configurator: ロギング設定適用オブジェクト。
        metrics_configurator: メトリクス設定適用オブジェクト。
        namespace: 読み込む名前空間。
    """

    settings_loader_factory: Callable[[str], SettingsLoader]
    logging_configurator: LoggingConfigurator
    metrics_configurator: MetricsConfigurator
    namespace: str = DEFAULT_NAMESPACE

    def initialize(self) -> BootstrapContext:
        """
        設定ロード・ロギング初期化・メトリクス初期化を順に実行する。

        Raises:
            BootstrapError: 初期化過程での検証エラー。
            SettingsLoadError: 設定ソースの読み込みに失敗した場合。
        """

        settings = self.settings_loader_factory(self.namespace).load()

        self.logging_configurator.configure(settings)
        self.metrics_configurator.configure(settings)

        observability.metrics_recorder.set_settings_keys(self.namespace, len(settings.all_keys()))
        logger.info("bootstrap completed namespace=%s", self.namespace)
        return BootstrapContext(namespace=self.namespace, settings=settings)
