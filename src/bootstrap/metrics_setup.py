"""
メトリクス初期化ロジック。

``metrics.provider`` に応じて委譲先を選ぶ。``prometheus`` の場合は
``metrics.host`` / ``metrics.port`` / ``metrics.labels.*`` / ``metrics.buckets.*`` を参照する。
"""

from __future__ import annotations

import logging
from typing import Mapping

from prometheus_client import CollectorRegistry
from pydantic import ValidationError

from application.observability import reset_observability, use_metrics_recorder
from domain.settings import InvalidSettingValueError, Settings
from infrastructure.metrics import MetricsRecorder, PrometheusMetricsRegistry, start_metrics_http_server

from .config_loader import MetricsConfigModel
from .container import InvalidConfigurationError, MetricsConfigurator

logger = logging.getLogger("layered_settings_core.bootstrap.metrics")

METRICS_PROVIDER_KEY = "metrics.provider"
METRICS_HOST_KEY = "metrics.host"
METRICS_PORT_KEY = "metrics.port"
METRICS_LABELS_PREFIX = "metrics.labels."
METRICS_BUCKETS_PREFIX = "metrics.buckets."


class MetricsConfiguratorRegistry(MetricsConfigurator):
    """
    provider 名に応じて委譲するディスパッチャ。
    """

    def __init__(self, delegates: Mapping[str, MetricsConfigurator]) -> None:
        if not delegates:
            raise ValueError("メトリクス設定の委譲先が定義されていません。")
        self._delegates = dict(delegates)

    @classmethod
    def default(cls) -> "MetricsConfiguratorRegistry":
        return cls(
            {
                NoopMetricsConfigurator.EXPECTED_PROVIDER: NoopMetricsConfigurator(),
                PrometheusMetricsConfigurator.EXPECTED_PROVIDER: PrometheusMetricsConfigurator(),
            }
        )

    def configure(self, settings: Settings) -> None:
        provider = _provider(settings)
        delegate = self._delegates.get(provider)
        if delegate is None:
            raise InvalidConfigurationError(
                f"metrics provider '{provider}' に対応する初期化ロジックが見つかりません。"
            )
        delegate.configure(settings)


class NoopMetricsConfigurator(MetricsConfigurator):
    """
    provider == noop の場合に適用するダミー実装。
    """

    EXPECTED_PROVIDER = "noop"

    def configure(self, settings: Settings) -> None:
        provider = _provider(settings)
        if provider != self.EXPECTED_PROVIDER:
            raise InvalidConfigurationError(
                f"provider '{provider}' は NoopMetricsConfigurator では扱えません。"
            )
        reset_observability()


class PrometheusMetricsConfigurator(MetricsConfigurator):
    EXPECTED_PROVIDER = "prometheus"

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry
        self.server: object | None = None

    def configure(self, settings: Settings) -> None:
        provider = _provider(settings)
        if provider != self.EXPECTED_PROVIDER:
            raise InvalidConfigurationError(
                f"provider '{provider}' は PrometheusMetricsConfigurator では扱えません。"
            )
        config = _metrics_config(settings, provider)

        registry = self._registry or CollectorRegistry()
        prometheus_registry = PrometheusMetricsRegistry(
            registry=registry,
            histogram_buckets=_parse_histogram_buckets(settings),
        )
        default_labels = _parse_default_labels(settings)
        MetricsRecorder.configure(prometheus_registry, default_labels=default_labels)
        use_metrics_recorder(MetricsRecorder)

        self.server = start_metrics_http_server(registry, host=config.host, port=config.port)
        logger.info(
            "prometheus metrics configured host=%s port=%d labels=%s", config.host, config.port, sorted(default_labels)
        )


def _provider(settings: Settings) -> str:
    value = (settings.get_string(METRICS_PROVIDER_KEY, NoopMetricsConfigurator.EXPECTED_PROVIDER) or "").strip()
    if not value:
        raise InvalidConfigurationError(f"{METRICS_PROVIDER_KEY} は非空の文字列である必要があります。")
    return value


def _metrics_config(settings: Settings, provider: str) -> MetricsConfigModel:
    try:
        return MetricsConfigModel(
            provider=provider,
            host=settings.get_string(METRICS_HOST_KEY, "0.0.0.0"),
            port=settings.get_string(METRICS_PORT_KEY, "0"),
        )
    except ValidationError as exc:
        raise InvalidConfigurationError(f"metrics 設定が不正です: {exc.errors()[0]['msg']}") from exc


def _parse_histogram_buckets(settings: Settings) -> Mapping[str, tuple[float, ...]]:
    buckets: dict[str, tuple[float, ...]] = {}
    scoped = settings.with_prefix(METRICS_BUCKETS_PREFIX)
    for metric in scoped.all_keys():
        if not metric:
            continue
        try:
            values = scoped.get_float_list(metric) or []
        except InvalidSettingValueError as exc:
            raise InvalidConfigurationError(
                f"{METRICS_BUCKETS_PREFIX}{metric} の値は数値である必要があります。"
            ) from exc
        if not values:
            raise InvalidConfigurationError(f"{METRICS_BUCKETS_PREFIX}{metric} が空です。")
        buckets[metric] = tuple(values)
    return buckets


def _parse_default_labels(settings: Settings) -> Mapping[str, str]:
    scoped = settings.with_prefix(METRICS_LABELS_PREFIX)
    return {key: scoped.get_string(key) or "" for key in sorted(scoped.all_keys()) if key}
