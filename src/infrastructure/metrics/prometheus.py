"""
prometheus-client による MetricsRegistry 実装と、``/metrics`` 公開用 HTTP サーバ。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from prometheus_client import (
    CollectorRegistry,
    Counter as PrometheusCounter,
    Gauge as PrometheusGauge,
    Histogram as PrometheusHistogram,
    start_http_server,
)

from .registry import Counter, Gauge, Histogram, MetricsRegistry

logger = logging.getLogger("layered_settings_core.metrics.prometheus")

DEFAULT_METRIC_NAMESPACE = "layered_settings"


class _LabelledMetric:
    """ラベル有無に応じて prometheus のメトリクスへ委譲するアダプタ。"""

    def __init__(self, metric: Any, operation: str) -> None:
        self._metric = metric
        self._operation = operation

    def _apply(self, value: float, labels: Mapping[str, str] | None) -> None:
        target = self._metric.labels(**labels) if labels else self._metric
        getattr(target, self._operation)(value)


class _GaugeAdapter(_LabelledMetric, Gauge):
    def set(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        self._apply(value, labels)


class _CounterAdapter(_LabelledMetric, Counter):
    def inc(self, value: float = 1.0, labels: Mapping[str, str] | None = None) -> None:
        self._apply(value, labels)


class _HistogramAdapter(_LabelledMetric, Histogram):
    def observe(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        self._apply(value, labels)


@dataclass
class PrometheusMetricsRegistry(MetricsRegistry):
    """
    prometheus-client を利用する MetricsRegistry 実装。

    Attributes:
        registry: 登録先の CollectorRegistry。
        histogram_buckets: メトリクス名ごとのヒストグラム境界値。
        namespace: 全メトリクス名に付与する接頭辞。
    """

    registry: CollectorRegistry
    histogram_buckets: Mapping[str, Sequence[float]] | None = None
    namespace: str = DEFAULT_METRIC_NAMESPACE

    _metrics: dict[tuple[str, str, tuple[str, ...]], Any] = field(default_factory=dict, init=False)

    def gauge(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Gauge:
        metric = self._get_or_create("gauge", name, labels, lambda names: PrometheusGauge(
            name, documentation, labelnames=names, namespace=self.namespace, registry=self.registry
        ))
        return _GaugeAdapter(metric, "set")

    def counter(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Counter:
        metric = self._get_or_create("counter", name, labels, lambda names: PrometheusCounter(
            name, documentation, labelnames=names, namespace=self.namespace, registry=self.registry
        ))
        return _CounterAdapter(metric, "inc")

    def histogram(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Histogram:
        buckets = tuple(float(boundary) for boundary in (self.histogram_buckets or {}).get(name, ()))

        def _create(names: tuple[str, ...]) -> PrometheusHistogram:
            if buckets:
                return PrometheusHistogram(
                    name,
                    documentation,
                    labelnames=names,
                    namespace=self.namespace,
                    buckets=buckets,
                    registry=self.registry,
                )
            return PrometheusHistogram(
                name, documentation, labelnames=names, namespace=self.namespace, registry=self.registry
            )

        return _HistogramAdapter(self._get_or_create("histogram", name, labels, _create), "observe")

    def _get_or_create(
        self,
        kind: str,
        name: str,
        labels: Sequence[str] | None,
        factory: Callable[[tuple[str, ...]], Any],
    ) -> Any:
        label_names = tuple(sorted(labels)) if labels else ()
        key = (kind, name, label_names)
        metric = self._metrics.get(key)
        if metric is None:
            metric = factory(label_names)
            self._metrics[key] = metric
        return metric


def start_metrics_http_server(
    registry: CollectorRegistry,
    *,
    host: str,
    port: int,
) -> object | None:
    """
    ``/metrics`` エンドポイントを公開する HTTP サーバを起動する。
    port が 0 以下の場合はサーバを起動しない。
    """

    if port <= 0:
        return None
    server = start_http_server(port, addr=host, registry=registry)
    logger.info("metrics endpoint listening on %s:%d", host, port)
    return server
