"""
メトリクス関連の公開API。
"""

from .prometheus import PrometheusMetricsRegistry, start_metrics_http_server
from .recorder import MetricsRecorder
from .registry import Counter, Gauge, Histogram, MetricsRegistry

__all__ = [
    "Counter",
    "Gauge",
    "Histogram",
    "MetricsRecorder",
    "MetricsRegistry",
    "PrometheusMetricsRegistry",
    "start_metrics_http_server",
]
