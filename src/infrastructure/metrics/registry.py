"""
メトリクス実装を差し替えるための抽象。
"""

from __future__ import annotations

from typing import Mapping, Protocol


class Gauge(Protocol):
    def set(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        ...


class Counter(Protocol):
    def inc(self, value: float = 1.0, labels: Mapping[str, str] | None = None) -> None:
        ...


class Histogram(Protocol):
    def observe(self, value: float, labels: Mapping[str, str] | None = None) -> None:
        ...


class MetricsRegistry(Protocol):
    """
    名前とラベル名の組でメトリクスを取得（未登録なら作成）するレジストリ。
    """

    def gauge(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Gauge:
        ...

    def counter(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Counter:
        ...

    def histogram(self, name: str, documentation: str, labels: tuple[str, ...] | None = None) -> Histogram:
        ...
